# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for cohort and group capacity checks."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from coursedesk.domains.capacity import (
    CohortFullError,
    CohortNotFoundError,
    GroupFullError,
    GroupNotFoundError,
    cohort_capacity_query,
    ensure_cohort_headroom,
    ensure_group_headroom,
    group_capacity_query,
    has_headroom,
    lock_cohort,
    lock_group,
    spots_remaining,
)


def compile_pg(query) -> str:
    return str(query.compile(dialect=postgresql.dialect()))


def where_clause(query) -> str:
    return compile_pg(query).split("WHERE", 1)[1]


def count_result(value: int):
    result = MagicMock()
    result.scalar_one.return_value = value
    return result


class TestHeadroom:
    """Tests for the headroom arithmetic."""

    @pytest.mark.parametrize(
        ("current", "incoming", "limit", "expected"),
        [
            (0, 1, None, True),
            (500, 500, None, True),
            (0, 1, 0, False),
            (1, 1, 2, True),
            (2, 1, 2, False),
            (0, 3, 3, True),
            (1, 3, 3, False),
        ],
    )
    def test_has_headroom(self, current, incoming, limit, expected) -> None:
        """Test admissions fit only while current + incoming <= limit."""
        assert has_headroom(current, incoming, limit) is expected

    def test_spots_remaining(self) -> None:
        """Test remaining seats never go negative."""
        assert spots_remaining(1, 3) == 2
        assert spots_remaining(3, 3) == 0
        assert spots_remaining(5, 3) == 0
        assert spots_remaining(0, 0) == 0
        assert spots_remaining(10, None) is None


class TestLockingQueries:
    """Tests for the capacity row reads."""

    def test_cohort_query_locks_row(self) -> None:
        """Test the cohort read is FOR UPDATE and scoped to the course."""
        query = cohort_capacity_query("course-1", "cohort-1")

        assert compile_pg(query).endswith("FOR UPDATE")
        assert "cohorts.course_id" in where_clause(query)

    def test_group_query_locks_row_and_skips_archived(self) -> None:
        """Test the group read is FOR UPDATE and filters archived groups."""
        query = group_capacity_query("course-1", "group-1")

        assert compile_pg(query).endswith("FOR UPDATE")
        assert "course_groups.is_archived IS" in where_clause(query)

    def test_group_query_can_include_archived(self) -> None:
        """Test archived groups are included on request."""
        query = group_capacity_query("course-1", "group-1", include_archived=True)

        assert "is_archived" not in where_clause(query)
        assert compile_pg(query).endswith("FOR UPDATE")


class TestLocks:
    """Tests for lock_cohort and lock_group."""

    @pytest.mark.asyncio
    async def test_lock_cohort_not_found(self) -> None:
        """Test a missing cohort raises CohortNotFoundError."""
        db = AsyncMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        db.execute.return_value = result

        with pytest.raises(CohortNotFoundError, match="Cohort not found"):
            await lock_cohort(db, "course-1", "cohort-1")

    @pytest.mark.asyncio
    async def test_lock_group_not_found(self) -> None:
        """Test a missing or archived group raises GroupNotFoundError."""
        db = AsyncMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        db.execute.return_value = result

        with pytest.raises(GroupNotFoundError, match="Group not found or is archived"):
            await lock_group(db, "course-1", "group-1")


class TestEnsureHeadroom:
    """Tests for ensure_cohort_headroom and ensure_group_headroom."""

    @pytest.mark.asyncio
    async def test_cohort_with_room_returns_count(self) -> None:
        """Test the current count is returned when the admission fits."""
        db = AsyncMock()
        db.execute.return_value = count_result(1)
        cohort = MagicMock(id="cohort-1", enrollment_limit=2)

        assert await ensure_cohort_headroom(db, cohort, 1) == 1

    @pytest.mark.asyncio
    async def test_cohort_full_single(self) -> None:
        """Test a single admission into a full cohort."""
        db = AsyncMock()
        db.execute.return_value = count_result(2)
        cohort = MagicMock(id="cohort-1", enrollment_limit=2)

        with pytest.raises(CohortFullError, match="Cohort is full") as exc_info:
            await ensure_cohort_headroom(db, cohort, 1)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_cohort_full_bulk_details(self) -> None:
        """Test a bulk admission reports remaining spots and counts."""
        db = AsyncMock()
        db.execute.return_value = count_result(1)
        cohort = MagicMock(id="cohort-1", enrollment_limit=3)

        with pytest.raises(CohortFullError, match="Cohort only has 2 spots remaining") as exc_info:
            await ensure_cohort_headroom(db, cohort, 3, bulk=True)

        assert exc_info.value.details == {"limit": 3, "current": 1, "requested": 3}

    @pytest.mark.asyncio
    async def test_bulk_of_one_keeps_details(self) -> None:
        """Test a one-student batch into a full cohort still reports counts."""
        db = AsyncMock()
        db.execute.return_value = count_result(2)
        cohort = MagicMock(id="cohort-1", enrollment_limit=2)

        with pytest.raises(CohortFullError, match="Cohort only has 0 spots remaining") as exc_info:
            await ensure_cohort_headroom(db, cohort, 1, bulk=True)

        assert exc_info.value.details == {"limit": 2, "current": 2, "requested": 1}

    @pytest.mark.asyncio
    async def test_group_bulk_of_one_keeps_details(self) -> None:
        """Test a one-member batch into a full group still reports counts."""
        db = AsyncMock()
        db.execute.return_value = count_result(1)
        group = MagicMock(id="group-1", max_members=1)

        with pytest.raises(GroupFullError, match="Group only has 0 spots remaining") as exc_info:
            await ensure_group_headroom(db, group, 1, bulk=True)

        assert exc_info.value.details == {"limit": 1, "current": 1, "requested": 1}

    @pytest.mark.asyncio
    async def test_zero_limit_group_admits_nobody(self) -> None:
        """Test a group limit of zero is enforced."""
        db = AsyncMock()
        db.execute.return_value = count_result(0)
        group = MagicMock(id="group-1", max_members=0)

        with pytest.raises(GroupFullError, match="Group is full"):
            await ensure_group_headroom(db, group, 1)

    @pytest.mark.asyncio
    async def test_unbounded_group(self) -> None:
        """Test a group without max_members always fits."""
        db = AsyncMock()
        db.execute.return_value = count_result(1000)
        group = MagicMock(id="group-1", max_members=None)

        assert await ensure_group_headroom(db, group, 50) == 1000
