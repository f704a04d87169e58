# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cohort and group capacity checks.

Occupancy is derived from row counts inside the caller's transaction.
The cohort or group row is read ``FOR UPDATE`` before counting, so
concurrent admissions into the same cohort or group serialize on the
row lock until the admitting transaction commits or rolls back.
SQLite ignores ``FOR UPDATE``; its engine opens every transaction with
``BEGIN IMMEDIATE`` instead, so the first read takes the database write lock.

Headroom policy: an admission of ``incoming`` rows is rejected when
``current + incoming > limit``. ``None`` means unbounded and a limit of
0 admits nobody.
"""

import logging

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.domains.errors import ConflictError, NotFoundError
from coursedesk.infrastructure.database.models import (
    Cohort,
    CourseGroup,
    CourseGroupMembership,
    Enrollment,
)

logger = logging.getLogger(__name__)


class CohortNotFoundError(NotFoundError):
    """Raised when the cohort does not exist under the course."""


class GroupNotFoundError(NotFoundError):
    """Raised when the group does not exist under the course or is archived."""


class CapacityError(ConflictError):
    """Raised when an admission would exceed a cohort or group limit."""


class CohortFullError(CapacityError):
    pass


class GroupFullError(CapacityError):
    pass


def cohort_capacity_query(course_id: str, cohort_id: str) -> Select:
    """Build the locking read of a cohort row."""
    return (
        select(Cohort)
        .where(Cohort.id == cohort_id, Cohort.course_id == course_id)
        .with_for_update()
    )


def group_capacity_query(
    course_id: str, group_id: str, include_archived: bool = False
) -> Select:
    """Build the locking read of a group row.

    Archived groups are filtered out unless ``include_archived`` is set.
    """
    query = select(CourseGroup).where(
        CourseGroup.id == group_id,
        CourseGroup.course_id == course_id,
    )
    if not include_archived:
        query = query.where(CourseGroup.is_archived.is_(False))
    return query.with_for_update()


def has_headroom(current: int, incoming: int, limit: int | None) -> bool:
    """Check whether ``incoming`` more rows fit under ``limit``."""
    if limit is None:
        return True
    return current + incoming <= limit


def spots_remaining(current: int, limit: int | None) -> int | None:
    """Remaining seats, or None for an unbounded limit."""
    if limit is None:
        return None
    return max(limit - current, 0)


async def lock_cohort(db: AsyncSession, course_id: str, cohort_id: str) -> Cohort:
    """Lock and return a cohort of the course.

    Raises:
        CohortNotFoundError: If the cohort does not belong to the course.
    """
    result = await db.execute(cohort_capacity_query(course_id, cohort_id))
    cohort = result.scalar_one_or_none()

    if not cohort:
        raise CohortNotFoundError("Cohort not found")

    return cohort


async def lock_group(
    db: AsyncSession, course_id: str, group_id: str, include_archived: bool = False
) -> CourseGroup:
    """Lock and return a group of the course.

    Archived groups are only returned when ``include_archived`` is set.

    Raises:
        GroupNotFoundError: If missing, or archived and not included.
    """
    result = await db.execute(group_capacity_query(course_id, group_id, include_archived))
    group = result.scalar_one_or_none()

    if not group:
        raise GroupNotFoundError("Group not found or is archived")

    return group


async def count_cohort_enrollments(db: AsyncSession, cohort_id: str) -> int:
    """Count enrollments currently assigned to a cohort."""
    result = await db.execute(
        select(func.count(Enrollment.id)).where(Enrollment.cohort_id == cohort_id)
    )
    return result.scalar_one()


async def count_group_members(db: AsyncSession, group_id: str) -> int:
    """Count memberships of a group."""
    result = await db.execute(
        select(func.count(CourseGroupMembership.id)).where(
            CourseGroupMembership.group_id == group_id
        )
    )
    return result.scalar_one()


async def ensure_cohort_headroom(
    db: AsyncSession, cohort: Cohort, incoming: int, bulk: bool = False
) -> int:
    """Reject the admission if ``incoming`` enrollments exceed the cohort limit.

    Args:
        db: Session holding the cohort row lock.
        cohort: Locked cohort.
        incoming: Number of enrollments about to join.
        bulk: Batch admission; the error then reports remaining spots
            with ``{limit, current, requested}`` details.

    Returns:
        Current enrollment count of the cohort.

    Raises:
        CohortFullError: If the limit would be exceeded.
    """
    current = await count_cohort_enrollments(db, cohort.id)

    if not has_headroom(current, incoming, cohort.enrollment_limit):
        logger.info(
            "Cohort capacity exceeded: cohort=%s, current=%d, incoming=%d, limit=%s",
            cohort.id,
            current,
            incoming,
            cohort.enrollment_limit,
        )
        if not bulk:
            raise CohortFullError("Cohort is full")
        raise CohortFullError(
            f"Cohort only has {spots_remaining(current, cohort.enrollment_limit)} spots remaining",
            details={
                "limit": cohort.enrollment_limit,
                "current": current,
                "requested": incoming,
            },
        )

    return current


async def ensure_group_headroom(
    db: AsyncSession, group: CourseGroup, incoming: int, bulk: bool = False
) -> int:
    """Reject the admission if ``incoming`` memberships exceed the group limit.

    Returns:
        Current member count of the group.

    Raises:
        GroupFullError: If the limit would be exceeded.
    """
    current = await count_group_members(db, group.id)

    if not has_headroom(current, incoming, group.max_members):
        logger.info(
            "Group capacity exceeded: group=%s, current=%d, incoming=%d, limit=%s",
            group.id,
            current,
            incoming,
            group.max_members,
        )
        if not bulk:
            raise GroupFullError("Group is full")
        raise GroupFullError(
            f"Group only has {spots_remaining(current, group.max_members)} spots remaining",
            details={
                "limit": group.max_members,
                "current": current,
                "requested": incoming,
            },
        )

    return current
