# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for concurrent admissions racing for the last seat.

Each admission runs in its own session, started together with
``asyncio.gather``. Exactly one of them may take the seat.
"""

import asyncio

import pytest

from coursedesk.domains.capacity import CohortFullError, GroupFullError
from coursedesk.domains.enrollment.service import EnrollmentService
from coursedesk.domains.group.service import GroupMembershipService
from coursedesk.models.enrollment import EnrollmentRecord, EnrollStudentRequest
from coursedesk.models.group import AddMemberRequest, MembershipRecord

pytestmark = pytest.mark.integration


@pytest.fixture
def enroll(session_factory, seed):
    """Run a single enrollment in a fresh session."""

    async def _enroll(student_id, cohort_id=None, group_id=None):
        async with session_factory() as session:
            service = EnrollmentService(db=session)
            return await service.enroll_student(
                course_id=seed.course.id,
                request=EnrollStudentRequest(
                    student_id=student_id,
                    cohort_id=cohort_id,
                    group_id=group_id,
                ),
                enrolled_by=seed.owner.id,
            )

    return _enroll


@pytest.fixture
def add_member(session_factory, seed):
    """Add one member to a group in a fresh session."""

    async def _add_member(group_id, enrollment_id):
        async with session_factory() as session:
            service = GroupMembershipService(db=session)
            record, _ = await service.add_member(
                course_id=seed.course.id,
                group_id=group_id,
                request=AddMemberRequest(enrollment_id=enrollment_id),
                added_by=seed.owner.id,
            )
            return record

    return _add_member


def split_results(results, record_type, error_type):
    admitted = [r for r in results if isinstance(r, record_type)]
    rejected = [r for r in results if isinstance(r, error_type)]
    assert len(admitted) + len(rejected) == len(results), results
    return admitted, rejected


class TestConcurrentAdmission:
    """Tests for admissions competing for the same cohort or group."""

    @pytest.mark.asyncio
    async def test_last_group_seat_goes_to_one_enrollment(self, enroll, seed, db):
        """Test two enrollments into a one-seat group admit exactly one."""
        results = await asyncio.gather(
            enroll(seed.students[0].id, group_id=seed.solo_group.id),
            enroll(seed.students[1].id, group_id=seed.solo_group.id),
            return_exceptions=True,
        )

        admitted, rejected = split_results(results, EnrollmentRecord, GroupFullError)
        assert len(admitted) == 1
        assert len(rejected) == 1
        assert await db.count_memberships(group_id=seed.solo_group.id) == 1
        assert await db.count_enrollments(course_id=seed.course.id) == 1

    @pytest.mark.asyncio
    async def test_last_cohort_seat_goes_to_one_enrollment(self, enroll, seed, db):
        """Test two enrollments into a cohort with one seat left admit exactly one."""
        await db.add_enrollment(
            seed.org.id, seed.students[0].id, seed.course.id, cohort_id=seed.cohort.id
        )

        results = await asyncio.gather(
            enroll(seed.students[1].id, cohort_id=seed.cohort.id),
            enroll(seed.students[2].id, cohort_id=seed.cohort.id),
            return_exceptions=True,
        )

        admitted, rejected = split_results(results, EnrollmentRecord, CohortFullError)
        assert len(admitted) == 1
        assert len(rejected) == 1
        assert await db.count_enrollments(cohort_id=seed.cohort.id) == 2

    @pytest.mark.asyncio
    async def test_last_group_seat_goes_to_one_member(self, add_member, seed, db):
        """Test two member adds into a one-seat group admit exactly one."""
        first = await db.add_enrollment(seed.org.id, seed.students[0].id, seed.course.id)
        second = await db.add_enrollment(seed.org.id, seed.students[1].id, seed.course.id)

        results = await asyncio.gather(
            add_member(seed.solo_group.id, first),
            add_member(seed.solo_group.id, second),
            return_exceptions=True,
        )

        admitted, rejected = split_results(results, MembershipRecord, GroupFullError)
        assert len(admitted) == 1
        assert len(rejected) == 1
        assert await db.count_memberships(group_id=seed.solo_group.id) == 1
