# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for enrollment admission against a real database.

Each service call runs in its own session, like one API request.
"""

import pytest

from coursedesk.domains.capacity import (
    CohortFullError,
    CohortNotFoundError,
    GroupFullError,
    GroupNotFoundError,
)
from coursedesk.domains.enrollment.service import (
    AlreadyEnrolledError,
    CourseNotFoundError,
    EnrollmentClosedError,
    EnrollmentConflictError,
    EnrollmentService,
    InvalidStudentsError,
    InvalidStudentTypeError,
    StudentNotFoundError,
)
from coursedesk.models.enrollment import BulkEnrollRequest, EnrollStudentRequest

pytestmark = pytest.mark.integration


@pytest.fixture
def enroll(session_factory, seed):
    """Run a single enrollment in a fresh session."""

    async def _enroll(course_id, student_id, cohort_id=None, group_id=None):
        async with session_factory() as session:
            service = EnrollmentService(db=session)
            return await service.enroll_student(
                course_id=course_id,
                request=EnrollStudentRequest(
                    student_id=student_id,
                    cohort_id=cohort_id,
                    group_id=group_id,
                ),
                enrolled_by=seed.owner.id,
            )

    return _enroll


@pytest.fixture
def bulk_enroll(session_factory, seed):
    """Run a bulk enrollment in a fresh session."""

    async def _bulk_enroll(course_id, student_ids, cohort_id=None, group_id=None):
        async with session_factory() as session:
            service = EnrollmentService(db=session)
            return await service.bulk_enroll(
                course_id=course_id,
                request=BulkEnrollRequest(
                    student_ids=student_ids,
                    cohort_id=cohort_id,
                    group_id=group_id,
                ),
                enrolled_by=seed.owner.id,
            )

    return _bulk_enroll


class TestSingleEnrollment:
    """Tests for single-student admission."""

    @pytest.mark.asyncio
    async def test_enroll_with_cohort_and_group(self, enroll, seed, db):
        """Test enrollment writes the enrollment and the group membership."""
        student = seed.students[0]

        record = await enroll(
            seed.course.id,
            student.id,
            cohort_id=seed.cohort.id,
            group_id=seed.group.id,
        )

        assert record.student_id == student.id
        assert record.cohort_id == seed.cohort.id
        assert record.cohort.name == "Spring Cohort"
        assert record.course.title == "Python Basics"
        assert record.student.name == "Student 1"
        assert record.progress == 0
        assert record.completed_at is None
        assert await db.count_enrollments(cohort_id=seed.cohort.id) == 1
        assert await db.count_memberships(group_id=seed.group.id, enrollment_id=record.id) == 1

    @pytest.mark.asyncio
    async def test_enroll_without_cohort_or_group(self, enroll, seed, db):
        """Test plain enrollment creates no membership."""
        record = await enroll(seed.course.id, seed.students[0].id)

        assert record.cohort_id is None
        assert record.cohort is None
        assert await db.count_memberships(enrollment_id=record.id) == 0

    @pytest.mark.asyncio
    async def test_course_not_found(self, enroll, seed):
        """Test unknown course is rejected first."""
        with pytest.raises(CourseNotFoundError):
            await enroll("missing-course", seed.students[0].id)

    @pytest.mark.asyncio
    async def test_closed_course_is_forbidden(self, enroll, seed, db):
        """Test a course closed for enrollment rejects admission."""
        with pytest.raises(EnrollmentClosedError) as exc_info:
            await enroll(seed.closed_course.id, seed.students[0].id)

        assert exc_info.value.code == "FORBIDDEN"
        assert exc_info.value.status_code == 403
        assert await db.count_enrollments(course_id=seed.closed_course.id) == 0

    @pytest.mark.asyncio
    async def test_closed_course_checked_before_student(self, enroll, seed):
        """Test the course policy check precedes the student lookup."""
        with pytest.raises(EnrollmentClosedError):
            await enroll(seed.closed_course.id, "missing-student")

    @pytest.mark.asyncio
    async def test_student_not_found(self, enroll, seed):
        """Test unknown student id is rejected."""
        with pytest.raises(StudentNotFoundError):
            await enroll(seed.course.id, "missing-student")

    @pytest.mark.asyncio
    async def test_non_student_rejected(self, enroll, seed):
        """Test users without the STUDENT role cannot be enrolled."""
        with pytest.raises(InvalidStudentTypeError) as exc_info:
            await enroll(seed.course.id, seed.lecturer.id)

        assert exc_info.value.code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_repeat_enrollment_conflicts(self, enroll, seed, db):
        """Test re-issuing an identical enrollment conflicts without a duplicate."""
        student = seed.students[0]
        await enroll(seed.course.id, student.id)

        with pytest.raises(AlreadyEnrolledError) as exc_info:
            await enroll(seed.course.id, student.id)

        assert exc_info.value.code == "CONFLICT"
        assert await db.count_enrollments(course_id=seed.course.id) == 1

    @pytest.mark.asyncio
    async def test_duplicate_checked_before_capacity(self, enroll, seed):
        """Test an already-enrolled student gets the duplicate error, not full."""
        student = seed.students[0]
        await enroll(seed.course.id, student.id)

        with pytest.raises(AlreadyEnrolledError):
            await enroll(seed.course.id, student.id, cohort_id=seed.zero_cohort.id)

    @pytest.mark.asyncio
    async def test_cohort_of_other_course_not_found(self, enroll, seed, db):
        """Test a cohort must belong to the course."""
        with pytest.raises(CohortNotFoundError):
            await enroll(seed.course.id, seed.students[0].id, cohort_id=seed.other_cohort.id)

        assert await db.count_enrollments(course_id=seed.course.id) == 0

    @pytest.mark.asyncio
    async def test_cohort_full(self, enroll, seed, db):
        """Test the third student is rejected from a cohort limited to two."""
        await enroll(seed.course.id, seed.students[0].id, cohort_id=seed.cohort.id)
        await enroll(seed.course.id, seed.students[1].id, cohort_id=seed.cohort.id)

        with pytest.raises(CohortFullError, match="Cohort is full"):
            await enroll(seed.course.id, seed.students[2].id, cohort_id=seed.cohort.id)

        assert await db.count_enrollments(cohort_id=seed.cohort.id) == 2
        assert await db.find_enrollment(seed.students[2].id, seed.course.id) is None

    @pytest.mark.asyncio
    async def test_zero_limit_cohort_admits_nobody(self, enroll, seed):
        """Test a cohort limit of zero rejects every admission."""
        with pytest.raises(CohortFullError):
            await enroll(seed.course.id, seed.students[0].id, cohort_id=seed.zero_cohort.id)

    @pytest.mark.asyncio
    async def test_unbounded_cohort(self, enroll, seed, db):
        """Test a cohort without a limit never fills."""
        for student in seed.students:
            await enroll(seed.course.id, student.id, cohort_id=seed.open_cohort.id)

        assert await db.count_enrollments(cohort_id=seed.open_cohort.id) == 5

    @pytest.mark.asyncio
    async def test_archived_group_not_found(self, enroll, seed, db):
        """Test archived groups are treated as missing."""
        with pytest.raises(GroupNotFoundError, match="Group not found or is archived"):
            await enroll(seed.course.id, seed.students[0].id, group_id=seed.archived_group.id)

        assert await db.count_enrollments(course_id=seed.course.id) == 0

    @pytest.mark.asyncio
    async def test_group_full_leaves_no_enrollment(self, enroll, seed, db):
        """Test a full group aborts the whole admission, cohort included."""
        await enroll(seed.course.id, seed.students[0].id, group_id=seed.solo_group.id)

        with pytest.raises(GroupFullError, match="Group is full"):
            await enroll(
                seed.course.id,
                seed.students[1].id,
                cohort_id=seed.cohort.id,
                group_id=seed.solo_group.id,
            )

        assert await db.find_enrollment(seed.students[1].id, seed.course.id) is None
        assert await db.count_enrollments(cohort_id=seed.cohort.id) == 0
        assert await db.count_memberships(group_id=seed.solo_group.id) == 1

    @pytest.mark.asyncio
    async def test_membership_failure_rolls_back_enrollment(self, enroll, seed, db):
        """Test a failing membership insert leaves no enrollment behind.

        The student already holds a membership row in the group through an
        enrollment in another course, so the membership insert violates
        the (group, student) unique constraint after the enrollment insert
        has succeeded.
        """
        student = seed.students[0]
        other_enrollment_id = await db.add_enrollment(
            seed.org.id, student.id, seed.other_course.id
        )
        await db.add_membership(seed.group.id, other_enrollment_id, student.id)

        with pytest.raises(EnrollmentConflictError) as exc_info:
            await enroll(seed.course.id, student.id, group_id=seed.group.id)

        assert exc_info.value.code == "CONFLICT"
        assert await db.find_enrollment(student.id, seed.course.id) is None
        assert await db.count_memberships(group_id=seed.group.id) == 1


class TestBulkEnrollment:
    """Tests for bulk admission."""

    @pytest.mark.asyncio
    async def test_bulk_enroll_skips_already_enrolled(self, bulk_enroll, seed, db):
        """Test already-enrolled students are skipped and reported."""
        first, second = seed.students[0], seed.students[1]
        existing_id = await db.add_enrollment(seed.org.id, first.id, seed.course.id, progress=30)

        result = await bulk_enroll(seed.course.id, [first.id, second.id])

        assert result.enrolled == 1
        assert result.skipped == 1
        assert result.skipped_ids == [first.id]
        assert await db.find_enrollment(second.id, seed.course.id) is not None
        existing = await db.get_enrollment(existing_id)
        assert existing.progress == 30

    @pytest.mark.asyncio
    async def test_bulk_enroll_deduplicates_ids(self, bulk_enroll, seed, db):
        """Test repeated ids in one request are enrolled once."""
        student = seed.students[0]

        result = await bulk_enroll(seed.course.id, [student.id, student.id])

        assert result.enrolled == 1
        assert result.skipped == 0
        assert await db.count_enrollments(course_id=seed.course.id) == 1

    @pytest.mark.asyncio
    async def test_bulk_enroll_invalid_ids_reject_batch(self, bulk_enroll, seed, db):
        """Test unknown and non-student ids reject the whole batch."""
        with pytest.raises(InvalidStudentsError) as exc_info:
            await bulk_enroll(
                seed.course.id,
                [seed.students[0].id, seed.lecturer.id, "missing-user"],
            )

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details == {"invalidIds": [seed.lecturer.id, "missing-user"]}
        assert seed.lecturer.id in exc_info.value.message
        assert await db.count_enrollments(course_id=seed.course.id) == 0

    @pytest.mark.asyncio
    async def test_bulk_enroll_all_enrolled_conflicts(self, bulk_enroll, seed, db):
        """Test a batch with nothing left to enroll conflicts."""
        student = seed.students[0]
        await db.add_enrollment(seed.org.id, student.id, seed.course.id)

        with pytest.raises(AlreadyEnrolledError, match="All students are already enrolled"):
            await bulk_enroll(seed.course.id, [student.id])

    @pytest.mark.asyncio
    async def test_bulk_enroll_closed_course(self, bulk_enroll, seed):
        """Test bulk admission honours the enrollment-open flag."""
        with pytest.raises(EnrollmentClosedError):
            await bulk_enroll(seed.closed_course.id, [seed.students[0].id])

    @pytest.mark.asyncio
    async def test_bulk_enroll_exact_headroom_succeeds(self, bulk_enroll, seed, db):
        """Test a batch filling the cohort exactly is admitted."""
        await db.add_enrollment(
            seed.org.id, seed.students[0].id, seed.course.id, cohort_id=seed.cohort.id
        )

        result = await bulk_enroll(
            seed.course.id,
            [seed.students[1].id],
            cohort_id=seed.cohort.id,
        )

        assert result.enrolled == 1
        assert await db.count_enrollments(cohort_id=seed.cohort.id) == 2

    @pytest.mark.asyncio
    async def test_bulk_enroll_over_headroom_inserts_nothing(self, bulk_enroll, seed, db):
        """Test a batch one over the headroom fails in full."""
        await db.add_enrollment(
            seed.org.id, seed.students[0].id, seed.course.id, cohort_id=seed.cohort.id
        )

        with pytest.raises(CohortFullError) as exc_info:
            await bulk_enroll(
                seed.course.id,
                [seed.students[1].id, seed.students[2].id],
                cohort_id=seed.cohort.id,
            )

        assert exc_info.value.message == "Cohort only has 1 spots remaining"
        assert exc_info.value.details == {"limit": 2, "current": 1, "requested": 2}
        assert await db.count_enrollments(course_id=seed.course.id) == 1

    @pytest.mark.asyncio
    async def test_bulk_enroll_headroom_counts_only_new_students(self, bulk_enroll, seed, db):
        """Test skipped students do not consume cohort headroom."""
        await db.add_enrollment(
            seed.org.id, seed.students[0].id, seed.course.id, cohort_id=seed.cohort.id
        )

        result = await bulk_enroll(
            seed.course.id,
            [seed.students[0].id, seed.students[1].id],
            cohort_id=seed.cohort.id,
        )

        assert result.enrolled == 1
        assert result.skipped_ids == [seed.students[0].id]
        assert await db.count_enrollments(cohort_id=seed.cohort.id) == 2

    @pytest.mark.asyncio
    async def test_bulk_enroll_group_over_capacity(self, bulk_enroll, seed, db):
        """Test a batch larger than the group headroom fails in full."""
        with pytest.raises(GroupFullError, match="Group only has 2 spots remaining"):
            await bulk_enroll(
                seed.course.id,
                [s.id for s in seed.students[:3]],
                group_id=seed.group.id,
            )

        assert await db.count_enrollments(course_id=seed.course.id) == 0
        assert await db.count_memberships(group_id=seed.group.id) == 0

    @pytest.mark.asyncio
    async def test_bulk_enroll_into_group(self, bulk_enroll, seed, db):
        """Test every admitted student joins the requested group."""
        result = await bulk_enroll(
            seed.course.id,
            [s.id for s in seed.students[:2]],
            cohort_id=seed.open_cohort.id,
            group_id=seed.group.id,
        )

        assert result.enrolled == 2
        assert await db.count_memberships(group_id=seed.group.id) == 2
        assert await db.count_enrollments(cohort_id=seed.open_cohort.id) == 2

    @pytest.mark.asyncio
    async def test_cohort_limit_holds_across_operations(self, enroll, bulk_enroll, seed, db):
        """Test mixed single and bulk admissions never exceed the cohort limit."""
        await enroll(seed.course.id, seed.students[0].id, cohort_id=seed.cohort.id)

        with pytest.raises(CohortFullError):
            await bulk_enroll(
                seed.course.id,
                [s.id for s in seed.students[1:4]],
                cohort_id=seed.cohort.id,
            )

        await bulk_enroll(seed.course.id, [seed.students[1].id], cohort_id=seed.cohort.id)

        with pytest.raises(CohortFullError):
            await enroll(seed.course.id, seed.students[2].id, cohort_id=seed.cohort.id)

        assert await db.count_enrollments(cohort_id=seed.cohort.id) == 2


class TestAdmissionScenarios:
    """End-to-end admission scenarios at the service level."""

    @pytest.mark.asyncio
    async def test_cohort_check_only_applies_when_cohort_given(
        self, enroll, bulk_enroll, seed, db
    ):
        """Test a full cohort does not block enrollment without a cohort."""
        await enroll(seed.course.id, seed.students[0].id, cohort_id=seed.cohort.id)
        await enroll(seed.course.id, seed.students[1].id, cohort_id=seed.cohort.id)

        result = await bulk_enroll(seed.course.id, [seed.students[2].id])
        assert result.enrolled == 1

        with pytest.raises(CohortFullError):
            await bulk_enroll(seed.course.id, [seed.students[3].id], cohort_id=seed.cohort.id)

        assert await db.find_enrollment(seed.students[3].id, seed.course.id) is None

    @pytest.mark.asyncio
    async def test_full_group_then_archived(self, enroll, seed, db):
        """Test a full group conflicts, and once archived it is not found."""
        await enroll(seed.course.id, seed.students[0].id, group_id=seed.solo_group.id)

        with pytest.raises(GroupFullError):
            await enroll(seed.course.id, seed.students[1].id, group_id=seed.solo_group.id)

        await db.set_group_archived(seed.solo_group.id, True)

        with pytest.raises(GroupNotFoundError):
            await enroll(seed.course.id, seed.students[1].id, group_id=seed.solo_group.id)
