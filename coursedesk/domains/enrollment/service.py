# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment service for admitting students into courses.

This module provides the EnrollmentService class for:
- Single and bulk enrollment admission (with optional cohort and group)
- Enrollment listing and detail
- Progress updates and cohort reassignment
- Unenrollment guarded by existing progress

Every admission runs its checks and writes in the session's transaction.
Cohort and group rows are locked before their occupancy is counted, and
the enrollment plus its group membership are flushed together and
committed once, so either all rows are written or none.
"""

from __future__ import annotations

import logging
import math
from datetime import date

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursedesk.domains.capacity import (
    ensure_cohort_headroom,
    ensure_group_headroom,
    lock_cohort,
    lock_group,
)
from coursedesk.domains.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    ServiceError,
)
from coursedesk.infrastructure.database.models import (
    Cohort,
    Course,
    CourseGroup,
    CourseGroupMembership,
    Enrollment,
    LessonProgress,
    User,
)
from coursedesk.models.common import (
    CohortRef,
    CourseRef,
    Pagination,
    ProgressStatus,
    StudentRef,
    UserRole,
)
from coursedesk.models.enrollment import (
    BulkEnrollRequest,
    BulkEnrollResult,
    ChangeCohortRequest,
    EnrollmentDetail,
    EnrollmentGroupRef,
    EnrollmentListData,
    EnrollmentListItem,
    EnrollmentRecord,
    EnrollmentStats,
    EnrollStudentRequest,
    LessonProgressItem,
    UpdateEnrollmentRequest,
)
from coursedesk.utils.datetime import end_of_day, start_of_day, utc_now

logger = logging.getLogger(__name__)


class EnrollmentServiceError(ServiceError):
    """Base exception for enrollment service errors."""

    pass


class CourseNotFoundError(EnrollmentServiceError, NotFoundError):
    """Raised when course is not found."""

    pass


class EnrollmentClosedError(EnrollmentServiceError, ForbiddenError):
    """Raised when the course does not accept new enrollments."""

    pass


class StudentNotFoundError(EnrollmentServiceError, NotFoundError):
    """Raised when student is not found."""

    pass


class InvalidStudentTypeError(EnrollmentServiceError, InvalidInputError):
    """Raised when user is not a student type."""

    pass


class InvalidStudentsError(EnrollmentServiceError, InvalidInputError):
    """Raised when a batch references missing or non-student users."""

    pass


class AlreadyEnrolledError(EnrollmentServiceError, ConflictError):
    """Raised when student is already enrolled in course."""

    pass


class EnrollmentConflictError(EnrollmentServiceError, ConflictError):
    """Raised when a write collides with a concurrent one on a unique constraint."""

    pass


class EnrollmentNotFoundError(EnrollmentServiceError, NotFoundError):
    """Raised when enrollment is not found under the course."""

    pass


class UnenrollGuardError(EnrollmentServiceError, ConflictError):
    """Raised when unenrolling a student with progress without force."""

    pass


class EnrollmentService:
    """Service for admitting and managing course enrollments.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize enrollment service.

        Args:
            db: Async database session.
        """
        self.db = db

    async def enroll_student(
        self,
        course_id: str,
        request: EnrollStudentRequest,
        enrolled_by: str,
    ) -> EnrollmentRecord:
        """Enroll a student in a course.

        Checks run in order and the first failure aborts: course open,
        student valid, not yet enrolled, cohort headroom, group headroom.

        Args:
            course_id: Course identifier.
            request: Enrollment request data.
            enrolled_by: ID of user performing enrollment.

        Returns:
            The created enrollment with student, cohort and course refs.

        Raises:
            CourseNotFoundError: If course not found.
            EnrollmentClosedError: If the course is closed for enrollment.
            StudentNotFoundError: If student not found.
            InvalidStudentTypeError: If user is not a student.
            AlreadyEnrolledError: If student already enrolled.
            CohortNotFoundError: If cohort not found under the course.
            CohortFullError: If the cohort has no seat left.
            GroupNotFoundError: If group not found or archived.
            GroupFullError: If the group has no seat left.
            EnrollmentConflictError: If a unique constraint fires on write.
        """
        course = await self._get_open_course(course_id)
        student = await self._get_student(request.student_id)

        existing = await self._find_enrollment(course.id, student.id)
        if existing:
            raise AlreadyEnrolledError("Student is already enrolled in this course")

        cohort = None
        if request.cohort_id:
            cohort = await lock_cohort(self.db, course.id, request.cohort_id)
            await ensure_cohort_headroom(self.db, cohort, 1)

        group = None
        if request.group_id:
            group = await lock_group(self.db, course.id, request.group_id)
            await ensure_group_headroom(self.db, group, 1)

        enrollment = Enrollment(
            organization_id=course.organization_id,
            student_id=student.id,
            course_id=course.id,
            cohort_id=cohort.id if cohort else None,
        )
        student_id = student.id

        try:
            self.db.add(enrollment)
            await self.db.flush()

            if group:
                self.db.add(
                    CourseGroupMembership(
                        group_id=group.id,
                        enrollment_id=enrollment.id,
                        student_id=student_id,
                    )
                )
                await self.db.flush()

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Enrollment write rejected by constraint: student=%s, course=%s: %s",
                student_id,
                course_id,
                e.orig,
            )
            raise EnrollmentConflictError(
                "Student is already enrolled in this course or group"
            ) from e

        logger.info(
            "Enrolled student: student=%s, course=%s, cohort=%s, group=%s, by=%s",
            student.id,
            course.id,
            cohort.id if cohort else None,
            group.id if group else None,
            enrolled_by,
        )

        return self._to_record(enrollment, student, course, cohort)

    async def bulk_enroll(
        self,
        course_id: str,
        request: BulkEnrollRequest,
        enrolled_by: str,
    ) -> BulkEnrollResult:
        """Bulk enroll students in a course.

        Invalid ids reject the whole batch. Students already enrolled are
        skipped and reported. Cohort and group headroom are checked once
        for the remaining batch, which is admitted in full or not at all.

        Args:
            course_id: Course identifier.
            request: Bulk enrollment request.
            enrolled_by: ID of user performing enrollment.

        Returns:
            Counts of enrolled and skipped students plus skipped ids.

        Raises:
            CourseNotFoundError: If course not found.
            EnrollmentClosedError: If the course is closed for enrollment.
            InvalidStudentsError: If any id is missing or not a student.
            AlreadyEnrolledError: If every student is already enrolled.
            CohortFullError: If the batch would exceed the cohort limit.
            GroupFullError: If the batch would exceed the group limit.
        """
        course = await self._get_open_course(course_id)
        student_ids = list(dict.fromkeys(request.student_ids))

        result = await self.db.execute(
            select(User.id).where(
                User.id.in_(student_ids),
                User.role == UserRole.STUDENT.value,
            )
        )
        valid_ids = set(result.scalars().all())
        invalid_ids = [sid for sid in student_ids if sid not in valid_ids]

        if invalid_ids:
            raise InvalidStudentsError(
                f"Invalid or non-student user IDs: {', '.join(invalid_ids)}",
                details={"invalidIds": invalid_ids},
            )

        result = await self.db.execute(
            select(Enrollment.student_id).where(
                Enrollment.course_id == course.id,
                Enrollment.student_id.in_(student_ids),
            )
        )
        already_enrolled = set(result.scalars().all())
        skipped_ids = [sid for sid in student_ids if sid in already_enrolled]
        to_enroll = [sid for sid in student_ids if sid not in already_enrolled]

        if not to_enroll:
            raise AlreadyEnrolledError("All students are already enrolled")

        cohort = None
        if request.cohort_id:
            cohort = await lock_cohort(self.db, course.id, request.cohort_id)
            await ensure_cohort_headroom(self.db, cohort, len(to_enroll), bulk=True)

        group = None
        if request.group_id:
            group = await lock_group(self.db, course.id, request.group_id)
            await ensure_group_headroom(self.db, group, len(to_enroll), bulk=True)

        enrollments = [
            Enrollment(
                organization_id=course.organization_id,
                student_id=student_id,
                course_id=course.id,
                cohort_id=cohort.id if cohort else None,
            )
            for student_id in to_enroll
        ]

        try:
            self.db.add_all(enrollments)
            await self.db.flush()

            if group:
                self.db.add_all(
                    [
                        CourseGroupMembership(
                            group_id=group.id,
                            enrollment_id=enrollment.id,
                            student_id=enrollment.student_id,
                        )
                        for enrollment in enrollments
                    ]
                )
                await self.db.flush()

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Bulk enrollment rejected by constraint: course=%s, batch=%d: %s",
                course_id,
                len(to_enroll),
                e.orig,
            )
            raise EnrollmentConflictError(
                "One or more students were enrolled concurrently; no students were enrolled"
            ) from e

        logger.info(
            "Bulk enrollment: course=%s, enrolled=%d, skipped=%d, cohort=%s, group=%s, by=%s",
            course.id,
            len(to_enroll),
            len(skipped_ids),
            cohort.id if cohort else None,
            group.id if group else None,
            enrolled_by,
        )

        return BulkEnrollResult(
            enrolled=len(to_enroll),
            skipped=len(skipped_ids),
            skipped_ids=skipped_ids,
        )

    async def list_enrollments(
        self,
        course_id: str,
        page: int = 1,
        limit: int = 10,
        search: str | None = None,
        cohort_id: str | None = None,
        group_id: str | None = None,
        status: ProgressStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> EnrollmentListData:
        """List enrollments of a course, newest first.

        Args:
            course_id: Course identifier.
            page: 1-based page number.
            limit: Page size.
            search: Case-insensitive match on student name or email.
            cohort_id: Cohort filter, ``"all"`` for none.
            group_id: Group filter, ``"all"`` for none.
            status: Progress status filter.
            start_date: Earliest enrollment day (inclusive).
            end_date: Latest enrollment day (inclusive to end of day).

        Returns:
            Page of enrollments with pagination metadata.

        Raises:
            CourseNotFoundError: If course not found.
        """
        course = await self._get_course(course_id)

        conditions = [Enrollment.course_id == course.id]

        search = search.strip() if search else None
        if search:
            term = search.lower()
            conditions.append(
                Enrollment.student_id.in_(
                    select(User.id).where(
                        or_(
                            func.lower(User.name).contains(term, autoescape=True),
                            func.lower(User.email).contains(term, autoescape=True),
                        )
                    )
                )
            )

        if cohort_id and cohort_id != "all":
            conditions.append(Enrollment.cohort_id == cohort_id)

        if group_id and group_id != "all":
            conditions.append(
                Enrollment.id.in_(
                    select(CourseGroupMembership.enrollment_id).where(
                        CourseGroupMembership.group_id == group_id
                    )
                )
            )

        if status == ProgressStatus.COMPLETED:
            conditions.append(Enrollment.completed_at.is_not(None))
        elif status == ProgressStatus.IN_PROGRESS:
            conditions.extend(
                [
                    Enrollment.progress > 0,
                    Enrollment.progress < 100,
                    Enrollment.completed_at.is_(None),
                ]
            )
        elif status == ProgressStatus.NOT_STARTED:
            conditions.extend([Enrollment.progress == 0, Enrollment.completed_at.is_(None)])

        if start_date:
            conditions.append(Enrollment.enrolled_at >= start_of_day(start_date))
        if end_date:
            conditions.append(Enrollment.enrolled_at <= end_of_day(end_date))

        count_result = await self.db.execute(
            select(func.count(Enrollment.id)).where(*conditions)
        )
        total = count_result.scalar_one()

        query = (
            select(Enrollment)
            .options(
                selectinload(Enrollment.student),
                selectinload(Enrollment.cohort),
                selectinload(Enrollment.memberships).selectinload(CourseGroupMembership.group),
            )
            .where(*conditions)
            .order_by(Enrollment.enrolled_at.desc(), Enrollment.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(query)
        enrollments = result.scalars().all()

        items = [
            EnrollmentListItem(
                id=e.id,
                student=self._student_ref(e.student),
                cohort=self._cohort_ref(e.cohort),
                groups=[self._group_ref(m) for m in e.memberships],
                progress=e.progress,
                enrolled_at=e.enrolled_at,
                completed_at=e.completed_at,
                last_accessed_at=e.last_accessed_at,
            )
            for e in enrollments
        ]

        return EnrollmentListData(
            course_id=course.id,
            course_title=course.title,
            enrollments=items,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit),
            ),
        )

    async def get_enrollment(self, course_id: str, enrollment_id: str) -> EnrollmentDetail:
        """Get enrollment details with groups, progress tracking and stats.

        Raises:
            EnrollmentNotFoundError: If enrollment not found under the course.
        """
        enrollment = await self._get_enrollment(
            course_id,
            enrollment_id,
            selectinload(Enrollment.student),
            selectinload(Enrollment.course),
            selectinload(Enrollment.cohort),
            selectinload(Enrollment.memberships).selectinload(CourseGroupMembership.group),
            selectinload(Enrollment.lesson_progress),
        )

        tracking = sorted(
            enrollment.lesson_progress,
            key=lambda p: p.updated_at,
            reverse=True,
        )
        record = self._to_record(
            enrollment,
            enrollment.student,
            enrollment.course,
            enrollment.cohort,
        )

        return EnrollmentDetail(
            **record.model_dump(),
            groups=[self._group_ref(m) for m in enrollment.memberships],
            progress_tracking=[
                LessonProgressItem(
                    id=p.id,
                    lesson_id=p.lesson_id,
                    is_completed=p.is_completed,
                    time_spent=p.time_spent,
                    completed_at=p.completed_at,
                    updated_at=p.updated_at,
                )
                for p in tracking
            ],
            stats=EnrollmentStats(
                completed_lessons=sum(1 for p in tracking if p.is_completed),
                total_lessons_tracked=len(tracking),
                total_time_spent=sum(p.time_spent for p in tracking),
                progress=enrollment.progress,
            ),
        )

    async def update_enrollment(
        self,
        course_id: str,
        enrollment_id: str,
        request: UpdateEnrollmentRequest,
        updated_by: str,
    ) -> EnrollmentRecord:
        """Update cohort and/or progress of an enrollment.

        A changed non-null cohort is checked for headroom; the old
        cohort's seat is freed implicitly. ``completed_at`` is stamped
        when progress reaches 100 and cleared below 100.

        Raises:
            EnrollmentNotFoundError: If enrollment not found.
            CohortNotFoundError: If the new cohort is not in the course.
            CohortFullError: If the new cohort has no seat left.
        """
        enrollment = await self._get_enrollment(
            course_id,
            enrollment_id,
            selectinload(Enrollment.student),
            selectinload(Enrollment.course),
            selectinload(Enrollment.cohort),
        )
        cohort = await self._reassign_cohort(enrollment, request)

        if request.progress is not None:
            enrollment.progress = request.progress
            if request.progress == 100:
                if enrollment.completed_at is None:
                    enrollment.completed_at = utc_now()
            else:
                enrollment.completed_at = None

        await self.db.commit()

        logger.info(
            "Updated enrollment: enrollment=%s, cohort=%s, progress=%d, by=%s",
            enrollment.id,
            enrollment.cohort_id,
            enrollment.progress,
            updated_by,
        )

        return self._to_record(enrollment, enrollment.student, enrollment.course, cohort)

    async def change_cohort(
        self,
        course_id: str,
        enrollment_id: str,
        request: ChangeCohortRequest,
        changed_by: str,
    ) -> EnrollmentRecord:
        """Move an enrollment to another cohort, or out of its cohort.

        Reassigning to the current cohort changes nothing.

        Raises:
            EnrollmentNotFoundError: If enrollment not found.
            CohortNotFoundError: If the new cohort is not in the course.
            CohortFullError: If the new cohort has no seat left.
        """
        enrollment = await self._get_enrollment(
            course_id,
            enrollment_id,
            selectinload(Enrollment.student),
            selectinload(Enrollment.course),
            selectinload(Enrollment.cohort),
        )
        previous_cohort_id = enrollment.cohort_id
        cohort = await self._reassign_cohort(enrollment, request)

        await self.db.commit()

        logger.info(
            "Changed cohort: enrollment=%s, from=%s, to=%s, by=%s",
            enrollment.id,
            previous_cohort_id,
            enrollment.cohort_id,
            changed_by,
        )

        return self._to_record(enrollment, enrollment.student, enrollment.course, cohort)

    async def unenroll(
        self,
        course_id: str,
        enrollment_id: str,
        force: bool = False,
        removed_by: str | None = None,
    ) -> str:
        """Permanently remove an enrollment.

        Lesson progress, group memberships and the enrollment are deleted
        in that order within one transaction.

        Args:
            course_id: Course identifier.
            enrollment_id: Enrollment identifier.
            force: Remove even if the student has progress.
            removed_by: ID of user performing removal.

        Returns:
            Name of the unenrolled student.

        Raises:
            EnrollmentNotFoundError: If enrollment not found.
            UnenrollGuardError: If the student has progress and force is off.
        """
        enrollment = await self._get_enrollment(
            course_id,
            enrollment_id,
            selectinload(Enrollment.student),
        )
        student_name = enrollment.student.name
        student_id = enrollment.student_id
        progress = enrollment.progress

        result = await self.db.execute(
            select(func.count(LessonProgress.id)).where(
                LessonProgress.enrollment_id == enrollment.id
            )
        )
        lesson_records = result.scalar_one()

        if (progress > 0 or lesson_records > 0) and not force:
            raise UnenrollGuardError(
                f"Student has {progress}% progress and {lesson_records} lesson records. "
                "Add ?force=true to unenroll anyway.",
                details={"progress": progress, "lessonRecords": lesson_records},
            )

        await self.db.execute(
            delete(LessonProgress).where(LessonProgress.enrollment_id == enrollment.id)
        )
        await self.db.execute(
            delete(CourseGroupMembership).where(
                CourseGroupMembership.enrollment_id == enrollment.id
            )
        )
        await self.db.execute(delete(Enrollment).where(Enrollment.id == enrollment.id))
        await self.db.commit()

        logger.info(
            "Unenrolled student: enrollment=%s, student=%s, course=%s, progress=%d, "
            "lesson_records=%d, force=%s, by=%s",
            enrollment_id,
            student_id,
            course_id,
            progress,
            lesson_records,
            force,
            removed_by,
        )

        return student_name

    async def _reassign_cohort(
        self,
        enrollment: Enrollment,
        request: UpdateEnrollmentRequest | ChangeCohortRequest,
    ) -> Cohort | None:
        """Apply a requested cohort change and return the resulting cohort.

        An unset ``cohort_id`` or the current cohort leaves the enrollment
        untouched without a capacity check.
        """
        if "cohort_id" not in request.model_fields_set:
            return enrollment.cohort
        if request.cohort_id == enrollment.cohort_id:
            return enrollment.cohort

        if request.cohort_id is None:
            enrollment.cohort_id = None
            return None

        cohort = await lock_cohort(self.db, enrollment.course_id, request.cohort_id)
        await ensure_cohort_headroom(self.db, cohort, 1)
        enrollment.cohort_id = cohort.id
        return cohort

    async def _get_course(self, course_id: str) -> Course:
        """Get course by ID.

        Raises:
            CourseNotFoundError: If not found.
        """
        query = select(Course).where(Course.id == course_id)
        result = await self.db.execute(query)
        course = result.scalar_one_or_none()

        if not course:
            raise CourseNotFoundError("Course not found")

        return course

    async def _get_open_course(self, course_id: str) -> Course:
        """Get a course accepting enrollments.

        Raises:
            CourseNotFoundError: If not found.
            EnrollmentClosedError: If enrollment is closed.
        """
        course = await self._get_course(course_id)

        if not course.enrollment_open:
            raise EnrollmentClosedError("Enrollment is closed for this course")

        return course

    async def _get_student(self, student_id: str) -> User:
        """Get student user by ID.

        Raises:
            StudentNotFoundError: If not found.
            InvalidStudentTypeError: If not a student.
        """
        query = select(User).where(User.id == student_id)
        result = await self.db.execute(query)
        user = result.scalar_one_or_none()

        if not user:
            raise StudentNotFoundError("Student not found")

        if user.role != UserRole.STUDENT.value:
            raise InvalidStudentTypeError("User is not a student")

        return user

    async def _find_enrollment(self, course_id: str, student_id: str) -> Enrollment | None:
        query = select(Enrollment).where(
            Enrollment.course_id == course_id,
            Enrollment.student_id == student_id,
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _get_enrollment(self, course_id: str, enrollment_id: str, *options) -> Enrollment:
        """Get enrollment of a course by ID.

        Raises:
            EnrollmentNotFoundError: If not found.
        """
        query = select(Enrollment).where(
            Enrollment.id == enrollment_id,
            Enrollment.course_id == course_id,
        )
        if options:
            query = query.options(*options)
        result = await self.db.execute(query)
        enrollment = result.scalar_one_or_none()

        if not enrollment:
            raise EnrollmentNotFoundError("Enrollment not found")

        return enrollment

    @staticmethod
    def _student_ref(user: User) -> StudentRef:
        return StudentRef(id=user.id, name=user.name, email=user.email)

    @staticmethod
    def _cohort_ref(cohort: Cohort | None) -> CohortRef | None:
        if cohort is None:
            return None
        return CohortRef(id=cohort.id, name=cohort.name)

    @staticmethod
    def _group_ref(membership: CourseGroupMembership) -> EnrollmentGroupRef:
        group: CourseGroup = membership.group
        return EnrollmentGroupRef(
            id=group.id,
            name=group.name,
            type=group.type,
            is_leader=membership.is_leader,
            joined_at=membership.joined_at,
        )

    def _to_record(
        self,
        enrollment: Enrollment,
        student: User,
        course: Course,
        cohort: Cohort | None,
    ) -> EnrollmentRecord:
        """Convert enrollment model to response."""
        return EnrollmentRecord(
            id=enrollment.id,
            student_id=enrollment.student_id,
            course_id=enrollment.course_id,
            cohort_id=enrollment.cohort_id,
            progress=enrollment.progress,
            enrolled_at=enrollment.enrolled_at,
            completed_at=enrollment.completed_at,
            last_accessed_at=enrollment.last_accessed_at,
            student=self._student_ref(student),
            cohort=self._cohort_ref(cohort),
            course=CourseRef(id=course.id, title=course.title),
        )
