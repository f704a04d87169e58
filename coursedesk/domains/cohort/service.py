# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cohort management service.

This module provides the CohortService class for:
- Listing, creating, updating and deleting the cohorts of a course
- Changing a cohort's lifecycle status
- Moving enrollments into and out of a cohort

Moving enrollments into or out of a cohort never creates or deletes
enrollments; it only rewrites ``Enrollment.cohort_id``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursedesk.domains.capacity import (
    CohortNotFoundError,
    count_cohort_enrollments,
    ensure_cohort_headroom,
    lock_cohort,
    spots_remaining,
)
from coursedesk.domains.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    ServiceError,
)
from coursedesk.infrastructure.database.models import Cohort, Course, Enrollment
from coursedesk.models.cohort import (
    AddCohortStudentRequest,
    BulkAddCohortStudentsRequest,
    BulkCohortResult,
    CohortDetail,
    CohortListData,
    CohortRecord,
    CohortRemoval,
    CohortStatusData,
    CohortStatusRequest,
    CohortStudent,
    CohortStudentsData,
    CreateCohortRequest,
    UpdateCohortRequest,
)
from coursedesk.models.common import CohortStatus, CourseRef, StudentRef
from coursedesk.utils.datetime import as_utc

logger = logging.getLogger(__name__)


class CohortServiceError(ServiceError):
    """Base exception for cohort service errors."""

    pass


class CohortCourseNotFoundError(CohortServiceError, NotFoundError):
    """Raised when the course does not exist."""

    pass


class InvalidCohortDatesError(CohortServiceError, InvalidInputError):
    """Raised when the end date is not after the start date."""

    pass


class CohortLimitError(CohortServiceError, ConflictError):
    """Raised when a new limit is below the cohort's current enrollment count."""

    pass


class CohortEnrollmentNotFoundError(CohortServiceError, NotFoundError):
    """Raised when the enrollment is not found (in the course or cohort)."""

    pass


class InvalidCohortEnrollmentsError(CohortServiceError, InvalidInputError):
    """Raised when a batch references enrollments outside the course."""

    pass


class AlreadyInCohortError(CohortServiceError, ConflictError):
    """Raised when the enrollment is already in the cohort."""

    pass


class CohortService:
    """Service for managing cohorts and their students.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_cohorts(
        self,
        course_id: str,
        status: CohortStatus | None = None,
    ) -> CohortListData:
        """List cohorts of a course with their enrollment counts.

        Cohorts are ordered by lifecycle status (planned, active,
        completed, archived), then start date, then newest first.

        Raises:
            CohortCourseNotFoundError: If the course does not exist.
        """
        course = await self._get_course(course_id)

        query = select(Cohort).where(Cohort.course_id == course.id)
        if status:
            query = query.where(Cohort.status == status.value)

        status_order = case(
            {member.value: index for index, member in enumerate(CohortStatus)},
            value=Cohort.status,
        )
        result = await self.db.execute(
            query.order_by(
                status_order,
                Cohort.start_date.asc().nulls_last(),
                Cohort.created_at.desc(),
            )
        )
        cohorts = result.scalars().all()
        counts = await self._count_enrollments([c.id for c in cohorts])

        return CohortListData(
            course_id=course.id,
            course_title=course.title,
            cohorts=[self._to_record(c, counts.get(c.id, 0)) for c in cohorts],
        )

    async def create_cohort(
        self,
        course_id: str,
        request: CreateCohortRequest,
        created_by: str,
    ) -> CohortRecord:
        """Create a cohort under a course.

        Raises:
            CohortCourseNotFoundError: If the course does not exist.
            InvalidCohortDatesError: If the end date is not after the start date.
        """
        course = await self._get_course(course_id)
        self._validate_dates(request.start_date, request.end_date)

        cohort = Cohort(
            organization_id=course.organization_id,
            course_id=course.id,
            name=request.name,
            description=request.description,
            start_date=request.start_date,
            end_date=request.end_date,
            enrollment_limit=request.enrollment_limit,
            status=request.status.value,
        )
        self.db.add(cohort)
        await self.db.flush()
        await self.db.commit()

        logger.info(
            "Created cohort: cohort=%s, course=%s, limit=%s, by=%s",
            cohort.id,
            course_id,
            request.enrollment_limit,
            created_by,
        )

        return self._to_record(cohort, 0)

    async def get_cohort(self, course_id: str, cohort_id: str) -> CohortDetail:
        """Get a cohort with its course and students.

        Raises:
            CohortNotFoundError: If the cohort is not in the course.
        """
        cohort = await self._get_cohort(course_id, cohort_id)
        course = await self._get_course(course_id)
        enrollments = await self._load_students(cohort.id)
        record = self._to_record(cohort, len(enrollments))

        return CohortDetail(
            **record.model_dump(),
            course=CourseRef(id=course.id, title=course.title),
            students=[self._to_student(e) for e in enrollments],
        )

    async def update_cohort(
        self,
        course_id: str,
        cohort_id: str,
        request: UpdateCohortRequest,
        updated_by: str,
    ) -> CohortRecord:
        """Update the fields present in the request.

        The cohort row is locked, so a limit change and a concurrent
        admission into the cohort cannot interleave.

        Raises:
            CohortNotFoundError: If the cohort is not in the course.
            InvalidCohortDatesError: If the resulting end date is not after the start date.
            CohortLimitError: If the new limit is below the current enrollment count.
        """
        cohort = await lock_cohort(self.db, course_id, cohort_id)
        fields = request.model_fields_set

        start_date = request.start_date if "start_date" in fields else cohort.start_date
        end_date = request.end_date if "end_date" in fields else cohort.end_date
        self._validate_dates(start_date, end_date)

        current = await count_cohort_enrollments(self.db, cohort.id)
        if "enrollment_limit" in fields:
            self._check_limit(request.enrollment_limit, current)
            cohort.enrollment_limit = request.enrollment_limit

        if request.name is not None:
            cohort.name = request.name
        if "description" in fields:
            cohort.description = request.description
        if request.status is not None:
            cohort.status = request.status.value
        if "start_date" in fields:
            cohort.start_date = request.start_date
        if "end_date" in fields:
            cohort.end_date = request.end_date

        await self.db.flush()
        await self.db.commit()

        logger.info(
            "Updated cohort: cohort=%s, fields=%s, by=%s",
            cohort_id,
            sorted(fields),
            updated_by,
        )

        return self._to_record(cohort, current)

    async def set_status(
        self,
        course_id: str,
        cohort_id: str,
        request: CohortStatusRequest,
        updated_by: str,
    ) -> CohortStatusData:
        """Change only the lifecycle status of a cohort.

        Raises:
            CohortNotFoundError: If the cohort is not in the course.
        """
        cohort = await lock_cohort(self.db, course_id, cohort_id)
        cohort.status = request.status.value
        data = CohortStatusData(id=cohort.id, name=cohort.name, status=request.status)
        await self.db.commit()

        logger.info(
            "Changed cohort status: cohort=%s, status=%s, by=%s",
            cohort_id,
            request.status.value,
            updated_by,
        )

        return data

    async def delete_cohort(
        self,
        course_id: str,
        cohort_id: str,
        hard: bool,
        deleted_by: str,
    ) -> CohortRemoval:
        """Delete a cohort, or archive it while it still has enrollments.

        A hard delete removes the cohort even with enrollments; those
        enrollments stay in the course with no cohort.

        Raises:
            CohortNotFoundError: If the cohort is not in the course.
        """
        cohort = await lock_cohort(self.db, course_id, cohort_id)
        enrollment_count = await count_cohort_enrollments(self.db, cohort.id)

        if enrollment_count > 0 and not hard:
            cohort.status = CohortStatus.ARCHIVED.value
            removal = CohortRemoval(
                cohort=CohortStatusData(id=cohort.id, name=cohort.name, status=cohort.status),
                archived=True,
                enrollment_count=enrollment_count,
            )
            await self.db.commit()

            logger.info(
                "Archived cohort: cohort=%s, enrollments=%d, by=%s",
                cohort_id,
                enrollment_count,
                deleted_by,
            )
            return removal

        removal = CohortRemoval(
            cohort=CohortStatusData(id=cohort.id, name=cohort.name, status=cohort.status),
            archived=False,
            enrollment_count=enrollment_count,
        )
        await self.db.execute(delete(Cohort).where(Cohort.id == cohort.id))
        await self.db.commit()

        logger.info(
            "Deleted cohort: cohort=%s, detached_enrollments=%d, by=%s",
            cohort_id,
            enrollment_count,
            deleted_by,
        )

        return removal

    async def list_students(self, course_id: str, cohort_id: str) -> CohortStudentsData:
        """List enrollments assigned to a cohort, newest first.

        Raises:
            CohortNotFoundError: If the cohort is not in the course.
        """
        cohort = await self._get_cohort(course_id, cohort_id)
        enrollments = await self._load_students(cohort.id)

        return CohortStudentsData(
            cohort_id=cohort.id,
            cohort_name=cohort.name,
            enrollment_limit=cohort.enrollment_limit,
            student_count=len(enrollments),
            spots_remaining=spots_remaining(len(enrollments), cohort.enrollment_limit),
            students=[self._to_student(e) for e in enrollments],
        )

    async def add_student(
        self,
        course_id: str,
        cohort_id: str,
        request: AddCohortStudentRequest,
        added_by: str,
    ) -> tuple[CohortStudent, str]:
        """Move one enrollment of the course into the cohort.

        Returns:
            Tuple of (moved enrollment, cohort name).

        Raises:
            CohortNotFoundError: If the cohort is not in the course.
            CohortEnrollmentNotFoundError: If the enrollment is not in the course.
            AlreadyInCohortError: If the enrollment is already in the cohort.
            CohortFullError: If the cohort has no seat left.
        """
        cohort = await lock_cohort(self.db, course_id, cohort_id)

        result = await self.db.execute(
            select(Enrollment)
            .options(selectinload(Enrollment.student))
            .where(
                Enrollment.id == request.enrollment_id,
                Enrollment.course_id == course_id,
            )
        )
        enrollment = result.scalar_one_or_none()

        if not enrollment:
            raise CohortEnrollmentNotFoundError("Enrollment not found")

        if enrollment.cohort_id == cohort.id:
            raise AlreadyInCohortError("Student is already in this cohort")

        await ensure_cohort_headroom(self.db, cohort, 1)

        previous_cohort_id = enrollment.cohort_id
        enrollment.cohort_id = cohort.id
        cohort_name = cohort.name
        await self.db.commit()

        logger.info(
            "Added student to cohort: cohort=%s, enrollment=%s, from=%s, by=%s",
            cohort_id,
            enrollment.id,
            previous_cohort_id,
            added_by,
        )

        return self._to_student(enrollment), cohort_name

    async def bulk_add_students(
        self,
        course_id: str,
        cohort_id: str,
        request: BulkAddCohortStudentsRequest,
        added_by: str,
    ) -> tuple[BulkCohortResult, str]:
        """Move several enrollments of the course into the cohort.

        Enrollments already in the cohort are skipped; the rest must fit
        in the cohort as a whole.

        Returns:
            Tuple of (move outcome, cohort name).

        Raises:
            CohortNotFoundError: If the cohort is not in the course.
            InvalidCohortEnrollmentsError: If any id is not an enrollment of the course.
            AlreadyInCohortError: If every enrollment is already in the cohort.
            CohortFullError: If the remaining batch exceeds the cohort limit.
        """
        cohort = await lock_cohort(self.db, course_id, cohort_id)
        enrollment_ids = list(dict.fromkeys(request.enrollment_ids))

        result = await self.db.execute(
            select(Enrollment.id, Enrollment.cohort_id).where(
                Enrollment.id.in_(enrollment_ids),
                Enrollment.course_id == course_id,
            )
        )
        current_cohorts = {row.id: row.cohort_id for row in result.all()}
        invalid_ids = [eid for eid in enrollment_ids if eid not in current_cohorts]

        if invalid_ids:
            raise InvalidCohortEnrollmentsError(
                f"Invalid enrollment IDs: {', '.join(invalid_ids)}",
                details={"invalidIds": invalid_ids},
            )

        skipped_ids = [eid for eid in enrollment_ids if current_cohorts[eid] == cohort.id]
        to_move = [eid for eid in enrollment_ids if current_cohorts[eid] != cohort.id]

        if not to_move:
            raise AlreadyInCohortError("All students are already in this cohort")

        await ensure_cohort_headroom(self.db, cohort, len(to_move), bulk=True)

        cohort_name = cohort.name
        await self.db.execute(
            update(Enrollment)
            .where(Enrollment.id.in_(to_move))
            .values(cohort_id=cohort.id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(
            "Bulk added students to cohort: cohort=%s, added=%d, skipped=%d, by=%s",
            cohort_id,
            len(to_move),
            len(skipped_ids),
            added_by,
        )

        return (
            BulkCohortResult(
                added=len(to_move),
                skipped=len(skipped_ids),
                skipped_ids=skipped_ids,
            ),
            cohort_name,
        )

    async def remove_student(
        self,
        course_id: str,
        cohort_id: str,
        enrollment_id: str,
        removed_by: str,
    ) -> str:
        """Take an enrollment out of the cohort; the student stays enrolled.

        Returns:
            Name of the removed student.

        Raises:
            CohortEnrollmentNotFoundError: If the enrollment is not in the cohort.
        """
        result = await self.db.execute(
            select(Enrollment)
            .options(selectinload(Enrollment.student))
            .where(
                Enrollment.id == enrollment_id,
                Enrollment.course_id == course_id,
                Enrollment.cohort_id == cohort_id,
            )
        )
        enrollment = result.scalar_one_or_none()

        if not enrollment:
            raise CohortEnrollmentNotFoundError("Enrollment not found in this cohort")

        student_name = enrollment.student.name
        enrollment.cohort_id = None
        await self.db.commit()

        logger.info(
            "Removed student from cohort: cohort=%s, enrollment=%s, by=%s",
            cohort_id,
            enrollment_id,
            removed_by,
        )

        return student_name

    async def _get_course(self, course_id: str) -> Course:
        """Get a course.

        Raises:
            CohortCourseNotFoundError: If not found.
        """
        result = await self.db.execute(select(Course).where(Course.id == course_id))
        course = result.scalar_one_or_none()

        if not course:
            raise CohortCourseNotFoundError("Course not found")

        return course

    async def _get_cohort(self, course_id: str, cohort_id: str) -> Cohort:
        """Get a cohort of the course without locking it.

        Raises:
            CohortNotFoundError: If not found.
        """
        result = await self.db.execute(
            select(Cohort).where(Cohort.id == cohort_id, Cohort.course_id == course_id)
        )
        cohort = result.scalar_one_or_none()

        if not cohort:
            raise CohortNotFoundError("Cohort not found")

        return cohort

    async def _load_students(self, cohort_id: str) -> list[Enrollment]:
        result = await self.db.execute(
            select(Enrollment)
            .options(selectinload(Enrollment.student))
            .where(Enrollment.cohort_id == cohort_id)
            .order_by(Enrollment.enrolled_at.desc(), Enrollment.id)
        )
        return list(result.scalars().all())

    async def _count_enrollments(self, cohort_ids: list[str]) -> dict[str, int]:
        """Count enrollments per cohort in one query."""
        if not cohort_ids:
            return {}
        result = await self.db.execute(
            select(Enrollment.cohort_id, func.count(Enrollment.id))
            .where(Enrollment.cohort_id.in_(cohort_ids))
            .group_by(Enrollment.cohort_id)
        )
        return {cohort_id: count for cohort_id, count in result.all()}

    @staticmethod
    def _validate_dates(start_date: datetime | None, end_date: datetime | None) -> None:
        if start_date and end_date and as_utc(end_date) <= as_utc(start_date):
            raise InvalidCohortDatesError("End date must be after start date")

    @staticmethod
    def _check_limit(limit: int | None, current: int) -> None:
        # Enrollment count must stay within the limit
        if limit is not None and limit < current:
            raise CohortLimitError(
                f"Cohort already has {current} students; the limit cannot be lower",
                details={"limit": limit, "current": current},
            )

    @staticmethod
    def _to_record(cohort: Cohort, enrolled_count: int) -> CohortRecord:
        return CohortRecord(
            id=cohort.id,
            course_id=cohort.course_id,
            name=cohort.name,
            description=cohort.description,
            status=cohort.status,
            start_date=cohort.start_date,
            end_date=cohort.end_date,
            enrollment_limit=cohort.enrollment_limit,
            enrolled_count=enrolled_count,
            spots_remaining=spots_remaining(enrolled_count, cohort.enrollment_limit),
            created_at=cohort.created_at,
            updated_at=cohort.updated_at,
        )

    @staticmethod
    def _to_student(enrollment: Enrollment) -> CohortStudent:
        student = enrollment.student
        return CohortStudent(
            enrollment_id=enrollment.id,
            student=StudentRef(id=student.id, name=student.name, email=student.email),
            progress=enrollment.progress,
            enrolled_at=enrollment.enrolled_at,
            completed_at=enrollment.completed_at,
        )
