# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for Enrollment service."""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from coursedesk.domains.enrollment.service import (
    AlreadyEnrolledError,
    CourseNotFoundError,
    EnrollmentClosedError,
    EnrollmentConflictError,
    EnrollmentNotFoundError,
    EnrollmentService,
    InvalidStudentTypeError,
    StudentNotFoundError,
    UnenrollGuardError,
)
from coursedesk.domains.errors import ConflictError, NotFoundError
from coursedesk.models.enrollment import EnrollStudentRequest


@pytest.fixture
def mock_db():
    """Create mock database session."""
    db = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    return db


@pytest.fixture
def enrollment_service(mock_db):
    """Create enrollment service with mock database."""
    return EnrollmentService(db=mock_db)


@pytest.fixture
def sample_course():
    """Create a sample course model."""
    course = MagicMock()
    course.id = str(uuid4())
    course.organization_id = str(uuid4())
    course.title = "Python Basics"
    course.enrollment_open = True
    return course


@pytest.fixture
def sample_student():
    """Create a sample student model."""
    student = MagicMock()
    student.id = str(uuid4())
    student.email = "student@acme.test"
    student.name = "John Doe"
    student.role = "STUDENT"
    return student


def scalar_result(value):
    """Build an execute() result whose scalar_one_or_none returns value."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def count_result(value: int):
    result = MagicMock()
    result.scalar_one.return_value = value
    return result


class TestEnrollStudent:
    """Tests for the single enrollment checks."""

    @pytest.mark.asyncio
    async def test_course_not_found(self, enrollment_service, mock_db):
        """Test enrolling into a missing course."""
        mock_db.execute.return_value = scalar_result(None)

        with pytest.raises(CourseNotFoundError):
            await enrollment_service.enroll_student(
                course_id="missing",
                request=EnrollStudentRequest(student_id="s1"),
                enrolled_by="owner",
            )

        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_course_closed(self, enrollment_service, mock_db, sample_course):
        """Test a closed course is checked before the student lookup."""
        sample_course.enrollment_open = False
        mock_db.execute.return_value = scalar_result(sample_course)

        with pytest.raises(EnrollmentClosedError) as exc_info:
            await enrollment_service.enroll_student(
                course_id=sample_course.id,
                request=EnrollStudentRequest(student_id="s1"),
                enrolled_by="owner",
            )

        assert exc_info.value.status_code == 403
        assert mock_db.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_student_not_found(self, enrollment_service, mock_db, sample_course):
        """Test enrolling a missing student."""
        mock_db.execute.side_effect = [scalar_result(sample_course), scalar_result(None)]

        with pytest.raises(StudentNotFoundError):
            await enrollment_service.enroll_student(
                course_id=sample_course.id,
                request=EnrollStudentRequest(student_id="missing"),
                enrolled_by="owner",
            )

    @pytest.mark.asyncio
    async def test_not_a_student(
        self, enrollment_service, mock_db, sample_course, sample_student
    ):
        """Test enrolling a user who is not a student."""
        sample_student.role = "LECTURER"
        mock_db.execute.side_effect = [
            scalar_result(sample_course),
            scalar_result(sample_student),
        ]

        with pytest.raises(InvalidStudentTypeError) as exc_info:
            await enrollment_service.enroll_student(
                course_id=sample_course.id,
                request=EnrollStudentRequest(student_id=sample_student.id),
                enrolled_by="owner",
            )

        assert exc_info.value.code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_already_enrolled(
        self, enrollment_service, mock_db, sample_course, sample_student
    ):
        """Test enrolling a student twice."""
        mock_db.execute.side_effect = [
            scalar_result(sample_course),
            scalar_result(sample_student),
            scalar_result(MagicMock()),
        ]

        with pytest.raises(AlreadyEnrolledError):
            await enrollment_service.enroll_student(
                course_id=sample_course.id,
                request=EnrollStudentRequest(student_id=sample_student.id),
                enrolled_by="owner",
            )

        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_constraint_violation_rolls_back(
        self, enrollment_service, mock_db, sample_course, sample_student
    ):
        """Test a unique constraint hit on write becomes a conflict."""
        mock_db.execute.side_effect = [
            scalar_result(sample_course),
            scalar_result(sample_student),
            scalar_result(None),
        ]
        mock_db.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate"))

        with pytest.raises(EnrollmentConflictError):
            await enrollment_service.enroll_student(
                course_id=sample_course.id,
                request=EnrollStudentRequest(student_id=sample_student.id),
                enrolled_by="owner",
            )

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()


class TestUnenroll:
    """Tests for the unenroll guard."""

    @pytest.mark.asyncio
    async def test_enrollment_not_found(self, enrollment_service, mock_db):
        """Test unenrolling a missing enrollment."""
        mock_db.execute.return_value = scalar_result(None)

        with pytest.raises(EnrollmentNotFoundError):
            await enrollment_service.unenroll("course", "missing")

    @pytest.mark.asyncio
    async def test_lesson_records_require_force(self, enrollment_service, mock_db):
        """Test lesson records alone block unenrollment without force."""
        enrollment = MagicMock()
        enrollment.id = "e1"
        enrollment.progress = 0
        mock_db.execute.side_effect = [scalar_result(enrollment), count_result(3)]

        with pytest.raises(UnenrollGuardError) as exc_info:
            await enrollment_service.unenroll("course", "e1")

        assert exc_info.value.details == {"progress": 0, "lessonRecords": 3}
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_force_deletes(self, enrollment_service, mock_db):
        """Test force removes lesson progress, memberships and the enrollment."""
        enrollment = MagicMock()
        enrollment.id = "e1"
        enrollment.progress = 50
        enrollment.student.name = "John Doe"
        mock_db.execute.side_effect = [
            scalar_result(enrollment),
            count_result(2),
            MagicMock(),
            MagicMock(),
            MagicMock(),
        ]

        name = await enrollment_service.unenroll("course", "e1", force=True)

        assert name == "John Doe"
        assert mock_db.execute.await_count == 5
        mock_db.commit.assert_awaited_once()


class TestErrorKinds:
    """Tests for the error hierarchy."""

    def test_not_found_kind(self):
        """Test not-found errors map to 404."""
        error = CourseNotFoundError("Course not found")

        assert isinstance(error, NotFoundError)
        assert error.status_code == 404
        assert error.code == "NOT_FOUND"
        assert error.details is None

    def test_conflict_kind_carries_details(self):
        """Test conflict errors keep their details payload."""
        error = UnenrollGuardError("guarded", details={"progress": 10})

        assert isinstance(error, ConflictError)
        assert error.status_code == 409
        assert error.message == "guarded"
        assert error.details == {"progress": 10}
