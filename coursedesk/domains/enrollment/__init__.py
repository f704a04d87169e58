# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment domain package.

This package provides course enrollment management functionality including:
- Single and bulk enrollment with cohort and group placement
- Enrollment listing, detail and updates
- Unenrollment with a progress guard
"""

from coursedesk.domains.enrollment.service import (
    AlreadyEnrolledError,
    CourseNotFoundError,
    EnrollmentClosedError,
    EnrollmentConflictError,
    EnrollmentNotFoundError,
    EnrollmentService,
    EnrollmentServiceError,
    InvalidStudentsError,
    InvalidStudentTypeError,
    StudentNotFoundError,
    UnenrollGuardError,
)

__all__ = [
    "EnrollmentService",
    "EnrollmentServiceError",
    "CourseNotFoundError",
    "EnrollmentClosedError",
    "StudentNotFoundError",
    "InvalidStudentTypeError",
    "InvalidStudentsError",
    "AlreadyEnrolledError",
    "EnrollmentConflictError",
    "EnrollmentNotFoundError",
    "UnenrollGuardError",
]
