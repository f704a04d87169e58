# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment request and response models.

POST bodies come in two shapes, a single student (``studentId``) or a
batch (``studentIds``). Both shapes are validated as explicit variants
of a tagged union selected by :func:`enroll_request_variant`.
"""

from datetime import datetime
from typing import Annotated, Any, Union

from pydantic import Discriminator, Field, Tag

from coursedesk.models.common import (
    CamelModel,
    CohortRef,
    CourseRef,
    Pagination,
    StudentRef,
)


class EnrollStudentRequest(CamelModel):
    """Enroll one student, optionally into a cohort and/or group."""

    student_id: str = Field(min_length=1)
    cohort_id: str | None = None
    group_id: str | None = None


class BulkEnrollRequest(CamelModel):
    """Enroll several students with the same optional cohort and group."""

    student_ids: list[str] = Field(min_length=1)
    cohort_id: str | None = None
    group_id: str | None = None


def enroll_request_variant(value: Any) -> str:
    """Pick the enroll request variant from the presence of ``studentIds``."""
    if isinstance(value, dict):
        return "bulk" if "studentIds" in value or "student_ids" in value else "single"
    if isinstance(value, BulkEnrollRequest):
        return "bulk"
    return "single"


EnrollRequest = Annotated[
    Union[
        Annotated[EnrollStudentRequest, Tag("single")],
        Annotated[BulkEnrollRequest, Tag("bulk")],
    ],
    Discriminator(enroll_request_variant),
]


class UpdateEnrollmentRequest(CamelModel):
    """Update cohort and/or progress.

    An absent ``cohortId`` leaves the cohort unchanged; an explicit
    ``null`` removes it. Presence is read from ``model_fields_set``.
    """

    cohort_id: str | None = None
    progress: int | None = Field(default=None, ge=0, le=100)


class ChangeCohortRequest(CamelModel):
    """Reassign the enrollment to another cohort, or to none."""

    cohort_id: str | None


class EnrollmentRecord(CamelModel):
    """Enrollment as returned by create/update operations."""

    id: str
    student_id: str
    course_id: str
    cohort_id: str | None
    progress: int
    enrolled_at: datetime
    completed_at: datetime | None
    last_accessed_at: datetime
    student: StudentRef
    cohort: CohortRef | None
    course: CourseRef


class BulkEnrollResult(CamelModel):
    """Outcome of a bulk enrollment."""

    enrolled: int
    skipped: int
    skipped_ids: list[str]


class EnrollmentGroupRef(CamelModel):
    """Group membership of an enrollment."""

    id: str
    name: str
    type: str
    is_leader: bool
    joined_at: datetime


class EnrollmentListItem(CamelModel):
    """Row of the enrollment listing."""

    id: str
    student: StudentRef
    cohort: CohortRef | None
    groups: list[EnrollmentGroupRef]
    progress: int
    enrolled_at: datetime
    completed_at: datetime | None
    last_accessed_at: datetime


class EnrollmentListData(CamelModel):
    """Paginated enrollment listing for a course."""

    course_id: str
    course_title: str
    enrollments: list[EnrollmentListItem]
    pagination: Pagination


class LessonProgressItem(CamelModel):
    """Progress-tracking row of an enrollment."""

    id: str
    lesson_id: str
    is_completed: bool
    time_spent: int
    completed_at: datetime | None
    updated_at: datetime


class EnrollmentStats(CamelModel):
    """Aggregates computed from progress-tracking rows."""

    completed_lessons: int
    total_lessons_tracked: int
    total_time_spent: int
    progress: int


class EnrollmentDetail(EnrollmentRecord):
    """Enrollment with groups, progress tracking and stats."""

    groups: list[EnrollmentGroupRef]
    progress_tracking: list[LessonProgressItem]
    stats: EnrollmentStats
