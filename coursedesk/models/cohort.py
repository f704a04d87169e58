# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cohort management and cohort student request and response models."""

from datetime import datetime
from typing import Annotated, Any, Union

from pydantic import Discriminator, Field, Tag

from coursedesk.models.common import CamelModel, CohortStatus, CourseRef, StudentRef


class AddCohortStudentRequest(CamelModel):
    """Move one enrollment into the cohort."""

    enrollment_id: str = Field(min_length=1)


class BulkAddCohortStudentsRequest(CamelModel):
    """Move several enrollments into the cohort."""

    enrollment_ids: list[str] = Field(min_length=1)


def cohort_request_variant(value: Any) -> str:
    """Pick the add-student variant from the presence of ``enrollmentIds``."""
    if isinstance(value, dict):
        return "bulk" if "enrollmentIds" in value or "enrollment_ids" in value else "single"
    if isinstance(value, BulkAddCohortStudentsRequest):
        return "bulk"
    return "single"


AddCohortStudentsRequest = Annotated[
    Union[
        Annotated[AddCohortStudentRequest, Tag("single")],
        Annotated[BulkAddCohortStudentsRequest, Tag("bulk")],
    ],
    Discriminator(cohort_request_variant),
]


class CohortStudent(CamelModel):
    """Enrollment listed under a cohort."""

    enrollment_id: str
    student: StudentRef
    progress: int
    enrolled_at: datetime
    completed_at: datetime | None


class CohortStudentsData(CamelModel):
    """Cohort summary with its students, newest first."""

    cohort_id: str
    cohort_name: str
    enrollment_limit: int | None
    student_count: int
    spots_remaining: int | None
    students: list[CohortStudent]


class BulkCohortResult(CamelModel):
    """Outcome of a bulk cohort add."""

    added: int
    skipped: int
    skipped_ids: list[str]


class CreateCohortRequest(CamelModel):
    """Create a cohort under a course."""

    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    start_date: datetime | None = None
    end_date: datetime | None = None
    enrollment_limit: int | None = Field(default=None, ge=0)
    status: CohortStatus = CohortStatus.PLANNED


class UpdateCohortRequest(CamelModel):
    """Update cohort fields.

    Only fields present in the body change; an explicit ``null`` clears
    a nullable field. Presence is read from ``model_fields_set``.
    """

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    start_date: datetime | None = None
    end_date: datetime | None = None
    enrollment_limit: int | None = Field(default=None, ge=0)
    status: CohortStatus | None = None


class CohortStatusRequest(CamelModel):
    status: CohortStatus


class CohortRecord(CamelModel):
    """Cohort with its current occupancy."""

    id: str
    course_id: str
    name: str
    description: str | None
    status: CohortStatus
    start_date: datetime | None
    end_date: datetime | None
    enrollment_limit: int | None
    enrolled_count: int
    spots_remaining: int | None
    created_at: datetime
    updated_at: datetime


class CohortListData(CamelModel):
    """Cohorts of a course, in lifecycle order."""

    course_id: str
    course_title: str
    cohorts: list[CohortRecord]


class CohortDetail(CohortRecord):
    """Cohort with its course and students, newest enrollment first."""

    course: CourseRef
    students: list[CohortStudent]


class CohortStatusData(CamelModel):
    id: str
    name: str
    status: CohortStatus


class CohortRemoval(CamelModel):
    """Outcome of deleting a cohort.

    Cohorts with enrollments are archived unless a hard delete is asked
    for; enrollments always survive, detached from the cohort.
    """

    cohort: CohortStatusData
    archived: bool
    enrollment_count: int
