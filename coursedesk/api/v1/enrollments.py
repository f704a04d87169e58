# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course enrollment API endpoints.

This module provides endpoints for enrollment management:
- GET /{course_id}/enrollments - List enrollments with filters
- POST /{course_id}/enrollments - Enroll one student or many
- GET /{course_id}/enrollments/{enrollment_id} - Get enrollment details
- PUT /{course_id}/enrollments/{enrollment_id} - Update cohort and/or progress
- PATCH /{course_id}/enrollments/{enrollment_id} - Change cohort
- DELETE /{course_id}/enrollments/{enrollment_id} - Unenroll student

All endpoints require a business owner.
"""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.api.dependencies import get_db, require_business_owner
from coursedesk.api.middleware.auth import CurrentUser
from coursedesk.domains.enrollment.service import EnrollmentService
from coursedesk.models.common import ApiResponse, ProgressStatus
from coursedesk.models.enrollment import (
    BulkEnrollRequest,
    BulkEnrollResult,
    ChangeCohortRequest,
    EnrollmentDetail,
    EnrollmentListData,
    EnrollmentRecord,
    EnrollRequest,
    UpdateEnrollmentRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_enrollment_service(db: AsyncSession) -> EnrollmentService:
    """Get enrollment service instance.

    Args:
        db: Database session.

    Returns:
        Configured EnrollmentService instance.
    """
    return EnrollmentService(db=db)


@router.get(
    "/{course_id}/enrollments",
    response_model=ApiResponse[EnrollmentListData],
    summary="List enrollments",
    description="List course enrollments with search, filters and pagination.",
)
async def list_enrollments(
    course_id: str,
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    limit: Annotated[int, Query(ge=1, le=100, description="Page size")] = 10,
    search: Annotated[
        str | None, Query(description="Case-insensitive match on student name or email")
    ] = None,
    cohort_id: Annotated[
        str | None, Query(alias="cohortId", description="Cohort filter ('all' for none)")
    ] = None,
    group_id: Annotated[
        str | None, Query(alias="groupId", description="Group filter ('all' for none)")
    ] = None,
    progress_status: Annotated[
        ProgressStatus | None, Query(alias="status", description="Progress filter")
    ] = None,
    start_date: Annotated[
        date | None, Query(alias="startDate", description="Enrolled on or after")
    ] = None,
    end_date: Annotated[
        date | None, Query(alias="endDate", description="Enrolled on or before (inclusive)")
    ] = None,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[EnrollmentListData]:
    """List enrollments of a course.

    Args:
        course_id: Course identifier.
        page: Page number (1-based).
        limit: Page size.
        search: Student name/email search.
        cohort_id: Cohort filter.
        group_id: Group filter.
        progress_status: Progress filter.
        start_date: Lower bound on enrollment date.
        end_date: Upper bound on enrollment date.
        current_user: Authenticated business owner.
        db: Database session.

    Returns:
        Paginated enrollment listing.
    """
    service = _get_enrollment_service(db)
    data = await service.list_enrollments(
        course_id=course_id,
        page=page,
        limit=limit,
        search=search,
        cohort_id=cohort_id,
        group_id=group_id,
        status=progress_status,
        start_date=start_date,
        end_date=end_date,
    )
    return ApiResponse(data=data)


@router.post(
    "/{course_id}/enrollments",
    response_model=ApiResponse[EnrollmentRecord | BulkEnrollResult],
    status_code=status.HTTP_201_CREATED,
    summary="Enroll students",
    description=(
        "Enroll one student ({studentId}) or many ({studentIds}) in a course, "
        "optionally placing them into a cohort and a group."
    ),
)
async def enroll_students(
    course_id: str,
    data: Annotated[EnrollRequest, Body()],
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[EnrollmentRecord | BulkEnrollResult]:
    """Enroll one or many students in a course.

    Args:
        course_id: Course identifier.
        data: Single or bulk enrollment request.
        current_user: Authenticated business owner.
        db: Database session.

    Returns:
        The created enrollment, or the bulk outcome.
    """
    service = _get_enrollment_service(db)

    if isinstance(data, BulkEnrollRequest):
        logger.info(
            "Bulk enrolling students: count=%d, course=%s, by=%s",
            len(data.student_ids),
            course_id,
            current_user.id,
        )
        result = await service.bulk_enroll(
            course_id=course_id,
            request=data,
            enrolled_by=current_user.id,
        )
        return ApiResponse(
            data=result,
            message=f"{result.enrolled} student(s) enrolled successfully",
        )

    logger.info(
        "Enrolling student: student=%s, course=%s, by=%s",
        data.student_id,
        course_id,
        current_user.id,
    )
    record = await service.enroll_student(
        course_id=course_id,
        request=data,
        enrolled_by=current_user.id,
    )
    return ApiResponse(
        data=record,
        message=f"{record.student.name} enrolled in {record.course.title}",
    )


@router.get(
    "/{course_id}/enrollments/{enrollment_id}",
    response_model=ApiResponse[EnrollmentDetail],
    summary="Get enrollment details",
)
async def get_enrollment(
    course_id: str,
    enrollment_id: str,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[EnrollmentDetail]:
    """Get an enrollment with groups, lesson tracking and stats."""
    service = _get_enrollment_service(db)
    detail = await service.get_enrollment(course_id, enrollment_id)
    return ApiResponse(data=detail)


@router.put(
    "/{course_id}/enrollments/{enrollment_id}",
    response_model=ApiResponse[EnrollmentRecord],
    summary="Update enrollment",
    description="Update the cohort and/or progress of an enrollment.",
)
async def update_enrollment(
    course_id: str,
    enrollment_id: str,
    data: UpdateEnrollmentRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[EnrollmentRecord]:
    """Update an enrollment.

    Args:
        course_id: Course identifier.
        enrollment_id: Enrollment identifier.
        data: Fields to update.
        current_user: Authenticated business owner.
        db: Database session.

    Returns:
        The updated enrollment.
    """
    service = _get_enrollment_service(db)
    record = await service.update_enrollment(
        course_id=course_id,
        enrollment_id=enrollment_id,
        request=data,
        updated_by=current_user.id,
    )
    return ApiResponse(data=record, message="Enrollment updated successfully")


@router.patch(
    "/{course_id}/enrollments/{enrollment_id}",
    response_model=ApiResponse[EnrollmentRecord],
    summary="Change cohort",
    description="Move an enrollment to another cohort, or out of its cohort with null.",
)
async def change_cohort(
    course_id: str,
    enrollment_id: str,
    data: ChangeCohortRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[EnrollmentRecord]:
    """Reassign the cohort of an enrollment."""
    service = _get_enrollment_service(db)
    record = await service.change_cohort(
        course_id=course_id,
        enrollment_id=enrollment_id,
        request=data,
        changed_by=current_user.id,
    )

    if record.cohort:
        message = f"{record.student.name} moved to {record.cohort.name}"
    else:
        message = f"{record.student.name} removed from cohort"
    return ApiResponse(data=record, message=message)


@router.delete(
    "/{course_id}/enrollments/{enrollment_id}",
    response_model=ApiResponse[None],
    summary="Unenroll student",
    description=(
        "Permanently delete an enrollment with its group memberships and lesson "
        "progress. Students with progress require force=true."
    ),
)
async def unenroll_student(
    course_id: str,
    enrollment_id: str,
    force: Annotated[bool, Query(description="Unenroll even if the student has progress")] = False,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[None]:
    """Unenroll a student from a course.

    Args:
        course_id: Course identifier.
        enrollment_id: Enrollment identifier.
        force: Skip the progress guard.
        current_user: Authenticated business owner.
        db: Database session.

    Returns:
        Confirmation message.
    """
    service = _get_enrollment_service(db)
    student_name = await service.unenroll(
        course_id=course_id,
        enrollment_id=enrollment_id,
        force=force,
        removed_by=current_user.id,
    )
    return ApiResponse(message=f"{student_name} has been unenrolled from the course")
