# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cohort API endpoints.

- GET /{course_id}/cohorts - List cohorts (optional status filter)
- POST /{course_id}/cohorts - Create a cohort
- GET /{course_id}/cohorts/{cohort_id} - Cohort with its students
- PUT /{course_id}/cohorts/{cohort_id} - Update a cohort
- PATCH /{course_id}/cohorts/{cohort_id} - Change the cohort status
- DELETE /{course_id}/cohorts/{cohort_id}?hard= - Delete or archive a cohort
- GET /{course_id}/cohorts/{cohort_id}/students - List cohort students
- POST /{course_id}/cohorts/{cohort_id}/students - Move enrollments into the cohort
- DELETE /{course_id}/cohorts/{cohort_id}/students?enrollmentId= - Take one out
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.api.dependencies import get_db, require_business_owner
from coursedesk.api.middleware.auth import CurrentUser
from coursedesk.domains.cohort.service import CohortService
from coursedesk.models.cohort import (
    AddCohortStudentsRequest,
    BulkAddCohortStudentsRequest,
    BulkCohortResult,
    CohortDetail,
    CohortListData,
    CohortRecord,
    CohortStatusData,
    CohortStatusRequest,
    CohortStudent,
    CohortStudentsData,
    CreateCohortRequest,
    UpdateCohortRequest,
)
from coursedesk.models.common import ApiResponse, CohortStatus

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_cohort_service(db: AsyncSession) -> CohortService:
    return CohortService(db=db)


@router.get(
    "/{course_id}/cohorts",
    response_model=ApiResponse[CohortListData],
    summary="List cohorts",
)
async def list_cohorts(
    course_id: str,
    status_filter: Annotated[CohortStatus | None, Query(alias="status")] = None,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CohortListData]:
    service = _get_cohort_service(db)
    data = await service.list_cohorts(course_id, status=status_filter)
    return ApiResponse(data=data)


@router.post(
    "/{course_id}/cohorts",
    response_model=ApiResponse[CohortRecord],
    status_code=status.HTTP_201_CREATED,
    summary="Create cohort",
)
async def create_cohort(
    course_id: str,
    data: CreateCohortRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CohortRecord]:
    service = _get_cohort_service(db)
    cohort = await service.create_cohort(course_id, data, created_by=current_user.id)
    return ApiResponse(data=cohort, message="Cohort created successfully")


@router.get(
    "/{course_id}/cohorts/{cohort_id}",
    response_model=ApiResponse[CohortDetail],
    summary="Get cohort",
)
async def get_cohort(
    course_id: str,
    cohort_id: str,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CohortDetail]:
    service = _get_cohort_service(db)
    data = await service.get_cohort(course_id, cohort_id)
    return ApiResponse(data=data)


@router.put(
    "/{course_id}/cohorts/{cohort_id}",
    response_model=ApiResponse[CohortRecord],
    summary="Update cohort",
    description="Update name, description, dates, enrollmentLimit or status.",
)
async def update_cohort(
    course_id: str,
    cohort_id: str,
    data: UpdateCohortRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CohortRecord]:
    service = _get_cohort_service(db)
    cohort = await service.update_cohort(
        course_id=course_id,
        cohort_id=cohort_id,
        request=data,
        updated_by=current_user.id,
    )
    return ApiResponse(data=cohort, message="Cohort updated successfully")


@router.patch(
    "/{course_id}/cohorts/{cohort_id}",
    response_model=ApiResponse[CohortStatusData],
    summary="Change cohort status",
)
async def change_cohort_status(
    course_id: str,
    cohort_id: str,
    data: CohortStatusRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CohortStatusData]:
    service = _get_cohort_service(db)
    cohort = await service.set_status(
        course_id=course_id,
        cohort_id=cohort_id,
        request=data,
        updated_by=current_user.id,
    )
    return ApiResponse(data=cohort, message=f"Cohort status changed to {cohort.status.value}")


@router.delete(
    "/{course_id}/cohorts/{cohort_id}",
    response_model=ApiResponse[CohortStatusData],
    summary="Delete or archive cohort",
    description=(
        "Cohorts with enrollments are archived unless hard=true. "
        "Enrollments are never deleted."
    ),
)
async def delete_cohort(
    course_id: str,
    cohort_id: str,
    hard: bool = False,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CohortStatusData]:
    """Delete a cohort, or archive it while it has enrollments."""
    service = _get_cohort_service(db)
    removal = await service.delete_cohort(
        course_id=course_id,
        cohort_id=cohort_id,
        hard=hard,
        deleted_by=current_user.id,
    )
    name = removal.cohort.name
    count = removal.enrollment_count

    if removal.archived:
        return ApiResponse(
            data=removal.cohort,
            message=(
                f'Cohort "{name}" archived ({count} students preserved). '
                "Use ?hard=true to permanently delete."
            ),
        )
    if count:
        return ApiResponse(
            message=(
                f'Cohort "{name}" permanently deleted. {count} student(s) remain '
                "enrolled in the course but are no longer in this cohort."
            )
        )
    return ApiResponse(message=f'Cohort "{name}" deleted successfully')


@router.get(
    "/{course_id}/cohorts/{cohort_id}/students",
    response_model=ApiResponse[CohortStudentsData],
    summary="List cohort students",
)
async def list_cohort_students(
    course_id: str,
    cohort_id: str,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CohortStudentsData]:
    service = _get_cohort_service(db)
    data = await service.list_students(course_id, cohort_id)
    return ApiResponse(data=data)


@router.post(
    "/{course_id}/cohorts/{cohort_id}/students",
    response_model=ApiResponse[CohortStudent | BulkCohortResult],
    summary="Add cohort students",
    description="Move one enrollment ({enrollmentId}) or many ({enrollmentIds}) into a cohort.",
)
async def add_cohort_students(
    course_id: str,
    cohort_id: str,
    data: Annotated[AddCohortStudentsRequest, Body()],
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[CohortStudent | BulkCohortResult]:
    """Move one or many enrollments of the course into a cohort."""
    service = _get_cohort_service(db)

    if isinstance(data, BulkAddCohortStudentsRequest):
        logger.info(
            "Bulk adding cohort students: count=%d, cohort=%s, by=%s",
            len(data.enrollment_ids),
            cohort_id,
            current_user.id,
        )
        result, cohort_name = await service.bulk_add_students(
            course_id=course_id,
            cohort_id=cohort_id,
            request=data,
            added_by=current_user.id,
        )
        return ApiResponse(
            data=result,
            message=f"{result.added} student(s) added to {cohort_name}",
        )

    student, cohort_name = await service.add_student(
        course_id=course_id,
        cohort_id=cohort_id,
        request=data,
        added_by=current_user.id,
    )
    return ApiResponse(
        data=student,
        message=f"{student.student.name} added to {cohort_name}",
    )


@router.delete(
    "/{course_id}/cohorts/{cohort_id}/students",
    response_model=ApiResponse[None],
    summary="Remove cohort student",
)
async def remove_cohort_student(
    course_id: str,
    cohort_id: str,
    enrollment_id: Annotated[str, Query(alias="enrollmentId", min_length=1)],
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[None]:
    service = _get_cohort_service(db)
    student_name = await service.remove_student(
        course_id=course_id,
        cohort_id=cohort_id,
        enrollment_id=enrollment_id,
        removed_by=current_user.id,
    )
    return ApiResponse(message=f"{student_name} removed from cohort (still enrolled in course)")
