# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course group API endpoints.

This module provides endpoints for group and membership management:
- GET /{course_id}/groups - List groups (optional type and archived filters)
- POST /{course_id}/groups - Create a group
- GET /{course_id}/groups/{group_id} - Group with its members
- PUT /{course_id}/groups/{group_id} - Update a group, including isArchived
- PATCH /{course_id}/groups/{group_id} - Set sub-course access
- DELETE /{course_id}/groups/{group_id}?hard=&restore= - Delete, archive or restore
- GET /{course_id}/groups/{group_id}/members - List members
- POST /{course_id}/groups/{group_id}/members - Add one member or many
- PATCH /{course_id}/groups/{group_id}/members - Set or clear a leader
- DELETE /{course_id}/groups/{group_id}/members?membershipId= - Remove a member

Removing a member keeps the student's course enrollment.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.api.dependencies import get_db, require_business_owner
from coursedesk.api.middleware.auth import CurrentUser
from coursedesk.domains.group.management import GroupService
from coursedesk.domains.group.service import GroupMembershipService
from coursedesk.models.common import ApiResponse, CourseGroupType
from coursedesk.models.group import (
    AddMembersRequest,
    BulkAddMembersRequest,
    BulkMembershipResult,
    CreateGroupRequest,
    GroupAccessData,
    GroupAccessRequest,
    GroupArchiveData,
    GroupDetail,
    GroupListData,
    GroupMembersData,
    GroupRecord,
    MembershipRecord,
    SetLeaderRequest,
    UpdateGroupRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_group_service(db: AsyncSession) -> GroupMembershipService:
    """Get group membership service instance."""
    return GroupMembershipService(db=db)


def _get_group_management_service(db: AsyncSession) -> GroupService:
    """Get group management service instance."""
    return GroupService(db=db)


@router.get(
    "/{course_id}/groups",
    response_model=ApiResponse[GroupListData],
    summary="List groups",
)
async def list_groups(
    course_id: str,
    group_type: Annotated[CourseGroupType | None, Query(alias="type")] = None,
    archived: bool = False,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[GroupListData]:
    """List groups of a course; archived groups only with ``archived=true``."""
    service = _get_group_management_service(db)
    data = await service.list_groups(course_id, group_type=group_type, include_archived=archived)
    return ApiResponse(data=data)


@router.post(
    "/{course_id}/groups",
    response_model=ApiResponse[GroupRecord],
    status_code=status.HTTP_201_CREATED,
    summary="Create group",
)
async def create_group(
    course_id: str,
    data: CreateGroupRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[GroupRecord]:
    service = _get_group_management_service(db)
    group = await service.create_group(course_id, data, created_by=current_user.id)
    return ApiResponse(data=group, message="Group created successfully")


@router.get(
    "/{course_id}/groups/{group_id}",
    response_model=ApiResponse[GroupDetail],
    summary="Get group",
)
async def get_group(
    course_id: str,
    group_id: str,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[GroupDetail]:
    service = _get_group_management_service(db)
    data = await service.get_group(course_id, group_id)
    return ApiResponse(data=data)


@router.put(
    "/{course_id}/groups/{group_id}",
    response_model=ApiResponse[GroupRecord],
    summary="Update group",
    description=(
        "Update name, description, type, maxMembers, allowedSubCourseIds or "
        "isArchived. Archived groups admit no new members."
    ),
)
async def update_group(
    course_id: str,
    group_id: str,
    data: UpdateGroupRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[GroupRecord]:
    service = _get_group_management_service(db)
    group = await service.update_group(
        course_id=course_id,
        group_id=group_id,
        request=data,
        updated_by=current_user.id,
    )
    return ApiResponse(data=group, message="Group updated successfully")


@router.patch(
    "/{course_id}/groups/{group_id}",
    response_model=ApiResponse[GroupAccessData],
    summary="Set group sub-course access",
)
async def set_group_access(
    course_id: str,
    group_id: str,
    data: GroupAccessRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[GroupAccessData]:
    service = _get_group_management_service(db)
    access = await service.set_access(
        course_id=course_id,
        group_id=group_id,
        request=data,
        updated_by=current_user.id,
    )

    if access.has_sub_course_restriction:
        message = f"Group restricted to {len(access.allowed_sub_course_ids)} subcourse(s)"
    else:
        message = "Group now has access to all subcourses"
    return ApiResponse(data=access, message=message)


@router.delete(
    "/{course_id}/groups/{group_id}",
    response_model=ApiResponse[GroupArchiveData],
    summary="Delete, archive or restore group",
    description=(
        "Groups with members are archived unless hard=true. "
        "restore=true brings an archived group back."
    ),
)
async def delete_group(
    course_id: str,
    group_id: str,
    hard: bool = False,
    restore: bool = False,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[GroupArchiveData]:
    """Delete or archive a group, or restore an archived one.

    Args:
        course_id: Course identifier.
        group_id: Group identifier.
        hard: Delete even when the group has members.
        restore: Restore an archived group instead of deleting.
        current_user: Authenticated business owner.
        db: Database session.

    Returns:
        The archived or restored group; no data after a delete.
    """
    service = _get_group_management_service(db)

    if restore:
        group = await service.restore_group(course_id, group_id, restored_by=current_user.id)
        return ApiResponse(data=group, message=f'Group "{group.name}" restored successfully')

    removal = await service.delete_group(
        course_id=course_id,
        group_id=group_id,
        hard=hard,
        deleted_by=current_user.id,
    )
    name = removal.group.name
    count = removal.member_count

    if removal.archived:
        return ApiResponse(
            data=removal.group,
            message=(
                f'Group "{name}" archived ({count} members preserved). '
                "Use ?hard=true to permanently delete or ?restore=true to restore."
            ),
        )
    if count:
        return ApiResponse(
            message=(
                f'Group "{name}" permanently deleted. '
                f"{count} member(s) remain enrolled in the course."
            )
        )
    return ApiResponse(message=f'Group "{name}" deleted successfully')


@router.get(
    "/{course_id}/groups/{group_id}/members",
    response_model=ApiResponse[GroupMembersData],
    summary="List group members",
)
async def list_group_members(
    course_id: str,
    group_id: str,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[GroupMembersData]:
    """List members of a group, leaders first."""
    service = _get_group_service(db)
    data = await service.list_members(course_id, group_id)
    return ApiResponse(data=data)


@router.post(
    "/{course_id}/groups/{group_id}/members",
    response_model=ApiResponse[MembershipRecord | BulkMembershipResult],
    status_code=status.HTTP_201_CREATED,
    summary="Add group members",
    description=(
        "Add one enrollment ({enrollmentId, isLeader?}) or many ({enrollmentIds}) "
        "to a group. Bulk adds respond 200."
    ),
)
async def add_group_members(
    course_id: str,
    group_id: str,
    data: Annotated[AddMembersRequest, Body()],
    response: Response,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[MembershipRecord | BulkMembershipResult]:
    """Add one or many enrolled students to a group.

    Args:
        course_id: Course identifier.
        group_id: Group identifier.
        data: Single or bulk membership request.
        response: Outgoing response, used to set the bulk status code.
        current_user: Authenticated business owner.
        db: Database session.

    Returns:
        The created membership, or the bulk outcome.
    """
    service = _get_group_service(db)

    if isinstance(data, BulkAddMembersRequest):
        logger.info(
            "Bulk adding group members: count=%d, group=%s, by=%s",
            len(data.enrollment_ids),
            group_id,
            current_user.id,
        )
        result, group_name = await service.bulk_add_members(
            course_id=course_id,
            group_id=group_id,
            request=data,
            added_by=current_user.id,
        )
        response.status_code = status.HTTP_200_OK
        return ApiResponse(
            data=result,
            message=f"{result.added} member(s) added to {group_name}",
        )

    record, group_name = await service.add_member(
        course_id=course_id,
        group_id=group_id,
        request=data,
        added_by=current_user.id,
    )
    suffix = " as leader" if record.is_leader else ""
    return ApiResponse(
        data=record,
        message=f"{record.student.name} added to {group_name}{suffix}",
    )


@router.patch(
    "/{course_id}/groups/{group_id}/members",
    response_model=ApiResponse[MembershipRecord],
    summary="Set group leader",
)
async def set_group_leader(
    course_id: str,
    group_id: str,
    data: SetLeaderRequest,
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[MembershipRecord]:
    """Set or clear the leader flag of a membership."""
    service = _get_group_service(db)
    record = await service.set_leader(
        course_id=course_id,
        group_id=group_id,
        request=data,
        updated_by=current_user.id,
    )

    if record.is_leader:
        message = f"{record.student.name} is now a group leader"
    else:
        message = f"{record.student.name} is no longer a group leader"
    return ApiResponse(data=record, message=message)


@router.delete(
    "/{course_id}/groups/{group_id}/members",
    response_model=ApiResponse[None],
    summary="Remove group member",
)
async def remove_group_member(
    course_id: str,
    group_id: str,
    membership_id: Annotated[str, Query(alias="membershipId", min_length=1)],
    current_user: CurrentUser = Depends(require_business_owner),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[None]:
    """Remove a member from a group; the course enrollment is kept."""
    service = _get_group_service(db)
    student_name = await service.remove_member(
        course_id=course_id,
        group_id=group_id,
        membership_id=membership_id,
        removed_by=current_user.id,
    )
    return ApiResponse(message=f"{student_name} removed from group (still enrolled in course)")
