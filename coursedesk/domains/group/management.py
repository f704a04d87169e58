# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course group management service.

This module provides the GroupService class for:
- Listing and creating the groups of a course
- Updating group settings, including ``maxMembers`` and archiving
- Restricting the sub-courses a group may access
- Deleting, archiving and restoring groups

Archived groups keep their members but admit nobody new.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.domains.capacity import (
    GroupNotFoundError,
    count_group_members,
    lock_group,
    spots_remaining,
)
from coursedesk.domains.errors import ConflictError, NotFoundError
from coursedesk.domains.group.service import GroupMembershipService, GroupServiceError
from coursedesk.infrastructure.database.models import Course, CourseGroup, CourseGroupMembership
from coursedesk.models.common import CourseGroupType, CourseRef
from coursedesk.models.group import (
    CreateGroupRequest,
    GroupAccessData,
    GroupAccessRequest,
    GroupArchiveData,
    GroupDetail,
    GroupListData,
    GroupRecord,
    GroupRemoval,
    UpdateGroupRequest,
)

logger = logging.getLogger(__name__)


class GroupCourseNotFoundError(GroupServiceError, NotFoundError):
    """Raised when the course does not exist."""

    pass


class GroupLimitError(GroupServiceError, ConflictError):
    """Raised when a new limit is below the group's current member count."""

    pass


class GroupNotArchivedError(GroupServiceError, ConflictError):
    """Raised when restoring a group that is not archived."""

    pass


class GroupService:
    """Service for managing course groups.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize group service.

        Args:
            db: Async database session.
        """
        self.db = db

    async def list_groups(
        self,
        course_id: str,
        group_type: CourseGroupType | None = None,
        include_archived: bool = False,
    ) -> GroupListData:
        """List groups of a course with their member counts.

        Args:
            course_id: Course identifier.
            group_type: Only list groups of this type.
            include_archived: Also list archived groups.

        Returns:
            Groups ordered by type, newest first within a type.

        Raises:
            GroupCourseNotFoundError: If the course does not exist.
        """
        course = await self._get_course(course_id)

        query = select(CourseGroup).where(CourseGroup.course_id == course.id)
        if group_type:
            query = query.where(CourseGroup.type == group_type.value)
        if not include_archived:
            query = query.where(CourseGroup.is_archived.is_(False))

        result = await self.db.execute(
            query.order_by(CourseGroup.type.asc(), CourseGroup.created_at.desc())
        )
        groups = result.scalars().all()
        counts = await self._count_members([g.id for g in groups])

        return GroupListData(
            course_id=course.id,
            course_title=course.title,
            groups=[self._to_record(g, counts.get(g.id, 0)) for g in groups],
        )

    async def create_group(
        self,
        course_id: str,
        request: CreateGroupRequest,
        created_by: str,
    ) -> GroupRecord:
        """Create a group under a course.

        Raises:
            GroupCourseNotFoundError: If the course does not exist.
        """
        course = await self._get_course(course_id)

        group = CourseGroup(
            organization_id=course.organization_id,
            course_id=course.id,
            name=request.name,
            description=request.description,
            type=request.type.value,
            max_members=request.max_members,
            allowed_sub_course_ids=list(dict.fromkeys(request.allowed_sub_course_ids)),
        )
        self.db.add(group)
        await self.db.flush()
        await self.db.commit()

        logger.info(
            "Created group: group=%s, course=%s, type=%s, max_members=%s, by=%s",
            group.id,
            course_id,
            group.type,
            group.max_members,
            created_by,
        )

        return self._to_record(group, 0)

    async def get_group(self, course_id: str, group_id: str) -> GroupDetail:
        """Get a group, archived or not, with its course and members.

        Raises:
            GroupNotFoundError: If the group is not in the course.
        """
        group = await self._get_group(course_id, group_id)
        listing = await GroupMembershipService(self.db).list_members(course_id, group_id)
        course = await self._get_course(course_id)
        record = self._to_record(group, listing.member_count)

        return GroupDetail(
            **record.model_dump(),
            course=CourseRef(id=course.id, title=course.title),
            members=listing.members,
        )

    async def update_group(
        self,
        course_id: str,
        group_id: str,
        request: UpdateGroupRequest,
        updated_by: str,
    ) -> GroupRecord:
        """Update the fields present in the request.

        Archived groups can be updated, and ``isArchived`` archives or
        restores the group. The group row is locked, so a limit change
        and a concurrent admission into the group cannot interleave.

        Raises:
            GroupNotFoundError: If the group is not in the course.
            GroupLimitError: If the new limit is below the current member count.
        """
        group = await lock_group(self.db, course_id, group_id, include_archived=True)
        fields = request.model_fields_set
        current = await count_group_members(self.db, group.id)

        if "max_members" in fields:
            if request.max_members is not None and request.max_members < current:
                raise GroupLimitError(
                    f"Group already has {current} members; the limit cannot be lower",
                    details={"limit": request.max_members, "current": current},
                )
            group.max_members = request.max_members

        if request.name is not None:
            group.name = request.name
        if "description" in fields:
            group.description = request.description
        if request.type is not None:
            group.type = request.type.value
        if request.allowed_sub_course_ids is not None:
            group.allowed_sub_course_ids = list(dict.fromkeys(request.allowed_sub_course_ids))
        if request.is_archived is not None:
            group.is_archived = request.is_archived

        await self.db.flush()
        await self.db.commit()

        logger.info(
            "Updated group: group=%s, fields=%s, by=%s",
            group_id,
            sorted(fields),
            updated_by,
        )

        return self._to_record(group, current)

    async def set_access(
        self,
        course_id: str,
        group_id: str,
        request: GroupAccessRequest,
        updated_by: str,
    ) -> GroupAccessData:
        """Replace the sub-courses the group may access.

        Raises:
            GroupNotFoundError: If the group is not in the course.
        """
        group = await self._get_group(course_id, group_id)
        group.allowed_sub_course_ids = list(dict.fromkeys(request.allowed_sub_course_ids))
        data = GroupAccessData(
            id=group.id,
            name=group.name,
            allowed_sub_course_ids=group.allowed_sub_course_ids,
            has_sub_course_restriction=bool(group.allowed_sub_course_ids),
        )
        await self.db.commit()

        logger.info(
            "Updated group access: group=%s, sub_courses=%d, by=%s",
            group_id,
            len(data.allowed_sub_course_ids),
            updated_by,
        )

        return data

    async def delete_group(
        self,
        course_id: str,
        group_id: str,
        hard: bool,
        deleted_by: str,
    ) -> GroupRemoval:
        """Delete a group, or archive it while it still has members.

        A hard delete removes the group and its memberships; the members
        stay enrolled in the course.

        Raises:
            GroupNotFoundError: If the group is not in the course.
        """
        group = await lock_group(self.db, course_id, group_id, include_archived=True)
        member_count = await count_group_members(self.db, group.id)

        if member_count > 0 and not hard:
            group.is_archived = True
            removal = GroupRemoval(
                group=GroupArchiveData(id=group.id, name=group.name, is_archived=True),
                archived=True,
                member_count=member_count,
            )
            await self.db.commit()

            logger.info(
                "Archived group: group=%s, members=%d, by=%s",
                group_id,
                member_count,
                deleted_by,
            )
            return removal

        removal = GroupRemoval(
            group=GroupArchiveData(id=group.id, name=group.name, is_archived=group.is_archived),
            archived=False,
            member_count=member_count,
        )
        await self.db.execute(delete(CourseGroup).where(CourseGroup.id == group.id))
        await self.db.commit()

        logger.info(
            "Deleted group: group=%s, removed_memberships=%d, by=%s",
            group_id,
            member_count,
            deleted_by,
        )

        return removal

    async def restore_group(
        self,
        course_id: str,
        group_id: str,
        restored_by: str,
    ) -> GroupArchiveData:
        """Restore an archived group so it admits members again.

        Raises:
            GroupNotFoundError: If the group is not in the course.
            GroupNotArchivedError: If the group is not archived.
        """
        group = await lock_group(self.db, course_id, group_id, include_archived=True)

        if not group.is_archived:
            raise GroupNotArchivedError("Group is not archived")

        group.is_archived = False
        data = GroupArchiveData(id=group.id, name=group.name, is_archived=False)
        await self.db.commit()

        logger.info("Restored group: group=%s, by=%s", group_id, restored_by)

        return data

    async def _get_course(self, course_id: str) -> Course:
        result = await self.db.execute(select(Course).where(Course.id == course_id))
        course = result.scalar_one_or_none()

        if not course:
            raise GroupCourseNotFoundError("Course not found")

        return course

    async def _get_group(self, course_id: str, group_id: str) -> CourseGroup:
        result = await self.db.execute(
            select(CourseGroup).where(
                CourseGroup.id == group_id,
                CourseGroup.course_id == course_id,
            )
        )
        group = result.scalar_one_or_none()

        if not group:
            raise GroupNotFoundError("Group not found")

        return group

    async def _count_members(self, group_ids: list[str]) -> dict[str, int]:
        """Count memberships per group in one query."""
        if not group_ids:
            return {}
        result = await self.db.execute(
            select(CourseGroupMembership.group_id, func.count(CourseGroupMembership.id))
            .where(CourseGroupMembership.group_id.in_(group_ids))
            .group_by(CourseGroupMembership.group_id)
        )
        return {group_id: count for group_id, count in result.all()}

    @staticmethod
    def _to_record(group: CourseGroup, member_count: int) -> GroupRecord:
        allowed = list(group.allowed_sub_course_ids or [])
        return GroupRecord(
            id=group.id,
            course_id=group.course_id,
            name=group.name,
            description=group.description,
            type=group.type,
            max_members=group.max_members,
            is_archived=group.is_archived,
            allowed_sub_course_ids=allowed,
            has_sub_course_restriction=bool(allowed),
            member_count=member_count,
            spots_remaining=spots_remaining(member_count, group.max_members),
            created_at=group.created_at,
            updated_at=group.updated_at,
        )
