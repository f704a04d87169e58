# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Group membership service.

This module provides the GroupMembershipService class for:
- Listing group members (leaders first)
- Adding one or many enrolled students to a group
- Toggling the leader flag
- Removing a member without unenrolling them
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursedesk.domains.capacity import (
    GroupNotFoundError,
    ensure_group_headroom,
    lock_group,
    spots_remaining,
)
from coursedesk.domains.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    ServiceError,
)
from coursedesk.infrastructure.database.models import (
    CourseGroup,
    CourseGroupMembership,
    Enrollment,
    User,
)
from coursedesk.models.common import StudentRef
from coursedesk.models.group import (
    AddMemberRequest,
    BulkAddMembersRequest,
    BulkMembershipResult,
    GroupMember,
    GroupMembersData,
    MemberEnrollmentRef,
    MembershipRecord,
    SetLeaderRequest,
)

logger = logging.getLogger(__name__)


class GroupServiceError(ServiceError):
    """Base exception for group service errors."""

    pass


class MemberEnrollmentNotFoundError(GroupServiceError, NotFoundError):
    """Raised when the enrollment is not found under the course."""

    pass


class InvalidEnrollmentsError(GroupServiceError, InvalidInputError):
    """Raised when a batch references enrollments outside the course."""

    pass


class AlreadyMemberError(GroupServiceError, ConflictError):
    """Raised when the student is already in the group."""

    pass


class MembershipNotFoundError(GroupServiceError, NotFoundError):
    """Raised when the membership is not found in the group."""

    pass


class GroupMembershipService:
    """Service for managing course group memberships.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize group membership service.

        Args:
            db: Async database session.
        """
        self.db = db

    async def list_members(self, course_id: str, group_id: str) -> GroupMembersData:
        """List members of a group, leaders first then by join time.

        Archived groups can still be listed.

        Raises:
            GroupNotFoundError: If the group is not in the course.
        """
        result = await self.db.execute(
            select(CourseGroup).where(
                CourseGroup.id == group_id,
                CourseGroup.course_id == course_id,
            )
        )
        group = result.scalar_one_or_none()

        if not group:
            raise GroupNotFoundError("Group not found")

        result = await self.db.execute(
            select(CourseGroupMembership)
            .options(
                selectinload(CourseGroupMembership.student),
                selectinload(CourseGroupMembership.enrollment),
            )
            .where(CourseGroupMembership.group_id == group.id)
            .order_by(
                CourseGroupMembership.is_leader.desc(),
                CourseGroupMembership.joined_at.asc(),
            )
        )
        memberships = result.scalars().all()

        return GroupMembersData(
            group_id=group.id,
            group_name=group.name,
            group_type=group.type,
            is_archived=group.is_archived,
            max_members=group.max_members,
            member_count=len(memberships),
            spots_remaining=spots_remaining(len(memberships), group.max_members),
            allowed_sub_course_ids=list(group.allowed_sub_course_ids or []),
            members=[
                GroupMember(
                    membership_id=m.id,
                    student=self._student_ref(m.student),
                    enrollment=MemberEnrollmentRef(
                        id=m.enrollment.id,
                        progress=m.enrollment.progress,
                        enrolled_at=m.enrollment.enrolled_at,
                    ),
                    is_leader=m.is_leader,
                    joined_at=m.joined_at,
                )
                for m in memberships
            ],
        )

    async def add_member(
        self,
        course_id: str,
        group_id: str,
        request: AddMemberRequest,
        added_by: str,
    ) -> tuple[MembershipRecord, str]:
        """Add one enrolled student to a group.

        Args:
            course_id: Course identifier.
            group_id: Group identifier.
            request: Member to add.
            added_by: ID of user performing the change.

        Returns:
            Tuple of (created membership, group name).

        Raises:
            GroupNotFoundError: If group missing or archived.
            GroupFullError: If the group has no seat left.
            MemberEnrollmentNotFoundError: If the enrollment is not in the course.
            AlreadyMemberError: If the student is already in the group.
        """
        group = await lock_group(self.db, course_id, group_id)
        await ensure_group_headroom(self.db, group, 1)

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
            raise MemberEnrollmentNotFoundError("Enrollment not found")

        result = await self.db.execute(
            select(CourseGroupMembership.id).where(
                CourseGroupMembership.group_id == group.id,
                CourseGroupMembership.student_id == enrollment.student_id,
            )
        )
        if result.scalar_one_or_none():
            raise AlreadyMemberError("Student is already in this group")

        student = enrollment.student
        group_name = group.name
        membership = CourseGroupMembership(
            group_id=group.id,
            enrollment_id=enrollment.id,
            student_id=enrollment.student_id,
            is_leader=request.is_leader,
        )

        try:
            self.db.add(membership)
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise AlreadyMemberError("Student is already in this group") from e

        logger.info(
            "Added group member: group=%s, enrollment=%s, leader=%s, by=%s",
            group_id,
            request.enrollment_id,
            request.is_leader,
            added_by,
        )

        return self._to_record(membership, student), group_name

    async def bulk_add_members(
        self,
        course_id: str,
        group_id: str,
        request: BulkAddMembersRequest,
        added_by: str,
    ) -> tuple[BulkMembershipResult, str]:
        """Add several enrolled students to a group.

        Every id must be an enrollment of the course. Students already in
        the group are skipped; the rest must fit in the group as a whole.

        Returns:
            Tuple of (add outcome, group name).

        Raises:
            GroupNotFoundError: If group missing or archived.
            InvalidEnrollmentsError: If any id is not an enrollment of the course.
            AlreadyMemberError: If every student is already in the group.
            GroupFullError: If the remaining batch exceeds the group limit.
        """
        group = await lock_group(self.db, course_id, group_id)
        enrollment_ids = list(dict.fromkeys(request.enrollment_ids))

        result = await self.db.execute(
            select(Enrollment).where(
                Enrollment.id.in_(enrollment_ids),
                Enrollment.course_id == course_id,
            )
        )
        enrollments = {e.id: e for e in result.scalars().all()}
        invalid_ids = [eid for eid in enrollment_ids if eid not in enrollments]

        if invalid_ids:
            raise InvalidEnrollmentsError(
                f"Invalid enrollment IDs: {', '.join(invalid_ids)}",
                details={"invalidIds": invalid_ids},
            )

        result = await self.db.execute(
            select(CourseGroupMembership.student_id).where(
                CourseGroupMembership.group_id == group.id,
                CourseGroupMembership.student_id.in_(
                    [e.student_id for e in enrollments.values()]
                ),
            )
        )
        member_students = set(result.scalars().all())
        skipped_ids = [
            eid for eid in enrollment_ids if enrollments[eid].student_id in member_students
        ]
        to_add = [
            enrollments[eid]
            for eid in enrollment_ids
            if enrollments[eid].student_id not in member_students
        ]

        if not to_add:
            raise AlreadyMemberError("All students are already in this group")

        await ensure_group_headroom(self.db, group, len(to_add), bulk=True)

        group_name = group.name
        try:
            self.db.add_all(
                [
                    CourseGroupMembership(
                        group_id=group.id,
                        enrollment_id=enrollment.id,
                        student_id=enrollment.student_id,
                    )
                    for enrollment in to_add
                ]
            )
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise AlreadyMemberError(
                "One or more students were added concurrently; no members were added"
            ) from e

        logger.info(
            "Bulk added group members: group=%s, added=%d, skipped=%d, by=%s",
            group_id,
            len(to_add),
            len(skipped_ids),
            added_by,
        )

        return (
            BulkMembershipResult(
                added=len(to_add),
                skipped=len(skipped_ids),
                skipped_ids=skipped_ids,
            ),
            group_name,
        )

    async def set_leader(
        self,
        course_id: str,
        group_id: str,
        request: SetLeaderRequest,
        updated_by: str,
    ) -> MembershipRecord:
        """Set or clear the leader flag of a membership.

        Raises:
            MembershipNotFoundError: If the membership is not in the group.
        """
        membership = await self._get_membership(course_id, group_id, request.membership_id)
        membership.is_leader = request.is_leader
        await self.db.commit()

        logger.info(
            "Updated group leader: group=%s, membership=%s, leader=%s, by=%s",
            group_id,
            membership.id,
            request.is_leader,
            updated_by,
        )

        return self._to_record(membership, membership.student)

    async def remove_member(
        self,
        course_id: str,
        group_id: str,
        membership_id: str,
        removed_by: str,
    ) -> str:
        """Remove a member from a group; the enrollment is kept.

        Returns:
            Name of the removed student.

        Raises:
            MembershipNotFoundError: If the membership is not in the group.
        """
        membership = await self._get_membership(course_id, group_id, membership_id)
        student_name = membership.student.name

        await self.db.execute(
            delete(CourseGroupMembership).where(CourseGroupMembership.id == membership.id)
        )
        await self.db.commit()

        logger.info(
            "Removed group member: group=%s, membership=%s, by=%s",
            group_id,
            membership_id,
            removed_by,
        )

        return student_name

    async def _get_membership(
        self,
        course_id: str,
        group_id: str,
        membership_id: str,
    ) -> CourseGroupMembership:
        """Get a membership of a group in the course.

        Raises:
            MembershipNotFoundError: If not found.
        """
        query = (
            select(CourseGroupMembership)
            .join(CourseGroup, CourseGroup.id == CourseGroupMembership.group_id)
            .options(selectinload(CourseGroupMembership.student))
            .where(
                CourseGroupMembership.id == membership_id,
                CourseGroupMembership.group_id == group_id,
                CourseGroup.course_id == course_id,
            )
        )
        result = await self.db.execute(query)
        membership = result.scalar_one_or_none()

        if not membership:
            raise MembershipNotFoundError("Membership not found")

        return membership

    @staticmethod
    def _student_ref(user: User) -> StudentRef:
        return StudentRef(id=user.id, name=user.name, email=user.email)

    def _to_record(self, membership: CourseGroupMembership, student: User) -> MembershipRecord:
        """Convert membership model to response."""
        return MembershipRecord(
            id=membership.id,
            group_id=membership.group_id,
            enrollment_id=membership.enrollment_id,
            student_id=membership.student_id,
            is_leader=membership.is_leader,
            joined_at=membership.joined_at,
            student=self._student_ref(student),
        )
