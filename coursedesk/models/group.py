# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course group management and membership request and response models."""

from datetime import datetime
from typing import Annotated, Any, Union

from pydantic import Discriminator, Field, Tag

from coursedesk.models.common import CamelModel, CourseGroupType, CourseRef, StudentRef


class AddMemberRequest(CamelModel):
    """Add one enrolled student to a group."""

    enrollment_id: str = Field(min_length=1)
    is_leader: bool = False


class BulkAddMembersRequest(CamelModel):
    """Add several enrolled students to a group."""

    enrollment_ids: list[str] = Field(min_length=1)


def member_request_variant(value: Any) -> str:
    """Pick the add-member variant from the presence of ``enrollmentIds``."""
    if isinstance(value, dict):
        return "bulk" if "enrollmentIds" in value or "enrollment_ids" in value else "single"
    if isinstance(value, BulkAddMembersRequest):
        return "bulk"
    return "single"


AddMembersRequest = Annotated[
    Union[
        Annotated[AddMemberRequest, Tag("single")],
        Annotated[BulkAddMembersRequest, Tag("bulk")],
    ],
    Discriminator(member_request_variant),
]


class SetLeaderRequest(CamelModel):
    """Toggle the leader flag of a membership."""

    membership_id: str = Field(min_length=1)
    is_leader: bool


class MembershipRecord(CamelModel):
    """Group membership."""

    id: str
    group_id: str
    enrollment_id: str
    student_id: str
    is_leader: bool
    joined_at: datetime
    student: StudentRef


class MemberEnrollmentRef(CamelModel):
    id: str
    progress: int
    enrolled_at: datetime


class GroupMember(CamelModel):
    """Row of the group member listing."""

    membership_id: str
    student: StudentRef
    enrollment: MemberEnrollmentRef
    is_leader: bool
    joined_at: datetime


class GroupMembersData(CamelModel):
    """Group summary with its members, leaders first."""

    group_id: str
    group_name: str
    group_type: str
    is_archived: bool
    max_members: int | None
    member_count: int
    spots_remaining: int | None
    allowed_sub_course_ids: list[str]
    members: list[GroupMember]


class BulkMembershipResult(CamelModel):
    """Outcome of a bulk member add."""

    added: int
    skipped: int
    skipped_ids: list[str]


class CreateGroupRequest(CamelModel):
    """Create a group under a course.

    An empty ``allowedSubCourseIds`` leaves every sub-course accessible.
    """

    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    type: CourseGroupType = CourseGroupType.STUDY
    max_members: int | None = Field(default=None, ge=0)
    allowed_sub_course_ids: list[str] = Field(default_factory=list)


class UpdateGroupRequest(CamelModel):
    """Update group fields, including archiving and restoring it.

    Only fields present in the body change; an explicit ``null`` clears
    ``description`` or ``maxMembers``.
    """

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    type: CourseGroupType | None = None
    max_members: int | None = Field(default=None, ge=0)
    allowed_sub_course_ids: list[str] | None = None
    is_archived: bool | None = None


class GroupAccessRequest(CamelModel):
    """Replace the sub-courses a group may access; empty means all."""

    allowed_sub_course_ids: list[str]


class GroupRecord(CamelModel):
    """Group with its current occupancy."""

    id: str
    course_id: str
    name: str
    description: str | None
    type: CourseGroupType
    max_members: int | None
    is_archived: bool
    allowed_sub_course_ids: list[str]
    has_sub_course_restriction: bool
    member_count: int
    spots_remaining: int | None
    created_at: datetime
    updated_at: datetime


class GroupListData(CamelModel):
    course_id: str
    course_title: str
    groups: list[GroupRecord]


class GroupDetail(GroupRecord):
    """Group with its course and members, leaders first."""

    course: CourseRef
    members: list[GroupMember]


class GroupAccessData(CamelModel):
    id: str
    name: str
    allowed_sub_course_ids: list[str]
    has_sub_course_restriction: bool


class GroupArchiveData(CamelModel):
    id: str
    name: str
    is_archived: bool


class GroupRemoval(CamelModel):
    """Outcome of deleting a group.

    Groups with members are archived unless a hard delete is asked for;
    members always stay enrolled in the course.
    """

    group: GroupArchiveData
    archived: bool
    member_count: int
