# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course group management and membership domain package."""

from coursedesk.domains.group.management import (
    GroupCourseNotFoundError,
    GroupLimitError,
    GroupNotArchivedError,
    GroupService,
)
from coursedesk.domains.group.service import (
    AlreadyMemberError,
    GroupMembershipService,
    GroupServiceError,
    InvalidEnrollmentsError,
    MemberEnrollmentNotFoundError,
    MembershipNotFoundError,
)

__all__ = [
    "GroupService",
    "GroupMembershipService",
    "GroupServiceError",
    "GroupCourseNotFoundError",
    "GroupLimitError",
    "GroupNotArchivedError",
    "MemberEnrollmentNotFoundError",
    "InvalidEnrollmentsError",
    "AlreadyMemberError",
    "MembershipNotFoundError",
]
