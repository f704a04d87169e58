# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models for CourseDesk."""

from coursedesk.infrastructure.database.models.base import Base, new_id
from coursedesk.infrastructure.database.models.course import (
    Cohort,
    Course,
    CourseGroup,
    CourseGroupMembership,
    Enrollment,
    LessonProgress,
)
from coursedesk.infrastructure.database.models.user import Organization, User

__all__ = [
    "Base",
    "new_id",
    "User",
    "Organization",
    "Course",
    "Cohort",
    "CourseGroup",
    "Enrollment",
    "CourseGroupMembership",
    "LessonProgress",
]
