# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial CourseDesk schema.

Revision ID: 001_initial
Revises: None
Create Date: 2025-01-15

Creates users, organizations, courses, cohorts, course groups,
enrollments, group memberships and lesson progress.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create CourseDesk tables."""
    # ==========================================================================
    # 1. users / organizations
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="STUDENT"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "role IN ('STUDENT', 'LECTURER', 'BUSINESS_OWNER', 'ADMIN')",
            name="ck_users_valid_role",
        ),
    )
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "organizations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("slug", name="uq_organizations_slug"),
    )

    # ==========================================================================
    # 2. courses / cohorts / course_groups
    # ==========================================================================
    op.create_table(
        "courses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("enrollment_open", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_courses_organization_id", "courses", ["organization_id"])

    op.create_table(
        "cohorts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PLANNED"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("enrollment_limit", sa.Integer, nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "enrollment_limit IS NULL OR enrollment_limit >= 0",
            name="ck_cohorts_enrollment_limit_non_negative",
        ),
        sa.CheckConstraint(
            "status IN ('PLANNED', 'ACTIVE', 'COMPLETED', 'ARCHIVED')",
            name="ck_cohorts_valid_status",
        ),
    )
    op.create_index("ix_cohorts_organization_id", "cohorts", ["organization_id"])
    op.create_index("ix_cohorts_course_id", "cohorts", ["course_id"])

    op.create_table(
        "course_groups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("type", sa.String(20), nullable=False, server_default="STUDY"),
        sa.Column("max_members", sa.Integer, nullable=True),
        sa.Column("is_archived", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("allowed_sub_course_ids", sa.JSON, nullable=False, server_default="[]"),
        *_timestamps(),
        sa.CheckConstraint(
            "max_members IS NULL OR max_members >= 0",
            name="ck_course_groups_max_members_non_negative",
        ),
        sa.CheckConstraint(
            "type IN ('STUDY', 'DISCUSSION', 'PROJECT', 'CUSTOM')",
            name="ck_course_groups_valid_type",
        ),
    )
    op.create_index("ix_course_groups_organization_id", "course_groups", ["organization_id"])
    op.create_index("ix_course_groups_course_id", "course_groups", ["course_id"])

    # ==========================================================================
    # 3. enrollments / course_group_memberships / lesson_progress
    # ==========================================================================
    op.create_table(
        "enrollments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "organization_id",
            sa.String(36),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "student_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "cohort_id",
            sa.String(36),
            sa.ForeignKey("cohorts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "last_accessed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "course_id", name="uq_enrollments_student_course"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_enrollments_progress_range"),
    )
    op.create_index("ix_enrollments_organization_id", "enrollments", ["organization_id"])
    op.create_index("ix_enrollments_student_id", "enrollments", ["student_id"])
    op.create_index("ix_enrollments_course_id", "enrollments", ["course_id"])
    op.create_index("ix_enrollments_cohort_id", "enrollments", ["cohort_id"])
    op.create_index("ix_enrollments_course_enrolled_at", "enrollments", ["course_id", "enrolled_at"])

    op.create_table(
        "course_group_memberships",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "group_id",
            sa.String(36),
            sa.ForeignKey("course_groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "enrollment_id",
            sa.String(36),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "student_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("is_leader", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
        sa.UniqueConstraint(
            "group_id",
            "student_id",
            name="uq_course_group_memberships_group_student",
        ),
    )
    op.create_index("ix_course_group_memberships_group_id", "course_group_memberships", ["group_id"])
    op.create_index(
        "ix_course_group_memberships_enrollment_id",
        "course_group_memberships",
        ["enrollment_id"],
    )
    op.create_index("ix_course_group_memberships_student_id", "course_group_memberships", ["student_id"])

    op.create_table(
        "lesson_progress",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "enrollment_id",
            sa.String(36),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("lesson_id", sa.String(36), nullable=False),
        sa.Column("is_completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("time_spent", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "enrollment_id",
            "lesson_id",
            name="uq_lesson_progress_enrollment_lesson",
        ),
    )
    op.create_index("ix_lesson_progress_enrollment_id", "lesson_progress", ["enrollment_id"])


def downgrade() -> None:
    """Drop CourseDesk tables."""
    op.drop_table("lesson_progress")
    op.drop_table("course_group_memberships")
    op.drop_table("enrollments")
    op.drop_table("course_groups")
    op.drop_table("cohorts")
    op.drop_table("courses")
    op.drop_table("organizations")
    op.drop_table("users")
