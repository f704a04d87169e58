# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course, cohort, group, enrollment and progress models.

Capacity is never stored as a counter: cohort and group occupancy is
derived from row counts of enrollments and memberships.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursedesk.infrastructure.database.models.base import (
    Base,
    IdMixin,
    TimestampMixin,
    utc_now,
)
from coursedesk.infrastructure.database.models.user import User


class Course(IdMixin, TimestampMixin, Base):
    """Course offered by an organization.

    New enrollments are only admitted while ``enrollment_open`` is true.
    """

    __tablename__ = "courses"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    enrollment_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Course {self.title}>"


class Cohort(IdMixin, TimestampMixin, Base):
    """Named sub-grouping of a course's students with an optional seat limit."""

    __tablename__ = "cohorts"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PLANNED")
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # None means unbounded
    enrollment_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "enrollment_limit IS NULL OR enrollment_limit >= 0",
            name="enrollment_limit_non_negative",
        ),
        CheckConstraint(
            "status IN ('PLANNED', 'ACTIVE', 'COMPLETED', 'ARCHIVED')",
            name="valid_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Cohort {self.name}>"


class CourseGroup(IdMixin, TimestampMixin, Base):
    """Team-like grouping of enrolled students, orthogonal to cohorts."""

    __tablename__ = "course_groups"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="STUDY")
    # None means unbounded
    max_members: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Advisory content restriction, not enforced by admission
    allowed_sub_course_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint(
            "max_members IS NULL OR max_members >= 0",
            name="max_members_non_negative",
        ),
        CheckConstraint(
            "type IN ('STUDY', 'DISCUSSION', 'PROJECT', 'CUSTOM')",
            name="valid_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<CourseGroup {self.name}>"


class Enrollment(IdMixin, TimestampMixin, Base):
    """A student's participation in a course.

    Unique per (student, course). ``completed_at`` is set exactly when
    ``progress`` reaches 100.
    """

    __tablename__ = "enrollments"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cohort_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("cohorts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    student: Mapped[User] = relationship(User, lazy="raise")
    course: Mapped[Course] = relationship(Course, lazy="raise")
    cohort: Mapped[Cohort | None] = relationship(Cohort, lazy="raise")
    memberships: Mapped[list["CourseGroupMembership"]] = relationship(
        back_populates="enrollment",
        lazy="raise",
        passive_deletes=True,
    )
    lesson_progress: Mapped[list["LessonProgress"]] = relationship(
        back_populates="enrollment",
        lazy="raise",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_enrollments_student_course"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="progress_range"),
        Index("ix_enrollments_course_enrolled_at", "course_id", "enrolled_at"),
    )

    def __repr__(self) -> str:
        return f"<Enrollment student={self.student_id} course={self.course_id}>"


class CourseGroupMembership(IdMixin, TimestampMixin, Base):
    """A student's membership in a course group, linked to their enrollment."""

    __tablename__ = "course_group_memberships"

    group_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("course_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    enrollment_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    is_leader: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    group: Mapped[CourseGroup] = relationship(CourseGroup, lazy="raise")
    student: Mapped[User] = relationship(User, lazy="raise")
    enrollment: Mapped[Enrollment] = relationship(back_populates="memberships", lazy="raise")

    __table_args__ = (
        UniqueConstraint("group_id", "student_id", name="uq_course_group_memberships_group_student"),
    )


class LessonProgress(IdMixin, TimestampMixin, Base):
    """Per-lesson progress tracking row for an enrollment."""

    __tablename__ = "lesson_progress"

    enrollment_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    lesson_id: Mapped[str] = mapped_column(String(36), nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Seconds
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    enrollment: Mapped[Enrollment] = relationship(back_populates="lesson_progress", lazy="raise")

    __table_args__ = (
        UniqueConstraint("enrollment_id", "lesson_id", name="uq_lesson_progress_enrollment_lesson"),
    )
