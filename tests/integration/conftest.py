# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for database integration tests.

Provides a file-backed SQLite database per test, a sessionmaker bound to
it, a seeded organization with courses, cohorts, groups and users, and an
HTTP client for the application bound to the same database.
"""

from pathlib import Path
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from coursedesk.api.app import create_app
from coursedesk.api.dependencies import get_db
from coursedesk.core.config import get_settings
from coursedesk.domains.auth.jwt import JWTManager
from coursedesk.infrastructure.database.connection import (
    create_sessionmaker,
    create_sqlite_engine,
)
from coursedesk.infrastructure.database.models import (
    Base,
    Cohort,
    Course,
    CourseGroup,
    CourseGroupMembership,
    Enrollment,
    LessonProgress,
    Organization,
    User,
)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a SQLite engine with the full schema."""
    engine = create_sqlite_engine(f"sqlite+aiosqlite:///{tmp_path / 'coursedesk.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessionmaker configured like the application's."""
    return create_sessionmaker(db_engine)


@pytest_asyncio.fixture(scope="function")
async def seed(session_factory: async_sessionmaker[AsyncSession]) -> SimpleNamespace:
    """Seed one organization with courses, cohorts, groups and users.

    - ``course``: open for enrollment
    - ``closed_course``: enrollment closed
    - ``other_course``: a second open course
    - ``cohort``: limit 2, ``open_cohort``: unbounded, ``zero_cohort``: limit 0
    - ``group``: max 2, ``solo_group``: max 1, ``archived_group``: archived
    - ``students``: five students, plus a ``lecturer`` and an ``owner``
    """
    async with session_factory() as session:
        org = Organization(name="Acme Academy", slug="acme")
        session.add(org)
        await session.flush()

        owner = User(email="owner@acme.test", name="Olivia Owner", role="BUSINESS_OWNER")
        lecturer = User(email="lecturer@acme.test", name="Leo Lecturer", role="LECTURER")
        students = [
            User(email=f"student{i}@acme.test", name=f"Student {i}", role="STUDENT")
            for i in range(1, 6)
        ]
        session.add_all([owner, lecturer, *students])

        course = Course(organization_id=org.id, title="Python Basics")
        closed_course = Course(
            organization_id=org.id,
            title="Closed Course",
            enrollment_open=False,
        )
        other_course = Course(organization_id=org.id, title="Data Science")
        session.add_all([course, closed_course, other_course])
        await session.flush()

        cohort = Cohort(
            organization_id=org.id,
            course_id=course.id,
            name="Spring Cohort",
            enrollment_limit=2,
        )
        open_cohort = Cohort(organization_id=org.id, course_id=course.id, name="Open Cohort")
        zero_cohort = Cohort(
            organization_id=org.id,
            course_id=course.id,
            name="Waitlist",
            enrollment_limit=0,
        )
        other_cohort = Cohort(
            organization_id=org.id,
            course_id=other_course.id,
            name="Other Cohort",
        )
        group = CourseGroup(
            organization_id=org.id,
            course_id=course.id,
            name="Study Group A",
            max_members=2,
        )
        solo_group = CourseGroup(
            organization_id=org.id,
            course_id=course.id,
            name="Solo Project",
            type="PROJECT",
            max_members=1,
        )
        archived_group = CourseGroup(
            organization_id=org.id,
            course_id=course.id,
            name="Old Group",
            is_archived=True,
        )
        session.add_all(
            [cohort, open_cohort, zero_cohort, other_cohort, group, solo_group, archived_group]
        )
        await session.commit()

        return SimpleNamespace(
            org=org,
            owner=owner,
            lecturer=lecturer,
            students=students,
            course=course,
            closed_course=closed_course,
            other_course=other_course,
            cohort=cohort,
            open_cohort=open_cohort,
            zero_cohort=zero_cohort,
            other_cohort=other_cohort,
            group=group,
            solo_group=solo_group,
            archived_group=archived_group,
        )


class DbHelper:
    """Direct database access for arranging and asserting test state."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_enrollment(
        self,
        org_id: str,
        student_id: str,
        course_id: str,
        cohort_id: str | None = None,
        progress: int = 0,
    ) -> str:
        async with self._session_factory() as session:
            enrollment = Enrollment(
                organization_id=org_id,
                student_id=student_id,
                course_id=course_id,
                cohort_id=cohort_id,
                progress=progress,
            )
            session.add(enrollment)
            await session.commit()
            return enrollment.id

    async def add_membership(
        self,
        group_id: str,
        enrollment_id: str,
        student_id: str,
        is_leader: bool = False,
    ) -> str:
        async with self._session_factory() as session:
            membership = CourseGroupMembership(
                group_id=group_id,
                enrollment_id=enrollment_id,
                student_id=student_id,
                is_leader=is_leader,
            )
            session.add(membership)
            await session.commit()
            return membership.id

    async def add_lesson_progress(
        self,
        enrollment_id: str,
        lesson_id: str,
        is_completed: bool = False,
        time_spent: int = 0,
    ) -> str:
        async with self._session_factory() as session:
            record = LessonProgress(
                enrollment_id=enrollment_id,
                lesson_id=lesson_id,
                is_completed=is_completed,
                time_spent=time_spent,
            )
            session.add(record)
            await session.commit()
            return record.id

    async def set_group_archived(self, group_id: str, archived: bool) -> None:
        async with self._session_factory() as session:
            group = await session.get(CourseGroup, group_id)
            group.is_archived = archived
            await session.commit()

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        async with self._session_factory() as session:
            return await session.get(Enrollment, enrollment_id)

    async def find_enrollment(self, student_id: str, course_id: str) -> Enrollment | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Enrollment).where(
                    Enrollment.student_id == student_id,
                    Enrollment.course_id == course_id,
                )
            )
            return result.scalar_one_or_none()

    async def count_enrollments(
        self,
        course_id: str | None = None,
        cohort_id: str | None = None,
    ) -> int:
        query = select(func.count(Enrollment.id))
        if course_id:
            query = query.where(Enrollment.course_id == course_id)
        if cohort_id:
            query = query.where(Enrollment.cohort_id == cohort_id)
        async with self._session_factory() as session:
            return (await session.execute(query)).scalar_one()

    async def count_memberships(
        self,
        group_id: str | None = None,
        enrollment_id: str | None = None,
    ) -> int:
        query = select(func.count(CourseGroupMembership.id))
        if group_id:
            query = query.where(CourseGroupMembership.group_id == group_id)
        if enrollment_id:
            query = query.where(CourseGroupMembership.enrollment_id == enrollment_id)
        async with self._session_factory() as session:
            return (await session.execute(query)).scalar_one()

    async def count_lesson_progress(self, enrollment_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(LessonProgress.id)).where(
                    LessonProgress.enrollment_id == enrollment_id
                )
            )
            return result.scalar_one()


@pytest.fixture
def db(session_factory: async_sessionmaker[AsyncSession]) -> DbHelper:
    """Helper for arranging and asserting database state."""
    return DbHelper(session_factory)


@pytest.fixture
def app(session_factory) -> FastAPI:
    """Create the application bound to the test database."""
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client calling the application in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def token_for():
    """Issue access tokens signed with the configured secret."""
    manager = JWTManager(get_settings().jwt)

    def _token_for(user) -> dict[str, str]:
        token = manager.create_access_token(
            user_id=user.id,
            role=user.role,
            email=user.email,
            name=user.name,
        )
        return {"Authorization": f"Bearer {token}"}

    return _token_for


@pytest.fixture
def owner_headers(seed, token_for) -> dict[str, str]:
    return token_for(seed.owner)
