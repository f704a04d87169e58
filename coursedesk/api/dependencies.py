# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get database sessions
- Get authenticated users
- Enforce the business-owner role

Example:
    @router.get("/courses/{course_id}/enrollments")
    async def list_enrollments(
        db: AsyncSession = Depends(get_db),
        current_user: CurrentUser = Depends(require_business_owner),
    ):
        ...
"""

import logging
from typing import AsyncGenerator

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.api.middleware.auth import CurrentUser, get_current_user
from coursedesk.infrastructure.database.connection import get_session
from coursedesk.models.common import UserRole

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session for the request.

    Committed when the handler returns, rolled back if it raises.

    Yields:
        AsyncSession bound to the application engine.
    """
    async with get_session() as session:
        yield session


# =========================================================================
# Authentication Dependencies
# =========================================================================


def require_auth(request: Request) -> CurrentUser:
    """Require authenticated user.

    Raises:
        HTTPException: If not authenticated.
    """
    user = get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_business_owner(request: Request) -> CurrentUser:
    """Require a business owner.

    Raises:
        HTTPException: If not authenticated or not a business owner.
    """
    user = require_auth(request)
    if not user.has_role(UserRole.BUSINESS_OWNER.value):
        logger.info("Business owner access denied: user=%s, role=%s", user.id, user.role)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Business owner access required",
        )
    return user

