# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific domain.

Modules:
    enrollments: Course enrollment endpoints (list, enroll, update, unenroll).
    groups: Course group membership endpoints.
    cohorts: Cohort student endpoints.
"""

from fastapi import APIRouter

from coursedesk.api.v1 import cohorts, enrollments, groups

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(enrollments.router, prefix="/courses", tags=["Enrollments"])
router.include_router(groups.router, prefix="/courses", tags=["Groups"])
router.include_router(cohorts.router, prefix="/courses", tags=["Cohorts"])

__all__ = ["router"]
