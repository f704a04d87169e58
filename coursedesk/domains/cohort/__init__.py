# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cohort management domain package."""

from coursedesk.domains.cohort.service import (
    AlreadyInCohortError,
    CohortEnrollmentNotFoundError,
    CohortLimitError,
    CohortService,
    CohortServiceError,
    CohortCourseNotFoundError,
    InvalidCohortDatesError,
    InvalidCohortEnrollmentsError,
)

__all__ = [
    "CohortService",
    "CohortServiceError",
    "CohortCourseNotFoundError",
    "InvalidCohortDatesError",
    "CohortLimitError",
    "CohortEnrollmentNotFoundError",
    "InvalidCohortEnrollmentsError",
    "AlreadyInCohortError",
]
