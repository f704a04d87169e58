# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for CourseDesk.

This package contains domain services that encapsulate business logic.

Domains:
    auth: JWT token handling.
    enrollment: Course enrollment admission, listing and removal.
    group: Course group membership management.
    cohort: Cohort student management.

Shared capacity checks live in :mod:`coursedesk.domains.capacity` and the
base error kinds in :mod:`coursedesk.domains.errors`.
"""
