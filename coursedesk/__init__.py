"""CourseDesk Backend.

Business-owner back office for course enrollment, cohort and group
administration with capacity-aware admission control.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
