# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware: JWT authentication and rate limiting."""

from coursedesk.api.middleware.auth import AuthMiddleware, CurrentUser, get_current_user
from coursedesk.api.middleware.rate_limit import (
    get_client_identifier,
    limiter,
    rate_limit_exceeded_handler,
)

__all__ = [
    "AuthMiddleware",
    "CurrentUser",
    "get_current_user",
    "get_client_identifier",
    "limiter",
    "rate_limit_exceeded_handler",
]
