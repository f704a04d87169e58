# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base exceptions shared by all domain services.

Every service error carries a machine-readable ``code`` and the HTTP
``status_code`` the API layer responds with. Each domain service defines
its own exception hierarchy on top of these kinds.
"""

from typing import Any


class ServiceError(Exception):
    """Base exception for domain service errors.

    Attributes:
        message: Human-readable error description.
        details: Optional structured payload (e.g. offending ids).
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInputError(ServiceError):
    """Input is well-formed but violates a business rule."""

    code = "VALIDATION_ERROR"
    status_code = 400


class ForbiddenError(ServiceError):
    """Operation disallowed by a policy flag."""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(ServiceError):
    """Referenced entity does not exist (or is filtered out)."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness, capacity or guard violation."""

    code = "CONFLICT"
    status_code = 409
