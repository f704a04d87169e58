# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared enums, base model and response envelopes.

All API models serialize with camelCase keys. Python code uses
snake_case field names; ``populate_by_name`` lets tests and services
construct models either way.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class UserRole(str, Enum):
    """Platform user roles."""

    STUDENT = "STUDENT"
    LECTURER = "LECTURER"
    BUSINESS_OWNER = "BUSINESS_OWNER"
    ADMIN = "ADMIN"


class CohortStatus(str, Enum):
    """Cohort lifecycle status."""

    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class CourseGroupType(str, Enum):
    """Kind of course group."""

    STUDY = "STUDY"
    DISCUSSION = "DISCUSSION"
    PROJECT = "PROJECT"
    CUSTOM = "CUSTOM"


class ProgressStatus(str, Enum):
    """Enrollment progress filter used by listings."""

    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    NOT_STARTED = "not_started"


class ErrorCode(str, Enum):
    """Machine-readable error codes carried in error envelopes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel, Generic[T]):
    """Success envelope: ``{success, data?, message?}``.

    ``data`` and ``message`` are omitted from the payload when not set.
    """

    success: bool = True
    data: T | None = None
    message: str | None = None

    @model_serializer(mode="wrap")
    def _omit_empty(self, handler: SerializerFunctionWrapHandler):
        payload = handler(self)
        return {key: value for key, value in payload.items() if key == "success" or value is not None}


class ErrorBody(CamelModel):
    """Error details inside a failure envelope."""

    code: ErrorCode
    message: str
    details: Any | None = None


class ErrorResponse(CamelModel):
    """Failure envelope: ``{success: false, error: {code, message, details?}}``."""

    success: bool = False
    error: ErrorBody


class Pagination(CamelModel):
    """Page metadata for paginated listings."""

    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total: int = Field(ge=0)
    total_pages: int = Field(ge=0)


class StudentRef(CamelModel):
    """Minimal student reference embedded in responses."""

    id: str
    name: str
    email: str


class CohortRef(CamelModel):
    """Minimal cohort reference embedded in responses."""

    id: str
    name: str


class CourseRef(CamelModel):
    """Minimal course reference embedded in responses."""

    id: str
    title: str
