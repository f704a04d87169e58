# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

import io
import logging
import os
import sys
from typing import Any, Iterator
from unittest.mock import patch

import pytest
import structlog

# Test configuration must be in place before coursedesk modules read settings.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from coursedesk.core.config import clear_settings_cache  # noqa: E402
from coursedesk.core.config.settings import Settings  # noqa: E402
from coursedesk.utils.logging import clear_context, setup_logging  # noqa: E402

clear_settings_cache()


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def test_environment() -> dict[str, str]:
    """Provide test environment variables.

    Returns:
        Dictionary of environment variables for testing.
    """
    return {
        "ENVIRONMENT": "test",
        "DEBUG": "true",
        "LOG_LEVEL": "DEBUG",
        "DATABASE_URL": "sqlite+aiosqlite:///./coursedesk-test.db",
        "JWT_SECRET_KEY": "test-secret-key-for-testing-only",
        "JWT_ALGORITHM": "HS256",
        "ACCESS_TOKEN_EXPIRE_MINUTES": "30",
        "RATE_LIMIT_ENABLED": "false",
    }


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (uses a SQLite database)"
    )


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_student_id() -> str:
    """Provide a sample student ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440001"


@pytest.fixture
def sample_course_id() -> str:
    """Provide a sample course ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440000"


@pytest.fixture
def sample_user_data() -> dict[str, Any]:
    """Provide sample user data for testing."""
    return {
        "email": "student@example.com",
        "name": "Test Student",
        "role": "STUDENT",
    }


# =============================================================================
# Logging Fixtures
# =============================================================================


@pytest.fixture
def log_output() -> Iterator[io.StringIO]:
    """Configure production (JSON) logging into a buffer.

    The handler installed by setup_logging is removed afterwards.
    """
    stream = io.StringIO()
    root_logger = logging.getLogger()
    app_logger = logging.getLogger("coursedesk")
    previous_levels = (root_logger.level, app_logger.level)

    with patch.object(sys, "stdout", stream):
        setup_logging(Settings(debug=False, log_level="INFO"))

    yield stream

    clear_context()
    for handler in list(root_logger.handlers):
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root_logger.removeHandler(handler)
    root_logger.setLevel(previous_levels[0])
    app_logger.setLevel(previous_levels[1])
    structlog.reset_defaults()
