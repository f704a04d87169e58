# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for CourseDesk.

All timestamps are stored in UTC (TIMESTAMPTZ) and all Python datetimes
handled by the services are timezone-aware.

Usage:
------
    from coursedesk.utils.datetime import utc_now

    # For SQLAlchemy model defaults
    created_at = mapped_column(DateTime(timezone=True), default=utc_now)
"""

from datetime import date, datetime, time, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def start_of_day(day: date) -> datetime:
    """Get the first instant of a calendar day in UTC.

    Args:
        day: Calendar date.

    Returns:
        Timezone-aware datetime at 00:00:00 UTC.
    """
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(day: date) -> datetime:
    """Get the last instant of a calendar day in UTC (23:59:59.999999).

    Args:
        day: Calendar date.

    Returns:
        Timezone-aware datetime at 23:59:59.999999 UTC.
    """
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to timezone-aware UTC.

    Naive values are taken to be UTC already; SQLite returns stored
    timestamps without an offset.

    Args:
        value: Naive or aware datetime.

    Returns:
        Timezone-aware datetime in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
