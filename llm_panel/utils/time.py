"""
UTC timestamp utilities for llm-panel.

All timestamps are UTC with explicit timezone markers. Wall-clock values used
for status tracking are epoch milliseconds so they can be subtracted directly.

This module provides:
- utc_now(): Current time as timezone-aware datetime
- utc_timestamp(): ISO 8601 timestamp string with 'Z' suffix (seconds)
- iso_timestamp_ms(): ISO 8601 timestamp with milliseconds and 'Z' suffix
- now_ms(): Current epoch time in milliseconds
- run_name_from_timestamp(): Run directory name ``run-YYYYMMDD-HHMMSS``
- format_duration_ms(): Human friendly duration ("350ms", "1.2s")

Examples:
    >>> from llm_panel.utils.time import run_name_from_timestamp
    >>> from datetime import datetime, UTC
    >>> run_name_from_timestamp(datetime(2025, 3, 14, 9, 26, 53, tzinfo=UTC))
    'run-20250314-092653'
"""

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    Returns:
        datetime: Current UTC time with tzinfo=UTC

    Note:
        NEVER use datetime.now() without a timezone or datetime.utcnow().
        Always go through utc_now() so tests can freeze the clock.
    """
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ

    Returns:
        str: ISO 8601 formatted timestamp in UTC
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def iso_timestamp_ms(dt: datetime | None = None) -> str:
    """
    Return ISO 8601 timestamp with millisecond precision and 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SS.mmmZ

    Args:
        dt: Optional timezone-aware datetime. Defaults to utc_now().

    Returns:
        str: Timestamp such as '2025-03-14T09:26:53.589Z'

    Raises:
        ValueError: If dt is naive

    Example:
        >>> iso_timestamp_ms(datetime(2025, 3, 14, 9, 26, 53, 589000, tzinfo=UTC))
        '2025-03-14T09:26:53.589Z'
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware (use UTC)")

    dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def now_ms() -> float:
    """Return current epoch time in milliseconds."""
    return time.time() * 1000


def run_name_from_timestamp(dt: datetime | None = None) -> str:
    """
    Generate the run directory name from a UTC timestamp.

    Format: run-YYYYMMDD-HHMMSS

    The name is filesystem-safe on every platform (no colons) and sorts
    chronologically.

    Args:
        dt: Optional datetime to convert. If None, uses utc_now().
            Must be timezone-aware if provided.

    Returns:
        str: Run directory name

    Raises:
        ValueError: If dt is provided but is naive (missing timezone)

    Examples:
        >>> run_name_from_timestamp(datetime(2025, 11, 2, 8, 30, 45, tzinfo=UTC))
        'run-20251102-083045'

        >>> run_name_from_timestamp(datetime(2025, 11, 2, 8, 30, 45))
        Traceback (most recent call last):
        ...
        ValueError: Datetime must be timezone-aware (use UTC)
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware (use UTC)")

    return dt.astimezone(UTC).strftime("run-%Y%m%d-%H%M%S")


def format_duration_ms(duration_ms: float) -> str:
    """
    Format a duration for humans.

    Durations under one second are shown in whole milliseconds, longer ones
    in seconds with one decimal.

    Examples:
        >>> format_duration_ms(350)
        '350ms'
        >>> format_duration_ms(1234)
        '1.2s'
    """
    if duration_ms < 1000:
        return f"{round(duration_ms)}ms"
    return f"{duration_ms / 1000:.1f}s"
