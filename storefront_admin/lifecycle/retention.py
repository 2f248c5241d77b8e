"""
Retention arithmetic for trashed records.

A trashed record is kept for a retention window measured in whole days
from its ``deleted_at`` timestamp. Once no days remain it may be purged.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from dateutil import parser as date_parser

from ..config import DEFAULT_RETENTION_DAYS

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

Timestamp = Union[datetime, str]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[Timestamp]) -> Optional[datetime]:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    Strings are parsed as ISO 8601 (Postgres ``timestamptz`` output and
    JavaScript ``toISOString`` both qualify). Naive values are taken as UTC.

    Raises:
        ValueError: The value is not a timestamp
    """
    if value is None:
        return None

    if isinstance(value, str):
        try:
            value = date_parser.isoparse(value)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Invalid timestamp {value!r}: {e}") from e
    elif not isinstance(value, datetime):
        raise ValueError(f"Invalid timestamp {value!r}")

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_remaining(
    deleted_at: Timestamp,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Whole days left before a trashed record becomes purge-eligible.

    ``retention_days - floor(elapsed days)``, clamped to
    ``[0, retention_days]``: a record past its window reports 0, and a
    ``deleted_at`` in the future (clock skew) reports the full window.

    Args:
        deleted_at: When the record was trashed
        retention_days: Window length; the default window when None
        now: Reference time, defaults to the current time

    Returns:
        Days remaining, never negative

    Raises:
        ValueError: If the window is shorter than one day
    """
    retention = DEFAULT_RETENTION_DAYS if retention_days is None else retention_days
    if retention < 1:
        raise ValueError(f"Retention window must be at least 1 day, got {retention}")
    deleted = parse_timestamp(deleted_at)
    current = parse_timestamp(now) if now is not None else utcnow()

    elapsed = math.floor((current - deleted).total_seconds() / SECONDS_PER_DAY)
    remaining = retention - elapsed

    return max(0, min(retention, remaining))


def expires_at(deleted_at: Timestamp, retention_days: Optional[int] = None) -> datetime:
    """Moment a trashed record runs out of retention."""
    retention = DEFAULT_RETENTION_DAYS if retention_days is None else retention_days
    if retention < 1:
        raise ValueError(f"Retention window must be at least 1 day, got {retention}")
    return parse_timestamp(deleted_at) + timedelta(days=retention)  # type: ignore[operator]


def is_purge_eligible(
    deleted_at: Optional[Timestamp],
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Check whether a trashed record has no retention days left."""
    if deleted_at is None:
        return False
    return days_remaining(deleted_at, retention_days, now) == 0


def coerce_retention_days(value: Any, default: int = DEFAULT_RETENTION_DAYS) -> int:
    """
    Read a retention setting value.

    Site settings are stored as JSON, so the value may arrive as an int, a
    float or a numeric string. Missing or invalid values fall back to
    ``default``.
    """
    if value is None or value == "":
        return default

    try:
        if isinstance(value, bool):
            raise TypeError("boolean retention")
        days = int(value) if isinstance(value, (int, float)) else int(str(value).strip())
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid retention setting %r", value)
        return default

    if days < 1:
        logger.warning("Ignoring retention setting below one day: %r", value)
        return default

    return days
