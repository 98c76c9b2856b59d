"""Datetime utilities for consistent timezone handling across the application."""

from datetime import datetime, timezone
from typing import Optional


def utc_now_naive() -> datetime:
    """Get current UTC time as naive datetime for database operations.

    Returns:
        Current datetime in UTC as naive datetime (no timezone info).

    Note:
        The billing tables use TIMESTAMP WITHOUT TIME ZONE columns, so every value
        written to them goes through this helper or ``from_unix_timestamp``.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_unix_timestamp(value: Optional[int | float]) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to a naive UTC datetime.

    Args:
        value: Seconds since the epoch, or None.

    Returns:
        The naive UTC datetime, or None when no timestamp was given.
    """
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
