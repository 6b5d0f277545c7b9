"""
Domain time utilities (pure).

Payment records keep aware UTC datetimes; the intent ledger stores epoch
milliseconds. Conversions between the two live here.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Reject naive or non-UTC lifecycle timestamps.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_millis(value: datetime) -> int:
    """Milliseconds since the epoch, the unit the intent ledger stores."""

    require_utc_timestamp("timestamp", value)
    return int(value.timestamp() * 1000)


def from_epoch_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
