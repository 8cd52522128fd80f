"""Datetime coercion helpers for store payloads."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

DATETIME_FORMATS: list[str] = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_datetime(raw_value: Any) -> datetime | None:
    """
    Best-effort conversion of a stored timestamp to an aware UTC datetime.

    Accepts datetimes, dates, ISO strings, a few common formats and epoch
    seconds/milliseconds. Returns None for anything unrecognized.
    """
    if raw_value is None or isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, datetime):
        return ensure_aware(raw_value)
    if isinstance(raw_value, date):
        return datetime(raw_value.year, raw_value.month, raw_value.day, tzinfo=timezone.utc)
    if isinstance(raw_value, (int, float)):
        return _from_epoch(float(raw_value))
    if not isinstance(raw_value, str):
        return None

    value = raw_value.strip()
    if not value:
        return None

    # Epoch timestamps (seconds or milliseconds)
    if re.fullmatch(r"\d{10,13}", value):
        return _from_epoch(float(value))

    # ISO 8601 timestamps
    try:
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in DATETIME_FORMATS:
        try:
            return ensure_aware(datetime.strptime(value, fmt))
        except ValueError:
            continue
    return None


def _from_epoch(ts: float) -> datetime | None:
    if ts > 1e12:
        ts = ts / 1000
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
