"""Tolerant field access for step-like records (models or raw dicts)."""

from __future__ import annotations

import math
from typing import Any


def read_field(record: Any, name: str, default: Any = None) -> Any:
    if record is None:
        return default
    if isinstance(record, dict):
        value = record.get(name, default)
    else:
        value = getattr(record, name, default)
    return default if value is None else value


def read_number(record: Any, name: str) -> float:
    """Numeric field, with missing, non-numeric, negative or non-finite values read as 0."""
    value = read_field(record, name)
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def read_status(record: Any) -> str:
    """Status as a plain lowercase string ('' when missing)."""
    value = read_field(record, "status", "")
    value = getattr(value, "value", value)
    return str(value).strip().lower() if value else ""
