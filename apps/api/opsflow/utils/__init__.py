"""Utility modules."""

from opsflow.utils.datetime_parsing import coerce_datetime, ensure_aware, utcnow
from opsflow.utils.normalization import (
    normalize_name,
    normalize_search_text,
    parse_name_list,
)

__all__ = [
    # Datetime
    "coerce_datetime",
    "ensure_aware",
    "utcnow",
    # Normalization
    "normalize_name",
    "normalize_search_text",
    "parse_name_list",
]
