"""Data normalization utilities for names, name lists and search text."""

import json
import unicodedata
from typing import Any, Optional


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty or not a string
    """
    if not name or not isinstance(name, str):
        return None
    # Strip leading/trailing whitespace and collapse internal spaces
    return " ".join(name.split()) or None


def parse_name_list(value: Any) -> list[str]:
    """
    Parse a stored list of people (managers, assignees) into clean names.

    Accepts a Python list, a JSON array string, a Postgres array literal
    (``{"A B","C D"}``) or a comma-separated string. Anything else yields
    an empty list.
    """
    if not value:
        return []
    if isinstance(value, (list, tuple, set)):
        return _clean_names(str(item) for item in value)
    if not isinstance(value, str):
        return []

    raw = value.strip()
    if raw.startswith("{") and raw.endswith("}"):
        return _clean_names(part.strip().strip('"') for part in raw[1:-1].split(","))
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return _clean_names(str(item) for item in parsed)
    return _clean_names(raw.split(","))


def _clean_names(values) -> list[str]:
    names: list[str] = []
    for value in values:
        name = normalize_name(value)
        if name and name not in names:
            names.append(name)
    return names


def _strip_accents(value: str) -> str:
    """Remove diacritics for accent-insensitive matching."""
    return "".join(
        ch for ch in unicodedata.normalize("NFKD", value) if not unicodedata.combining(ch)
    )


def normalize_search_text(value: Optional[str]) -> Optional[str]:
    """
    Normalize free-text for search matching.

    - Strip accents
    - Lowercase
    - Collapse whitespace
    """
    if not value:
        return None
    collapsed = " ".join(value.split())
    if not collapsed:
        return None
    return _strip_accents(collapsed).lower()
