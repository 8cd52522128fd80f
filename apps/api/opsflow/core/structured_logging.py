"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any

from opsflow.core.config import settings


def build_log_context(
    *,
    entity_kind: str | None = None,
    entity_id: int | None = None,
    step_id: int | None = None,
    template_id: int | None = None,
    user_name: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict with only the provided fields."""
    context: dict[str, Any] = {}
    if entity_kind:
        context["entity_kind"] = entity_kind
    if entity_id is not None:
        context["entity_id"] = entity_id
    if step_id is not None:
        context["step_id"] = step_id
    if template_id is not None:
        context["template_id"] = template_id
    if user_name:
        context["user_name"] = user_name
    return context


def configure_logging(level: str | None = None) -> None:
    """Fallback logging setup for scripts and embedding processes."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
