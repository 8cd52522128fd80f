"""Activity logging service - step activity tracking per entity."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from opsflow.core.errors import EngineError
from opsflow.core.structured_logging import build_log_context
from opsflow.enums import EntityKind, StepActivityType
from opsflow.schemas import ActivityLogCreate, ActivityLogEntry

if TYPE_CHECKING:
    from opsflow.clients.base import StepStore

logger = logging.getLogger(__name__)


async def log_activity(
    store: "StepStore",
    entity_kind: EntityKind,
    entity_id: int,
    action: StepActivityType,
    step_id: int | None = None,
    user_name: str | None = None,
    details: dict[str, Any] | None = None,
) -> ActivityLogEntry | None:
    """
    Log a step activity.

    Args:
        store: Persistence client
        entity_kind: Kind of the owning entity
        entity_id: The entity this activity is for
        action: Type of activity (from StepActivityType enum)
        step_id: Step the activity touched (None for entity-wide actions)
        user_name: User who performed the action (None for system)
        details: Action-specific details

    Returns:
        The stored entry, or None when the log write failed. The mutation it
        describes has already happened, so a failed log write is only warned.
    """
    entry = ActivityLogCreate(
        entity_kind=entity_kind,
        entity_id=entity_id,
        step_id=step_id,
        action=action,
        user_name=user_name,
        details=details or {},
    )
    try:
        return await store.append_activity(entry)
    except (EngineError, PydanticValidationError) as exc:
        logger.warning(
            "Activity log write failed for %s: %s",
            action.value,
            exc,
            extra=build_log_context(
                entity_kind=EntityKind(entity_kind).value,
                entity_id=entity_id,
                step_id=step_id,
                user_name=user_name,
            ),
        )
        return None


async def list_activity(
    store: "StepStore",
    entity_kind: EntityKind,
    entity_id: int,
    limit: int = 50,
) -> list[ActivityLogEntry]:
    """Most recent activity for an entity, newest first."""
    return await store.list_activity(EntityKind(entity_kind), entity_id, limit=limit)
