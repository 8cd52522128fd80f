"""Pydantic schemas for the step activity log."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from opsflow.enums import EntityKind, StepActivityType


class ActivityLogCreate(BaseModel):
    entity_kind: EntityKind
    entity_id: int
    step_id: int | None = None
    action: StepActivityType
    user_name: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ActivityLogEntry(ActivityLogCreate):
    """Stored activity log entry."""

    id: int
    created_at: datetime

    model_config = {"from_attributes": True}
