"""Pydantic schemas for entity progress roll-ups."""

from pydantic import BaseModel, Field

from opsflow.enums import EntityKind, StepStatus


class StepProgressItem(BaseModel):
    id: int
    name: str
    status: StepStatus
    order_index: int
    probability_percent: float = 0


class EntityProgress(BaseModel):
    """Progress summary shown on pipeline dashboards."""

    entity_id: int
    entity_kind: EntityKind
    name: str | None = None
    completion_percentage: int = 0
    total_steps: int = 0
    completed_count: int = 0
    in_progress_count: int = 0
    total_completed_probability: float = 0
    completed_steps: list[StepProgressItem] = Field(default_factory=list)
    current_step: StepProgressItem | None = None
    all_steps: list[StepProgressItem] = Field(default_factory=list)
