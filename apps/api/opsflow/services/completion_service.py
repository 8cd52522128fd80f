"""Entity completion percentage and progress roll-ups."""

from __future__ import annotations

import math
from typing import Any, Iterable

from opsflow.enums import EntityKind, StepStatus
from opsflow.schemas import EntityProgress, StepProgressItem
from opsflow.utils.fields import read_field, read_number, read_status

# Half credit for steps that are in progress in the count-based fallback
IN_PROGRESS_CREDIT = 0.5


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def completion_from_steps(steps: Iterable[Any] | None, fallback_probability: Any = None) -> int:
    """
    Completion percentage (0-100) of a step collection.

    1. No steps: the stored entity probability, else 0.
    2. Any positive weight: sum of completed weights, capped at 100. The
       denominator is always 100, not the total weight.
    3. All weights zero: (completed + 0.5 * in_progress) / total * 100.
    """
    items = [step for step in (steps or []) if step is not None]
    if not items:
        stored = read_number({"probability": fallback_probability}, "probability")
        return max(0, min(100, _round_half_up(stored)))

    total_weight = sum(read_number(step, "probability_percent") for step in items)
    if total_weight > 0:
        completed_weight = sum(
            read_number(step, "probability_percent")
            for step in items
            if read_status(step) == StepStatus.COMPLETED.value
        )
        return _round_half_up(min(100.0, completed_weight))

    completed = sum(1 for step in items if read_status(step) == StepStatus.COMPLETED.value)
    in_progress = sum(1 for step in items if read_status(step) == StepStatus.IN_PROGRESS.value)
    return _round_half_up(((completed + IN_PROGRESS_CREDIT * in_progress) / len(items)) * 100)


def compute_completion(entity: Any, steps: Iterable[Any] | None = None) -> int:
    """Completion for an entity, using ``steps`` when given, else its own steps."""
    if steps is None:
        steps = read_field(entity, "steps", [])
    return completion_from_steps(steps, read_field(entity, "probability"))


def _progress_item(step: Any) -> StepProgressItem | None:
    step_id = read_field(step, "id")
    if step_id is None:
        return None
    status = read_status(step)
    try:
        status_value = StepStatus(status)
    except ValueError:
        status_value = StepStatus.PENDING
    return StepProgressItem(
        id=step_id,
        name=str(read_field(step, "name", "")),
        status=status_value,
        order_index=int(read_number(step, "order_index")),
        probability_percent=read_number(step, "probability_percent"),
    )


def build_progress(entity: Any, steps: Iterable[Any] | None = None) -> EntityProgress:
    """Dashboard progress for one entity."""
    if steps is None:
        steps = read_field(entity, "steps", [])
    raw_steps = sorted(
        (step for step in steps or [] if step is not None),
        key=lambda step: read_number(step, "order_index"),
    )
    items = [item for item in (_progress_item(step) for step in raw_steps) if item is not None]

    completed = [item for item in items if item.status == StepStatus.COMPLETED]
    current = next((item for item in items if item.status == StepStatus.IN_PROGRESS), None)
    if current is None:
        current = next((item for item in items if item.status == StepStatus.PENDING), None)

    kind = read_field(entity, "kind", EntityKind.LEAD)
    return EntityProgress(
        entity_id=read_field(entity, "id", 0),
        entity_kind=EntityKind(getattr(kind, "value", kind)),
        name=read_field(entity, "name"),
        completion_percentage=completion_from_steps(raw_steps, read_field(entity, "probability")),
        total_steps=len(items),
        completed_count=len(completed),
        in_progress_count=sum(1 for item in items if item.status == StepStatus.IN_PROGRESS),
        total_completed_probability=sum(item.probability_percent for item in completed),
        completed_steps=completed,
        current_step=current,
        all_steps=items,
    )


def summarize_progress(entities: Iterable[Any]) -> list[EntityProgress]:
    """Progress for a list of entities, most complete first."""
    summaries = [build_progress(entity) for entity in entities or []]
    summaries.sort(key=lambda progress: (-progress.completion_percentage, progress.entity_id))
    return summaries
