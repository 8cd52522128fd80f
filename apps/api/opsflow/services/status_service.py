"""Status transitions for step instances.

Validation always happens before the store is touched, so a rejected change
never leaves a step half-updated.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from opsflow.core.errors import NotFoundError, ValidationError
from opsflow.core.structured_logging import build_log_context
from opsflow.enums import (
    STEP_STATUSES_BY_KIND,
    DelayReason,
    EntityKind,
    SlaAlertType,
    StepActivityType,
    StepStatus,
)
from opsflow.schemas import Entity, StatusChangeResult
from opsflow.services import activity_service, notification_service, step_service
from opsflow.utils.datetime_parsing import ensure_aware, utcnow

if TYPE_CHECKING:
    from opsflow.clients.base import StepStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset(
        {StepStatus.IN_PROGRESS, StepStatus.COMPLETED, StepStatus.DELAYED, StepStatus.OVERDUE}
    ),
    StepStatus.IN_PROGRESS: frozenset(
        {StepStatus.PENDING, StepStatus.COMPLETED, StepStatus.DELAYED, StepStatus.OVERDUE}
    ),
    StepStatus.DELAYED: frozenset({StepStatus.IN_PROGRESS, StepStatus.COMPLETED}),
    StepStatus.OVERDUE: frozenset({StepStatus.IN_PROGRESS, StepStatus.COMPLETED, StepStatus.DELAYED}),
    StepStatus.COMPLETED: frozenset({StepStatus.PENDING, StepStatus.IN_PROGRESS}),
}


def parse_status(value: StepStatus | str) -> StepStatus:
    try:
        return StepStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value}") from None


def parse_delay_reason(value: DelayReason | str | None, step_id: int | None = None) -> DelayReason:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("A delay reason is required to mark a step delayed", offending_id=step_id)
    try:
        return DelayReason(value.strip() if isinstance(value, str) else value)
    except ValueError:
        raise ValidationError(f"Invalid delay reason: {value}", offending_id=step_id) from None


def can_transition(kind: EntityKind, current: StepStatus, target: StepStatus) -> bool:
    """True when ``target`` is storable for the kind and reachable from ``current``."""
    if target not in STEP_STATUSES_BY_KIND[EntityKind(kind)]:
        return False
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _transition_fields(
    current: StepStatus,
    target: StepStatus,
    step: Any,
    now: datetime,
) -> dict[str, Any]:
    fields: dict[str, Any] = {"status": target}
    if target == StepStatus.COMPLETED:
        fields["completed_at"] = now
        if step.started_at is None:
            fields["started_at"] = now
    elif current == StepStatus.COMPLETED:
        fields["completed_at"] = None
    if current == StepStatus.PENDING and target != StepStatus.PENDING and step.started_at is None:
        fields["started_at"] = now
    if target != StepStatus.DELAYED and current == StepStatus.DELAYED:
        fields["delay_reason"] = None
        fields["delay_notes"] = None
    return fields


async def set_status(
    store: "StepStore",
    kind: EntityKind,
    step_id: int,
    status: StepStatus | str,
    *,
    delay_reason: DelayReason | str | None = None,
    delay_notes: str | None = None,
    user_name: str | None = None,
    entity: Entity | None = None,
    now: datetime | None = None,
) -> StatusChangeResult:
    """
    Move a step to ``status``.

    Moving into delayed requires a delay reason and produces a ``delay_alert``
    addressed to the entity's reporting managers (pass ``entity`` to fill in
    recipients). Setting the current status again is a no-op, except that a
    delayed step can have its reason updated.
    """
    kind = EntityKind(kind)
    target = parse_status(status)
    step = await step_service.get_step(store, kind, step_id)
    current = step.status

    if target not in STEP_STATUSES_BY_KIND[kind]:
        raise ValidationError(f"Status '{target.value}' is not allowed for {kind.value} steps", offending_id=step_id)

    reason = parse_delay_reason(delay_reason, step_id) if target == StepStatus.DELAYED else None
    if target == current and target != StepStatus.DELAYED:
        return StatusChangeResult(step=step, previous_status=current, changed=False)
    if target != current and not can_transition(kind, current, target):
        raise ValidationError(
            f"Cannot move step from {current.value} to {target.value}", offending_id=step_id
        )

    timestamp = ensure_aware(now) if now else utcnow()
    fields = _transition_fields(current, target, step, timestamp)
    if target == StepStatus.DELAYED:
        fields["delay_reason"] = reason
        fields["delay_notes"] = delay_notes
        if SlaAlertType.STEP_DELAYED.value not in step.alerts_sent:
            fields["alerts_sent"] = [*step.alerts_sent, SlaAlertType.STEP_DELAYED.value]

    updated = await store.update_step(kind, step_id, fields)
    if updated is None:
        # Deleted between read and write
        raise NotFoundError(f"Step {step_id} not found", offending_id=step_id)

    context = build_log_context(
        entity_kind=kind.value, entity_id=updated.entity_id, step_id=step_id, user_name=user_name
    )
    logger.info("Step status %s -> %s", current.value, target.value, extra=context)

    action = StepActivityType.DELAYED if target == StepStatus.DELAYED else StepActivityType.STATUS_CHANGED
    details: dict[str, Any] = {"from": current.value, "to": target.value}
    if reason is not None:
        details["delay_reason"] = reason.value
        if delay_notes:
            details["delay_notes"] = delay_notes
    await activity_service.log_activity(
        store, kind, updated.entity_id, action, step_id=step_id, user_name=user_name, details=details
    )

    delay_alert = None
    if target == StepStatus.DELAYED:
        delay_alert = notification_service.build_delay_alert(updated, entity, now=timestamp)
    return StatusChangeResult(step=updated, previous_status=current, changed=True, delay_alert=delay_alert)


async def reset_for_daily_run(
    store: "StepStore",
    entity_id: int,
    user_name: str | None = None,
) -> list[Any]:
    """
    Reset every subtask of a recurring FinOps task to pending for a new run.

    Timestamps, delay metadata and sent alerts are cleared.
    """
    kind = EntityKind.FINOPS_TASK
    steps = await step_service.list_steps(store, entity_id, kind)
    reset = []
    for step in steps:
        updated = await store.update_step(
            kind,
            step.id,
            {
                "status": StepStatus.PENDING,
                "started_at": None,
                "completed_at": None,
                "delay_reason": None,
                "delay_notes": None,
                "alerts_sent": [],
            },
        )
        if updated is not None:
            reset.append(updated)

    logger.info(
        "Daily reset of %s subtasks", len(reset),
        extra=build_log_context(entity_kind=kind.value, entity_id=entity_id, user_name=user_name),
    )
    await activity_service.log_activity(
        store, kind, entity_id, StepActivityType.DAILY_RESET, user_name=user_name,
        details={"reset": len(reset)},
    )
    return reset
