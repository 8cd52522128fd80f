"""Step instance collection: instantiate, add, reorder and delete steps."""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from opsflow.core.errors import NotFoundError, ValidationError
from opsflow.core.structured_logging import build_log_context
from opsflow.enums import EntityKind, StepActivityType
from opsflow.schemas import (
    Entity,
    FailedStep,
    InstantiationResult,
    StepCreate,
    StepInstanceBase,
    Template,
)
from opsflow.services import activity_service, template_service
from opsflow.utils.datetime_parsing import coerce_datetime

if TYPE_CHECKING:
    from opsflow.clients.base import StepStore

logger = logging.getLogger(__name__)

# (name, description, estimated days) used for leads created without template steps
DEFAULT_LEAD_STEPS: list[tuple[str, str, int]] = [
    ("Initial Contact & Discovery", "First contact with prospect to understand their needs", 1),
    ("Needs Assessment & Demo", "Detailed needs assessment and product demonstration", 3),
    ("Proposal Preparation", "Prepare detailed proposal based on requirements", 4),
    ("Proposal Review & Negotiation", "Present proposal and handle negotiations", 5),
    ("Contract Finalization", "Finalize contract terms and get signatures", 3),
    ("Onboarding Preparation", "Prepare onboarding materials and timeline", 2),
    ("Implementation Planning", "Plan technical implementation and project timeline", 5),
    ("System Integration", "Integrate systems and perform testing", 7),
    ("Go-Live & Support", "Go live with the solution and provide initial support", 3),
    ("Project Closure", "Complete project documentation and handover", 2),
]


def _start_datetime(start_date: date | datetime | str | None) -> datetime | None:
    return coerce_datetime(start_date)


def build_step_payloads(
    template: Template,
    start_date: date | datetime | str | None = None,
    created_by: str | None = None,
) -> list[StepCreate]:
    """
    Drafts for each template step, in template order.

    ``due_at`` is only set when a start date is given: step i is due at the
    start date plus the ETA days of steps 1..i.
    """
    start = _start_datetime(start_date)
    drafts: list[StepCreate] = []
    elapsed_days = 0
    for step in template.ordered_steps():
        elapsed_days += step.default_eta_days
        drafts.append(
            StepCreate(
                name=step.name,
                description=step.description,
                order_index=step.step_order,
                due_at=start + timedelta(days=elapsed_days) if start else None,
                estimated_days=step.default_eta_days,
                sla_hours=step.sla_hours,
                sla_minutes=step.sla_minutes,
                probability_percent=step.probability_percent,
                assigned_role=step.assigned_role,
                approval_required=step.approval_required,
                parallel_execution=step.parallel_execution,
                created_by=created_by,
            )
        )
    return drafts


def build_default_lead_payloads(
    start_date: date | datetime | str | None = None,
    created_by: str | None = None,
) -> list[StepCreate]:
    """Standard lead pipeline, each step weighted floor(100 / n)."""
    start = _start_datetime(start_date)
    weight = math.floor(100 / len(DEFAULT_LEAD_STEPS))
    drafts = []
    elapsed_days = 0
    for position, (name, description, eta_days) in enumerate(DEFAULT_LEAD_STEPS, start=1):
        elapsed_days += eta_days
        drafts.append(
            StepCreate(
                name=name,
                description=description,
                order_index=position,
                due_at=start + timedelta(days=elapsed_days) if start else None,
                estimated_days=eta_days,
                probability_percent=weight,
                created_by=created_by,
            )
        )
    return drafts


async def instantiate_from_template(
    store: "StepStore",
    entity: Entity,
    template: Template | None,
    start_date: date | datetime | str | None = None,
    created_by: str | None = None,
) -> InstantiationResult:
    """
    Create one pending step per template step through a single batch call.

    Leads whose template has no steps get the default lead pipeline. Items the
    store could not create come back in ``failed`` for ``retry_failed``.
    """
    kind = EntityKind(entity.kind)
    start = start_date if start_date is not None else entity.start_date
    drafts = build_step_payloads(template, start, created_by) if template else []
    used_defaults = False
    if not drafts and kind == EntityKind.LEAD:
        drafts = build_default_lead_payloads(start, created_by)
        used_defaults = True

    template_id = template.id if template else None
    context = build_log_context(
        entity_kind=kind.value, entity_id=entity.id, template_id=template_id, user_name=created_by
    )
    if not drafts:
        logger.info("Template has no steps; nothing instantiated", extra=context)
        return InstantiationResult(entity_id=entity.id, entity_kind=kind, template_id=template_id)

    batch = await store.create_steps(kind, entity.id, drafts)
    if batch.failed:
        logger.warning(
            "Instantiation created %s of %s steps", len(batch.created), len(drafts), extra=context
        )

    if template is not None and not used_defaults:
        await template_service.record_usage(store, template.id)

    await activity_service.log_activity(
        store,
        kind,
        entity.id,
        StepActivityType.INSTANTIATED,
        user_name=created_by,
        details={
            "template_id": template_id,
            "created": len(batch.created),
            "failed": len(batch.failed),
            "default_steps": used_defaults,
        },
    )
    return InstantiationResult(
        entity_id=entity.id,
        entity_kind=kind,
        template_id=template_id,
        used_default_steps=used_defaults,
        created=batch.created,
        failed=batch.failed,
    )


async def retry_failed(
    store: "StepStore",
    entity: Entity,
    failed: list[FailedStep],
) -> InstantiationResult:
    """Retry failed drafts one at a time; items that fail again are reported back."""
    kind = EntityKind(entity.kind)
    result = InstantiationResult(entity_id=entity.id, entity_kind=kind, template_id=entity.template_id)
    for item in failed:
        batch = await store.create_steps(kind, entity.id, [item.draft])
        result.created.extend(batch.created)
        result.failed.extend(failure.model_copy(update={"index": item.index}) for failure in batch.failed)
    return result


async def list_steps(store: "StepStore", entity_id: int, kind: EntityKind) -> list[StepInstanceBase]:
    """Steps of an entity ordered by order index."""
    steps = await store.list_steps(EntityKind(kind), entity_id)
    return sorted(steps, key=lambda step: (step.order_index, step.id))


async def get_step(store: "StepStore", kind: EntityKind, step_id: int) -> StepInstanceBase:
    step = await store.get_step(EntityKind(kind), step_id)
    if step is None:
        raise NotFoundError(f"Step {step_id} not found", offending_id=step_id)
    return step


async def add_step(
    store: "StepStore",
    entity_id: int,
    kind: EntityKind,
    fields: StepCreate | dict[str, Any],
    user_name: str | None = None,
) -> StepInstanceBase:
    """Ad hoc step appended after the current last step."""
    kind = EntityKind(kind)
    if isinstance(fields, StepCreate):
        draft = fields
    else:
        try:
            draft = StepCreate.model_validate(fields)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid step: {exc.errors()[0]['msg']}", offending_id=entity_id) from exc

    existing = await store.list_steps(kind, entity_id)
    next_index = max((step.order_index for step in existing), default=0) + 1
    draft = draft.model_copy(update={"order_index": next_index, "created_by": draft.created_by or user_name})

    batch = await store.create_steps(kind, entity_id, [draft])
    if not batch.created:
        error = batch.failed[0].error if batch.failed else "step was not created"
        raise ValidationError(f"Step could not be created: {error}", offending_id=entity_id)
    step = batch.created[0]

    await activity_service.log_activity(
        store, kind, entity_id, StepActivityType.CREATED, step_id=step.id, user_name=user_name,
        details={"name": step.name, "order_index": step.order_index},
    )
    return step


async def reorder(
    store: "StepStore",
    entity_id: int,
    kind: EntityKind,
    ordered_ids: list[int],
    user_name: str | None = None,
) -> list[StepInstanceBase]:
    """
    Rewrite order indices to 1..N in the given order.

    The id list must be exactly the entity's step ids (no extras, no gaps, no
    duplicates); otherwise nothing is written. Returns the refetched steps.
    """
    kind = EntityKind(kind)
    existing = await store.list_steps(kind, entity_id)
    requested = Counter(ordered_ids)
    duplicates = [step_id for step_id, count in requested.items() if count > 1]
    if duplicates:
        raise ValidationError("Reorder contains duplicate step ids", offending_id=duplicates[0])

    existing_ids = {step.id for step in existing}
    unknown = [step_id for step_id in ordered_ids if step_id not in existing_ids]
    if unknown:
        raise ValidationError(
            f"Step {unknown[0]} does not belong to {kind.value} {entity_id}", offending_id=unknown[0]
        )
    missing = sorted(existing_ids - set(ordered_ids))
    if missing:
        raise ValidationError(f"Reorder is missing step {missing[0]}", offending_id=missing[0])

    await store.reorder_steps(kind, entity_id, list(ordered_ids))
    await activity_service.log_activity(
        store, kind, entity_id, StepActivityType.REORDERED, user_name=user_name,
        details={"ordered_ids": list(ordered_ids)},
    )
    return await list_steps(store, entity_id, kind)


async def delete_step(
    store: "StepStore",
    entity_id: int,
    kind: EntityKind,
    step_id: int,
    user_name: str | None = None,
) -> None:
    """Delete a step, refusing steps addressed under the wrong entity."""
    kind = EntityKind(kind)
    step = await store.get_step(kind, step_id)
    if step is None or step.entity_id != entity_id:
        raise NotFoundError(f"Step {step_id} not found for {kind.value} {entity_id}", offending_id=step_id)

    if not await store.delete_step(kind, step_id):
        raise NotFoundError(f"Step {step_id} not found", offending_id=step_id)

    logger.info(
        "Step deleted",
        extra=build_log_context(entity_kind=kind.value, entity_id=entity_id, step_id=step_id, user_name=user_name),
    )
    await activity_service.log_activity(
        store, kind, entity_id, StepActivityType.DELETED, step_id=step_id, user_name=user_name,
        details={"name": step.name},
    )
