"""In-process step store.

Used when no persistence API is configured (mock-data fallback) and in tests.
Records are copied on the way in and out so callers never share state with the
store, the same as with a remote API.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

from opsflow.core.errors import EngineError
from opsflow.enums import EntityKind, StepStatus
from opsflow.schemas import (
    ActivityLogCreate,
    ActivityLogEntry,
    BatchCreateResult,
    FailedStep,
    StepCreate,
    StepInstanceBase,
    Template,
    TemplateCategory,
    TemplateCreate,
    TemplateStep,
    TemplateStepCreate,
    step_model_for,
)
from opsflow.utils.datetime_parsing import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_CATEGORIES: list[dict[str, Any]] = [
    {"name": "Product", "description": "Product development templates", "color": "#3B82F6", "icon": "Package"},
    {"name": "Leads", "description": "Lead management templates", "color": "#10B981", "icon": "Target"},
    {"name": "FinOps", "description": "Financial operations templates", "color": "#F59E0B", "icon": "DollarSign"},
    {"name": "Onboarding", "description": "Onboarding templates", "color": "#8B5CF6", "icon": "UserPlus"},
    {"name": "Support", "description": "Customer support templates", "color": "#EF4444", "icon": "Headphones"},
    {"name": "VC", "description": "Venture capital templates", "color": "#6366F1", "icon": "Megaphone"},
]


class InMemoryStepStore:
    """StepStore backed by dicts with sequential integer ids."""

    def __init__(self, *, seed_categories: bool = True) -> None:
        self._templates: dict[int, Template] = {}
        self._categories: dict[int, TemplateCategory] = {}
        self._steps: dict[EntityKind, dict[int, StepInstanceBase]] = {kind: {} for kind in EntityKind}
        self._activity: list[ActivityLogEntry] = []
        self._template_ids = itertools.count(1)
        self._template_step_ids = itertools.count(1)
        self._category_ids = itertools.count(1)
        self._step_ids = itertools.count(1)
        self._activity_ids = itertools.count(1)
        if seed_categories:
            for sort_order, category in enumerate(DEFAULT_TEMPLATE_CATEGORIES, start=1):
                self.add_category(sort_order=sort_order, **category)

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def add_category(self, name: str, **fields: Any) -> TemplateCategory:
        category = TemplateCategory(id=next(self._category_ids), name=name, **fields)
        self._categories[category.id] = category
        return category.model_copy(deep=True)

    async def list_categories(self) -> list[TemplateCategory]:
        return [category.model_copy(deep=True) for category in self._categories.values()]

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def _build_template_steps(
        self, template_id: int, steps: list[TemplateStepCreate]
    ) -> list[TemplateStep]:
        built = []
        for position, step in enumerate(steps, start=1):
            data = step.model_dump(exclude={"step_order"})
            built.append(
                TemplateStep(
                    id=next(self._template_step_ids),
                    template_id=template_id,
                    step_order=step.step_order or position,
                    **data,
                )
            )
        return built

    async def get_template(self, template_id: int) -> Template | None:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def list_templates(
        self, *, category_id: int | None = None, include_inactive: bool = False
    ) -> list[Template]:
        templates = []
        for template in self._templates.values():
            if not include_inactive and not template.is_active:
                continue
            if category_id is not None and template.category_id != category_id:
                continue
            templates.append(template.model_copy(deep=True))
        return templates

    async def create_template(self, data: TemplateCreate) -> Template:
        now = utcnow()
        template_id = next(self._template_ids)
        template = Template(
            id=template_id,
            **data.model_dump(exclude={"steps"}),
            created_at=now,
            updated_at=now,
            steps=self._build_template_steps(template_id, data.steps),
        )
        self._templates[template_id] = template
        return template.model_copy(deep=True)

    async def update_template(
        self,
        template_id: int,
        fields: dict[str, Any],
        steps: list[TemplateStepCreate] | None = None,
    ) -> Template | None:
        current = self._templates.get(template_id)
        if current is None:
            return None
        data = current.model_dump()
        data.update({key: value for key, value in fields.items() if key not in {"id", "steps"}})
        data["updated_at"] = utcnow()
        updated = Template.model_validate(data)
        if steps is not None:
            updated.steps = self._build_template_steps(template_id, steps)
        self._templates[template_id] = updated
        return updated.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Step instances
    # -------------------------------------------------------------------------

    async def list_steps(self, kind: EntityKind, entity_id: int) -> list[StepInstanceBase]:
        steps = [step for step in self._steps[EntityKind(kind)].values() if step.entity_id == entity_id]
        steps.sort(key=lambda step: (step.order_index, step.id))
        return [step.model_copy(deep=True) for step in steps]

    async def get_step(self, kind: EntityKind, step_id: int) -> StepInstanceBase | None:
        step = self._steps[EntityKind(kind)].get(step_id)
        return step.model_copy(deep=True) if step else None

    def _insert_step(self, kind: EntityKind, entity_id: int, draft: StepCreate) -> StepInstanceBase:
        now = utcnow()
        model = step_model_for(kind)
        data = draft.model_dump()
        if data["order_index"] is None:
            siblings = [s.order_index for s in self._steps[EntityKind(kind)].values() if s.entity_id == entity_id]
            data["order_index"] = max(siblings, default=0) + 1
        step = model(
            id=next(self._step_ids),
            entity_id=entity_id,
            status=StepStatus.PENDING,
            **data,
            created_at=now,
            updated_at=now,
        )
        self._steps[EntityKind(kind)][step.id] = step
        return step

    async def create_steps(
        self, kind: EntityKind, entity_id: int, drafts: list[StepCreate]
    ) -> BatchCreateResult:
        result = BatchCreateResult()
        for index, draft in enumerate(drafts):
            try:
                step = self._insert_step(kind, entity_id, draft)
            except (EngineError, ValueError) as exc:
                logger.warning("Step draft %s rejected: %s", index, exc)
                result.failed.append(FailedStep(index=index, draft=draft, error=str(exc)))
                continue
            result.created.append(step.model_copy(deep=True))
        return result

    async def update_step(
        self, kind: EntityKind, step_id: int, fields: dict[str, Any]
    ) -> StepInstanceBase | None:
        steps = self._steps[EntityKind(kind)]
        current = steps.get(step_id)
        if current is None:
            return None
        data = current.model_dump()
        data.update({key: value for key, value in fields.items() if key not in {"id", "entity_id", "entity_kind"}})
        data["updated_at"] = utcnow()
        updated = type(current).model_validate(data)
        steps[step_id] = updated
        return updated.model_copy(deep=True)

    async def reorder_steps(self, kind: EntityKind, entity_id: int, ordered_ids: list[int]) -> None:
        steps = self._steps[EntityKind(kind)]
        for position, step_id in enumerate(ordered_ids, start=1):
            step = steps.get(step_id)
            if step is not None and step.entity_id == entity_id:
                step.order_index = position

    async def delete_step(self, kind: EntityKind, step_id: int) -> bool:
        return self._steps[EntityKind(kind)].pop(step_id, None) is not None

    async def list_assigned_steps(self, user_name: str) -> list[StepInstanceBase]:
        assigned = []
        for steps in self._steps.values():
            assigned.extend(
                step.model_copy(deep=True) for step in steps.values() if step.assigned_to == user_name
            )
        return assigned

    # -------------------------------------------------------------------------
    # Activity log
    # -------------------------------------------------------------------------

    async def append_activity(self, entry: ActivityLogCreate) -> ActivityLogEntry:
        stored = ActivityLogEntry(id=next(self._activity_ids), created_at=utcnow(), **entry.model_dump())
        self._activity.append(stored)
        return stored.model_copy(deep=True)

    async def list_activity(
        self, kind: EntityKind, entity_id: int, *, limit: int = 50
    ) -> list[ActivityLogEntry]:
        entries = [
            entry
            for entry in self._activity
            if entry.entity_kind == EntityKind(kind) and entry.entity_id == entity_id
        ]
        entries.sort(key=lambda entry: (entry.created_at, entry.id), reverse=True)
        return [entry.model_copy(deep=True) for entry in entries[:limit]]
