"""Persistence client interface used by every engine service."""

from __future__ import annotations

from typing import Any, Protocol

from opsflow.enums import EntityKind
from opsflow.schemas import (
    ActivityLogCreate,
    ActivityLogEntry,
    BatchCreateResult,
    StepCreate,
    StepInstanceBase,
    Template,
    TemplateCategory,
    TemplateCreate,
    TemplateStepCreate,
)


class StepStore(Protocol):
    """
    Async persistence handle passed explicitly into the services.

    Lookups return None (or False for deletes) when a record is missing; the
    services turn that into NotFoundError. Failed calls raise TransientError.
    """

    # Templates
    async def get_template(self, template_id: int) -> Template | None: ...

    async def list_templates(
        self, *, category_id: int | None = None, include_inactive: bool = False
    ) -> list[Template]: ...

    async def create_template(self, data: TemplateCreate) -> Template: ...

    async def update_template(
        self,
        template_id: int,
        fields: dict[str, Any],
        steps: list[TemplateStepCreate] | None = None,
    ) -> Template | None: ...

    async def list_categories(self) -> list[TemplateCategory]: ...

    # Step instances
    async def list_steps(self, kind: EntityKind, entity_id: int) -> list[StepInstanceBase]: ...

    async def get_step(self, kind: EntityKind, step_id: int) -> StepInstanceBase | None: ...

    async def create_steps(
        self, kind: EntityKind, entity_id: int, drafts: list[StepCreate]
    ) -> BatchCreateResult: ...

    async def update_step(
        self, kind: EntityKind, step_id: int, fields: dict[str, Any]
    ) -> StepInstanceBase | None: ...

    async def reorder_steps(self, kind: EntityKind, entity_id: int, ordered_ids: list[int]) -> None: ...

    async def delete_step(self, kind: EntityKind, step_id: int) -> bool: ...

    async def list_assigned_steps(self, user_name: str) -> list[StepInstanceBase]: ...

    # Activity log
    async def append_activity(self, entry: ActivityLogCreate) -> ActivityLogEntry: ...

    async def list_activity(
        self, kind: EntityKind, entity_id: int, *, limit: int = 50
    ) -> list[ActivityLogEntry]: ...
