"""Template service for reusable step blueprints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from opsflow.core.errors import NotFoundError, ValidationError
from opsflow.core.structured_logging import build_log_context
from opsflow.schemas import (
    Template,
    TemplateCategory,
    TemplateCreate,
    TemplateStats,
    TemplateStepCreate,
    TemplateUpdate,
    TemplateUsage,
)
from opsflow.utils.datetime_parsing import utcnow
from opsflow.utils.normalization import normalize_name, normalize_search_text

if TYPE_CHECKING:
    from opsflow.clients.base import StepStore

logger = logging.getLogger(__name__)

COPY_SUFFIX = " (Copy)"
EXPECTED_PROBABILITY_TOTAL = 100
MOST_USED_LIMIT = 5


async def get_template(store: "StepStore", template_id: int) -> Template:
    """Get a template by ID or raise NotFoundError."""
    template = await store.get_template(template_id)
    if template is None:
        raise NotFoundError(f"Template {template_id} not found", offending_id=template_id)
    return template


async def list_templates_by_category(store: "StepStore", category_id: int | None) -> list[Template]:
    """Active templates in a category, most recently updated first."""
    templates = await store.list_templates(category_id=category_id)
    templates = [template for template in templates if template.is_active]
    return sorted(
        templates,
        key=lambda template: (template.updated_at or template.created_at or utcnow()),
        reverse=True,
    )


def _renumber(steps: list[TemplateStepCreate]) -> list[TemplateStepCreate]:
    """Step order follows list order, 1..N."""
    return [step.model_copy(update={"step_order": position}) for position, step in enumerate(steps, start=1)]


async def _ensure_unique_name(store: "StepStore", name: str, exclude_id: int | None = None) -> None:
    wanted = normalize_search_text(name)
    for template in await store.list_templates():
        if template.id != exclude_id and normalize_search_text(template.name) == wanted:
            raise ValidationError("Template name already exists", offending_id=template.id)


async def create_template(store: "StepStore", data: TemplateCreate) -> Template:
    """Create a template. Active names must be unique (case-insensitive)."""
    name = normalize_name(data.name)
    if not name:
        raise ValidationError("Template name is required")
    await _ensure_unique_name(store, name)

    template = await store.create_template(
        data.model_copy(update={"name": name, "steps": _renumber(data.steps)})
    )
    logger.info("Template created", extra=build_log_context(template_id=template.id))
    hint = probability_hint(template)
    if hint:
        logger.info("Template %s: %s", template.id, hint)
    return template


async def update_template(store: "StepStore", template_id: int, data: TemplateUpdate) -> Template:
    """Update template fields. A provided step list replaces the stored one."""
    await get_template(store, template_id)

    fields: dict[str, Any] = data.model_dump(exclude_unset=True, exclude={"steps"})
    if "name" in fields:
        name = normalize_name(fields["name"])
        if not name:
            raise ValidationError("Template name is required", offending_id=template_id)
        await _ensure_unique_name(store, name, exclude_id=template_id)
        fields["name"] = name

    steps = _renumber(data.steps) if data.steps is not None else None
    updated = await store.update_template(template_id, fields, steps)
    if updated is None:
        raise NotFoundError(f"Template {template_id} not found", offending_id=template_id)
    return updated


async def _copy_name(store: "StepStore", name: str) -> str:
    taken = {normalize_search_text(template.name) for template in await store.list_templates()}
    candidate = f"{name}{COPY_SUFFIX}"
    number = 2
    while normalize_search_text(candidate) in taken:
        candidate = f"{name} (Copy {number})"
        number += 1
    return candidate


async def duplicate_template(
    store: "StepStore",
    template_id: int,
    created_by: str | None = None,
) -> Template:
    """
    Deep-copy a template and its step blueprints.

    The copy gets fresh ids, a reset usage counter and a " (Copy)" suffix,
    numbered (" (Copy 2)", " (Copy 3)", ...) when that name is taken.
    """
    source = await get_template(store, template_id)
    steps = [
        TemplateStepCreate(**step.model_dump(exclude={"id", "template_id"}))
        for step in source.ordered_steps()
    ]
    copy = await store.create_template(
        TemplateCreate(
            name=await _copy_name(store, source.name),
            description=source.description,
            category_id=source.category_id,
            template_type=source.template_type,
            tags=list(source.tags),
            created_by=created_by or source.created_by,
            steps=steps,
        )
    )
    logger.info(
        "Template %s duplicated as %s", template_id, copy.id, extra=build_log_context(template_id=copy.id)
    )
    return copy


async def delete_template(store: "StepStore", template_id: int) -> Template:
    """Soft delete: templates stay readable for instances created from them."""
    await get_template(store, template_id)
    updated = await store.update_template(template_id, {"is_active": False})
    if updated is None:
        raise NotFoundError(f"Template {template_id} not found", offending_id=template_id)
    return updated


async def search_templates(
    store: "StepStore",
    term: str | None,
    category_id: int | None = None,
) -> list[Template]:
    """Match name/description (accent and case-insensitive) or an exact tag."""
    templates = await list_templates_by_category(store, category_id)
    needle = normalize_search_text(term)
    if needle:
        templates = [
            template
            for template in templates
            if needle in (normalize_search_text(template.name) or "")
            or needle in (normalize_search_text(template.description) or "")
            or any(normalize_search_text(tag) == needle for tag in template.tags)
        ]
    return sorted(templates, key=lambda template: template.usage_count, reverse=True)


async def record_usage(store: "StepStore", template_id: int) -> Template:
    template = await get_template(store, template_id)
    updated = await store.update_template(
        template_id,
        {"usage_count": template.usage_count + 1, "last_used_at": utcnow()},
    )
    if updated is None:
        raise NotFoundError(f"Template {template_id} not found", offending_id=template_id)
    return updated


async def get_template_stats(store: "StepStore") -> TemplateStats:
    templates = await store.list_templates(include_inactive=True)
    active = [template for template in templates if template.is_active]
    most_used = sorted(active, key=lambda template: template.usage_count, reverse=True)
    return TemplateStats(
        total_templates=len(templates),
        active_templates=len(active),
        total_usage=sum(template.usage_count for template in templates),
        most_used=[
            TemplateUsage(id=template.id, name=template.name, usage_count=template.usage_count)
            for template in most_used[:MOST_USED_LIMIT]
            if template.usage_count > 0
        ],
    )


async def list_categories(store: "StepStore") -> list[TemplateCategory]:
    categories = await store.list_categories()
    return sorted(
        (category for category in categories if category.is_active),
        key=lambda category: (category.sort_order, category.name.lower()),
    )


def probability_total(template: Template) -> float:
    return sum(step.probability_percent for step in template.steps)


def probability_hint(template: Template) -> str | None:
    """Warning shown to admins when step weights do not add up to 100%."""
    if not template.steps:
        return None
    total = probability_total(template)
    if total == EXPECTED_PROBABILITY_TOTAL:
        return None
    return f"Step probabilities add up to {total:g}%, expected {EXPECTED_PROBABILITY_TOTAL}%"
