"""
Test configuration and fixtures.

Provides:
- In-memory step store (fresh per test)
- A fixed clock
- Sample templates and entities for each pipeline kind
"""
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from opsflow.clients.memory import InMemoryStepStore
from opsflow.enums import EntityKind, StepStatus
from opsflow.schemas import (
    Entity,
    StepInstanceBase,
    Template,
    TemplateCreate,
    TemplateStepCreate,
    step_model_for,
)
from opsflow.services import template_service


# =============================================================================
# Configuration
# =============================================================================

FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture(scope="function")
def store() -> InMemoryStepStore:
    return InMemoryStepStore()


# =============================================================================
# Templates
# =============================================================================

@pytest.fixture(scope="function")
async def weighted_template(store: InMemoryStepStore) -> Template:
    """Three steps weighted 20/30/50 with 1/2/3 day ETAs."""
    return await template_service.create_template(
        store,
        TemplateCreate(
            name="Enterprise Sales",
            description="Three stage enterprise pipeline",
            category_id=2,
            tags=["sales", "enterprise"],
            created_by="Ana Ruiz",
            steps=[
                TemplateStepCreate(name="Discovery", default_eta_days=1, probability_percent=20),
                TemplateStepCreate(
                    name="Proposal",
                    default_eta_days=2,
                    probability_percent=30,
                    assigned_role="sales",
                    approval_required=True,
                ),
                TemplateStepCreate(
                    name="Close",
                    default_eta_days=3,
                    probability_percent=50,
                    sla_hours=4,
                    sla_minutes=30,
                    parallel_execution=True,
                ),
            ],
        ),
    )


# =============================================================================
# Entities
# =============================================================================

@pytest.fixture
def lead() -> Entity:
    return Entity(id=1, kind=EntityKind.LEAD, name="Acme Corp", assigned_to="Ana Ruiz")


@pytest.fixture
def fund_raise() -> Entity:
    return Entity(id=2, kind=EntityKind.FUND_RAISE, name="Seed Round")


@pytest.fixture
def finops_task() -> Entity:
    return Entity(
        id=10,
        kind=EntityKind.FINOPS_TASK,
        name="Daily Reconciliation",
        assigned_to="Ben Ode",
        reporting_managers="{Ana Ruiz,\"Dev Shah\"}",
        escalation_managers='["Cara Lee"]',
    )


@pytest.fixture
def make_step() -> Callable[..., StepInstanceBase]:
    """Build a validated step instance without going through a store."""

    def _make(kind: EntityKind = EntityKind.FINOPS_TASK, **fields: Any) -> StepInstanceBase:
        data: dict[str, Any] = {
            "id": 1,
            "entity_id": 10,
            "name": "Bank statement import",
            "order_index": 1,
            "status": StepStatus.PENDING,
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
        }
        data.update(fields)
        return step_model_for(kind).model_validate(data)

    return _make
