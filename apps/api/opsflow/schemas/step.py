"""Pydantic schemas for step instances and the entities that own them.

Step instances are a tagged variant keyed on ``entity_kind``. Payloads coming
back from the store are validated once here via ``parse_step``/``parse_steps``
and passed around as typed models afterwards.
"""

from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from opsflow.core.errors import ValidationError
from opsflow.enums import STEP_STATUSES_BY_KIND, DelayReason, EntityKind, StepStatus
from opsflow.schemas.notification import SlaAlert
from opsflow.utils.normalization import parse_name_list


class StepInstanceBase(BaseModel):
    """Fields shared by every step variant."""

    id: int
    entity_id: int
    name: str
    description: str | None = None
    order_index: int = 0
    status: StepStatus = StepStatus.PENDING

    due_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    estimated_days: int | None = None
    sla_hours: int | None = None
    sla_minutes: int | None = None
    probability_percent: float = Field(default=0, ge=0, le=100)

    assigned_role: str | None = None
    assigned_to: str | None = None
    approval_required: bool = False
    parallel_execution: bool = False

    delay_reason: DelayReason | None = None
    delay_notes: str | None = None
    alerts_sent: list[str] = Field(default_factory=list)

    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("alerts_sent", mode="before")
    @classmethod
    def coerce_alerts_sent(cls, value: Any) -> list[str]:
        return parse_name_list(value)

    @model_validator(mode="after")
    def check_status_for_kind(self):
        kind = EntityKind(self.entity_kind)
        if self.status not in STEP_STATUSES_BY_KIND[kind]:
            raise ValueError(f"status '{self.status.value}' is not valid for {kind.value} steps")
        return self


class LeadStep(StepInstanceBase):
    entity_kind: Literal["lead"] = "lead"


class FundRaiseStep(StepInstanceBase):
    entity_kind: Literal["fund_raise"] = "fund_raise"


class FinOpsSubTask(StepInstanceBase):
    """FinOps subtask. SLA is measured from ``started_at``."""

    entity_kind: Literal["finops_task"] = "finops_task"


StepInstance = Annotated[
    LeadStep | FundRaiseStep | FinOpsSubTask,
    Field(discriminator="entity_kind"),
]

_step_adapter: TypeAdapter = TypeAdapter(StepInstance)
_STEP_MODELS: dict[EntityKind, type[StepInstanceBase]] = {
    EntityKind.LEAD: LeadStep,
    EntityKind.FUND_RAISE: FundRaiseStep,
    EntityKind.FINOPS_TASK: FinOpsSubTask,
}


def step_model_for(kind: EntityKind | str) -> type[StepInstanceBase]:
    return _STEP_MODELS[EntityKind(kind)]


def parse_step(data: Any, kind: EntityKind | str | None = None) -> StepInstanceBase:
    """Validate a raw store payload into the matching step variant."""
    if isinstance(data, StepInstanceBase):
        return data
    if kind is not None and isinstance(data, dict) and "entity_kind" not in data:
        data = {**data, "entity_kind": EntityKind(kind).value}
    try:
        return _step_adapter.validate_python(data)
    except PydanticValidationError as exc:
        offending_id = data.get("id") if isinstance(data, dict) else None
        raise ValidationError(f"Invalid step payload: {exc}", offending_id=offending_id) from exc


def parse_steps(items: list[Any], kind: EntityKind | str | None = None) -> list[StepInstanceBase]:
    return [parse_step(item, kind) for item in items]


class StepCreate(BaseModel):
    """
    Draft for a new step instance (ad hoc or from a template step).

    New steps always start pending; later states go through status changes
    so timestamps and delay reasons are stamped consistently.
    """

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    order_index: int | None = Field(default=None, ge=1)
    due_at: datetime | None = None
    estimated_days: int | None = Field(default=None, ge=0)
    sla_hours: int | None = Field(default=None, ge=0)
    sla_minutes: int | None = Field(default=None, ge=0, le=59)
    probability_percent: float = Field(default=0, ge=0, le=100)
    assigned_role: str | None = None
    assigned_to: str | None = None
    approval_required: bool = False
    parallel_execution: bool = False
    created_by: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        cleaned = " ".join(value.split())
        if not cleaned:
            raise ValueError("name is required")
        return cleaned


class FailedStep(BaseModel):
    """A draft the store could not create."""

    index: int
    draft: StepCreate
    error: str


class BatchCreateResult(BaseModel):
    """Store answer to a batch create: array in, array out."""

    created: list[StepInstance] = Field(default_factory=list)
    failed: list[FailedStep] = Field(default_factory=list)


class InstantiationResult(BaseModel):
    """Outcome of instantiating a template against an entity."""

    entity_id: int
    entity_kind: EntityKind
    template_id: int | None = None
    used_default_steps: bool = False
    created: list[StepInstance] = Field(default_factory=list)
    failed: list[FailedStep] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class StatusChangeResult(BaseModel):
    """Outcome of a status change."""

    step: StepInstance
    previous_status: StepStatus
    changed: bool = True
    # Set when the step moved into delayed; delivery is the caller's job
    delay_alert: SlaAlert | None = None


class Entity(BaseModel):
    """A lead, fund raise or FinOps task owning an ordered step collection."""

    id: int
    kind: EntityKind
    name: str | None = None
    status: str | None = None
    probability: float | None = None
    template_id: int | None = None
    start_date: date | datetime | None = None
    assigned_to: str | None = None
    reporting_managers: list[str] = Field(default_factory=list)
    escalation_managers: list[str] = Field(default_factory=list)
    steps: list[StepInstance] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @field_validator("reporting_managers", "escalation_managers", mode="before")
    @classmethod
    def coerce_managers(cls, value: Any) -> list[str]:
        return parse_name_list(value)
