"""Pydantic schemas for step templates and template categories."""

from datetime import datetime

from pydantic import BaseModel, Field

from opsflow.enums import TemplateType


class TemplateStepBase(BaseModel):
    """Blueprint fields shared by template step create/read models."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    default_eta_days: int = Field(default=1, ge=0)
    sla_hours: int | None = Field(default=None, ge=0)
    sla_minutes: int | None = Field(default=None, ge=0, le=59)
    assigned_role: str | None = None
    required_documents: list[str] = Field(default_factory=list)
    approval_required: bool = False
    parallel_execution: bool = False
    probability_percent: float = Field(default=0, ge=0, le=100)
    auto_alert: bool = True
    email_reminder: bool = True


class TemplateStepCreate(TemplateStepBase):
    """Step blueprint on create/update. Position defaults to list order."""

    step_order: int | None = Field(default=None, ge=1)


class TemplateStep(TemplateStepBase):
    """Stored step blueprint."""

    id: int
    template_id: int
    step_order: int = Field(ge=1)

    model_config = {"from_attributes": True}


class TemplateCreate(BaseModel):
    """Request to create a template."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category_id: int | None = None
    template_type: TemplateType = TemplateType.STANDARD
    tags: list[str] = Field(default_factory=list)
    created_by: str | None = None
    steps: list[TemplateStepCreate] = Field(default_factory=list)


class TemplateUpdate(BaseModel):
    """Request to update a template (partial). Steps, when given, replace the list."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    category_id: int | None = None
    template_type: TemplateType | None = None
    tags: list[str] | None = None
    is_active: bool | None = None
    steps: list[TemplateStepCreate] | None = None


class Template(BaseModel):
    """Full template with ordered step blueprints."""

    id: int
    name: str
    description: str | None = None
    category_id: int | None = None
    template_type: TemplateType = TemplateType.STANDARD
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True
    usage_count: int = 0
    last_used_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    steps: list[TemplateStep] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def ordered_steps(self) -> list[TemplateStep]:
        return sorted(self.steps, key=lambda step: step.step_order)


class TemplateCategory(BaseModel):
    """Grouping for templates in the picker."""

    id: int
    name: str
    description: str | None = None
    color: str = "#6B7280"
    icon: str | None = None
    sort_order: int = 0
    is_active: bool = True

    model_config = {"from_attributes": True}


class TemplateUsage(BaseModel):
    id: int
    name: str
    usage_count: int


class TemplateStats(BaseModel):
    """Template library summary."""

    total_templates: int = 0
    active_templates: int = 0
    total_usage: int = 0
    most_used: list[TemplateUsage] = Field(default_factory=list)
