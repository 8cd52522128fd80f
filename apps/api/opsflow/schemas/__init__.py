"""Pydantic schemas for engine data contracts."""

from opsflow.schemas.activity import ActivityLogCreate, ActivityLogEntry
from opsflow.schemas.notification import AlertRecipient, Notification, SlaAlert
from opsflow.schemas.progress import EntityProgress, StepProgressItem
from opsflow.schemas.step import (
    BatchCreateResult,
    Entity,
    FailedStep,
    FinOpsSubTask,
    FundRaiseStep,
    InstantiationResult,
    LeadStep,
    StatusChangeResult,
    StepCreate,
    StepInstance,
    StepInstanceBase,
    parse_step,
    parse_steps,
    step_model_for,
)
from opsflow.schemas.template import (
    Template,
    TemplateCategory,
    TemplateCreate,
    TemplateStats,
    TemplateStep,
    TemplateStepCreate,
    TemplateUpdate,
    TemplateUsage,
)

__all__ = [
    # Activity
    "ActivityLogCreate",
    "ActivityLogEntry",
    # Notifications
    "AlertRecipient",
    "Notification",
    "SlaAlert",
    # Progress
    "EntityProgress",
    "StepProgressItem",
    # Steps
    "BatchCreateResult",
    "Entity",
    "FailedStep",
    "FinOpsSubTask",
    "FundRaiseStep",
    "InstantiationResult",
    "LeadStep",
    "StatusChangeResult",
    "StepCreate",
    "StepInstance",
    "StepInstanceBase",
    "parse_step",
    "parse_steps",
    "step_model_for",
    # Templates
    "Template",
    "TemplateCategory",
    "TemplateCreate",
    "TemplateStats",
    "TemplateStep",
    "TemplateStepCreate",
    "TemplateUpdate",
    "TemplateUsage",
]
