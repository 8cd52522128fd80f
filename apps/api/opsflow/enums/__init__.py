"""Enum definitions for engine constants."""

from opsflow.enums.activity import StepActivityType
from opsflow.enums.notifications import (
    AlertRecipientType,
    NotificationType,
    SlaAlertType,
)
from opsflow.enums.steps import (
    STEP_STATUSES_BY_KIND,
    DelayReason,
    EntityKind,
    SlaState,
    StepStatus,
)
from opsflow.enums.templates import TemplateType

__all__ = [
    "AlertRecipientType",
    "DelayReason",
    "EntityKind",
    "NotificationType",
    "STEP_STATUSES_BY_KIND",
    "SlaAlertType",
    "SlaState",
    "StepActivityType",
    "StepStatus",
    "TemplateType",
]
