"""Notification-related enums."""

from enum import Enum


class NotificationType(str, Enum):
    """Types of derived in-app notifications."""

    ASSIGNED = "assigned"  # Pending step assigned to the current user
    OVERDUE = "overdue"  # Unfinished step past its due date


class SlaAlertType(str, Enum):
    """SLA alerts raised for FinOps subtasks."""

    SLA_WARNING = "sla_warning"  # Deadline within the warning window
    SLA_OVERDUE = "sla_overdue"  # Deadline passed, escalate
    STEP_DELAYED = "step_delayed"  # Manual delay, alert reporting managers


class AlertRecipientType(str, Enum):
    """Who receives an SLA alert."""

    ASSIGNED = "assigned"
    REPORTING = "reporting"
    ESCALATION = "escalation"
