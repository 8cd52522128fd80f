"""Pydantic schemas for derived notifications and SLA alerts."""

from datetime import datetime

from pydantic import BaseModel, Field

from opsflow.enums import AlertRecipientType, EntityKind, NotificationType, SlaAlertType


class Notification(BaseModel):
    """In-app notification derived from step state. Never persisted."""

    id: int
    type: NotificationType
    title: str
    message: str
    entity_kind: EntityKind | None = None
    entity_id: int | None = None
    step_id: int | None = None
    created_at: datetime | None = None
    read: bool = False


class AlertRecipient(BaseModel):
    name: str
    recipient_type: AlertRecipientType


class SlaAlert(BaseModel):
    """SLA or delay alert signalled for an external notifier to deliver."""

    alert_type: SlaAlertType
    step_id: int
    entity_id: int
    entity_kind: EntityKind = EntityKind.FINOPS_TASK
    step_name: str | None = None
    message: str
    recipients: list[AlertRecipient] = Field(default_factory=list)
    # Minutes remaining for warnings, minutes past the deadline for overdue
    minutes: int | None = None
    created_at: datetime

    @property
    def recipient_names(self) -> list[str]:
        return [recipient.name for recipient in self.recipients]
