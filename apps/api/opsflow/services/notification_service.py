"""Notification derivation from step state.

Everything here is a read-only projection: malformed steps are skipped or
degraded, never raised on, because the consumers are passive displays.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Iterable

from opsflow.core.async_utils import await_with_timeout
from opsflow.core.config import settings
from opsflow.core.errors import EngineError
from opsflow.enums import (
    AlertRecipientType,
    EntityKind,
    NotificationType,
    SlaAlertType,
    StepStatus,
)
from opsflow.schemas import AlertRecipient, Notification, SlaAlert
from opsflow.services.sla_service import sla_deadline
from opsflow.utils.datetime_parsing import coerce_datetime, ensure_aware, utcnow
from opsflow.utils.fields import read_field, read_status
from opsflow.utils.normalization import normalize_name, parse_name_list

if TYPE_CHECKING:
    from opsflow.clients.base import StepStore

logger = logging.getLogger(__name__)

ASSIGNED_TITLE = "Follow-up Assigned"
OVERDUE_TITLE = "Follow-up Overdue"


def _entity_kind(step: Any) -> EntityKind | None:
    kind = read_field(step, "entity_kind")
    try:
        return EntityKind(getattr(kind, "value", kind))
    except ValueError:
        return None


def _int_id(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _sort_key(notification: Notification) -> tuple[bool, float]:
    created_at = notification.created_at
    return (created_at is not None, created_at.timestamp() if created_at else 0.0)


def derive_notifications(
    steps: Iterable[Any] | None,
    current_user_name: str | None,
    now: datetime | None = None,
) -> list[Notification]:
    """
    Assigned/overdue notifications for the current user, newest first.

    - assigned: pending step assigned to the user (id = step id)
    - overdue: unfinished step past its due date (id = step id + 1000)
    """
    user = normalize_name(current_user_name)
    if not user:
        return []
    current = ensure_aware(now) if now else utcnow()
    offset = settings.OVERDUE_NOTIFICATION_ID_OFFSET

    notifications: list[Notification] = []
    for step in steps or []:
        step_id = _int_id(read_field(step, "id"))
        if step_id is None:
            continue
        if normalize_name(read_field(step, "assigned_to")) != user:
            continue

        name = _text(read_field(step, "name"))
        status = read_status(step)
        common = {
            "entity_kind": _entity_kind(step),
            "entity_id": _int_id(read_field(step, "entity_id")),
            "step_id": step_id,
        }

        if status == StepStatus.PENDING.value:
            notifications.append(
                Notification(
                    id=step_id,
                    type=NotificationType.ASSIGNED,
                    title=ASSIGNED_TITLE,
                    message=f"You have been assigned: {name}",
                    created_at=coerce_datetime(read_field(step, "created_at")),
                    **common,
                )
            )

        due_at = coerce_datetime(read_field(step, "due_at"))
        if status != StepStatus.COMPLETED.value and due_at is not None and due_at < current:
            notifications.append(
                Notification(
                    id=step_id + offset,
                    type=NotificationType.OVERDUE,
                    title=OVERDUE_TITLE,
                    message=f"Overdue: {name}",
                    created_at=coerce_datetime(read_field(step, "updated_at")),
                    **common,
                )
            )

    return sorted(notifications, key=_sort_key, reverse=True)


async def fetch_notifications(
    store: "StepStore",
    current_user_name: str | None,
    timeout: float | None = None,
    now: datetime | None = None,
) -> list[Notification]:
    """
    Fetch assigned steps and derive notifications.

    Polling feeds a passive display, so timeouts, error responses and
    unreadable payloads all yield [] with a warning.
    """
    if not normalize_name(current_user_name):
        return []
    limit = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
    try:
        steps = await await_with_timeout(store.list_assigned_steps(current_user_name), limit)
    except TimeoutError:
        logger.warning("Notification fetch timed out after %ss", limit)
        return []
    except EngineError as exc:
        logger.warning("Notification fetch failed (%s): %s", exc.kind, exc.message)
        return []
    except ValueError as exc:
        logger.warning("Notification fetch returned an unreadable payload: %s", exc)
        return []
    return derive_notifications(steps, current_user_name, now=now)


class NotificationInbox:
    """Client-local read state for derived notifications. Not persisted."""

    def __init__(self) -> None:
        self._notifications: list[Notification] = []
        self._read_ids: set[int] = set()

    @property
    def notifications(self) -> list[Notification]:
        return [
            notification.model_copy(update={"read": notification.id in self._read_ids})
            for notification in self._notifications
        ]

    @property
    def unread_count(self) -> int:
        return sum(1 for notification in self._notifications if notification.id not in self._read_ids)

    def replace(self, notifications: list[Notification]) -> None:
        """Swap in a fresh derivation, keeping read flags for ids still present."""
        self._notifications = list(notifications)
        current_ids = {notification.id for notification in self._notifications}
        self._read_ids &= current_ids

    def mark_read(self, notification_id: int) -> bool:
        if not any(notification.id == notification_id for notification in self._notifications):
            return False
        self._read_ids.add(notification_id)
        return True

    def mark_all_read(self) -> None:
        self._read_ids = {notification.id for notification in self._notifications}


# =============================================================================
# SLA alerts (FinOps)
# =============================================================================


def _add_recipients(
    recipients: list[AlertRecipient],
    names: Iterable[str],
    recipient_type: AlertRecipientType,
) -> None:
    seen = {recipient.name for recipient in recipients}
    for name in names:
        if name and name not in seen:
            recipients.append(AlertRecipient(name=name, recipient_type=recipient_type))
            seen.add(name)


def alert_recipients(step: Any, entity: Any, *, escalate: bool = False) -> list[AlertRecipient]:
    """Assignee and reporting managers, plus escalation managers when escalating."""
    recipients: list[AlertRecipient] = []
    assignee = normalize_name(read_field(step, "assigned_to"))
    if assignee:
        _add_recipients(recipients, [assignee], AlertRecipientType.ASSIGNED)
    _add_recipients(
        recipients, parse_name_list(read_field(entity, "reporting_managers")), AlertRecipientType.REPORTING
    )
    if escalate:
        _add_recipients(
            recipients, parse_name_list(read_field(entity, "escalation_managers")), AlertRecipientType.ESCALATION
        )
    return recipients


def _recently_sent(
    sent_alerts: Iterable[SlaAlert],
    step_id: int,
    alert_type: SlaAlertType,
    since: datetime,
) -> bool:
    for alert in sent_alerts:
        if alert.step_id == step_id and alert.alert_type == alert_type and ensure_aware(alert.created_at) > since:
            return True
    return False


def derive_sla_alerts(
    entity: Any,
    steps: Iterable[Any] | None,
    sent_alerts: Iterable[SlaAlert] | None = None,
    now: datetime | None = None,
    *,
    warning_minutes: int | None = None,
) -> list[SlaAlert]:
    """
    SLA warning/overdue alerts for started FinOps subtasks.

    A warning fires when the deadline is within the warning window, an
    overdue alert once it has passed. Alerts of the same type sent for the
    same step within the dedupe window (1h warning, 30min overdue) are not
    repeated.
    """
    current = ensure_aware(now) if now else utcnow()
    window = timedelta(minutes=warning_minutes if warning_minutes is not None else settings.SLA_WARNING_MINUTES)
    history = list(sent_alerts or [])
    warning_since = current - timedelta(minutes=settings.SLA_WARNING_DEDUPE_MINUTES)
    overdue_since = current - timedelta(minutes=settings.SLA_OVERDUE_DEDUPE_MINUTES)
    entity_id = _int_id(read_field(entity, "id"))

    alerts: list[SlaAlert] = []
    for step in steps or []:
        step_id = _int_id(read_field(step, "id"))
        if step_id is None or _entity_kind(step) != EntityKind.FINOPS_TASK:
            continue
        if read_status(step) in (StepStatus.COMPLETED.value, StepStatus.PENDING.value):
            continue
        deadline = sla_deadline(step)
        owner_id = _int_id(read_field(step, "entity_id"))
        if owner_id is None:
            owner_id = entity_id
        if deadline is None or owner_id is None:
            continue

        name = _text(read_field(step, "name"))
        if deadline < current:
            if _recently_sent(history, step_id, SlaAlertType.SLA_OVERDUE, overdue_since):
                continue
            minutes = math.floor((current - deadline).total_seconds() / 60)
            alerts.append(
                SlaAlert(
                    alert_type=SlaAlertType.SLA_OVERDUE,
                    step_id=step_id,
                    entity_id=owner_id,
                    step_name=name,
                    message=f"SLA overdue: '{name}' is {minutes} minutes past its deadline",
                    recipients=alert_recipients(step, entity, escalate=True),
                    minutes=minutes,
                    created_at=current,
                )
            )
            continue

        remaining = deadline - current
        if remaining > window:
            continue
        minutes = math.floor(remaining.total_seconds() / 60)
        if _recently_sent(history, step_id, SlaAlertType.SLA_WARNING, warning_since):
            continue
        alerts.append(
            SlaAlert(
                alert_type=SlaAlertType.SLA_WARNING,
                step_id=step_id,
                entity_id=owner_id,
                step_name=name,
                message=f"SLA warning: '{name}' is due in {minutes} minutes",
                recipients=alert_recipients(step, entity),
                minutes=minutes,
                created_at=current,
            )
        )
    return alerts


def build_delay_alert(step: Any, entity: Any = None, now: datetime | None = None) -> SlaAlert:
    """Signal for the reporting managers that a step was delayed."""
    name = read_field(step, "name", "")
    reason = read_field(step, "delay_reason")
    reason_text = str(getattr(reason, "value", reason) or "").replace("_", " ")
    recipients: list[AlertRecipient] = []
    _add_recipients(
        recipients, parse_name_list(read_field(entity, "reporting_managers")), AlertRecipientType.REPORTING
    )
    kind = _entity_kind(step) or EntityKind.FINOPS_TASK
    return SlaAlert(
        alert_type=SlaAlertType.STEP_DELAYED,
        step_id=read_field(step, "id"),
        entity_id=read_field(step, "entity_id", read_field(entity, "id")),
        entity_kind=kind,
        step_name=name,
        message=f"Step '{name}' delayed: {reason_text}" if reason_text else f"Step '{name}' delayed",
        recipients=recipients,
        created_at=ensure_aware(now) if now else utcnow(),
    )
