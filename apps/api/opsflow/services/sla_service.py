"""Read-time SLA and overdue derivation for step instances.

Nothing here mutates stored state; every function is a pure computation over
timestamps, and malformed records degrade to NOT_STARTED instead of raising.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from opsflow.core.config import settings
from opsflow.enums import EntityKind, SlaState, StepStatus
from opsflow.utils.datetime_parsing import coerce_datetime, ensure_aware, utcnow
from opsflow.utils.fields import read_field, read_number, read_status


@dataclass(frozen=True)
class SlaSnapshot:
    state: SlaState
    deadline: datetime | None = None
    remaining: timedelta | None = None
    overdue_by: timedelta | None = None

    @property
    def is_overdue(self) -> bool:
        return self.state == SlaState.OVERDUE

    @property
    def minutes_remaining(self) -> int | None:
        if self.remaining is None:
            return None
        return math.floor(self.remaining.total_seconds() / 60)

    @property
    def minutes_overdue(self) -> int | None:
        if self.overdue_by is None:
            return None
        return math.floor(self.overdue_by.total_seconds() / 60)


def sla_duration(step: Any) -> timedelta | None:
    """SLA hours + minutes, or None when the step carries no SLA."""
    hours = read_field(step, "sla_hours")
    minutes = read_field(step, "sla_minutes")
    if hours is None and minutes is None:
        return None
    total_minutes = read_number(step, "sla_hours") * 60 + read_number(step, "sla_minutes")
    if total_minutes <= 0:
        return None
    return timedelta(minutes=total_minutes)


def sla_deadline(step: Any) -> datetime | None:
    started_at = coerce_datetime(read_field(step, "started_at"))
    duration = sla_duration(step)
    if started_at is None or duration is None:
        return None
    return started_at + duration


def _is_finops(step: Any) -> bool:
    kind = read_field(step, "entity_kind")
    return getattr(kind, "value", kind) == EntityKind.FINOPS_TASK.value


def _window(deadline: datetime, now: datetime, warning: timedelta) -> SlaSnapshot:
    if deadline < now:
        return SlaSnapshot(SlaState.OVERDUE, deadline=deadline, overdue_by=now - deadline)
    remaining = deadline - now
    state = SlaState.WARNING if remaining <= warning else SlaState.ON_TRACK
    return SlaSnapshot(state, deadline=deadline, remaining=remaining)


def derive_sla_state(
    step: Any,
    now: datetime | None = None,
    *,
    warning_minutes: int | None = None,
) -> SlaSnapshot:
    """
    Derive the SLA state of a step at ``now``.

    FinOps subtasks measure from the earlier of ``started_at + SLA`` and
    ``due_at``, and a stored overdue status always reads as OVERDUE. Other
    steps measure from ``due_at`` with the same warning window. Completed
    steps are never overdue.
    """
    current = ensure_aware(now) if now else utcnow()
    warning = timedelta(minutes=warning_minutes if warning_minutes is not None else settings.SLA_WARNING_MINUTES)
    status = read_status(step)

    if status == StepStatus.COMPLETED.value:
        return SlaSnapshot(SlaState.COMPLETED)

    deadlines = [coerce_datetime(read_field(step, "due_at"))]
    if _is_finops(step):
        deadlines.append(sla_deadline(step))
    deadlines = [deadline for deadline in deadlines if deadline is not None]
    deadline = min(deadlines) if deadlines else None

    snapshot = _window(deadline, current, warning) if deadline else SlaSnapshot(SlaState.NOT_STARTED)
    if _is_finops(step) and status == StepStatus.OVERDUE.value and not snapshot.is_overdue:
        return SlaSnapshot(SlaState.OVERDUE, deadline=deadline, overdue_by=timedelta(0))
    return snapshot


def is_overdue(step: Any, now: datetime | None = None) -> bool:
    """
    True when a step is not completed and past its due date (or, for FinOps
    subtasks, past its SLA deadline or stored as overdue).
    """
    return derive_sla_state(step, now).is_overdue


def overdue_by(step: Any, now: datetime | None = None) -> timedelta | None:
    """How far past its deadline a step is, or None if it is not overdue."""
    snapshot = derive_sla_state(step, now)
    return snapshot.overdue_by if snapshot.is_overdue else None
