"""Tests for read-time SLA and overdue derivation."""

from datetime import timedelta

import pytest

from opsflow.enums import EntityKind, SlaState, StepStatus
from opsflow.services import sla_service


def test_finops_subtask_past_sla_is_overdue_by_about_an_hour(make_step, now):
    step = make_step(
        status=StepStatus.IN_PROGRESS,
        started_at=now - timedelta(hours=2),
        sla_hours=1,
        sla_minutes=0,
    )

    snapshot = sla_service.derive_sla_state(step, now)

    assert snapshot.state == SlaState.OVERDUE
    assert snapshot.overdue_by == timedelta(hours=1)
    assert snapshot.minutes_overdue == 60
    assert sla_service.is_overdue(step, now)
    assert sla_service.overdue_by(step, now) == timedelta(hours=1)


def test_completed_subtask_is_never_overdue(make_step, now):
    step = make_step(
        status=StepStatus.COMPLETED,
        started_at=now - timedelta(days=3),
        completed_at=now - timedelta(days=1),
        due_at=now - timedelta(days=2),
        sla_hours=1,
        sla_minutes=0,
    )

    assert sla_service.derive_sla_state(step, now).state == SlaState.COMPLETED
    assert not sla_service.is_overdue(step, now)
    assert sla_service.overdue_by(step, now) is None


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (timedelta(minutes=10), SlaState.ON_TRACK),  # 50 minutes left
        (timedelta(minutes=45), SlaState.WARNING),  # exactly 15 minutes left
        (timedelta(minutes=59), SlaState.WARNING),
        (timedelta(minutes=60), SlaState.WARNING),  # deadline is now, not yet past
        (timedelta(minutes=61), SlaState.OVERDUE),
    ],
)
def test_warning_window_boundaries(make_step, now, elapsed, expected):
    step = make_step(status=StepStatus.IN_PROGRESS, started_at=now - elapsed, sla_hours=1, sla_minutes=0)

    assert sla_service.derive_sla_state(step, now).state == expected


def test_remaining_minutes_reported_for_on_track(make_step, now):
    step = make_step(status=StepStatus.IN_PROGRESS, started_at=now, sla_hours=2, sla_minutes=30)

    snapshot = sla_service.derive_sla_state(step, now)

    assert snapshot.state == SlaState.ON_TRACK
    assert snapshot.deadline == now + timedelta(hours=2, minutes=30)
    assert snapshot.minutes_remaining == 150


def test_unstarted_subtask_without_due_date_is_not_started(make_step, now):
    step = make_step(sla_hours=1, sla_minutes=0)

    assert sla_service.derive_sla_state(step, now).state == SlaState.NOT_STARTED
    assert not sla_service.is_overdue(step, now)


def test_subtask_without_sla_falls_back_to_due_date(make_step, now):
    step = make_step(status=StepStatus.IN_PROGRESS, started_at=now - timedelta(days=1), due_at=now - timedelta(minutes=5))

    snapshot = sla_service.derive_sla_state(step, now)

    assert snapshot.state == SlaState.OVERDUE
    assert snapshot.minutes_overdue == 5


def test_lead_steps_derive_overdue_from_due_date_only(make_step, now):
    started_long_ago = make_step(
        EntityKind.LEAD,
        status=StepStatus.IN_PROGRESS,
        started_at=now - timedelta(days=5),
        sla_hours=1,
        due_at=now + timedelta(days=1),
    )
    past_due = started_long_ago.model_copy(update={"due_at": now - timedelta(seconds=1)})

    assert sla_service.derive_sla_state(started_long_ago, now).state == SlaState.ON_TRACK
    assert not sla_service.is_overdue(started_long_ago, now)
    assert sla_service.is_overdue(past_due, now)


def test_due_soon_step_is_in_warning(make_step, now):
    step = make_step(EntityKind.FUND_RAISE, due_at=now + timedelta(minutes=10))

    assert sla_service.derive_sla_state(step, now).state == SlaState.WARNING
    assert sla_service.derive_sla_state(step, now, warning_minutes=5).state == SlaState.ON_TRACK


def test_stored_overdue_status_counts_for_finops(make_step, now):
    step = make_step(status=StepStatus.OVERDUE)

    assert sla_service.is_overdue(step, now)


def test_raw_dicts_and_string_timestamps_are_accepted(now):
    step = {
        "entity_kind": "finops_task",
        "status": "in_progress",
        "started_at": (now - timedelta(hours=2)).isoformat().replace("+00:00", "Z"),
        "sla_hours": "1",
        "sla_minutes": None,
    }

    snapshot = sla_service.derive_sla_state(step, now)

    assert snapshot.state == SlaState.OVERDUE
    assert snapshot.minutes_overdue == 60


@pytest.mark.parametrize(
    "step",
    [
        None,
        {},
        {"entity_kind": "finops_task", "started_at": "not a date", "sla_hours": 1},
        {"entity_kind": "finops_task", "started_at": "2025-01-15T10:00:00Z", "sla_hours": "soon"},
        {"due_at": 12.5e20},
    ],
)
def test_malformed_steps_degrade_to_not_started(step, now):
    assert sla_service.derive_sla_state(step, now).state == SlaState.NOT_STARTED
    assert not sla_service.is_overdue(step, now)


def test_zero_sla_means_no_sla(make_step, now):
    step = make_step(status=StepStatus.IN_PROGRESS, started_at=now - timedelta(hours=1), sla_hours=0, sla_minutes=0)

    assert sla_service.sla_deadline(step) is None
    assert sla_service.derive_sla_state(step, now).state == SlaState.NOT_STARTED


def test_finops_due_date_before_sla_deadline_wins(make_step, now):
    step = make_step(
        status=StepStatus.IN_PROGRESS,
        started_at=now - timedelta(minutes=10),
        sla_hours=2,
        sla_minutes=0,
        due_at=now - timedelta(hours=1),
    )

    snapshot = sla_service.derive_sla_state(step, now)

    assert snapshot.state == SlaState.OVERDUE
    assert snapshot.deadline == now - timedelta(hours=1)
    assert sla_service.is_overdue(step, now)
    assert sla_service.overdue_by(step, now) == timedelta(hours=1)


def test_finops_sla_deadline_before_due_date_wins(make_step, now):
    step = make_step(
        status=StepStatus.IN_PROGRESS,
        started_at=now - timedelta(minutes=50),
        sla_hours=1,
        sla_minutes=0,
        due_at=now + timedelta(days=1),
    )

    assert sla_service.derive_sla_state(step, now).state == SlaState.WARNING


def test_stored_overdue_status_reads_as_overdue_state(make_step, now):
    step = make_step(
        status=StepStatus.OVERDUE,
        started_at=now - timedelta(minutes=10),
        sla_hours=2,
        sla_minutes=0,
    )

    snapshot = sla_service.derive_sla_state(step, now)

    assert snapshot.state == SlaState.OVERDUE
    assert sla_service.is_overdue(step, now)
    assert sla_service.overdue_by(step, now) == timedelta(0)
