"""Tests for step activity logging."""

import pytest

from opsflow.core.errors import NotFoundError, TransientError
from opsflow.enums import EntityKind, StepActivityType
from opsflow.schemas import ActivityLogEntry, StepCreate
from opsflow.services import activity_service, step_service


@pytest.mark.asyncio
async def test_log_activity_stores_entry(store):
    entry = await activity_service.log_activity(
        store,
        EntityKind.LEAD,
        1,
        StepActivityType.CREATED,
        step_id=7,
        user_name="Ana Ruiz",
        details={"name": "Follow-up call"},
    )

    assert entry is not None
    assert entry.entity_kind == EntityKind.LEAD
    assert entry.step_id == 7
    assert entry.details == {"name": "Follow-up call"}


@pytest.mark.asyncio
async def test_list_activity_is_scoped_and_newest_first(store):
    await activity_service.log_activity(store, EntityKind.LEAD, 1, StepActivityType.CREATED)
    await activity_service.log_activity(store, EntityKind.LEAD, 1, StepActivityType.REORDERED)
    await activity_service.log_activity(store, EntityKind.LEAD, 2, StepActivityType.CREATED)
    await activity_service.log_activity(store, EntityKind.FUND_RAISE, 1, StepActivityType.CREATED)

    entries = await activity_service.list_activity(store, EntityKind.LEAD, 1)

    assert [entry.action for entry in entries] == [
        StepActivityType.REORDERED,
        StepActivityType.CREATED,
    ]


@pytest.mark.asyncio
async def test_list_activity_respects_limit(store):
    for _ in range(3):
        await activity_service.log_activity(store, EntityKind.LEAD, 1, StepActivityType.CREATED)

    assert len(await activity_service.list_activity(store, EntityKind.LEAD, 1, limit=2)) == 2


@pytest.mark.asyncio
async def test_transient_log_failure_is_warned_not_raised(store, monkeypatch, caplog):
    async def fail(entry):
        raise TransientError("Persistence API request timed out")

    monkeypatch.setattr(store, "append_activity", fail)

    result = await activity_service.log_activity(store, EntityKind.LEAD, 1, StepActivityType.DELETED)

    assert result is None
    assert "Activity log write failed" in caplog.text


@pytest.mark.asyncio
async def test_rejected_log_write_does_not_fail_a_completed_delete(store, lead, monkeypatch, caplog):
    step = await step_service.add_step(store, lead.id, EntityKind.LEAD, StepCreate(name="Follow-up call"))

    async def reject(entry):
        raise NotFoundError("no activity route")

    monkeypatch.setattr(store, "append_activity", reject)

    await step_service.delete_step(store, lead.id, EntityKind.LEAD, step.id)

    assert await store.get_step(EntityKind.LEAD, step.id) is None
    assert "Activity log write failed" in caplog.text


@pytest.mark.asyncio
async def test_unreadable_log_payload_is_warned_not_raised(store, monkeypatch):
    async def bad_payload(entry):
        return ActivityLogEntry.model_validate({"id": "not-an-id"})

    monkeypatch.setattr(store, "append_activity", bad_payload)

    result = await activity_service.log_activity(store, EntityKind.LEAD, 1, StepActivityType.REORDERED)

    assert result is None
