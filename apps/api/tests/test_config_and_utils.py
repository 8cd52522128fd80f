"""Tests for settings, logging context and data coercion helpers."""

import logging
from datetime import date, datetime, timezone

import pytest

from opsflow.core.config import Settings
from opsflow.core.errors import NotFoundError, TransientError, ValidationError
from opsflow.core.structured_logging import build_log_context, configure_logging
from opsflow.utils.datetime_parsing import coerce_datetime
from opsflow.utils.normalization import normalize_name, normalize_search_text, parse_name_list


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("NOTIFICATION_POLL_INTERVAL_SECONDS", raising=False)
    monkeypatch.delenv("PERSISTENCE_API_URL", raising=False)

    config = Settings(_env_file=None)

    assert config.REQUEST_TIMEOUT_SECONDS == 10.0
    assert config.NOTIFICATION_POLL_INTERVAL_SECONDS == 120
    assert config.SLA_WARNING_MINUTES == 15
    assert config.OVERDUE_NOTIFICATION_ID_OFFSET == 1000
    assert config.PERSISTENCE_MAX_ATTEMPTS == 1
    assert config.persistence_enabled is False


@pytest.mark.parametrize("raw, expected", [("5", 30), ("60", 60), ("900", 120)])
def test_poll_interval_is_clamped(monkeypatch, raw, expected):
    monkeypatch.setenv("NOTIFICATION_POLL_INTERVAL_SECONDS", raw)

    assert Settings(_env_file=None).NOTIFICATION_POLL_INTERVAL_SECONDS == expected


def test_persistence_url_is_normalized(monkeypatch):
    monkeypatch.setenv("PERSISTENCE_API_URL", " https://ops.example.com/api/ ")

    config = Settings(_env_file=None)

    assert config.persistence_enabled is True
    assert config.persistence_base_url == "https://ops.example.com/api"


def test_build_log_context_only_includes_provided_fields():
    assert build_log_context() == {}
    assert build_log_context(entity_kind="lead", entity_id=0, step_id=None, user_name="") == {
        "entity_kind": "lead",
        "entity_id": 0,
    }


def test_configure_logging_accepts_lowercase_level(monkeypatch):
    called = {}

    def fake_basic_config(**kwargs):
        called.update(kwargs)

    monkeypatch.setattr(logging, "basicConfig", fake_basic_config)

    configure_logging("debug")

    assert called["level"] == "DEBUG"
    assert "%(name)s" in called["format"]


def test_error_to_dict_carries_kind_message_and_id():
    assert ValidationError("bad status", offending_id=3).to_dict() == {
        "kind": "validation_error",
        "message": "bad status",
        "offending_id": 3,
    }
    assert NotFoundError("missing").to_dict()["kind"] == "not_found"
    assert TransientError("down", status_code=503).to_dict()["status_code"] == 503


@pytest.mark.parametrize(
    "value, expected",
    [
        (["Ana Ruiz", " Ben  Ode ", "", "Ana Ruiz"], ["Ana Ruiz", "Ben Ode"]),
        ('["Ana Ruiz", "Cara Lee"]', ["Ana Ruiz", "Cara Lee"]),
        ('{"Ana Ruiz","Dev Shah"}', ["Ana Ruiz", "Dev Shah"]),
        ("{}", []),
        ("Ana Ruiz, Ben Ode", ["Ana Ruiz", "Ben Ode"]),
        ("Ana Ruiz", ["Ana Ruiz"]),
        ('"quoted"', ['"quoted"']),
        (None, []),
        (42, []),
    ],
)
def test_parse_name_list(value, expected):
    assert parse_name_list(value) == expected


def test_name_normalization():
    assert normalize_name("  Ana   Ruiz ") == "Ana Ruiz"
    assert normalize_name("   ") is None
    assert normalize_search_text("  Crème  Brûlée ") == "creme brulee"
    assert normalize_search_text(None) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2025-01-15T12:00:00Z", datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)),
        ("2025-01-15 12:00", datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)),
        ("2025/01/15", datetime(2025, 1, 15, tzinfo=timezone.utc)),
        (date(2025, 1, 15), datetime(2025, 1, 15, tzinfo=timezone.utc)),
        (datetime(2025, 1, 15, 12, 0), datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)),
        (1736942400, datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)),
        ("1736942400000", datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)),
        ("", None),
        ("yesterday", None),
        (True, None),
        ([], None),
    ],
)
def test_coerce_datetime(raw, expected):
    assert coerce_datetime(raw) == expected


@pytest.mark.asyncio
async def test_build_store_falls_back_to_memory(monkeypatch):
    from opsflow.clients import HttpStepStore, InMemoryStepStore, build_store
    from opsflow.core.config import settings

    monkeypatch.setattr(settings, "PERSISTENCE_API_URL", "")
    assert isinstance(build_store(), InMemoryStepStore)

    monkeypatch.setattr(settings, "PERSISTENCE_API_URL", "http://persistence.test")
    remote = build_store()
    assert isinstance(remote, HttpStepStore)
    await remote.aclose()
