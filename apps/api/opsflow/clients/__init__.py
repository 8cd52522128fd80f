"""Persistence clients for the step engine."""

from opsflow.clients.base import StepStore
from opsflow.clients.http_client import HttpStepStore
from opsflow.clients.memory import InMemoryStepStore
from opsflow.core.config import settings


def build_store() -> StepStore:
    """Remote store when a persistence API is configured, otherwise in-memory."""
    if settings.persistence_enabled:
        return HttpStepStore()
    return InMemoryStepStore()


__all__ = ["HttpStepStore", "InMemoryStepStore", "StepStore", "build_store"]
