"""Typed errors raised by the step engine.

Every error carries a kind, a human-readable message and the offending id so
the presentation layer can render something sensible without re-deriving
context.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base exception for step engine errors."""

    kind = "engine_error"

    def __init__(self, message: str, *, offending_id: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.offending_id = offending_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "offending_id": self.offending_id,
        }


class ValidationError(EngineError):
    """Malformed input. Always raised before any mutation is attempted."""

    kind = "validation_error"


class NotFoundError(EngineError):
    """Referenced step/template/entity does not exist or is addressed under the wrong entity."""

    kind = "not_found"


class TransientError(EngineError):
    """Underlying persistence call failed (network, timeout, 5xx)."""

    kind = "transient_error"

    def __init__(
        self,
        message: str,
        *,
        offending_id: Any = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, offending_id=offending_id)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.status_code is not None:
            data["status_code"] = self.status_code
        return data
