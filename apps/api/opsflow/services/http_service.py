"""HTTP helpers for the persistence API: retry/backoff and error mapping."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

import httpx

from opsflow.core.errors import EngineError, NotFoundError, TransientError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {408, 429, 500, 502, 503, 504}
VALIDATION_STATUSES = {400, 409, 422}


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 1,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
) -> httpx.Response:
    """
    Execute an HTTP request with exponential backoff retries.

    Defaults to a single attempt: callers opt in to retries explicitly.
    """
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES
    attempts = max(1, max_attempts)

    for attempt in range(attempts):
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if attempt >= attempts - 1:
                raise
            delay = _backoff(attempt, base_delay, max_delay)
            logger.warning("HTTP request failed, retrying", exc_info=exc)
            if delay:
                await asyncio.sleep(delay)
            continue

        if response.status_code in statuses and attempt < attempts - 1:
            delay = _backoff(attempt, base_delay, max_delay)
            logger.warning("HTTP request returned %s, retrying", response.status_code)
            if delay:
                await asyncio.sleep(delay)
            continue

        return response

    return response


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay = delay + random.uniform(0, delay / 2)
    return delay


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    text = response.text.strip()
    return text[:200] if text else f"HTTP {response.status_code}"


def error_for_response(response: httpx.Response, *, offending_id: Any = None) -> EngineError:
    """Map a non-2xx persistence response to a typed engine error."""
    status = response.status_code
    message = _error_message(response)
    if status == 404:
        return NotFoundError(message, offending_id=offending_id)
    if status in VALIDATION_STATUSES:
        return ValidationError(message, offending_id=offending_id)
    return TransientError(message, offending_id=offending_id, status_code=status)


def raise_for_status(response: httpx.Response, *, offending_id: Any = None) -> httpx.Response:
    if response.is_success:
        return response
    raise error_for_response(response, offending_id=offending_id)


def error_for_request_failure(exc: httpx.RequestError, *, offending_id: Any = None) -> TransientError:
    """Network failures and client-side timeouts surface as transient errors."""
    if isinstance(exc, httpx.TimeoutException):
        message = "Persistence API request timed out"
    else:
        message = f"Persistence API request failed: {exc.__class__.__name__}"
    return TransientError(message, offending_id=offending_id)
