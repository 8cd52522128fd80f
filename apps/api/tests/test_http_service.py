"""Tests for the HTTP retry helper and response error mapping."""

import httpx
import pytest

from opsflow.core.errors import NotFoundError, TransientError, ValidationError
from opsflow.services.http_service import (
    error_for_request_failure,
    error_for_response,
    raise_for_status,
    request_with_retries,
)


@pytest.mark.asyncio
async def test_request_with_retries_retries_on_status():
    req = httpx.Request("PUT", "http://persistence.test/api/leads/steps/1")
    responses = [
        httpx.Response(503, request=req),
        httpx.Response(200, json={"id": 1}, request=req),
    ]
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        return responses.pop(0)

    response = await request_with_retries(request_fn, max_attempts=2, base_delay=0, max_delay=0)

    assert calls["count"] == 2
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_request_with_retries_returns_last_retryable_response():
    req = httpx.Request("GET", "http://persistence.test/api/templates")
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        return httpx.Response(429, request=req)

    response = await request_with_retries(request_fn, max_attempts=3, base_delay=0, max_delay=0)

    assert calls["count"] == 3
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_request_with_retries_does_not_retry_validation_failures():
    req = httpx.Request("POST", "http://persistence.test/api/templates")
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        return httpx.Response(422, request=req)

    response = await request_with_retries(request_fn, max_attempts=3, base_delay=0, max_delay=0)

    assert calls["count"] == 1
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_request_with_retries_raises_after_max_attempts():
    req = httpx.Request("GET", "http://persistence.test/api/leads/1/steps")
    calls = {"count": 0}

    async def request_fn():
        calls["count"] += 1
        raise httpx.ConnectError("boom", request=req)

    with pytest.raises(httpx.RequestError):
        await request_with_retries(request_fn, max_attempts=2, base_delay=0, max_delay=0)

    assert calls["count"] == 2


def test_error_for_response_reads_message_field():
    error = error_for_response(
        httpx.Response(409, json={"message": "Template name already exists"}), offending_id=4
    )

    assert isinstance(error, ValidationError)
    assert error.message == "Template name already exists"
    assert error.offending_id == 4


def test_error_for_response_maps_missing_and_server_errors():
    assert isinstance(error_for_response(httpx.Response(404, json={"error": "gone"})), NotFoundError)

    error = error_for_response(httpx.Response(500, text="upstream exploded"))
    assert isinstance(error, TransientError)
    assert error.status_code == 500
    assert error.message == "upstream exploded"


def test_raise_for_status_passes_success_through():
    response = httpx.Response(201, json={"id": 1})

    assert raise_for_status(response) is response
    with pytest.raises(NotFoundError):
        raise_for_status(httpx.Response(404))


def test_error_for_request_failure_names_timeouts():
    req = httpx.Request("GET", "http://persistence.test/api/templates")

    timeout = error_for_request_failure(httpx.ReadTimeout("slow", request=req))
    network = error_for_request_failure(httpx.ConnectError("refused", request=req))

    assert "timed out" in timeout.message
    assert "ConnectError" in network.message
