"""REST/JSON persistence client for the step engine."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from opsflow.core.config import settings
from opsflow.core.errors import NotFoundError, TransientError
from opsflow.enums import EntityKind, StepStatus
from opsflow.schemas import (
    ActivityLogCreate,
    ActivityLogEntry,
    BatchCreateResult,
    FailedStep,
    StepCreate,
    StepInstanceBase,
    Template,
    TemplateCategory,
    TemplateCreate,
    TemplateStepCreate,
    parse_step,
    parse_steps,
)
from opsflow.services import http_service

logger = logging.getLogger(__name__)

KIND_PATHS: dict[EntityKind, str] = {
    EntityKind.LEAD: "leads",
    EntityKind.FUND_RAISE: "fund-raises",
    EntityKind.FINOPS_TASK: "finops-tasks",
}


def kind_path(kind: EntityKind | str) -> str:
    return KIND_PATHS[EntityKind(kind)]


class HttpStepStore:
    """
    StepStore talking to the persistence API.

    Missing records (404) on lookups come back as None; every other non-2xx
    response is raised as a typed engine error.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.persistence_base_url).rstrip("/")
        self.max_attempts = max_attempts or settings.PERSISTENCE_MAX_ATTEMPTS
        headers = {"Accept": "application/json"}
        bearer = token if token is not None else settings.PERSISTENCE_API_TOKEN
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.REQUEST_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpStepStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        offending_id: Any = None,
        **kwargs: Any,
    ) -> Any:
        async def _send() -> httpx.Response:
            return await self._client.request(method, path, **kwargs)

        try:
            response = await http_service.request_with_retries(_send, max_attempts=self.max_attempts)
        except httpx.RequestError as exc:
            logger.warning("Persistence API %s %s failed", method, path, exc_info=exc)
            raise http_service.error_for_request_failure(exc, offending_id=offending_id) from exc

        http_service.raise_for_status(response, offending_id=offending_id)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Persistence API %s %s returned a non-JSON body", method, path)
            raise TransientError(
                "Persistence API returned an unreadable payload", offending_id=offending_id
            ) from exc

    async def _get_or_none(self, path: str, *, offending_id: Any = None, **kwargs: Any) -> Any:
        try:
            return await self._request("GET", path, offending_id=offending_id, **kwargs)
        except NotFoundError:
            return None

    # Templates

    async def get_template(self, template_id: int) -> Template | None:
        data = await self._get_or_none(f"/templates/{template_id}", offending_id=template_id)
        return _validate(Template, data, template_id) if data else None

    async def list_templates(
        self, *, category_id: int | None = None, include_inactive: bool = False
    ) -> list[Template]:
        params: dict[str, Any] = {}
        if category_id is not None:
            params["category_id"] = category_id
        if include_inactive:
            params["include_inactive"] = "true"
        data = await self._request("GET", "/templates", params=params)
        return [_validate(Template, item) for item in _items(data)]

    async def create_template(self, data: TemplateCreate) -> Template:
        payload = await self._request("POST", "/templates", json=data.model_dump(mode="json"))
        return _validate(Template, payload)

    async def update_template(
        self,
        template_id: int,
        fields: dict[str, Any],
        steps: list[TemplateStepCreate] | None = None,
    ) -> Template | None:
        body = dict(fields)
        if steps is not None:
            body["steps"] = [step.model_dump(mode="json") for step in steps]
        try:
            payload = await self._request(
                "PUT",
                f"/templates/{template_id}",
                offending_id=template_id,
                json=_jsonable(body),
            )
        except NotFoundError:
            return None
        return _validate(Template, payload, template_id)

    async def list_categories(self) -> list[TemplateCategory]:
        data = await self._request("GET", "/templates/categories")
        return [_validate(TemplateCategory, item) for item in _items(data)]

    # Step instances

    async def list_steps(self, kind: EntityKind, entity_id: int) -> list[StepInstanceBase]:
        data = await self._request("GET", f"/{kind_path(kind)}/{entity_id}/steps", offending_id=entity_id)
        return parse_steps(_items(data), kind)

    async def get_step(self, kind: EntityKind, step_id: int) -> StepInstanceBase | None:
        data = await self._get_or_none(f"/{kind_path(kind)}/steps/{step_id}", offending_id=step_id)
        return parse_step(data, kind) if data else None

    async def create_steps(
        self, kind: EntityKind, entity_id: int, drafts: list[StepCreate]
    ) -> BatchCreateResult:
        payload = await self._request(
            "POST",
            f"/{kind_path(kind)}/{entity_id}/steps/batch",
            offending_id=entity_id,
            json={"steps": [_draft_body(draft) for draft in drafts]},
        )
        payload = payload or {}
        if not isinstance(payload, dict):
            raise TransientError("Persistence API returned an unreadable batch result", offending_id=entity_id)
        failed = []
        for item in _items(payload.get("failed")):
            index = item.get("index") if isinstance(item, dict) else None
            if isinstance(index, int) and 0 <= index < len(drafts):
                failed.append(FailedStep(index=index, draft=drafts[index], error=str(item.get("error", ""))))
        return BatchCreateResult(
            created=parse_steps(_items(payload.get("created")), kind),
            failed=failed,
        )

    async def update_step(
        self, kind: EntityKind, step_id: int, fields: dict[str, Any]
    ) -> StepInstanceBase | None:
        try:
            data = await self._request(
                "PUT",
                f"/{kind_path(kind)}/steps/{step_id}",
                offending_id=step_id,
                json=_jsonable(fields),
            )
        except NotFoundError:
            return None
        return parse_step(data, kind) if data else None

    async def reorder_steps(self, kind: EntityKind, entity_id: int, ordered_ids: list[int]) -> None:
        await self._request(
            "PUT",
            f"/{kind_path(kind)}/{entity_id}/steps/reorder",
            offending_id=entity_id,
            json={
                "stepOrders": [
                    {"id": step_id, "order_index": position}
                    for position, step_id in enumerate(ordered_ids, start=1)
                ]
            },
        )

    async def delete_step(self, kind: EntityKind, step_id: int) -> bool:
        try:
            await self._request("DELETE", f"/{kind_path(kind)}/steps/{step_id}", offending_id=step_id)
        except NotFoundError:
            return False
        return True

    async def list_assigned_steps(self, user_name: str) -> list[StepInstanceBase]:
        data = await self._request("GET", "/steps/assigned", params={"user_name": user_name})
        return parse_steps(_items(data))

    # Activity log

    async def append_activity(self, entry: ActivityLogCreate) -> ActivityLogEntry:
        data = await self._request(
            "POST",
            f"/{kind_path(entry.entity_kind)}/{entry.entity_id}/activity",
            offending_id=entry.step_id,
            json=entry.model_dump(mode="json"),
        )
        return _validate(ActivityLogEntry, data, entry.step_id)

    async def list_activity(
        self, kind: EntityKind, entity_id: int, *, limit: int = 50
    ) -> list[ActivityLogEntry]:
        data = await self._request(
            "GET",
            f"/{kind_path(kind)}/{entity_id}/activity",
            offending_id=entity_id,
            params={"limit": limit},
        )
        return [_validate(ActivityLogEntry, item) for item in _items(data)]


def _jsonable(fields: dict[str, Any]) -> dict[str, Any]:
    """Serialize enums and datetimes in a partial update body."""
    body: dict[str, Any] = {}
    for key, value in fields.items():
        if hasattr(value, "isoformat"):
            body[key] = value.isoformat()
        elif hasattr(value, "value") and isinstance(value.value, str):
            body[key] = value.value
        else:
            body[key] = value
    return body


def _validate(model: type[BaseModel], data: Any, offending_id: Any = None) -> Any:
    """Validate a response record, surfacing a malformed one as a transient error."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        logger.warning("Persistence API returned an invalid %s: %s", model.__name__, exc)
        raise TransientError(
            f"Persistence API returned an invalid {model.__name__} payload", offending_id=offending_id
        ) from exc


def _items(data: Any) -> list[Any]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise TransientError("Persistence API returned an unexpected payload shape")
    return data


def _draft_body(draft: StepCreate) -> dict[str, Any]:
    return {**draft.model_dump(mode="json"), "status": StepStatus.PENDING.value}
