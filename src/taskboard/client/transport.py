"""Async HTTP client for the board API."""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional

import httpx
from loguru import logger

from ..board.model import Task, TaskStatus
from ..board.ordering import ReorderItem
from ..errors import error_for_status


def _jsonable(changes: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in changes.items()}


class BoardApiClient:
    """Thin wrapper over :class:`httpx.AsyncClient` that speaks the board API.

    Non-2xx responses are raised as the matching :class:`BoardError`
    subclass; transport failures surface as ``httpx.HTTPError``.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        token: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    async def __aenter__(self) -> "BoardApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._client.request(method, url, headers=self._headers, **kwargs)
        if response.is_success:
            return response.json()
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("error")
        else:
            # Proxies and gateways answer with HTML or bare JSON values.
            message = response.text or None
        logger.warning("{} {} failed with {}: {}", method, url, response.status_code, message)
        raise error_for_status(response.status_code, message)

    # -- endpoints ----------------------------------------------------------

    async def fetch_board(self, project_id: str) -> list[Task]:
        data = await self._request("GET", f"/projects/{project_id}/board")
        return [Task.from_dict(d) for d in data.get("tasks", [])]

    async def update_order(self, project_id: str, items: Iterable[ReorderItem]) -> dict[str, Any]:
        body = {"tasks": [item.to_dict() for item in items], "projectId": project_id}
        return await self._request("POST", "/tasks/update-order", json=body)

    async def patch_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        data = await self._request("PATCH", f"/tasks/{task_id}", json=_jsonable(changes))
        return Task.from_dict(data["task"])

    async def delete_task(self, task_id: str) -> Task:
        data = await self._request("DELETE", f"/tasks/{task_id}")
        return Task.from_dict(data["task"])

    async def create_task(
        self,
        project_id: str,
        title: str,
        status: TaskStatus = TaskStatus.TODO,
        **fields: Any,
    ) -> Task:
        body = _jsonable({"title": title, "status": status, **fields})
        data = await self._request("POST", f"/projects/{project_id}/tasks", json=body)
        return Task.from_dict(data["task"])
