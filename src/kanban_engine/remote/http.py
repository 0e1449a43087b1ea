"""HTTP JSON client for the remote store.

Every endpoint answers ``{...payload}`` with a 2xx status or ``{"error": str}``
otherwise.  Non-2xx answers become :class:`RemoteFailure` (``NotFound`` for
404) and transport problems become :class:`NetworkFailure`.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import httpx
from loguru import logger

from ..constants import DEFAULT_BASE_URL, DEFAULT_HTTP_TIMEOUT
from ..domain.models import Member, ProjectRole, ProjectSnapshot, Task, parse_role
from ..errors import NetworkFailure, NotFound, RemoteFailure
from .base import RemoteStore
from .models import (
    CreateTaskRequest,
    MoveTaskRequest,
    RejectTaskRequest,
    ReorderRequest,
    UpdateTaskRequest,
    wire_fields,
)


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        err = body.get("error") or body.get("detail")
        if isinstance(err, str) and err:
            return err
    return None


class HttpRemoteStore(RemoteStore):
    """:class:`RemoteStore` over ``httpx.AsyncClient``.

    Usage::

        store = HttpRemoteStore("http://127.0.0.1:8000")
        snapshot = await store.fetch_project("proj-1")
        await store.close()

    Pass ``transport=httpx.ASGITransport(app=app)`` to talk to an in-process
    ASGI app instead of the network.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers=headers,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpRemoteStore":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _request(self, method: str, path: str, *, json: Any = None) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TransportError as exc:
            logger.warning("{} {} failed: {}", method, path, exc)
            raise NetworkFailure(str(exc) or exc.__class__.__name__) from exc

        if response.status_code == 404:
            raise NotFound(_error_message(response))
        if response.is_error:
            message = _error_message(response)
            logger.debug("{} {} -> {} {}", method, path, response.status_code, message)
            raise RemoteFailure(message, response.status_code)
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteFailure(None, response.status_code) from exc
        return body if isinstance(body, dict) else {"data": body}

    @staticmethod
    def _task(body: dict[str, Any]) -> Task:
        row = body.get("task") if isinstance(body.get("task"), dict) else body
        return Task.from_dict(row)

    # -- reads --------------------------------------------------------------

    async def fetch_project(self, project_id: str) -> ProjectSnapshot:
        body = await self._request("GET", f"/projects/{project_id}")
        return ProjectSnapshot.from_payload(body)

    async def fetch_members(self, project_id: str) -> tuple[list[Member], Optional[ProjectRole]]:
        body = await self._request("GET", f"/projects/{project_id}/members")
        members = [Member.from_dict(m) for m in list(body.get("members") or []) if isinstance(m, dict)]
        return members, parse_role(body.get("currentUserRole"))

    # -- writes -------------------------------------------------------------

    async def create_task(self, project_id: str, stage_id: str, fields: dict[str, Any]) -> Task:
        payload = {k: v for k, v in wire_fields(fields).items() if v is not None}
        payload.pop("stage_id", None)
        payload.pop("project_id", None)
        req = CreateTaskRequest(project_id=project_id, stage_id=stage_id, **payload)
        body = await self._request("POST", "/tasks", json=req.model_dump())
        return self._task(body)

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> Task:
        req = UpdateTaskRequest(**wire_fields(fields))
        body = await self._request("PATCH", f"/tasks/{task_id}", json=req.model_dump(exclude_unset=True))
        return self._task(body)

    async def move_task(self, task_id: str, stage_id: str, position: int) -> Task:
        req = MoveTaskRequest(stage_id=stage_id, position=position)
        body = await self._request("POST", f"/tasks/{task_id}/move", json=req.model_dump())
        return self._task(body)

    async def reorder(self, project_id: str, stage_id: str, ordered_task_ids: Sequence[str]) -> None:
        req = ReorderRequest(stage_id=stage_id, ordered_task_ids=list(ordered_task_ids))
        await self._request("POST", f"/projects/{project_id}/reorder", json=req.model_dump())

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")

    async def approve_task(self, task_id: str) -> Task:
        body = await self._request("POST", f"/tasks/{task_id}/approve")
        return self._task(body)

    async def reject_task(
        self, task_id: str, return_stage_id: Optional[str] = None, reason: Optional[str] = None
    ) -> Task:
        req = RejectTaskRequest(returnStageId=return_stage_id, reason=reason)
        body = await self._request("DELETE", f"/tasks/{task_id}/approve", json=req.model_dump(exclude_none=True))
        return self._task(body)
