"""Shared fixtures: an in-memory fake remote store and task factories."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from kanban_engine.domain.models import Member, Project, ProjectRole, ProjectSnapshot, Stage, Task
from kanban_engine.errors import NotFound
from kanban_engine.notifications import NotificationManager
from kanban_engine.remote.base import RemoteStore

STAGES = (
    Stage("todo", "To Do", ordinal=0),
    Stage("doing", "Doing", ordinal=1),
    Stage("done", "Done", ordinal=2),
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_task(task_id: str, stage_id: str = "todo", **fields: Any) -> Task:
    return Task(id=task_id, project_id="p1", stage_id=stage_id, title=fields.pop("title", task_id), **fields)


def make_snapshot(columns: dict[str, list[Task]], role: Optional[ProjectRole] = "member") -> ProjectSnapshot:
    project = Project(id="p1", name="Project One", stages=STAGES, role=role)
    return ProjectSnapshot(project=project, tasks_by_stage={sid: list(tasks) for sid, tasks in columns.items()})


class FakeRemote(RemoteStore):
    """Records every call; failures and pauses are programmed per operation."""

    def __init__(self, snapshot: Optional[ProjectSnapshot] = None) -> None:
        self.snapshot = snapshot
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[tuple[str, Optional[str]], Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self._next_id = 0

    def fail(self, operation: str, exc: Exception, task_id: Optional[str] = None) -> None:
        self.failures[(operation, task_id)] = exc

    def hold(self, operation: str) -> asyncio.Event:
        """Pause *operation* until the returned event is set."""
        gate = asyncio.Event()
        self.gates[operation] = gate
        return gate

    async def _call(self, operation: str, task_id: Optional[str], *args: Any) -> None:
        self.calls.append((operation, task_id, *args))
        gate = self.gates.get(operation)
        if gate is not None:
            await gate.wait()
        exc = self.failures.pop((operation, task_id), None) or self.failures.pop((operation, None), None)
        if exc is not None:
            raise exc

    async def fetch_project(self, project_id: str) -> ProjectSnapshot:
        await self._call("fetch", None, project_id)
        if self.snapshot is None:
            raise NotFound("Project not found")
        return self.snapshot

    async def fetch_members(self, project_id: str) -> tuple[list[Member], Optional[ProjectRole]]:
        await self._call("members", None, project_id)
        if self.snapshot is None:
            raise NotFound("Project not found")
        return list(self.snapshot.project.members), self.snapshot.project.role

    async def create_task(self, project_id: str, stage_id: str, fields: dict[str, Any]) -> Task:
        await self._call("create", None, stage_id, dict(fields))
        self._next_id += 1
        data = dict(fields, id=f"task-{self._next_id}", project_id=project_id, stage_id=stage_id)
        return Task.from_dict(data)

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> Task:
        await self._call("update", task_id, dict(fields))
        return Task.from_dict(dict(fields, id=task_id, project_id="p1"))

    async def move_task(self, task_id: str, stage_id: str, position: int) -> Task:
        await self._call("move", task_id, stage_id, position)
        return Task(id=task_id, project_id="p1", stage_id=stage_id, position=position)

    async def reorder(self, project_id: str, stage_id: str, ordered_task_ids: list[str]) -> None:
        await self._call("reorder", None, stage_id, list(ordered_task_ids))

    async def delete_task(self, task_id: str) -> None:
        await self._call("delete", task_id)

    async def approve_task(self, task_id: str) -> Task:
        await self._call("approve", task_id)
        return Task(id=task_id, project_id="p1", stage_id="done", approval_status="approved")

    async def reject_task(
        self, task_id: str, return_stage_id: Optional[str] = None, reason: Optional[str] = None
    ) -> Task:
        await self._call("reject", task_id, return_stage_id, reason)
        return Task(id=task_id, project_id="p1", stage_id=return_stage_id or "todo", approval_status="rejected")


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def notifier() -> NotificationManager:
    return NotificationManager()
