from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from ..domain.models import Member, ProjectRole, ProjectSnapshot, Task


class RemoteStore(ABC):
    """The shared authoritative store the board reads from and writes to.

    Every method raises :class:`~kanban_engine.errors.RemoteFailure` (or its
    ``NotFound`` subclass) for a non-2xx answer and
    :class:`~kanban_engine.errors.NetworkFailure` when no answer arrives.
    """

    @abstractmethod
    async def fetch_project(self, project_id: str) -> ProjectSnapshot:
        raise NotImplementedError

    @abstractmethod
    async def fetch_members(self, project_id: str) -> tuple[list[Member], Optional[ProjectRole]]:
        raise NotImplementedError

    @abstractmethod
    async def create_task(self, project_id: str, stage_id: str, fields: dict[str, Any]) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def update_task(self, task_id: str, fields: dict[str, Any]) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def move_task(self, task_id: str, stage_id: str, position: int) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def reorder(self, project_id: str, stage_id: str, ordered_task_ids: Sequence[str]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_task(self, task_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def approve_task(self, task_id: str) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def reject_task(
        self, task_id: str, return_stage_id: Optional[str] = None, reason: Optional[str] = None
    ) -> Task:
        raise NotImplementedError

    async def close(self) -> None:
        return None
