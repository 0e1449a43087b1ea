"""Board session: everything one mounted project board needs, wired together.

A session owns the per-project pieces (task store, permission gate, mutation
coordinator, realtime reconciler, drag controller) and borrows the
process-wide ones (subscription manager, scroll lock).  Mount it when the
board page opens and unmount it when the viewer navigates away.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, Optional

from loguru import logger

from ..config import EngineSettings
from ..constants import PROJECT_LIST_ROUTE
from ..domain.forms import validate_task_fields
from ..domain.models import Project, ProjectSnapshot, Task
from ..dnd.controller import DragController
from ..dnd.scroll_lock import BodyScrollLock
from ..errors import KanbanError, NotFound
from ..notifications import NotificationManager
from ..realtime.manager import SubscriptionManager, get_subscription_manager
from ..remote.base import RemoteStore
from .coordinator import MutationCoordinator
from .intents import (
    ApproveTask,
    BulkDelete,
    BulkMove,
    ChangeColor,
    CreateTask,
    DeleteTask,
    DuplicateTask,
    Intent,
    MoveTask,
    RejectTask,
    ReorderStage,
    SortKey,
    SortStage,
    UpdateTask,
)
from .permissions import PermissionGate, ProjectPermissions
from .reconciler import RealtimeReconciler
from .state import BoardState
from .store import TaskStore
from .views import board_counts, find_done_stage, pending_approval_view

Navigate = Callable[[str], None]


class BoardSession:
    """One project board from initial load to teardown.

    Usage::

        session = BoardSession(remote, notifier=notifier, navigate=router.push)
        if await session.mount("project-1"):
            session.move_task("task-1", "doing", 0)
        session.unmount()
    """

    def __init__(
        self,
        remote: RemoteStore,
        *,
        settings: Optional[EngineSettings] = None,
        notifier: Optional[NotificationManager] = None,
        manager: Optional[SubscriptionManager] = None,
        scroll_lock: Optional[BodyScrollLock] = None,
        navigate: Optional[Navigate] = None,
        vibrate: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.remote = remote
        self.settings = settings or EngineSettings()
        self.notifier = notifier or NotificationManager()
        self._manager = manager
        self.scroll_lock = scroll_lock
        self.navigate = navigate
        self.vibrate = vibrate

        self.project: Optional[Project] = None
        self.store: Optional[TaskStore] = None
        self.gate = PermissionGate()
        self.coordinator: Optional[MutationCoordinator] = None
        self.reconciler: Optional[RealtimeReconciler] = None
        self.controller: Optional[DragController] = None
        self.show_pending_only = False

    # -- lifecycle ----------------------------------------------------------

    @property
    def mounted(self) -> bool:
        return self.store is not None

    async def mount(self, project_id: str) -> bool:
        """Load *project_id* and go live.

        Returns ``False`` when the project could not be loaded; a missing
        project also sends the viewer back to the project list.
        """
        if self.mounted:
            self.unmount()
        try:
            snapshot = await self.remote.fetch_project(project_id)
        except NotFound:
            logger.info("Project {} not found; leaving board", project_id)
            self.notifier.notify_error("Project not found")
            if self.navigate is not None:
                self.navigate(PROJECT_LIST_ROUTE)
            return False
        except KanbanError as exc:
            logger.warning("Failed to load project {}: {}", project_id, exc)
            self.notifier.notify_error("Failed to load project")
            return False

        project = snapshot.project
        settings = self.settings
        self.project = project
        self.store = TaskStore(project.stage_ids)
        self.coordinator = MutationCoordinator(
            self.store,
            self.remote,
            self.gate,
            self.notifier,
            project_id=project_id,
            return_stage_id=settings.return_stage_id,
            timeout=settings.timeout,
        )
        self.reconciler = RealtimeReconciler(
            project_id,
            self.remote,
            self.coordinator,
            self.gate,
            self._manager or get_subscription_manager(),
            debounce_seconds=settings.debounce_seconds,
            on_snapshot=self._on_snapshot,
        )
        self.controller = DragController(
            lambda: self.state,
            self.coordinator.submit,
            scroll_lock=self.scroll_lock,
            pointer_distance=settings.pointer_distance,
            touch_delay=settings.touch_delay,
            touch_tolerance=settings.touch_tolerance,
            haptics=settings.haptics,
            vibrate=self.vibrate,
        )

        self.reconciler.commit(snapshot)
        self.reconciler.start()
        self.reconciler.mark_initial_load_complete()
        logger.info("Mounted board {} ({} tasks, role {})", project_id, len(self.state), self.gate.role)
        return True

    def unmount(self) -> None:
        """Tear the board down; in-flight writes and pending refetches are abandoned."""
        if self.controller is not None:
            self.controller.cancel()
            self.controller.clear_selection()
        if self.reconciler is not None:
            self.reconciler.close()
        if self.coordinator is not None:
            self.coordinator.close()
        if self.project is not None:
            logger.debug("Unmounted board {}", self.project.id)
        self.project = None
        self.store = None
        self.coordinator = None
        self.reconciler = None
        self.controller = None
        self.gate = PermissionGate()

    def _on_snapshot(self, snapshot: ProjectSnapshot) -> None:
        self.project = snapshot.project

    def _require(self) -> MutationCoordinator:
        if self.coordinator is None:
            raise RuntimeError("Board session is not mounted")
        return self.coordinator

    # -- reads --------------------------------------------------------------

    @property
    def state(self) -> BoardState:
        if self.store is None:
            raise RuntimeError("Board session is not mounted")
        return self.store.state

    @property
    def permissions(self) -> ProjectPermissions:
        return self.gate.permissions

    @property
    def done_stage_id(self) -> Optional[str]:
        if self.project is None:
            return None
        return find_done_stage(self.project.stages, self.settings.done_stage_id)

    def columns(self) -> dict[str, list[Task]]:
        """Tasks per stage as displayed, honouring the pending-approval filter."""
        if self.show_pending_only:
            return pending_approval_view(self.state, self.done_stage_id)
        return {sid: list(self.state.tasks(sid)) for sid in self.state.stage_ids}

    def counts(self) -> dict[str, int]:
        return board_counts(self.state, self.done_stage_id)

    # -- intents ------------------------------------------------------------

    def submit(self, intent: Intent) -> Optional[asyncio.Task]:
        return self._require().submit(intent)

    def create_task(self, stage_id: str, form: dict[str, Any]) -> Optional[asyncio.Task]:
        """Validate a new-task form and dispatch it.

        Raises:
            InputInvalid: the form is rejected; nothing is dispatched.
        """
        fields = validate_task_fields(form, require_title=True)
        fields.pop("stage_id", None)
        return self.submit(CreateTask(stage_id, fields))

    def update_task(self, task_id: str, form: dict[str, Any]) -> Optional[asyncio.Task]:
        fields = validate_task_fields(form)
        if not fields:
            return None
        return self.submit(UpdateTask(task_id, fields))

    def move_task(self, task_id: str, stage_id: str, position: int) -> Optional[asyncio.Task]:
        return self.submit(MoveTask(task_id, stage_id, position))

    def reorder_stage(self, stage_id: str, ordered_task_ids: Iterable[str]) -> Optional[asyncio.Task]:
        return self.submit(ReorderStage(stage_id, tuple(ordered_task_ids)))

    def sort_stage(self, stage_id: str, sort_by: SortKey = "priority") -> Optional[asyncio.Task]:
        return self.submit(SortStage(stage_id, sort_by))

    def bulk_move(self, task_ids: Iterable[str], stage_id: str) -> Optional[asyncio.Task]:
        return self.submit(BulkMove(tuple(task_ids), stage_id))

    def delete_task(self, task_id: str) -> Optional[asyncio.Task]:
        return self.submit(DeleteTask(task_id))

    def bulk_delete(self, task_ids: Iterable[str]) -> Optional[asyncio.Task]:
        return self.submit(BulkDelete(tuple(task_ids)))

    def approve_task(self, task_id: str) -> Optional[asyncio.Task]:
        return self.submit(ApproveTask(task_id))

    def reject_task(
        self,
        task_id: str,
        return_stage_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        return self.submit(RejectTask(task_id, return_stage_id, (reason or "").strip() or None))

    def duplicate_task(self, task_id: str) -> Optional[asyncio.Task]:
        return self.submit(DuplicateTask(task_id))

    def change_color(self, task_id: str, color: Optional[str]) -> Optional[asyncio.Task]:
        if color:
            validate_task_fields({"color": color})
        return self.submit(ChangeColor(task_id, color or None))

    async def settle(self) -> None:
        """Wait for in-flight writes and any scheduled refetch."""
        if self.coordinator is not None:
            await self.coordinator.drain()
        if self.reconciler is not None:
            await self.reconciler.flush()
