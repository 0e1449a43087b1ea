"""Realtime reconciler: keeps a mounted board live with remote changes.

Any change event for the project schedules one debounced full re-read.  The
re-read is committed through :meth:`MutationCoordinator.reconcile`, which
re-applies intents still in flight, so local unconfirmed edits survive.
Refetches are serialized by an epoch counter: only the newest one commits.
A read that overlapped a confirmed local write is dropped and re-armed, since
it may predate the write and would otherwise erase it.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from loguru import logger

from ..constants import DEFAULT_REFETCH_DEBOUNCE_SECONDS
from ..domain.models import ChangeEvent, ProjectSnapshot
from ..errors import KanbanError
from ..logging_utils import summarize_event
from ..realtime.manager import SubscriptionManager
from ..remote.base import RemoteStore
from .coordinator import MutationCoordinator
from .permissions import PermissionGate

SnapshotListener = Callable[[ProjectSnapshot], None]


def project_filters(project_id: str) -> dict[str, str]:
    """Realtime filter per table for one project."""
    return {
        "projects": f"id=eq.{project_id}",
        "tasks": f"project_id=eq.{project_id}",
        "project_members": f"project_id=eq.{project_id}",
    }


class RealtimeReconciler:
    def __init__(
        self,
        project_id: str,
        remote: RemoteStore,
        coordinator: MutationCoordinator,
        gate: PermissionGate,
        manager: SubscriptionManager,
        *,
        debounce_seconds: float = DEFAULT_REFETCH_DEBOUNCE_SECONDS,
        on_snapshot: Optional[SnapshotListener] = None,
    ) -> None:
        self.project_id = project_id
        self.remote = remote
        self.coordinator = coordinator
        self.gate = gate
        self.manager = manager
        self.debounce_seconds = debounce_seconds
        self.on_snapshot = on_snapshot
        self.initial_load_complete = False
        self.epoch = 0
        self.committed_epoch = 0
        self.coalesced = 0
        self._unsubscribers: list[Callable[[], None]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._refetch: Optional[asyncio.Task] = None
        self._closed = False

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Register one handler per table with the shared channel."""
        if self._unsubscribers:
            return
        for table, flt in project_filters(self.project_id).items():
            self._unsubscribers.append(self.manager.subscribe(table, self.handle_event, flt))
        logger.debug("Reconciler subscribed for project {}", self.project_id)

    def mark_initial_load_complete(self) -> None:
        self.initial_load_complete = True

    def close(self) -> None:
        """Deregister handlers and discard any pending or running refetch."""
        self._closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._refetch is not None and not self._refetch.done():
            self._refetch.cancel()
        self.epoch += 1
        logger.debug("Reconciler closed for project {}", self.project_id)

    @property
    def refetch_scheduled(self) -> bool:
        return self._timer is not None

    # -- events -------------------------------------------------------------

    def handle_event(self, event: ChangeEvent) -> None:
        """Channel handler: cheap, only (re)arms the debounce timer."""
        if self._closed:
            return
        if not self.initial_load_complete:
            logger.debug("Dropping realtime event before initial load: {}", summarize_event(event))
            return
        if self._timer is not None:
            self.coalesced += 1
            return
        self._schedule()

    def _schedule(self) -> None:
        if self._timer is None and not self._closed:
            self._timer = asyncio.get_running_loop().call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return
        self.epoch += 1
        self._refetch = asyncio.get_running_loop().create_task(self._refetch_and_commit(self.epoch))

    async def flush(self) -> bool:
        """Run a scheduled refetch now instead of waiting for the timer.

        Returns whether a refetch was committed.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._fire()
        elif self._refetch is None or self._refetch.done():
            return False
        refetch = self._refetch
        if refetch is None:
            return False
        return await refetch

    async def refetch(self) -> bool:
        """Immediately re-read the project, superseding any in-flight refetch."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.epoch += 1
        self._refetch = asyncio.get_running_loop().create_task(self._refetch_and_commit(self.epoch))
        return await self._refetch

    async def _refetch_and_commit(self, epoch: int) -> bool:
        acks = self.coordinator.acknowledged
        try:
            snapshot = await self.remote.fetch_project(self.project_id)
        except KanbanError as exc:
            logger.warning("Refetch of project {} failed: {}", self.project_id, exc)
            return False
        except Exception:
            logger.exception("Refetch of project {} crashed", self.project_id)
            return False
        if self._closed or epoch != self.epoch:
            logger.debug("Discarding stale refetch (epoch {} < {})", epoch, self.epoch)
            return False
        if self.coordinator.acknowledged != acks:
            # A write confirmed while the read was in flight; the read may predate it.
            raced = self.coordinator.acknowledged - acks
            logger.debug("Discarding refetch that raced {} acknowledged write(s)", raced)
            self._schedule()
            return False
        self.commit(snapshot, epoch)
        return True

    def commit(self, snapshot: ProjectSnapshot, epoch: Optional[int] = None) -> None:
        """Adopt an authoritative project read."""
        self.gate.set_role(snapshot.project.role)
        self.coordinator.reconcile(snapshot.tasks_by_stage)
        self.committed_epoch = self.epoch if epoch is None else epoch
        if self.on_snapshot is not None:
            self.on_snapshot(snapshot)
