"""Optimistic mutation coordinator.

Every user intent runs the same protocol:

1. check the intent's capability against the :class:`PermissionGate`;
2. snapshot the board (a reference, states are immutable);
3. apply the local transition synchronously, before any ``await``;
4. schedule the remote write as an asyncio task;
5. on success keep the optimistic state, on failure roll back and notify.

Rollback rebuilds the board instead of blindly restoring: the base is the
board as of the last refetch or the last moment nothing was in flight, and
every journal entry that has not failed is replayed on top, confirmed creates
and duplicates with their server rows.  A single failed intent therefore
always lands the board exactly on its own snapshot, and writes that confirmed
in the meantime keep their effect.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from loguru import logger

from ..constants import (
    COPY_TITLE_SUFFIX,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_RETURN_STAGE_ID,
    TEMP_ID_PREFIX,
)
from ..domain.forms import EDITABLE_FIELDS
from ..domain.models import Task, now_iso
from ..errors import NetworkFailure, PermissionDenied, RemoteFailure
from ..logging_utils import summarize_intent
from ..notifications import NotificationManager
from ..remote.base import RemoteStore
from . import state as transitions
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
    SortStage,
    UpdateTask,
)
from .permissions import PermissionGate
from .state import BoardState
from .store import TaskStore
from .views import sorted_task_ids

RemoteCall = Callable[[], Awaitable[Optional[Task]]]

_SUCCESS_NOTICES: dict[type, str] = {
    ApproveTask: "Task approved",
    RejectTask: "Task rejected",
    DuplicateTask: "Task duplicated",
}


class MutationStatus(str, Enum):
    IN_FLIGHT = "in_flight"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class PendingMutation:
    """One dispatched intent awaiting its remote write."""

    id: str
    intent: Intent
    snapshot: BoardState
    epoch: int
    deadline: float
    status: MutationStatus = MutationStatus.IN_FLIGHT
    result: Optional[Task] = None
    error: Optional[str] = None
    seq: int = 0
    dispatched_at: str = field(default_factory=now_iso)

    @property
    def in_flight(self) -> bool:
        return self.status == MutationStatus.IN_FLIGHT

    def is_overdue(self, now: float) -> bool:
        return self.in_flight and now > self.deadline


# ---------------------------------------------------------------------------
# Pure local effects
# ---------------------------------------------------------------------------

def resolve_return_stage(state: BoardState, preferred: Optional[str]) -> Optional[str]:
    """Stage a rejected task goes back to; the first stage if *preferred* is unknown."""
    if preferred and preferred in state.columns:
        return preferred
    return state.stage_ids[0] if state.stage_ids else None


def optimistic_task(intent: CreateTask, project_id: str) -> Task:
    data = {k: v for k, v in intent.fields.items() if k in EDITABLE_FIELDS}
    data.update(id=intent.temp_id, project_id=project_id, stage_id=intent.stage_id, created_at=now_iso())
    return Task.from_dict(data)


def apply_local(
    state: BoardState,
    intent: Intent,
    *,
    project_id: str = "",
    return_stage_id: Optional[str] = DEFAULT_RETURN_STAGE_ID,
) -> BoardState:
    """The Task Store transition an intent stands for.

    Pure: the same ``(state, intent)`` always yields the same board, which is
    what lets rollback replay surviving intents over a rebuilt base.
    """
    if isinstance(intent, CreateTask):
        return transitions.upsert_task(state, optimistic_task(intent, project_id))
    if isinstance(intent, UpdateTask):
        fields = dict(intent.fields)
        stage_id = fields.pop("stage_id", None)
        state = transitions.patch_task(state, intent.task_id, fields)
        loc = state.locate(intent.task_id)
        if stage_id and loc is not None and loc[0] != stage_id:
            state = transitions.move_task(state, intent.task_id, stage_id, len(state.tasks(stage_id)))
        return state
    if isinstance(intent, MoveTask):
        return transitions.move_task(state, intent.task_id, intent.stage_id, intent.position)
    if isinstance(intent, ReorderStage):
        return transitions.reorder_stage(state, intent.stage_id, intent.ordered_task_ids)
    if isinstance(intent, SortStage):
        order = sorted_task_ids(state.tasks(intent.stage_id), intent.sort_by)
        return transitions.reorder_stage(state, intent.stage_id, order)
    if isinstance(intent, BulkMove):
        return transitions.bulk_move(state, intent.task_ids, intent.stage_id)
    if isinstance(intent, DeleteTask):
        return transitions.delete_task(state, intent.task_id)
    if isinstance(intent, BulkDelete):
        for task_id in intent.task_ids:
            state = transitions.delete_task(state, task_id)
        return state
    if isinstance(intent, ApproveTask):
        return transitions.patch_task(
            state, intent.task_id, {"approval_status": "approved", "approved_at": now_iso()}
        )
    if isinstance(intent, RejectTask):
        target = resolve_return_stage(state, intent.return_stage_id or return_stage_id)
        if target is None or intent.task_id not in state:
            return state
        state = transitions.move_task(state, intent.task_id, target, len(state.tasks(target)))
        return transitions.patch_task(
            state,
            intent.task_id,
            {"approval_status": "rejected", "approved_at": None, "rejection_reason": intent.reason},
        )
    if isinstance(intent, DuplicateTask):
        # Waits for the server-assigned id; nothing to show yet.
        return state
    if isinstance(intent, ChangeColor):
        return transitions.patch_task(state, intent.task_id, {"color": intent.color})
    raise TypeError(f"Unsupported intent: {intent!r}")


def _target_ids(intent: Intent) -> tuple[str, ...]:
    if isinstance(intent, (BulkMove, BulkDelete)):
        return tuple(intent.task_ids)
    task_id = getattr(intent, "task_id", None)
    return (task_id,) if task_id else ()


def _stage_id(intent: Intent) -> Optional[str]:
    if isinstance(intent, (CreateTask, MoveTask, ReorderStage, SortStage, BulkMove)):
        return intent.stage_id
    return None


def _persisted_ids(ids: Iterable[str]) -> list[str]:
    return [i for i in ids if not i.startswith(TEMP_ID_PREFIX)]


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class MutationCoordinator:
    """Turns intents into optimistic local changes plus remote writes.

    Usage::

        coordinator = MutationCoordinator(store, remote, gate, notifier, project_id="p1")
        await coordinator.dispatch(MoveTask("t1", "doing", 0))
    """

    def __init__(
        self,
        store: TaskStore,
        remote: RemoteStore,
        gate: PermissionGate,
        notifier: NotificationManager,
        *,
        project_id: str,
        return_stage_id: Optional[str] = DEFAULT_RETURN_STAGE_ID,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self.store = store
        self.remote = remote
        self.gate = gate
        self.notifier = notifier
        self.project_id = project_id
        self.return_stage_id = return_stage_id
        self.timeout = timeout
        self._journal: list[PendingMutation] = []
        self._base: BoardState = store.state
        self._epoch = 0
        self._seq = 0
        # Remote writes confirmed so far; lets a refetch detect that it raced one.
        self.acknowledged = 0
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    # -- introspection ------------------------------------------------------

    @property
    def pending(self) -> tuple[PendingMutation, ...]:
        """In-flight mutations in dispatch order."""
        return tuple(m for m in self._journal if m.in_flight)

    @property
    def epoch(self) -> int:
        """Number of authoritative states committed through :meth:`reconcile`."""
        return self._epoch

    @property
    def is_idle(self) -> bool:
        return not self._tasks

    # -- dispatch -----------------------------------------------------------

    def submit(self, intent: Intent) -> Optional[asyncio.Task]:
        """Run steps 1-3 synchronously and schedule the remote write.

        Returns the scheduled task, or ``None`` when the intent was denied or
        had nothing to act on.  Must be called from inside a running loop.
        """
        if self._closed:
            logger.debug("Ignoring intent after close: {}", summarize_intent(intent))
            return None
        try:
            self.gate.require(intent.action)
        except PermissionDenied as exc:
            logger.info("Intent denied ({}): {}", exc, summarize_intent(intent))
            self.notifier.notify_error(intent.denied)
            return None

        if isinstance(intent, SortStage):
            order = sorted_task_ids(self.store.state.tasks(intent.stage_id), intent.sort_by)
            intent = ReorderStage(intent.stage_id, tuple(order))

        before = self.store.snapshot()
        stage_id = _stage_id(intent)
        if stage_id is not None and stage_id not in before.columns:
            logger.warning("Intent targets unknown stage {}: {}", stage_id, summarize_intent(intent))
            return None
        targets = _target_ids(intent)
        if targets and not any(t in before for t in targets):
            logger.warning("Intent targets unknown task(s): {}", summarize_intent(intent))
            return None

        after = self.store.apply(lambda s: self._local(s, intent))
        call = self._remote_call(intent, before, after)

        loop = asyncio.get_running_loop()
        self._seq += 1
        mutation = PendingMutation(
            id=uuid.uuid4().hex,
            intent=intent,
            snapshot=before,
            epoch=self._epoch,
            deadline=loop.time() + self.timeout,
            seq=self._seq,
        )
        self._journal.append(mutation)
        logger.debug("Dispatched {} {}", mutation.id[:8], summarize_intent(intent))

        task = loop.create_task(self._run(mutation, call))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def dispatch(self, intent: Intent) -> Optional[PendingMutation]:
        """Submit *intent* and wait for its remote write to settle."""
        task = self.submit(intent)
        if task is None:
            return None
        return await task

    async def drain(self) -> None:
        """Wait until every scheduled remote write has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Abandon in-flight writes; the board is being discarded."""
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        self._journal.clear()

    # -- local / remote halves ---------------------------------------------

    def _local(self, state: BoardState, intent: Intent) -> BoardState:
        return apply_local(state, intent, project_id=self.project_id, return_stage_id=self.return_stage_id)

    def _remote_call(self, intent: Intent, before: BoardState, after: BoardState) -> RemoteCall:
        remote = self.remote

        if isinstance(intent, CreateTask):
            fields = {k: v for k, v in intent.fields.items() if k in EDITABLE_FIELDS and k != "stage_id"}
            return lambda: remote.create_task(self.project_id, intent.stage_id, fields)

        if isinstance(intent, DuplicateTask):
            source = before.get(intent.task_id)
            if source is None:
                raise ValueError(f"Cannot duplicate unknown task {intent.task_id}")
            data = source.to_dict()
            fields = {k: data[k] for k in EDITABLE_FIELDS if k in data and k != "stage_id"}
            fields["title"] = f"{source.title}{COPY_TITLE_SUFFIX}"
            fields.pop("completed_at", None)
            return lambda: remote.create_task(self.project_id, source.stage_id, fields)

        if isinstance(intent, UpdateTask):
            fields = dict(intent.fields)
            stage_id = fields.pop("stage_id", None)
            old = before.locate(intent.task_id)
            new = after.locate(intent.task_id)
            moved = bool(stage_id) and old is not None and new is not None and old[0] != new[0]

            async def _update() -> Optional[Task]:
                result = None
                if fields:
                    result = await remote.update_task(intent.task_id, fields)
                if moved and new is not None:
                    result = await remote.move_task(intent.task_id, new[0], new[1])
                return result

            return _update

        if isinstance(intent, MoveTask):
            # Send the index the card actually landed on, never a raw out-of-range one.
            loc = after.locate(intent.task_id)
            position = loc[1] if loc is not None and loc[0] == intent.stage_id else max(0, intent.position)
            return lambda: remote.move_task(intent.task_id, intent.stage_id, position)

        if isinstance(intent, ReorderStage):
            order = _persisted_ids(after.task_ids(intent.stage_id))

            async def _reorder() -> Optional[Task]:
                await remote.reorder(self.project_id, intent.stage_id, order)
                return None

            return _reorder

        if isinstance(intent, BulkMove):
            moving = [t for t in dict.fromkeys(intent.task_ids) if t in before]
            base = len([t for t in before.tasks(intent.stage_id) if t.id not in moving])

            async def _bulk_move() -> Optional[Task]:
                await self._gather(
                    remote.move_task(task_id, intent.stage_id, base + i) for i, task_id in enumerate(moving)
                )
                return None

            return _bulk_move

        if isinstance(intent, DeleteTask):
            async def _delete() -> Optional[Task]:
                await remote.delete_task(intent.task_id)
                return None

            return _delete

        if isinstance(intent, BulkDelete):
            doomed = [t for t in dict.fromkeys(intent.task_ids) if t in before]

            async def _bulk_delete() -> Optional[Task]:
                await self._gather(remote.delete_task(task_id) for task_id in doomed)
                return None

            return _bulk_delete

        if isinstance(intent, ApproveTask):
            return lambda: remote.approve_task(intent.task_id)

        if isinstance(intent, RejectTask):
            target = resolve_return_stage(before, intent.return_stage_id or self.return_stage_id)
            return lambda: remote.reject_task(intent.task_id, target, intent.reason)

        if isinstance(intent, ChangeColor):
            return lambda: remote.update_task(intent.task_id, {"color": intent.color})

        raise TypeError(f"Unsupported intent: {intent!r}")

    @staticmethod
    async def _gather(calls: Iterable[Awaitable[Any]]) -> None:
        """Await a batch together; raise the first failure after all settle."""
        results = await asyncio.gather(*calls, return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.warning("{} of {} batched writes failed", len(failures), len(results))
            raise failures[0]

    async def _run(self, mutation: PendingMutation, call: RemoteCall) -> PendingMutation:
        try:
            result = await call()
        except RemoteFailure as exc:
            self._fail(mutation, exc.message)
        except NetworkFailure as exc:
            logger.warning("Network failure for {}: {}", mutation.id[:8], exc.message)
            self._fail(mutation, None)
        except Exception:
            logger.exception("Unexpected error in remote write {}", summarize_intent(mutation.intent))
            self._fail(mutation, None)
        else:
            self._confirm(mutation, result)
        return mutation

    # -- settlement ---------------------------------------------------------

    def _confirm(self, mutation: PendingMutation, result: Optional[Task]) -> None:
        if self._closed:
            return
        self.acknowledged += 1
        mutation.status = MutationStatus.CONFIRMED
        mutation.result = result
        intent = mutation.intent
        if isinstance(intent, CreateTask) and result is not None:
            self.store.replace_task(intent.temp_id, result)
        elif isinstance(intent, DuplicateTask) and result is not None:
            self.store.upsert_task(result)
        logger.debug("Confirmed {} {}", mutation.id[:8], summarize_intent(intent))
        notice = _SUCCESS_NOTICES.get(type(intent))
        if notice:
            self.notifier.notify_success(notice)
        self._settle()

    def _fail(self, mutation: PendingMutation, message: Optional[str]) -> None:
        if self._closed:
            return
        mutation.status = MutationStatus.FAILED
        mutation.error = message
        survivors = [m for m in self._journal if m.status != MutationStatus.FAILED]
        self.store.restore(self._replay(self._base, survivors))
        logger.warning(
            "Rolled back {} ({} replayed): {}",
            summarize_intent(mutation.intent),
            len(survivors),
            message or mutation.intent.failure,
        )
        self.notifier.notify_error(message or mutation.intent.failure)
        self._settle()

    def _settle(self) -> None:
        """Rebase once nothing is in flight, so the journal never outgrows the queue."""
        if not any(m.in_flight for m in self._journal):
            self._journal.clear()
            self._base = self.store.state

    def _replay(self, state: BoardState, mutations: Iterable[PendingMutation]) -> BoardState:
        for m in mutations:
            intent = m.intent
            if m.status == MutationStatus.CONFIRMED and m.result is not None:
                if isinstance(intent, CreateTask):
                    state = transitions.replace_task(state, intent.temp_id, m.result)
                    continue
                if isinstance(intent, DuplicateTask):
                    state = transitions.upsert_task(state, m.result)
                    continue
            state = self._local(state, intent)
        return state

    # -- authoritative state -----------------------------------------------

    def reconcile(self, stage_task_map: Mapping[str, Iterable[Task]]) -> BoardState:
        """Commit a refetched board and re-apply intents still in flight."""
        self._epoch += 1
        self._base = transitions.replace_all(transitions.empty_board(self.store.stage_ids), stage_task_map)
        self._journal = [m for m in self._journal if m.in_flight]
        state = self._replay(self._base, self._journal)
        if self._journal:
            logger.debug("Reconciled epoch {} with {} in-flight intent(s) replayed", self._epoch, len(self._journal))
        return self.store.restore(state)
