"""In-memory task store that owns a project's board state.

Every change to the board, local or remote, goes through the methods here so
the invariants in :mod:`kanban_engine.board.state` are enforced in one place.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from loguru import logger

from ..domain.models import Task
from . import state as transitions
from .state import BoardState, empty_board

Listener = Callable[[BoardState], None]


class TaskStore:
    """Single source of truth for one board.

    Usage::

        store = TaskStore(project.stage_ids)
        store.replace_all(snapshot.tasks_by_stage)
        saved = store.snapshot()
        store.move_task("task-1", "doing", 0)
        store.restore(saved)
    """

    def __init__(self, stage_ids: Iterable[str]) -> None:
        self._state = empty_board(stage_ids)
        self._listeners: list[Listener] = []
        self.version = 0

    @property
    def state(self) -> BoardState:
        return self._state

    @property
    def stage_ids(self) -> tuple[str, ...]:
        return self._state.stage_ids

    def get(self, task_id: str) -> Task | None:
        return self._state.get(task_id)

    # -- listeners ----------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns its unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, new_state: BoardState) -> BoardState:
        if new_state is self._state:
            return new_state
        self._state = new_state
        self.version += 1
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("Board listener failed")
        return new_state

    # -- snapshots ----------------------------------------------------------

    def snapshot(self) -> BoardState:
        """States are immutable, so the current one is its own snapshot."""
        return self._state

    def restore(self, snapshot: BoardState) -> BoardState:
        if snapshot.stage_ids != self._state.stage_ids:
            raise ValueError("Snapshot belongs to a board with different stages")
        return self._commit(snapshot)

    def apply(self, fn: Callable[[BoardState], BoardState]) -> BoardState:
        """Commit the result of a pure transition over the current state."""
        return self._commit(fn(self._state))

    # -- transitions --------------------------------------------------------

    def replace_all(self, stage_task_map: Mapping[str, Iterable[Task]]) -> BoardState:
        return self._commit(transitions.replace_all(self._state, stage_task_map))

    def upsert_task(self, task: Task) -> BoardState:
        return self._commit(transitions.upsert_task(self._state, task))

    def move_task(self, task_id: str, new_stage_id: str, new_position: int) -> BoardState:
        return self._commit(transitions.move_task(self._state, task_id, new_stage_id, new_position))

    def reorder_stage(self, stage_id: str, ordered_task_ids: Iterable[str]) -> BoardState:
        return self._commit(transitions.reorder_stage(self._state, stage_id, ordered_task_ids))

    def bulk_move(self, task_ids: Iterable[str], new_stage_id: str) -> BoardState:
        return self._commit(transitions.bulk_move(self._state, task_ids, new_stage_id))

    def delete_task(self, task_id: str) -> BoardState:
        return self._commit(transitions.delete_task(self._state, task_id))

    def patch_task(self, task_id: str, field_patch: Mapping[str, Any]) -> BoardState:
        return self._commit(transitions.patch_task(self._state, task_id, field_patch))

    def replace_task(self, old_id: str, task: Task) -> BoardState:
        return self._commit(transitions.replace_task(self._state, old_id, task))
