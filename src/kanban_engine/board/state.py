"""Immutable board state and the pure transitions over it.

A :class:`BoardState` maps each stage id to an immutable tuple of tasks.
Transitions never mutate their input; they return a new state that shares
every untouched column (and every untouched task) with the old one.  Taking a
snapshot is therefore just keeping a reference, and restoring is assignment.

Invariants held by every transition:

* a task id appears in at most one column;
* position within a column is the tuple index;
* the set of stage ids never changes.

Transitions are total: an unknown task or stage leaves the state unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional

from loguru import logger

from ..domain.models import Task

# Fields a patch may never touch: identity and placement.
_PLACEMENT_FIELDS = {"id", "stage_id", "position"}


@dataclass(frozen=True)
class BoardState:
    """Stage id -> ordered tasks, with the stage order fixed at creation."""

    stage_ids: tuple[str, ...]
    columns: Mapping[str, tuple[Task, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cols = {sid: tuple(self.columns.get(sid, ())) for sid in self.stage_ids}
        object.__setattr__(self, "columns", MappingProxyType(cols))

    # -- lookups ------------------------------------------------------------

    def tasks(self, stage_id: str) -> tuple[Task, ...]:
        return self.columns.get(stage_id, ())

    def task_ids(self, stage_id: str) -> list[str]:
        return [t.id for t in self.tasks(stage_id)]

    def iter_tasks(self) -> Iterator[Task]:
        for sid in self.stage_ids:
            yield from self.columns[sid]

    def locate(self, task_id: str) -> Optional[tuple[str, int]]:
        """Return ``(stage_id, index)`` of *task_id*, or ``None``."""
        for sid in self.stage_ids:
            for idx, task in enumerate(self.columns[sid]):
                if task.id == task_id:
                    return sid, idx
        return None

    def get(self, task_id: str) -> Optional[Task]:
        loc = self.locate(task_id)
        if loc is None:
            return None
        return self.columns[loc[0]][loc[1]]

    def __contains__(self, task_id: object) -> bool:
        return isinstance(task_id, str) and self.locate(task_id) is not None

    def __len__(self) -> int:
        return sum(len(col) for col in self.columns.values())

    def as_dict(self) -> dict[str, list[str]]:
        """Stage id -> task ids; handy for assertions and logs."""
        return {sid: self.task_ids(sid) for sid in self.stage_ids}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoardState):
            return NotImplemented
        return self.stage_ids == other.stage_ids and dict(self.columns) == dict(other.columns)

    def __hash__(self) -> int:
        return hash((self.stage_ids, tuple(self.columns[sid] for sid in self.stage_ids)))

    # -- internal -----------------------------------------------------------

    def _with(self, changed: dict[str, tuple[Task, ...]]) -> "BoardState":
        if not changed:
            return self
        cols = dict(self.columns)
        cols.update(changed)
        return BoardState(self.stage_ids, cols)


def empty_board(stage_ids: Iterable[str]) -> BoardState:
    return BoardState(tuple(dict.fromkeys(stage_ids)))


def _without(state: BoardState, task_id: str) -> tuple[BoardState, Optional[Task]]:
    loc = state.locate(task_id)
    if loc is None:
        return state, None
    sid, idx = loc
    col = state.columns[sid]
    return state._with({sid: col[:idx] + col[idx + 1:]}), col[idx]


def _placed(task: Task, stage_id: str) -> Task:
    return task if task.stage_id == stage_id else replace(task, stage_id=stage_id)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def replace_all(state: BoardState, stage_task_map: Mapping[str, Iterable[Task]]) -> BoardState:
    """Set the entire board.

    Columns for stages the board does not know are dropped, missing stages
    become empty, and a task listed more than once keeps its first placement.
    """
    seen: set[str] = set()
    cols: dict[str, tuple[Task, ...]] = {}
    for sid in state.stage_ids:
        placed: list[Task] = []
        for task in stage_task_map.get(sid, ()):
            if task.id in seen:
                logger.debug("replace_all: duplicate task {} ignored in stage {}", task.id, sid)
                continue
            seen.add(task.id)
            placed.append(_placed(task, sid))
        cols[sid] = tuple(placed)
    unknown = set(stage_task_map) - set(state.stage_ids)
    if unknown:
        logger.warning("replace_all: dropping tasks in unknown stages {}", sorted(unknown))
    return BoardState(state.stage_ids, cols)


def upsert_task(state: BoardState, task: Task) -> BoardState:
    """Insert or update *task*.

    An existing task is updated in place; if its stage changed it moves to the
    tail of the new stage.  A new task is appended to the tail of its stage.
    """
    if task.stage_id not in state.columns:
        logger.debug("upsert_task: unknown stage {} for task {}", task.stage_id, task.id)
        return state
    loc = state.locate(task.id)
    if loc is not None and loc[0] == task.stage_id:
        sid, idx = loc
        col = state.columns[sid]
        return state._with({sid: col[:idx] + (task,) + col[idx + 1:]})
    without, _ = _without(state, task.id)
    return without._with({task.stage_id: without.columns[task.stage_id] + (task,)})


def move_task(state: BoardState, task_id: str, new_stage_id: str, new_position: int) -> BoardState:
    """Move a task to ``new_position`` (clamped) of ``new_stage_id``."""
    if new_stage_id not in state.columns:
        return state
    without, task = _without(state, task_id)
    if task is None:
        return state
    col = without.columns[new_stage_id]
    pos = max(0, min(int(new_position), len(col)))
    return without._with({new_stage_id: col[:pos] + (_placed(task, new_stage_id),) + col[pos:]})


def reorder_stage(state: BoardState, stage_id: str, ordered_task_ids: Iterable[str]) -> BoardState:
    """Reorder one column to follow ``ordered_task_ids``.

    Tasks in the column but not listed keep their relative order at the tail;
    listed ids that are not in the column are ignored.
    """
    if stage_id not in state.columns:
        return state
    col = state.columns[stage_id]
    by_id = {t.id: t for t in col}
    head: list[Task] = []
    for tid in ordered_task_ids:
        task = by_id.pop(tid, None)
        if task is not None:
            head.append(task)
    tail = [t for t in col if t.id in by_id]
    reordered = tuple(head + tail)
    if reordered == col:
        return state
    return state._with({stage_id: reordered})


def bulk_move(state: BoardState, task_ids: Iterable[str], new_stage_id: str) -> BoardState:
    """Append every found task, in the given order, to the tail of ``new_stage_id``."""
    if new_stage_id not in state.columns:
        return state
    moved: list[Task] = []
    for tid in dict.fromkeys(task_ids):
        state, task = _without(state, tid)
        if task is not None:
            moved.append(_placed(task, new_stage_id))
    if not moved:
        return state
    return state._with({new_stage_id: state.columns[new_stage_id] + tuple(moved)})


def delete_task(state: BoardState, task_id: str) -> BoardState:
    return _without(state, task_id)[0]


def patch_task(state: BoardState, task_id: str, field_patch: Mapping[str, Any]) -> BoardState:
    """Apply a partial update in place; stage and position never change here."""
    loc = state.locate(task_id)
    if loc is None:
        return state
    allowed = Task.field_names() - _PLACEMENT_FIELDS
    changes = {k: v for k, v in field_patch.items() if k in allowed}
    ignored = set(field_patch) - set(changes)
    if ignored:
        logger.debug("patch_task: ignoring fields {} for {}", sorted(ignored), task_id)
    if not changes:
        return state
    sid, idx = loc
    col = state.columns[sid]
    patched = col[idx].with_changes(changes)
    if patched == col[idx]:
        return state
    return state._with({sid: col[:idx] + (patched,) + col[idx + 1:]})


def replace_task(state: BoardState, old_id: str, task: Task) -> BoardState:
    """Swap the task ``old_id`` for *task* at the same index.

    Used to retire temporary ids once the server assigns a real one.  Falls
    back to :func:`upsert_task` when ``old_id`` is gone.
    """
    loc = state.locate(old_id)
    if loc is None or loc[0] != task.stage_id:
        return upsert_task(delete_task(state, old_id), task)
    state = delete_task(state, task.id) if task.id != old_id else state
    loc = state.locate(old_id)
    if loc is None:
        return upsert_task(state, task)
    sid, idx = loc
    col = state.columns[sid]
    return state._with({sid: col[:idx] + (task,) + col[idx + 1:]})
