"""Read-only projections of a board: done stage, local sorting, filters, counts."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from ..constants import DEFAULT_DONE_STAGE_ID, PRIORITY_ORDER
from ..domain.models import Stage, Task
from .state import BoardState


def find_done_stage(stages: Sequence[Stage], preferred: Optional[str] = None) -> Optional[str]:
    """Pick the stage that means "done" in a possibly custom workflow.

    Order of preference: an explicitly configured id, a stage with id
    ``done``, a stage named "Done", and finally the last stage.
    """
    if not stages:
        return None
    ids = [s.id for s in stages]
    if preferred and preferred in ids:
        return preferred
    if DEFAULT_DONE_STAGE_ID in ids:
        return DEFAULT_DONE_STAGE_ID
    for stage in stages:
        if stage.name.strip().lower() == "done":
            return stage.id
    return stages[-1].id


def _due_key(task: Task) -> tuple[int, float]:
    if not task.due_date:
        return (1, 0.0)
    text = task.due_date[:-1] + "+00:00" if task.due_date.endswith("Z") else task.due_date
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return (1, 0.0)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (0, parsed.timestamp())


def sorted_task_ids(tasks: Iterable[Task], sort_by: str) -> list[str]:
    """Stable sort by priority (urgent first) or due date (undated last)."""
    items = list(tasks)
    if sort_by == "priority":
        items.sort(key=lambda t: PRIORITY_ORDER.get(t.priority, len(PRIORITY_ORDER)))
    elif sort_by == "due_date":
        items.sort(key=_due_key)
    else:
        raise ValueError(f"Unknown sort key: {sort_by!r}")
    return [t.id for t in items]


def pending_approval_view(state: BoardState, done_stage_id: Optional[str]) -> dict[str, list[Task]]:
    """Only the done column's tasks awaiting approval; every other column empty."""
    view: dict[str, list[Task]] = {sid: [] for sid in state.stage_ids}
    if done_stage_id in view:
        view[done_stage_id] = [t for t in state.tasks(done_stage_id) if t.approval_status == "pending"]
    return view


def board_counts(state: BoardState, done_stage_id: Optional[str]) -> dict[str, int]:
    total = 0
    completed = 0
    pending = 0
    for sid in state.stage_ids:
        for task in state.tasks(sid):
            total += 1
            if sid == done_stage_id or task.completed_at:
                completed += 1
            if task.approval_status == "pending":
                pending += 1
    return {"tasks_count": total, "completed_tasks_count": completed, "pending_approval_count": pending}
