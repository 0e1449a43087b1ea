"""User intents as plain values.

Each intent names the capability it needs and the texts shown when it is
denied or when its remote write fails.  The coordinator turns an intent into
one local transition plus one remote write.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Optional, Union

from ..constants import TEMP_ID_PREFIX
from .permissions import ProjectAction

SortKey = Literal["priority", "due_date"]


def _temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex[:10]}"


@dataclass(frozen=True)
class CreateTask:
    stage_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    temp_id: str = field(default_factory=_temp_id)

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to create tasks"
    failure: ClassVar[str] = "Failed to create task"


@dataclass(frozen=True)
class UpdateTask:
    task_id: str
    fields: dict[str, Any] = field(default_factory=dict)

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to edit tasks"
    failure: ClassVar[str] = "Failed to update task"


@dataclass(frozen=True)
class MoveTask:
    task_id: str
    stage_id: str
    position: int

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to move tasks"
    failure: ClassVar[str] = "Failed to move task"


@dataclass(frozen=True)
class ReorderStage:
    stage_id: str
    ordered_task_ids: tuple[str, ...]

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to reorder tasks"
    failure: ClassVar[str] = "Failed to reorder tasks"


@dataclass(frozen=True)
class BulkMove:
    task_ids: tuple[str, ...]
    stage_id: str

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to move tasks"
    failure: ClassVar[str] = "Failed to move tasks"


@dataclass(frozen=True)
class DeleteTask:
    task_id: str

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to delete tasks"
    failure: ClassVar[str] = "Failed to delete task"


@dataclass(frozen=True)
class BulkDelete:
    task_ids: tuple[str, ...]

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to delete tasks"
    failure: ClassVar[str] = "Failed to delete tasks"


@dataclass(frozen=True)
class ApproveTask:
    task_id: str

    action: ClassVar[ProjectAction] = ProjectAction.APPROVE
    denied: ClassVar[str] = "Only project owners or admins can approve tasks"
    failure: ClassVar[str] = "Failed to approve task"


@dataclass(frozen=True)
class RejectTask:
    task_id: str
    return_stage_id: Optional[str] = None  # None -> configured default
    reason: Optional[str] = None

    action: ClassVar[ProjectAction] = ProjectAction.APPROVE
    denied: ClassVar[str] = "Only project owners or admins can reject tasks"
    failure: ClassVar[str] = "Failed to reject task"


@dataclass(frozen=True)
class DuplicateTask:
    task_id: str

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to create tasks"
    failure: ClassVar[str] = "Failed to duplicate task"


@dataclass(frozen=True)
class ChangeColor:
    task_id: str
    color: Optional[str]

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to edit tasks"
    failure: ClassVar[str] = "Failed to change task color"


@dataclass(frozen=True)
class SortStage:
    """Sort a column locally, then persist the order as a reorder."""

    stage_id: str
    sort_by: SortKey = "priority"

    action: ClassVar[ProjectAction] = ProjectAction.EDIT
    denied: ClassVar[str] = "You do not have permission to reorder tasks"
    failure: ClassVar[str] = "Failed to reorder tasks"


Intent = Union[
    CreateTask,
    UpdateTask,
    MoveTask,
    ReorderStage,
    BulkMove,
    DeleteTask,
    BulkDelete,
    ApproveTask,
    RejectTask,
    DuplicateTask,
    ChangeColor,
    SortStage,
]
