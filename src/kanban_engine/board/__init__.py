"""Board engine: state, store, permissions, intents, coordinator and reconciler.

:class:`~kanban_engine.board.session.BoardSession` is exported from the
top-level package.
"""

from .coordinator import MutationCoordinator, MutationStatus, PendingMutation, apply_local
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
from .permissions import PermissionGate, ProjectAction, ProjectPermissions, is_allowed
from .reconciler import RealtimeReconciler
from .state import BoardState, empty_board
from .store import TaskStore

__all__ = [
    "ApproveTask",
    "BoardState",
    "BulkDelete",
    "BulkMove",
    "ChangeColor",
    "CreateTask",
    "DeleteTask",
    "DuplicateTask",
    "Intent",
    "MoveTask",
    "MutationCoordinator",
    "MutationStatus",
    "PendingMutation",
    "PermissionGate",
    "ProjectAction",
    "ProjectPermissions",
    "RealtimeReconciler",
    "RejectTask",
    "ReorderStage",
    "SortStage",
    "TaskStore",
    "UpdateTask",
    "apply_local",
    "empty_board",
    "is_allowed",
]
