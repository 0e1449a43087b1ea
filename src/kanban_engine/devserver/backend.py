"""In-memory reference implementation of the remote store.

Holds projects, memberships and tasks for the development server and the
test suite.  It enforces the same rules the hosted backend does: roles are
checked on every write, positions are kept contiguous per stage, and the
approval trigger moves ``approval_status`` to ``pending`` whenever a task
enters the done stage (and back to ``none`` when a pending task leaves it).

Every write publishes a :class:`ChangeEvent` on the hub once the lock is
released.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from loguru import logger

from ..board.permissions import ProjectAction, is_allowed
from ..board.views import find_done_stage
from ..constants import DEFAULT_RETURN_STAGE_ID, DEFAULT_WORKFLOW_STAGES
from ..domain.models import PRIORITIES, ChangeEvent, Stage, now_iso, parse_role
from .hub import RealtimeHub

_TASK_COLUMNS = (
    "title",
    "description",
    "priority",
    "due_date",
    "tags",
    "color",
    "assignees",
    "completed_at",
)


class RequestRejected(Exception):
    """The store refused a request; carries the HTTP status to answer with."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class _Tx:
    """Collects change events while the store lock is held."""

    def __init__(self) -> None:
        self.events: list[ChangeEvent] = []

    def emit(self, kind: str, table: str, new: Optional[dict[str, Any]] = None, old: Optional[dict[str, Any]] = None) -> None:
        self.events.append(ChangeEvent(kind, table, new=new, old=old))  # type: ignore[arg-type]


class MemoryBackend:
    """Thread-safe in-memory store for projects, members and tasks."""

    def __init__(self, hub: Optional[RealtimeHub] = None) -> None:
        self.hub = hub or RealtimeHub()
        self._lock = threading.RLock()
        self._projects: dict[str, dict[str, Any]] = {}
        self._members: dict[str, dict[str, dict[str, Any]]] = {}
        self._tasks: dict[str, dict[str, Any]] = {}
        self._users: dict[str, dict[str, Any]] = {}
        self._injected: dict[str, tuple[str, int]] = {}

    # -- plumbing -----------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[_Tx]:
        """Hold the lock for one logical write; publish its events afterwards."""
        tx = _Tx()
        with self._lock:
            yield tx
        for event in tx.events:
            self.hub.publish(event)

    def _project(self, project_id: str) -> dict[str, Any]:
        project = self._projects.get(project_id)
        if project is None:
            raise RequestRejected("Project not found", 404)
        return project

    def _task(self, task_id: str) -> dict[str, Any]:
        task = self._tasks.get(task_id)
        if task is None:
            raise RequestRejected("Task not found", 404)
        return task

    def role_of(self, project_id: str, user_id: Optional[str]) -> Optional[str]:
        member = self._members.get(project_id, {}).get(user_id or "")
        return parse_role(member.get("role")) if member else None

    def _require(self, project_id: str, user_id: Optional[str], action: ProjectAction, message: str) -> None:
        role = self.role_of(project_id, user_id)
        if role is None:
            # Row-level security hides projects the user is not a member of.
            raise RequestRejected("Project not found", 404)
        if not is_allowed(role, action):
            raise RequestRejected(message, 403)

    def fail_next(self, operation: str, message: str, status_code: int = 409, *, task_id: Optional[str] = None) -> None:
        """Make the next *operation* (create, update, move...) fail with *message*.

        With *task_id* only that task's next *operation* fails.
        """
        with self._lock:
            self._injected[f"{operation}:{task_id}" if task_id else operation] = (message, status_code)

    def _check_injected_failure(self, operation: str, task_id: Optional[str] = None) -> None:
        injected = self._injected.pop(f"{operation}:{task_id}", None) if task_id else None
        if injected is None:
            injected = self._injected.pop(operation, None)
        if injected is not None:
            raise RequestRejected(*injected)

    def _stage_ids(self, project_id: str) -> list[str]:
        return [s["id"] for s in self._project(project_id)["workflow_stages"]]

    def _done_stage(self, project_id: str) -> Optional[str]:
        stages = [Stage.from_dict(s, ordinal=i) for i, s in enumerate(self._project(project_id)["workflow_stages"])]
        return find_done_stage(stages)

    def _column(self, project_id: str, stage_id: str) -> list[dict[str, Any]]:
        rows = [t for t in self._tasks.values() if t["project_id"] == project_id and t["stage_id"] == stage_id]
        return sorted(rows, key=lambda t: t["position"])

    def _renumber(self, tx: _Tx, rows: Sequence[dict[str, Any]], skip: Optional[str] = None) -> None:
        for index, row in enumerate(rows):
            if row["position"] != index:
                old = dict(row)
                row["position"] = index
                row["updated_at"] = now_iso()
                if row["id"] != skip:
                    tx.emit("update", "tasks", new=dict(row), old=old)

    def _apply_stage_trigger(self, row: dict[str, Any], old_stage: Optional[str]) -> None:
        done = self._done_stage(row["project_id"])
        if row["stage_id"] == done and old_stage != done:
            if row.get("approval_status") in (None, "none", "rejected"):
                row["approval_status"] = "pending"
                row["rejection_reason"] = None
        elif old_stage == done and row["stage_id"] != done and row.get("approval_status") == "pending":
            row["approval_status"] = "none"

    def _place(self, tx: _Tx, row: dict[str, Any], stage_id: str, position: Optional[int]) -> None:
        """Move *row* into *stage_id* at *position* (tail when None), renumbering both columns."""
        project_id = row["project_id"]
        old_stage = row["stage_id"]
        source = [t for t in self._column(project_id, old_stage) if t["id"] != row["id"]]
        target = source if stage_id == old_stage else self._column(project_id, stage_id)
        target = [t for t in target if t["id"] != row["id"]]
        index = len(target) if position is None else max(0, min(int(position), len(target)))
        target.insert(index, row)
        row["stage_id"] = stage_id
        self._apply_stage_trigger(row, old_stage)
        self._renumber(tx, target, skip=row["id"])
        if stage_id != old_stage:
            self._renumber(tx, source)
        row["position"] = index

    # -- seeding ------------------------------------------------------------

    def add_user(self, user_id: str, full_name: str = "", email: str = "") -> dict[str, Any]:
        with self._lock:
            user = {"id": user_id, "full_name": full_name or user_id, "email": email or f"{user_id}@example.com"}
            self._users[user_id] = user
            return dict(user)

    def create_project(
        self,
        name: str,
        owner_id: str,
        *,
        project_id: Optional[str] = None,
        stages: Optional[Sequence[dict[str, Any]]] = None,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> dict[str, Any]:
        with self.transaction() as tx:
            pid = project_id or f"proj-{uuid.uuid4().hex[:10]}"
            project = {
                "id": pid,
                "name": name,
                "description": description,
                "color": color,
                "owner_id": owner_id,
                "workflow_stages": [dict(s) for s in (stages or DEFAULT_WORKFLOW_STAGES)],
                "created_at": now_iso(),
            }
            self._projects[pid] = project
            self._members[pid] = {}
            tx.emit("insert", "projects", new=dict(project))
            self._add_member(tx, pid, owner_id, "owner")
            return dict(project)

    def _add_member(self, tx: _Tx, project_id: str, user_id: str, role: str) -> dict[str, Any]:
        if parse_role(role) is None:
            raise RequestRejected(f"Invalid role: {role}")
        self._users.setdefault(user_id, {"id": user_id, "full_name": user_id, "email": f"{user_id}@example.com"})
        existing = self._members[project_id].get(user_id)
        row = {
            "id": existing["id"] if existing else f"member-{uuid.uuid4().hex[:10]}",
            "project_id": project_id,
            "user_id": user_id,
            "role": role,
            "joined_at": existing["joined_at"] if existing else now_iso(),
        }
        self._members[project_id][user_id] = row
        tx.emit("update" if existing else "insert", "project_members", new=dict(row), old=dict(existing) if existing else None)
        return row

    def add_member(self, project_id: str, user_id: str, role: str) -> dict[str, Any]:
        with self.transaction() as tx:
            self._project(project_id)
            return dict(self._add_member(tx, project_id, user_id, role))

    def remove_member(self, project_id: str, user_id: str) -> None:
        with self.transaction() as tx:
            row = self._members.get(project_id, {}).pop(user_id, None)
            if row is None:
                raise RequestRejected("Member not found", 404)
            tx.emit("delete", "project_members", old=dict(row))

    # -- reads --------------------------------------------------------------

    def _member_rows(self, project_id: str) -> list[dict[str, Any]]:
        rows = []
        for row in self._members.get(project_id, {}).values():
            out = dict(row)
            out["user"] = dict(self._users.get(row["user_id"], {"id": row["user_id"]}))
            rows.append(out)
        return rows

    def get_project(self, project_id: str, user_id: Optional[str]) -> dict[str, Any]:
        with self._lock:
            project = self._project(project_id)
            role = self.role_of(project_id, user_id)
            if role is None:
                raise RequestRejected("Project not found", 404)
            stage_ids = self._stage_ids(project_id)
            tasks_by_stage = {sid: [dict(t) for t in self._column(project_id, sid)] for sid in stage_ids}
            done = self._done_stage(project_id)
            all_tasks = [t for rows in tasks_by_stage.values() for t in rows]
            counts = {
                "tasks_count": len(all_tasks),
                "completed_tasks_count": sum(1 for t in all_tasks if t["stage_id"] == done or t.get("completed_at")),
                "pending_approval_count": sum(1 for t in all_tasks if t.get("approval_status") == "pending"),
            }
            payload = dict(project)
            payload["members"] = self._member_rows(project_id)
            payload["role"] = role
            return {"project": payload, "tasks_by_stage": tasks_by_stage, "counts": counts}

    def list_members(self, project_id: str, user_id: Optional[str]) -> dict[str, Any]:
        with self._lock:
            self._project(project_id)
            role = self.role_of(project_id, user_id)
            if role is None:
                raise RequestRejected("Project not found", 404)
            return {"members": self._member_rows(project_id), "currentUserRole": role}

    # -- task writes --------------------------------------------------------

    def create_task(self, user_id: Optional[str], project_id: str, stage_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self.transaction() as tx:
            self._project(project_id)
            self._require(project_id, user_id, ProjectAction.EDIT, "You do not have permission to create tasks")
            self._check_injected_failure("create")
            if stage_id not in self._stage_ids(project_id):
                raise RequestRejected("Invalid stage")
            title = str(fields.get("title") or "").strip()
            if not title:
                raise RequestRejected("Title is required")
            priority = fields.get("priority") or "none"
            if priority not in PRIORITIES:
                raise RequestRejected("Invalid priority")
            now = now_iso()
            row: dict[str, Any] = {
                "id": f"task-{uuid.uuid4().hex[:12]}",
                "project_id": project_id,
                "stage_id": stage_id,
                "title": title,
                "description": fields.get("description"),
                "priority": priority,
                "due_date": fields.get("due_date"),
                "tags": list(fields.get("tags") or []),
                "color": fields.get("color"),
                "assignees": list(fields.get("assignees") or []),
                "completed_at": fields.get("completed_at"),
                "approval_status": "none",
                "approved_at": None,
                "rejection_reason": None,
                "position": len(self._column(project_id, stage_id)),
                "created_by": user_id,
                "created_at": now,
                "updated_at": now,
            }
            self._apply_stage_trigger(row, None)
            self._tasks[row["id"]] = row
            tx.emit("insert", "tasks", new=dict(row))
            logger.debug("devserver: created task {} in {}/{}", row["id"], project_id, stage_id)
            return dict(row)

    def update_task(self, user_id: Optional[str], task_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        with self.transaction() as tx:
            row = self._task(task_id)
            self._require(row["project_id"], user_id, ProjectAction.EDIT, "You do not have permission to edit tasks")
            self._check_injected_failure("update", task_id)
            old = dict(row)
            if "priority" in changes and changes["priority"] not in PRIORITIES:
                raise RequestRejected("Invalid priority")
            if "title" in changes and not str(changes["title"] or "").strip():
                raise RequestRejected("Title is required")
            stage_id = changes.get("stage_id")
            if stage_id and stage_id not in self._stage_ids(row["project_id"]):
                raise RequestRejected("Invalid stage")
            for key in _TASK_COLUMNS:
                if key in changes:
                    row[key] = changes[key]
            if stage_id and stage_id != row["stage_id"]:
                self._place(tx, row, stage_id, None)
            row["updated_at"] = now_iso()
            tx.emit("update", "tasks", new=dict(row), old=old)
            return dict(row)

    def move_task(self, user_id: Optional[str], task_id: str, stage_id: str, position: int) -> dict[str, Any]:
        with self.transaction() as tx:
            row = self._task(task_id)
            self._require(row["project_id"], user_id, ProjectAction.EDIT, "You do not have permission to move tasks")
            self._check_injected_failure("move", task_id)
            if stage_id not in self._stage_ids(row["project_id"]):
                raise RequestRejected("Invalid stage")
            old = dict(row)
            self._place(tx, row, stage_id, position)
            if row != old:
                row["updated_at"] = now_iso()
                tx.emit("update", "tasks", new=dict(row), old=old)
            return dict(row)

    def reorder(self, user_id: Optional[str], project_id: str, stage_id: str, ordered_task_ids: Sequence[str]) -> dict[str, Any]:
        with self.transaction() as tx:
            self._project(project_id)
            self._require(project_id, user_id, ProjectAction.EDIT, "You do not have permission to reorder tasks")
            self._check_injected_failure("reorder")
            if stage_id not in self._stage_ids(project_id):
                raise RequestRejected("Invalid stage")
            column = self._column(project_id, stage_id)
            by_id = {t["id"]: t for t in column}
            head = [by_id.pop(tid) for tid in dict.fromkeys(ordered_task_ids) if tid in by_id]
            tail = [t for t in column if t["id"] in by_id]
            ordered = head + tail
            self._renumber(tx, ordered)
            return {"stage_id": stage_id, "ordered_task_ids": [t["id"] for t in ordered]}

    def delete_task(self, user_id: Optional[str], task_id: str) -> None:
        with self.transaction() as tx:
            row = self._task(task_id)
            self._require(row["project_id"], user_id, ProjectAction.EDIT, "You do not have permission to delete tasks")
            self._check_injected_failure("delete", task_id)
            del self._tasks[task_id]
            tx.emit("delete", "tasks", old=dict(row))
            self._renumber(tx, self._column(row["project_id"], row["stage_id"]))

    def approve_task(self, user_id: Optional[str], task_id: str) -> dict[str, Any]:
        with self.transaction() as tx:
            row = self._task(task_id)
            self._require(
                row["project_id"], user_id, ProjectAction.APPROVE, "Only project owners or admins can approve tasks"
            )
            self._check_injected_failure("approve", task_id)
            if row["stage_id"] != self._done_stage(row["project_id"]):
                raise RequestRejected("Task must be in Done stage to be approved")
            if row.get("approval_status") != "pending":
                raise RequestRejected("Task is not pending approval")
            old = dict(row)
            now = now_iso()
            row.update(approval_status="approved", approved_at=now, approved_by=user_id, completed_at=now, updated_at=now)
            tx.emit("update", "tasks", new=dict(row), old=old)
            return dict(row)

    def reject_task(
        self,
        user_id: Optional[str],
        task_id: str,
        return_stage_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> dict[str, Any]:
        with self.transaction() as tx:
            row = self._task(task_id)
            self._require(
                row["project_id"], user_id, ProjectAction.APPROVE, "Only project owners or admins can reject tasks"
            )
            self._check_injected_failure("reject", task_id)
            if row.get("approval_status") != "pending":
                raise RequestRejected("Task is not pending approval")
            target = return_stage_id or DEFAULT_RETURN_STAGE_ID
            if target not in self._stage_ids(row["project_id"]):
                raise RequestRejected("Invalid return stage")
            old = dict(row)
            row["approval_status"] = "rejected"
            row["rejection_reason"] = reason
            row["approved_at"] = None
            self._place(tx, row, target, None)
            row["updated_at"] = now_iso()
            tx.emit("update", "tasks", new=dict(row), old=old)
            return dict(row)
