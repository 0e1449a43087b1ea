from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional, get_args

from ..constants import DEFAULT_WORKFLOW_STAGES


Priority = Literal["none", "low", "medium", "high", "urgent"]
ApprovalStatus = Literal["none", "pending", "approved", "rejected"]
ProjectRole = Literal["viewer", "member", "admin", "owner"]
ChangeKind = Literal["insert", "update", "delete"]
ChangeTable = Literal["tasks", "projects", "project_members"]

PRIORITIES: tuple[str, ...] = get_args(Priority)
APPROVAL_STATUSES: tuple[str, ...] = get_args(ApprovalStatus)
PROJECT_ROLES: tuple[str, ...] = get_args(ProjectRole)
CHANGE_KINDS: tuple[str, ...] = get_args(ChangeKind)
CHANGE_TABLES: tuple[str, ...] = get_args(ChangeTable)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    seen: dict[str, None] = {}
    for item in value:
        if item is not None:
            seen.setdefault(str(item), None)
    return tuple(seen)


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    text = str(value or "").strip().lower()
    return text if text in allowed else default


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Task:
    """A task card as the board sees it.

    Instances are immutable so board states can share them between snapshots;
    use :func:`dataclasses.replace` (or ``with_changes``) to derive new ones.
    """

    id: str = field(default_factory=lambda: _id("task"))
    project_id: str = ""
    stage_id: str = ""
    title: str = ""
    description: Optional[str] = None
    priority: Priority = "none"
    due_date: Optional[str] = None
    tags: tuple[str, ...] = ()
    color: Optional[str] = None
    approval_status: ApprovalStatus = "none"
    approved_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    completed_at: Optional[str] = None
    assignees: tuple[str, ...] = ()
    position: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["tags"] = list(self.tags)
        data["assignees"] = list(self.assignees)
        return data

    @classmethod
    def field_names(cls) -> set[str]:
        return set(cls.__dataclass_fields__)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=str(data.get("id") or _id("task")),
            project_id=str(data.get("project_id") or ""),
            stage_id=str(data.get("stage_id") or ""),
            title=str(data.get("title") or ""),
            description=_opt_str(data.get("description")),
            priority=_choice(data.get("priority"), PRIORITIES, "none"),  # type: ignore[arg-type]
            due_date=_opt_str(data.get("due_date") or data.get("due_at")),
            tags=_str_tuple(data.get("tags")),
            color=_opt_str(data.get("color")),
            approval_status=_choice(data.get("approval_status"), APPROVAL_STATUSES, "none"),  # type: ignore[arg-type]
            approved_at=_opt_str(data.get("approved_at")),
            rejection_reason=_opt_str(data.get("rejection_reason")),
            completed_at=_opt_str(data.get("completed_at")),
            assignees=_str_tuple(data.get("assignees")),
            position=_int(data.get("position")),
            created_at=_opt_str(data.get("created_at")),
            updated_at=_opt_str(data.get("updated_at")),
        )

    def with_changes(self, changes: dict[str, Any]) -> "Task":
        """Return a copy with *changes* applied, coercing wire-shaped values."""
        merged = self.to_dict()
        merged.update(changes)
        return Task.from_dict(merged)


@dataclass(frozen=True)
class Stage:
    id: str
    name: str = ""
    color: str = "#6B7280"
    ordinal: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any], ordinal: int = 0) -> "Stage":
        stage_id = str(data.get("id") or "")
        return cls(
            id=stage_id,
            name=str(data.get("name") or stage_id),
            color=str(data.get("color") or "#6B7280"),
            ordinal=_int(data.get("ordinal"), ordinal),
        )


def default_stages() -> tuple[Stage, ...]:
    return tuple(Stage.from_dict(raw, ordinal=i) for i, raw in enumerate(DEFAULT_WORKFLOW_STAGES))


@dataclass(frozen=True)
class Member:
    user_id: str
    role: ProjectRole = "viewer"
    id: Optional[str] = None
    display_name: Optional[str] = None
    joined_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Member":
        profile = data.get("user") if isinstance(data.get("user"), dict) else {}
        return cls(
            user_id=str(data.get("user_id") or profile.get("id") or ""),
            role=_choice(data.get("role"), PROJECT_ROLES, "viewer"),  # type: ignore[arg-type]
            id=_opt_str(data.get("id")),
            display_name=_opt_str(data.get("display_name") or profile.get("full_name") or profile.get("email")),
            joined_at=_opt_str(data.get("joined_at")),
        )


def parse_role(value: Any) -> Optional[ProjectRole]:
    """Return a known role string, or ``None`` (no access) for anything else."""
    text = str(value or "").strip().lower()
    return text if text in PROJECT_ROLES else None  # type: ignore[return-value]


@dataclass(frozen=True)
class Project:
    id: str
    name: str = ""
    description: Optional[str] = None
    color: Optional[str] = None
    stages: tuple[Stage, ...] = field(default_factory=default_stages)
    members: tuple[Member, ...] = ()
    role: Optional[ProjectRole] = None

    @property
    def stage_ids(self) -> tuple[str, ...]:
        return tuple(stage.id for stage in self.stages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "workflow_stages": [s.to_dict() for s in self.stages],
            "members": [m.to_dict() for m in self.members],
            "role": self.role,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        raw_stages = [s for s in list(data.get("workflow_stages") or []) if isinstance(s, dict) and s.get("id")]
        stages = tuple(Stage.from_dict(s, ordinal=i) for i, s in enumerate(raw_stages)) or default_stages()
        members = tuple(Member.from_dict(m) for m in list(data.get("members") or []) if isinstance(m, dict))
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            description=_opt_str(data.get("description")),
            color=_opt_str(data.get("color")),
            stages=tuple(sorted(stages, key=lambda s: s.ordinal)),
            members=members,
            role=parse_role(data.get("role") or data.get("currentUserRole")),
        )


@dataclass(frozen=True)
class ProjectSnapshot:
    """Result of a full project read: the project plus its tasks grouped by stage."""

    project: Project
    tasks_by_stage: dict[str, list[Task]]
    counts: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProjectSnapshot":
        project = Project.from_dict(dict(payload.get("project") or {}))
        grouped: dict[str, list[Task]] = {}
        raw_groups = payload.get("tasks_by_stage") or {}
        if isinstance(raw_groups, dict):
            for stage_id, rows in raw_groups.items():
                grouped[str(stage_id)] = [Task.from_dict(r) for r in list(rows or []) if isinstance(r, dict)]
        counts = {str(k): _int(v) for k, v in dict(payload.get("counts") or {}).items()}
        return cls(project=project, tasks_by_stage=grouped, counts=counts)


@dataclass(frozen=True)
class ChangeEvent:
    """A row-level change pushed by the remote store's realtime stream."""

    kind: ChangeKind
    table: ChangeTable
    new: Optional[dict[str, Any]] = None
    old: Optional[dict[str, Any]] = None

    @property
    def record(self) -> dict[str, Any]:
        """The row that scopes this event: the new row, or the old one for deletes."""
        return self.new or self.old or {}

    @property
    def primary_key(self) -> Optional[str]:
        return _opt_str(self.record.get("id"))

    def to_payload(self) -> dict[str, Any]:
        return {
            "eventType": self.kind.upper(),
            "table": self.table,
            "new": dict(self.new or {}),
            "old": dict(self.old or {}),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ChangeEvent":
        """Parse a wire payload.

        Raises:
            ValueError: when the event type or table is not one the engine models.
        """
        kind = str(payload.get("eventType") or payload.get("type") or payload.get("kind") or "").lower()
        table = str(payload.get("table") or "")
        if kind not in CHANGE_KINDS:
            raise ValueError(f"Unknown change kind: {kind!r}")
        if table not in CHANGE_TABLES:
            raise ValueError(f"Unknown change table: {table!r}")
        new = payload.get("new") if isinstance(payload.get("new"), dict) else None
        old = payload.get("old") if isinstance(payload.get("old"), dict) else None
        return cls(kind=kind, table=table, new=new or None, old=old or None)  # type: ignore[arg-type]
