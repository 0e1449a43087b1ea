"""Project roles and the capability gate guarding every board write."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional

from ..domain.models import ProjectRole, parse_role
from ..errors import PermissionDenied


class ProjectAction(str, Enum):
    VIEW = "view"
    EDIT = "edit"                      # create / update / move / reorder / delete tasks
    MANAGE_MEMBERS = "manage_members"
    APPROVE = "approve"                # approve or reject tasks in review
    TRANSFER_OWNERSHIP = "transfer_ownership"
    DELETE_PROJECT = "delete_project"


# Roles from least to most privileged.
ROLE_ORDER: tuple[ProjectRole, ...] = ("viewer", "member", "admin", "owner")

# Permissions per role
ROLE_PERMISSIONS: dict[str, set[str]] = {
    "viewer": {
        ProjectAction.VIEW.value,
    },
    "member": {
        ProjectAction.VIEW.value, ProjectAction.EDIT.value,
    },
    "admin": {
        ProjectAction.VIEW.value, ProjectAction.EDIT.value,
        ProjectAction.MANAGE_MEMBERS.value, ProjectAction.APPROVE.value,
    },
    "owner": {
        ProjectAction.VIEW.value, ProjectAction.EDIT.value,
        ProjectAction.MANAGE_MEMBERS.value, ProjectAction.APPROVE.value,
        ProjectAction.TRANSFER_OWNERSHIP.value, ProjectAction.DELETE_PROJECT.value,
    },
}

ROLE_LABELS: dict[str, str] = {
    "owner": "Full control including project deletion and ownership transfer",
    "admin": "Can manage members, approve tasks, and edit project settings",
    "member": "Can create and edit tasks",
    "viewer": "Read-only access to project and tasks",
}


def role_rank(role: Optional[str]) -> int:
    """Position of *role* in :data:`ROLE_ORDER`; ``-1`` for no access."""
    parsed = parse_role(role)
    return ROLE_ORDER.index(parsed) if parsed else -1


def is_allowed(role: Optional[str], action: ProjectAction | str) -> bool:
    """Pure gate: may a viewer holding *role* perform *action*?"""
    parsed = parse_role(role)
    if parsed is None:
        return False
    value = action.value if isinstance(action, ProjectAction) else str(action)
    return value in ROLE_PERMISSIONS.get(parsed, set())


@dataclass(frozen=True)
class ProjectPermissions:
    """Capability booleans derived from the viewer's role."""

    role: Optional[ProjectRole] = None
    can_view: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_manage_members: bool = False
    can_approve: bool = False
    can_transfer_ownership: bool = False
    can_delete_project: bool = False

    @classmethod
    def for_role(cls, role: Optional[str]) -> "ProjectPermissions":
        parsed = parse_role(role)
        return cls(
            role=parsed,
            can_view=is_allowed(parsed, ProjectAction.VIEW),
            can_edit=is_allowed(parsed, ProjectAction.EDIT),
            can_delete=is_allowed(parsed, ProjectAction.EDIT),
            can_manage_members=is_allowed(parsed, ProjectAction.MANAGE_MEMBERS),
            can_approve=is_allowed(parsed, ProjectAction.APPROVE),
            can_transfer_ownership=is_allowed(parsed, ProjectAction.TRANSFER_OWNERSHIP),
            can_delete_project=is_allowed(parsed, ProjectAction.DELETE_PROJECT),
        )

    def allows(self, action: ProjectAction | str) -> bool:
        return is_allowed(self.role, action)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PermissionGate:
    """Holds the viewer's current role for one project.

    The role is replaced whenever a project read reports a new one; until the
    first read the gate denies everything.
    """

    def __init__(self, role: Optional[str] = None) -> None:
        self._permissions = ProjectPermissions.for_role(role)

    @property
    def role(self) -> Optional[ProjectRole]:
        return self._permissions.role

    @property
    def permissions(self) -> ProjectPermissions:
        return self._permissions

    def set_role(self, role: Optional[str]) -> None:
        self._permissions = ProjectPermissions.for_role(role)

    def check(self, action: ProjectAction | str) -> bool:
        return self._permissions.allows(action)

    def require(self, action: ProjectAction | str) -> None:
        """Raise :class:`PermissionDenied` unless the current role allows *action*."""
        if not self._permissions.allows(action):
            raise PermissionDenied(getattr(action, "value", str(action)), self.role)
