"""Error taxonomy shared by the board engine and the remote store client."""

from __future__ import annotations

from typing import Optional


class KanbanError(Exception):
    """Base class for every error raised by the engine."""


class PermissionDenied(KanbanError):
    """An action was attempted without a sufficient project role."""

    def __init__(self, action: str, role: Optional[str]) -> None:
        self.action = action
        self.role = role
        super().__init__(f"Role {role or 'none'!r} may not perform {action!r}")


class RemoteFailure(KanbanError):
    """The remote store answered with a non-2xx status.

    ``message`` carries the remote ``error`` field verbatim, or ``None`` when
    the body had none; callers substitute their own generic text then.
    """

    def __init__(self, message: Optional[str], status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message or f"Remote store returned status {status_code}")


class NotFound(RemoteFailure):
    """The requested project or task does not exist (HTTP 404)."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message, 404)


class NetworkFailure(KanbanError):
    """The request never produced a response (connection reset, DNS, timeout)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InputInvalid(KanbanError):
    """Form input rejected before any intent is dispatched."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")
