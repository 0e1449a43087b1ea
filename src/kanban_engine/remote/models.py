"""Request bodies shared by the HTTP client and the reference server."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class CreateTaskRequest(BaseModel):
    project_id: str
    stage_id: str
    title: str
    description: Optional[str] = None
    priority: str = "none"
    due_date: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    color: Optional[str] = None
    assignees: list[str] = Field(default_factory=list)
    completed_at: Optional[str] = None


class UpdateTaskRequest(BaseModel):
    # Sent with exclude_unset so an explicit null clears a column.
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = None
    tags: Optional[list[str]] = None
    color: Optional[str] = None
    assignees: Optional[list[str]] = None
    completed_at: Optional[str] = None
    stage_id: Optional[str] = None


class MoveTaskRequest(BaseModel):
    stage_id: str
    position: int = Field(ge=0)


class ReorderRequest(BaseModel):
    stage_id: str
    ordered_task_ids: list[str] = Field(default_factory=list)


class RejectTaskRequest(BaseModel):
    returnStageId: Optional[str] = None
    reason: Optional[str] = None


def wire_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Normalize engine-side field values (tuples) into JSON-ready ones."""
    out: dict[str, Any] = {}
    for key, value in fields.items():
        out[key] = list(value) if isinstance(value, tuple) else value
    return out
