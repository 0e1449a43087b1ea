"""Form-boundary validation for task fields.

Everything here runs before an intent is built; a failure raises
:class:`~kanban_engine.errors.InputInvalid` and nothing is dispatched.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from ..errors import InputInvalid
from .models import PRIORITIES

MAX_TITLE_LENGTH = 500
_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

EDITABLE_FIELDS = {
    "title",
    "description",
    "priority",
    "due_date",
    "tags",
    "color",
    "assignees",
    "completed_at",
    "stage_id",
}


def _validate_timestamp(field: str, value: Any) -> str | None:
    if value in (None, ""):
        return None
    text = str(value)
    try:
        datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
    except ValueError:
        raise InputInvalid(field, "must be an ISO-8601 timestamp") from None
    return text


def validate_task_fields(data: dict[str, Any], *, require_title: bool = False) -> dict[str, Any]:
    """Validate and normalize a task form.

    Args:
        data: Raw form values. Unknown keys are dropped.
        require_title: Whether ``title`` must be present (task creation).

    Returns:
        The cleaned field mapping.

    Raises:
        InputInvalid: on the first invalid field.
    """
    cleaned: dict[str, Any] = {}
    unknown = set(data) - EDITABLE_FIELDS
    for key in data:
        if key in unknown:
            continue
        cleaned[key] = data[key]

    if "title" in cleaned or require_title:
        title = str(cleaned.get("title") or "").strip()
        if not title:
            raise InputInvalid("title", "Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise InputInvalid("title", f"Title must be at most {MAX_TITLE_LENGTH} characters")
        cleaned["title"] = title

    if "description" in cleaned:
        desc = cleaned["description"]
        cleaned["description"] = str(desc).strip() or None if desc is not None else None

    if "priority" in cleaned:
        priority = str(cleaned["priority"] or "none").lower()
        if priority not in PRIORITIES:
            raise InputInvalid("priority", f"Priority must be one of {', '.join(PRIORITIES)}")
        cleaned["priority"] = priority

    if "due_date" in cleaned:
        cleaned["due_date"] = _validate_timestamp("due_date", cleaned["due_date"])
    if "completed_at" in cleaned:
        cleaned["completed_at"] = _validate_timestamp("completed_at", cleaned["completed_at"])

    if "color" in cleaned:
        color = cleaned["color"]
        if color in (None, ""):
            cleaned["color"] = None
        elif not _COLOR_RE.match(str(color)):
            raise InputInvalid("color", "Color must be a hex value like #3B82F6")

    for list_field in ("tags", "assignees"):
        if list_field in cleaned:
            raw = cleaned[list_field] or []
            if isinstance(raw, str):
                raw = [part for part in raw.split(",")]
            cleaned[list_field] = [str(item).strip() for item in raw if str(item).strip()]

    if "stage_id" in cleaned:
        stage_id = str(cleaned["stage_id"] or "").strip()
        if not stage_id:
            raise InputInvalid("stage_id", "Stage is required")
        cleaned["stage_id"] = stage_id

    return cleaned
