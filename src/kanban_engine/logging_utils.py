"""Configure loguru and summarize engine objects for log lines."""

from __future__ import annotations

import json
import sys
from dataclasses import fields, is_dataclass
from typing import Any

from loguru import logger

from .constants import DEFAULT_LOG_LEVEL


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


def _short(value: Any, limit: int = 80) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return value[:limit] + "…"
    return value


def summarize_intent(intent: Any) -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of an intent object.

    Args:
        intent: Intent instance (or None).

    Returns:
        A dictionary suitable for logging or serialization. Task payloads are
        reduced to their ids and long strings are truncated.
    """
    if intent is None:
        return {"intent": None}

    d: dict[str, Any] = {"intent": intent.__class__.__name__}
    if not is_dataclass(intent):
        return d

    for f in fields(intent):
        value = getattr(intent, f.name)
        if value is None:
            continue
        if is_dataclass(value) and hasattr(value, "id"):
            d[f"{f.name}_id"] = value.id
        elif isinstance(value, (list, tuple)):
            d[f"{f.name}_n"] = len(value)
            d[f"{f.name}_sample"] = [_short(v) for v in list(value)[:3]]
        elif isinstance(value, dict):
            d[f.name] = {k: _short(v) for k, v in value.items()}
        else:
            d[f.name] = _short(value)
    return d


def summarize_event(event: Any) -> dict[str, Any]:
    """Render a compact summary of a realtime change event."""
    if event is None:
        return {"event": None}
    row = getattr(event, "new", None) or getattr(event, "old", None) or {}
    return {
        "event": getattr(event, "kind", None),
        "table": getattr(event, "table", None),
        "row_id": row.get("id") if isinstance(row, dict) else None,
    }


def pretty(obj: Any, *, indent: int = 2) -> str:
    """Serialize an object as JSON for readable logs.

    Args:
        obj: Object to serialize.
        indent: Indentation level for JSON output.

    Returns:
        A JSON string when possible; otherwise `str(obj)`.
    """
    try:
        return json.dumps(obj, indent=indent, default=str)
    except (TypeError, ValueError):
        return str(obj)
