"""Small file helpers for the engine config."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from filelock import FileLock


def read_mapping(path: Path) -> tuple[dict[str, Any], str | None]:
    """Parse a YAML (``.yaml``/``.yml``) or JSON file that must hold a mapping.

    Returns ``(data, None)`` on success.  A missing or empty file gives
    ``({}, None)``; unreadable or malformed content gives ``({}, message)`` so
    callers can fall back to defaults and still show what went wrong.
    """
    if not path.exists():
        return {}, None
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        return {}, f"{path.name}: {exc.__class__.__name__}: {exc}"

    if not text.strip():
        return {}, None
    try:
        if path.suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except yaml.YAMLError as exc:
        return {}, f"{path.name}: YAMLError: {exc}"
    except json.JSONDecodeError as exc:
        return {}, f"{path.name}: JSONDecodeError: {exc}"

    if data is None:
        return {}, None
    if not isinstance(data, dict):
        return {}, f"{path.name}: expected object, got {type(data).__name__}"
    return data, None


def write_yaml_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write *data* as YAML via a sibling temp file, holding ``<path>.lock``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(path.name + ".tmp")
    with FileLock(str(path.with_name(path.name + ".lock"))):
        staging.write_text(
            yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True),
            encoding="utf-8",
        )
        staging.replace(path)
