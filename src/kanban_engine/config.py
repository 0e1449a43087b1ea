"""Load optional engine configuration from ``~/.config/kanban-engine/config.yaml``."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

from .constants import (
    CONFIG_DIR_NAME,
    CONFIG_ENV_VAR,
    CONFIG_FILE,
    DEFAULT_BASE_URL,
    DEFAULT_DONE_STAGE_ID,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_POINTER_DISTANCE,
    DEFAULT_REFETCH_DEBOUNCE_SECONDS,
    DEFAULT_RETURN_STAGE_ID,
    DEFAULT_TOUCH_DELAY,
    DEFAULT_TOUCH_TOLERANCE,
)
from .io_utils import read_mapping, write_yaml_atomic

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class EngineSettings:
    """Resolved engine settings with defaults applied."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_HTTP_TIMEOUT
    debounce_seconds: float = DEFAULT_REFETCH_DEBOUNCE_SECONDS
    pointer_distance: float = DEFAULT_POINTER_DISTANCE
    touch_delay: float = DEFAULT_TOUCH_DELAY
    touch_tolerance: float = DEFAULT_TOUCH_TOLERANCE
    haptics: bool = True
    return_stage_id: str = DEFAULT_RETURN_STAGE_ID
    done_stage_id: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL

    def to_config(self) -> dict[str, Any]:
        """Render the settings back into the nested config file shape."""
        data = asdict(self)
        return {
            "remote": {"base_url": data["base_url"], "timeout": data["timeout"]},
            "realtime": {"debounce_seconds": data["debounce_seconds"]},
            "dnd": {
                "pointer_distance": data["pointer_distance"],
                "touch_delay": data["touch_delay"],
                "touch_tolerance": data["touch_tolerance"],
                "haptics": data["haptics"],
            },
            "approvals": {
                "return_stage_id": data["return_stage_id"],
                "done_stage_id": data["done_stage_id"] or DEFAULT_DONE_STAGE_ID,
            },
            "logging": {"level": data["log_level"]},
        }


def default_config_path() -> Path:
    """Return the config path, honouring ``KANBAN_ENGINE_CONFIG``."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / CONFIG_DIR_NAME / CONFIG_FILE


def load_engine_config(path: Optional[Path] = None) -> tuple[dict[str, Any], str | None]:
    """Load the optional engine config file.

    Args:
        path: Explicit config path. Defaults to :func:`default_config_path`.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = (path or default_config_path()).expanduser()
    if not path.exists():
        return {}, None
    return read_mapping(path)


def write_engine_config(path: Path, settings: EngineSettings) -> None:
    write_yaml_atomic(path, settings.to_config())


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    raw = _get_nested(config, name)
    return raw if isinstance(raw, dict) else {}


def get_remote_config(config: dict[str, Any]) -> dict[str, Any]:
    return _section(config, "remote")


def get_realtime_config(config: dict[str, Any]) -> dict[str, Any]:
    return _section(config, "realtime")


def get_dnd_config(config: dict[str, Any]) -> dict[str, Any]:
    return _section(config, "dnd")


def get_approvals_config(config: dict[str, Any]) -> dict[str, Any]:
    return _section(config, "approvals")


def _positive_number(raw: Any, default: float) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return default
    return float(raw) if raw > 0 else default


def _non_negative_number(raw: Any, default: float) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return default
    return float(raw) if raw >= 0 else default


def _non_empty_str(raw: Any, default: Optional[str]) -> Optional[str]:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return default


def get_log_level(config: dict[str, Any]) -> str:
    raw = _get_nested(config, "logging", "level")
    if isinstance(raw, str) and raw.upper() in VALID_LOG_LEVELS:
        return raw.upper()
    return DEFAULT_LOG_LEVEL


def settings_from_config(config: dict[str, Any]) -> EngineSettings:
    """Build :class:`EngineSettings` from a raw config mapping.

    Missing or malformed values fall back to the defaults in ``constants``.
    """
    remote = get_remote_config(config)
    realtime = get_realtime_config(config)
    dnd = get_dnd_config(config)
    approvals = get_approvals_config(config)

    haptics = dnd.get("haptics")
    return EngineSettings(
        base_url=_non_empty_str(remote.get("base_url"), DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
        timeout=_positive_number(remote.get("timeout"), DEFAULT_HTTP_TIMEOUT),
        debounce_seconds=_non_negative_number(realtime.get("debounce_seconds"), DEFAULT_REFETCH_DEBOUNCE_SECONDS),
        pointer_distance=_positive_number(dnd.get("pointer_distance"), DEFAULT_POINTER_DISTANCE),
        touch_delay=_positive_number(dnd.get("touch_delay"), DEFAULT_TOUCH_DELAY),
        touch_tolerance=_non_negative_number(dnd.get("touch_tolerance"), DEFAULT_TOUCH_TOLERANCE),
        haptics=haptics if isinstance(haptics, bool) else True,
        return_stage_id=_non_empty_str(approvals.get("return_stage_id"), DEFAULT_RETURN_STAGE_ID) or DEFAULT_RETURN_STAGE_ID,
        done_stage_id=_non_empty_str(approvals.get("done_stage_id"), None),
        log_level=get_log_level(config),
    )


def load_settings(path: Optional[Path] = None) -> tuple[EngineSettings, str | None]:
    """Convenience: load the config file and resolve it into settings."""
    config, err = load_engine_config(path)
    return settings_from_config(config), err
