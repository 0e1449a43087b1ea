"""Tests for engine config loading."""

from __future__ import annotations

from pathlib import Path

from kanban_engine.config import (
    EngineSettings,
    default_config_path,
    load_engine_config,
    load_settings,
    settings_from_config,
    write_engine_config,
)


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    config, err = load_engine_config(tmp_path / "absent.yaml")
    assert (config, err) == ({}, None)
    assert settings_from_config(config) == EngineSettings()


def test_values_are_read_from_sections() -> None:
    settings = settings_from_config(
        {
            "remote": {"base_url": "http://board.local", "timeout": 3},
            "realtime": {"debounce_seconds": 0},
            "dnd": {"pointer_distance": 4, "haptics": False},
            "approvals": {"return_stage_id": "review", "done_stage_id": "shipped"},
            "logging": {"level": "debug"},
        }
    )
    assert settings.base_url == "http://board.local"
    assert settings.timeout == 3.0
    assert settings.debounce_seconds == 0.0
    assert settings.pointer_distance == 4.0
    assert settings.haptics is False
    assert (settings.return_stage_id, settings.done_stage_id) == ("review", "shipped")
    assert settings.log_level == "DEBUG"


def test_malformed_values_fall_back() -> None:
    settings = settings_from_config(
        {
            "remote": "not a section",
            "realtime": {"debounce_seconds": -1},
            "dnd": {"pointer_distance": True, "touch_delay": "slow", "haptics": "yes"},
            "approvals": {"return_stage_id": "  "},
            "logging": {"level": "LOUD"},
        }
    )
    assert settings == EngineSettings()


def test_broken_file_reports_error(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("remote: [unclosed\n", encoding="utf-8")
    settings, err = load_settings(path)
    assert settings == EngineSettings()
    assert err is not None and "YAMLError" in err


def test_non_mapping_file_reports_error(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    _, err = load_engine_config(path)
    assert err == "config.yaml: expected object, got list"


def test_written_config_round_trips(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.yaml"
    original = EngineSettings(base_url="http://x", touch_tolerance=8, return_stage_id="review", done_stage_id="done")
    write_engine_config(path, original)
    assert not path.with_suffix(".yaml.tmp").exists()
    settings, err = load_settings(path)
    assert err is None
    assert settings == original


def test_env_var_overrides_default_path(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("KANBAN_ENGINE_CONFIG", str(tmp_path / "custom.yaml"))
    assert default_config_path() == tmp_path / "custom.yaml"
    monkeypatch.delenv("KANBAN_ENGINE_CONFIG")
    assert default_config_path().parts[-3:] == (".config", "kanban-engine", "config.yaml")
