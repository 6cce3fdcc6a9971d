"""Tests for the governor.yaml config loader."""

from pathlib import Path

import pytest

from signal_governor.config import (
    CONFIG_FILENAME,
    ConfigError,
    GovernorConfig,
    find_config,
    load_config,
)

# --- find_config ---


class TestFindConfig:
    def test_finds_in_start_dir(self, tmp_path: Path):
        cfg = tmp_path / CONFIG_FILENAME
        cfg.write_text("catalog: ./catalog\n", encoding="utf-8")
        assert find_config(tmp_path) == cfg

    def test_finds_in_parent(self, tmp_path: Path):
        cfg = tmp_path / CONFIG_FILENAME
        cfg.write_text("catalog: ./catalog\n", encoding="utf-8")
        child = tmp_path / "sub" / "deep"
        child.mkdir(parents=True)
        assert find_config(child) == cfg

    def test_returns_none_when_missing(self, tmp_path: Path):
        assert find_config(tmp_path) is None

    def test_ignores_directory_named_config(self, tmp_path: Path):
        (tmp_path / CONFIG_FILENAME).mkdir()
        assert find_config(tmp_path) is None


# --- load_config ---


class TestLoadConfig:
    def test_defaults_when_nothing_found(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        cfg = load_config()
        assert cfg == GovernorConfig()
        assert cfg.delivery_timeout_seconds == 10.0
        assert cfg.decision_interval_seconds == 30.0
        assert cfg.learning_interval_seconds == 300.0

    def test_explicit_missing_path_errors(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_resolves_relative_paths(self, tmp_path: Path):
        cfg_file = tmp_path / CONFIG_FILENAME
        cfg_file.write_text(
            "catalog: ./catalog\nstore: data/records.jsonl\n", encoding="utf-8",
        )
        cfg = load_config(cfg_file)
        assert cfg.config_path == cfg_file.resolve()
        assert cfg.catalog == str((tmp_path / "catalog").resolve())
        assert cfg.store == str((tmp_path / "data" / "records.jsonl").resolve())

    def test_sections_parsed(self, tmp_path: Path):
        cfg_file = tmp_path / CONFIG_FILENAME
        cfg_file.write_text(
            "safety:\n"
            "  min_confidence: 0.7\n"
            "learning:\n"
            "  window_size: 50\n"
            "throttles:\n"
            "  - {id: all, pattern: '*', max_alerts: 2, window_minutes: 5}\n"
            "channels:\n"
            "  - {id: ops, type: log}\n"
            "escalation:\n"
            "  id: default\n"
            "  steps: []\n"
            "delivery_timeout_seconds: 3\n",
            encoding="utf-8",
        )
        cfg = load_config(cfg_file)
        assert cfg.safety == {"min_confidence": 0.7}
        assert cfg.learning == {"window_size": 50}
        assert cfg.throttles[0]["pattern"] == "*"
        assert cfg.channels == [{"id": "ops", "type": "log"}]
        assert cfg.escalation["id"] == "default"
        assert cfg.delivery_timeout_seconds == 3.0

    def test_auto_discover_from_cwd(self, tmp_path: Path, monkeypatch):
        (tmp_path / CONFIG_FILENAME).write_text("decision_interval_seconds: 5\n", encoding="utf-8")
        sub = tmp_path / "nested"
        sub.mkdir()
        monkeypatch.chdir(sub)
        assert load_config().decision_interval_seconds == 5.0

    def test_auto_discover_disabled(self, tmp_path: Path, monkeypatch):
        (tmp_path / CONFIG_FILENAME).write_text("decision_interval_seconds: 5\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        assert load_config(auto_discover=False).decision_interval_seconds == 30.0

    def test_empty_file_is_defaults(self, tmp_path: Path):
        cfg_file = tmp_path / CONFIG_FILENAME
        cfg_file.write_text("", encoding="utf-8")
        assert load_config(cfg_file).catalog is None


class TestInvalidConfig:
    def _write(self, tmp_path: Path, text: str) -> Path:
        cfg_file = tmp_path / CONFIG_FILENAME
        cfg_file.write_text(text, encoding="utf-8")
        return cfg_file

    def test_invalid_yaml(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(self._write(tmp_path, "safety: [unclosed\n"))

    def test_not_a_mapping(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="mapping"):
            load_config(self._write(tmp_path, "- a\n- b\n"))

    def test_section_must_be_mapping(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="'safety' must be a mapping"):
            load_config(self._write(tmp_path, "safety: 3\n"))

    def test_channels_must_be_list(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="'channels' must be a list"):
            load_config(self._write(tmp_path, "channels: {id: ops}\n"))

    def test_bad_number(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid value"):
            load_config(self._write(tmp_path, "delivery_timeout_seconds: soon\n"))
