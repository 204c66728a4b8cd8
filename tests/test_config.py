"""Tests for configuration loading (config.py)."""

from __future__ import annotations

from pathlib import Path

from tasksync.config import SyncConfig, find_config_file, load_config


class TestFindConfigFile:
    def test_none_when_missing(self, tmp_path: Path) -> None:
        assert find_config_file(tmp_path) is None

    def test_root_file_wins(self, tmp_path: Path) -> None:
        (tmp_path / ".tasksync").mkdir()
        (tmp_path / ".tasksync" / "config.yaml").write_text("log_level: DEBUG\n", encoding="utf-8")
        assert find_config_file(tmp_path) == (tmp_path / ".tasksync" / "config.yaml").resolve()

        (tmp_path / "tasksync.yaml").write_text("log_level: INFO\n", encoding="utf-8")
        assert find_config_file(tmp_path) == (tmp_path / "tasksync.yaml").resolve()


class TestLoadConfig:
    def test_missing(self, tmp_path: Path) -> None:
        assert load_config(None) == ({}, None)
        assert load_config(tmp_path / "nope.yaml") == ({}, None)

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "tasksync.yaml"
        path.write_text("debounce_ms: 500\nstore_path: data/tasks.json\n", encoding="utf-8")
        data, err = load_config(path)
        assert err is None
        assert data == {"debounce_ms": 500, "store_path": "data/tasks.json"}

    def test_invalid_yaml_reports_error(self, tmp_path: Path) -> None:
        path = tmp_path / "tasksync.yaml"
        path.write_text("key: [unclosed\n", encoding="utf-8")
        data, err = load_config(path)
        assert data == {}
        assert err is not None and "YAMLError" in err

    def test_non_mapping_reports_error(self, tmp_path: Path) -> None:
        path = tmp_path / "tasksync.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        data, err = load_config(path)
        assert data == {}
        assert err is not None and "expected object" in err


class TestSyncConfig:
    def test_defaults(self) -> None:
        config = SyncConfig.from_mapping({})
        assert config == SyncConfig()
        assert config.debounce_seconds == 0.3
        assert config.store_path == "tasks.json"
        assert config.default_group_title == "Tasks"
        assert config.placeholder == "(untitled)"

    def test_debounce_ms(self) -> None:
        assert SyncConfig.from_mapping({"debounce_ms": 500}).debounce_seconds == 0.5
        assert SyncConfig.from_mapping({"debounce_seconds": 1, "debounce_ms": 500}).debounce_seconds == 1.0

    def test_invalid_values_keep_defaults(self) -> None:
        config = SyncConfig.from_mapping(
            {
                "debounce_seconds": -1,
                "poll_interval": "fast",
                "store_path": "   ",
                "default_group_title": 7,
                "log_level": "chatty",
            }
        )
        assert config == SyncConfig()

    def test_values_are_applied(self) -> None:
        config = SyncConfig.from_mapping(
            {"default_group_title": " Inbox ", "placeholder": "TBD", "poll_interval": 2, "log_level": "debug"}
        )
        assert config.default_group_title == "Inbox"
        assert config.placeholder == "TBD"
        assert config.poll_interval == 2.0
        assert config.log_level == "DEBUG"
