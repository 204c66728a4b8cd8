"""Tests for the key-value stores (task_engine/store.py)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from tasksync.errors import StorageError
from tasksync.task_engine.store import FileKeyValueStore, MemoryKeyValueStore


class TestFileKeyValueStore:
    def test_missing_file_reads_empty(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path / "tasks.json")
        assert store.get("data") is None

    def test_set_is_staged_until_save(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.json"
        store = FileKeyValueStore(path)

        store.set("settings", {"theme": "mono"})
        assert store.get("settings") == {"theme": "mono"}
        assert not path.exists()

        store.save()
        assert json.loads(path.read_text(encoding="utf-8")) == {"settings": {"theme": "mono"}}

    def test_values_are_copied(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path / "tasks.json")
        value = {"items": [1]}
        store.set("k", value)
        value["items"].append(2)
        store.get("k")["items"].append(3)
        assert store.get("k") == {"items": [1]}

    def test_save_merges_with_other_writers(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.json"
        first = FileKeyValueStore(path)
        second = FileKeyValueStore(path)

        first.set("data", {"version": "1.0.0"})
        first.save()
        second.set("settings", {"theme": "cyber"})
        second.save()

        assert set(json.loads(path.read_text(encoding="utf-8"))) == {"data", "settings"}
        assert second.get("data") == {"version": "1.0.0"}

    def test_yaml_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.yaml"
        store = FileKeyValueStore(path)
        store.set("settings", {"theme": "matrix"})
        store.save()
        assert yaml.safe_load(path.read_text(encoding="utf-8")) == {"settings": {"theme": "matrix"}}
        assert FileKeyValueStore(path).get("settings") == {"theme": "matrix"}

    def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "tasks.json"
        path.write_text("{not json", encoding="utf-8")
        store = FileKeyValueStore(path)

        with pytest.raises(StorageError, match="JSONDecodeError"):
            store.get("data")

        store.set("data", {})
        with pytest.raises(StorageError):
            store.save()
        assert path.read_text(encoding="utf-8") == "{not json"

    def test_unwritable_location_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = FileKeyValueStore(blocker / "tasks.json")
        store.set("data", {})
        with pytest.raises(StorageError):
            store.save()


class TestMemoryKeyValueStore:
    def test_commit_on_save(self) -> None:
        store = MemoryKeyValueStore({"a": 1})
        store.set("b", 2)
        assert store.committed == {"a": 1}
        assert store.get("b") == 2

        store.save()
        assert store.committed == {"a": 1, "b": 2}
        assert store.save_count == 1
