"""Tests for file helpers (io_utils.py)."""

from __future__ import annotations

from pathlib import Path

import pytest

from tasksync.errors import DocumentIOError
from tasksync.io_utils import LocalDocumentIO, _load_data_with_error, _save_data


class TestLocalDocumentIO:
    def test_write_then_read_is_exact(self, tmp_path: Path) -> None:
        io = LocalDocumentIO()
        path = str(tmp_path / "notes" / "tasks.md")
        io.write_document(path, "- [ ] a\r\n- [ ] b\n")
        assert io.read_document(path) == "- [ ] a\r\n- [ ] b\n"
        assert not (tmp_path / "notes" / "tasks.md.tmp").exists()

    def test_missing_file(self, tmp_path: Path) -> None:
        path = str(tmp_path / "missing.md")
        with pytest.raises(DocumentIOError) as excinfo:
            LocalDocumentIO().read_document(path)
        assert excinfo.value.path == path
        assert excinfo.value.missing

    def test_undecodable_file(self, tmp_path: Path) -> None:
        path = tmp_path / "binary.md"
        path.write_bytes(b"\xff\xfe\x00bad")
        with pytest.raises(DocumentIOError) as excinfo:
            LocalDocumentIO().read_document(str(path))
        assert not excinfo.value.missing

    def test_write_into_file_path_fails(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(DocumentIOError):
            LocalDocumentIO().write_document(str(blocker / "tasks.md"), "x")


class TestDataFiles:
    def test_json_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        _save_data(path, {"a": [1, 2], "b": "ü"})
        assert _load_data_with_error(path, {}) == ({"a": [1, 2], "b": "ü"}, None)

    def test_missing_returns_default(self, tmp_path: Path) -> None:
        assert _load_data_with_error(tmp_path / "nope.json", {"x": 1}) == ({"x": 1}, None)
