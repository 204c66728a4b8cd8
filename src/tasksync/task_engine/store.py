"""Key-value persistence backends for the non-markdown mode.

:class:`FileKeyValueStore` keeps every key in one JSON (or YAML) document,
``tasks.json`` by default.  :meth:`~FileKeyValueStore.set` only stages a
value; :meth:`~FileKeyValueStore.save` takes the file lock, merges the staged
keys over the current file content and writes atomically
(write-tmp-then-rename), so two processes sharing the file never lose each
other's keys.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from ..errors import StorageError
from ..interfaces import KeyValueStore
from ..io_utils import FileLock, _load_data_with_error, _save_data

LOCK_SUFFIX = ".lock"


class FileKeyValueStore(KeyValueStore):
    """File-backed key-value store.

    Parameters
    ----------
    path:
        Location of the store document.  The suffix picks the format
        (``.yaml``/``.yml`` or JSON for anything else).
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = FileLock(path.with_name(path.name + LOCK_SUFFIX))
        self._data: dict[str, Any] = {}
        self._staged: dict[str, Any] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            data, err = _load_data_with_error(self._path, {})
        if err:
            raise StorageError(err)
        self._data = data
        self._loaded = True

    def get(self, key: str) -> Optional[Any]:
        self._ensure_loaded()
        if key in self._staged:
            return copy.deepcopy(self._staged[key])
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._staged[key] = copy.deepcopy(value)

    def save(self) -> None:
        if not self._staged:
            return
        try:
            with self._lock:
                current, err = _load_data_with_error(self._path, {})
                if err:
                    raise StorageError(err)
                current.update(self._staged)
                _save_data(self._path, current)
        except OSError as exc:
            raise StorageError(f"{self._path.name}: {exc.__class__.__name__}: {exc}") from exc
        self._data = current
        self._loaded = True
        logger.debug("Saved keys {} to {}", sorted(self._staged), self._path)
        self._staged = {}


class MemoryKeyValueStore(KeyValueStore):
    """In-process store; ``save()`` copies staged values into ``committed``."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self.committed: dict[str, Any] = copy.deepcopy(initial or {})
        self._staged: dict[str, Any] = {}
        self.save_count = 0

    def get(self, key: str) -> Optional[Any]:
        if key in self._staged:
            return copy.deepcopy(self._staged[key])
        return copy.deepcopy(self.committed.get(key))

    def set(self, key: str, value: Any) -> None:
        self._staged[key] = copy.deepcopy(value)

    def save(self) -> None:
        self.committed.update(self._staged)
        self._staged = {}
        self.save_count += 1
