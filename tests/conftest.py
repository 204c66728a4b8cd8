"""Shared fakes for the engine collaborators."""

from __future__ import annotations

from typing import Any, Callable, Optional

import pytest

from tasksync.config import SyncConfig
from tasksync.errors import DocumentIOError, StorageError
from tasksync.interfaces import DocumentIO, DocumentWatcher, KeyValueStore
from tasksync.scheduling import ManualScheduler
from tasksync.task_engine.engine import TaskEngine
from tasksync.task_engine.store import MemoryKeyValueStore


class FakeDocumentIO(DocumentIO):
    def __init__(self, files: Optional[dict[str, str]] = None) -> None:
        self.files: dict[str, str] = dict(files or {})
        self.writes: list[tuple[str, str]] = []
        self.fail_reads = False
        self.fail_writes = False

    def read_document(self, path: str) -> str:
        if self.fail_reads:
            raise DocumentIOError(path, "cannot read")
        if path not in self.files:
            raise DocumentIOError(path, "no such file", missing=True)
        return self.files[path]

    def write_document(self, path: str, text: str) -> None:
        if self.fail_writes:
            raise DocumentIOError(path, "cannot write")
        self.files[path] = text
        self.writes.append((path, text))


class FakeWatcher(DocumentWatcher):
    def __init__(self) -> None:
        self.path: Optional[str] = None
        self.on_change: Optional[Callable[[], None]] = None
        self.unwatch_calls = 0

    def watch(self, path: str, on_change: Callable[[], None]) -> None:
        self.path = path
        self.on_change = on_change

    def unwatch(self) -> None:
        self.unwatch_calls += 1
        self.path = None
        self.on_change = None

    def trigger(self) -> None:
        assert self.on_change is not None
        self.on_change()


class BrokenKeyValueStore(KeyValueStore):
    def get(self, key: str) -> Optional[Any]:
        raise StorageError("backend unavailable")

    def set(self, key: str, value: Any) -> None:
        pass

    def save(self) -> None:
        raise StorageError("backend unavailable")


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def doc_io() -> FakeDocumentIO:
    return FakeDocumentIO()


@pytest.fixture
def watcher() -> FakeWatcher:
    return FakeWatcher()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def make_engine(
    kv: MemoryKeyValueStore,
    doc_io: FakeDocumentIO,
    watcher: FakeWatcher,
    scheduler: ManualScheduler,
) -> Callable[..., TaskEngine]:
    def factory(store: Optional[KeyValueStore] = None, **config: Any) -> TaskEngine:
        engine = TaskEngine(
            store if store is not None else kv,
            doc_io,
            watcher,
            scheduler,
            config=SyncConfig(**config),
        )
        engine.init()
        return engine

    return factory


@pytest.fixture
def engine(make_engine: Callable[..., TaskEngine]) -> TaskEngine:
    return make_engine()
