from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def save(self) -> None:
        """Commit pending writes to the backend."""
        raise NotImplementedError


class DocumentIO(ABC):
    @abstractmethod
    def read_document(self, path: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def write_document(self, path: str, text: str) -> None:
        raise NotImplementedError


class DocumentWatcher(ABC):
    @abstractmethod
    def watch(self, path: str, on_change: Callable[[], None]) -> None:
        raise NotImplementedError

    @abstractmethod
    def unwatch(self) -> None:
        raise NotImplementedError


class ScheduledHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        raise NotImplementedError


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle:
        raise NotImplementedError
