"""In-memory debug log.

:class:`DebugLog` is a loguru sink that keeps the most recent log records in
a bounded ring buffer so a UI can show them without reading log files.  It
is only attached to the logger while the engine's debug mode is on.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

from .constants import DEBUG_LOG_MAX_ENTRIES

if TYPE_CHECKING:
    from .task_engine.engine import TaskEngine


@dataclass(frozen=True)
class DebugEntry:
    time: str
    level: str
    module: str
    message: str


class DebugLog:
    """Bounded buffer of log entries with change subscribers."""

    def __init__(self, max_entries: int = DEBUG_LOG_MAX_ENTRIES, level: str = "DEBUG") -> None:
        self._entries: deque[DebugEntry] = deque(maxlen=max_entries)
        self._listeners: list[Callable[[DebugEntry], None]] = []
        self._level = level
        self._sink_id: Optional[int] = None

    @property
    def installed(self) -> bool:
        return self._sink_id is not None

    def install(self) -> None:
        if self._sink_id is None:
            self._sink_id = logger.add(self.write, level=self._level, format="{message}")

    def uninstall(self) -> None:
        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None

    def write(self, message) -> None:
        """loguru sink entry point; *message* carries the structured ``record``."""
        record = message.record
        entry = DebugEntry(
            time=record["time"].strftime("%H:%M:%S.%f")[:-3],
            level=record["level"].name,
            module=record["module"],
            message=record["message"],
        )
        self._entries.append(entry)
        for callback in list(self._listeners):
            callback(entry)

    def entries(self) -> list[DebugEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def subscribe(self, callback: Callable[[DebugEntry], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def follow(self, engine: "TaskEngine") -> Callable[[], None]:
        """Install or remove the sink whenever the engine's debug mode changes."""

        def sync() -> None:
            if engine.get_debug_mode():
                self.install()
            else:
                self.uninstall()

        sync()
        return engine.subscribe(sync)
