"""Polling document watcher driven by a :class:`~tasksync.interfaces.Scheduler`."""

from __future__ import annotations

import os
from typing import Callable, Optional

from loguru import logger

from .constants import DEFAULT_POLL_INTERVAL
from .interfaces import DocumentWatcher, ScheduledHandle, Scheduler


def _signature(path: str) -> Optional[tuple[int, int]]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return (st.st_mtime_ns, st.st_size)


class PollingDocumentWatcher(DocumentWatcher):
    """Report changes of a single file by comparing its mtime and size.

    Polling re-arms itself on the scheduler, so with a :class:`LoopScheduler`
    the change callback runs on the event loop thread like every other
    engine entry point.
    """

    def __init__(self, scheduler: Scheduler, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._path: Optional[str] = None
        self._on_change: Optional[Callable[[], None]] = None
        self._last: Optional[tuple[int, int]] = None
        self._handle: Optional[ScheduledHandle] = None

    @property
    def watching(self) -> Optional[str]:
        return self._path

    def watch(self, path: str, on_change: Callable[[], None]) -> None:
        self.unwatch()
        self._path = path
        self._on_change = on_change
        self._last = _signature(path)
        self._arm()
        logger.debug("Watching {} every {}s", path, self._interval)

    def unwatch(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._path is not None:
            logger.debug("Stopped watching {}", self._path)
        self._path = None
        self._on_change = None
        self._last = None

    def _arm(self) -> None:
        self._handle = self._scheduler.call_later(self._interval, self._poll)

    def _poll(self) -> None:
        self._handle = None
        if self._path is None or self._on_change is None:
            return
        current = _signature(self._path)
        if current != self._last:
            self._last = current
            if current is not None:
                self._on_change()
        # the callback may have unwatched or re-targeted us
        if self._path is not None and self._handle is None:
            self._arm()
