"""Cancellable delayed callbacks for debounced persistence and polling.

Two schedulers are provided:

* :class:`LoopScheduler` runs callbacks on the running asyncio event loop,
  which keeps every mutation, timer and watcher callback on one thread.
* :class:`ManualScheduler` keeps callbacks in a virtual-time queue that the
  caller drives with :meth:`ManualScheduler.advance`.  The CLI uses it (it
  flushes explicitly before exiting) and so does the test-suite.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Optional

from .interfaces import ScheduledHandle, Scheduler


class _LoopHandle(ScheduledHandle):
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class LoopScheduler(Scheduler):
    """Schedule callbacks on an asyncio event loop.

    Parameters
    ----------
    loop:
        Loop to schedule on.  When omitted the running loop is used, so
        constructing the scheduler outside one raises ``RuntimeError``.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle:
        return _LoopHandle(self._loop.call_later(delay, callback))


class _ManualHandle(ScheduledHandle):
    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: "_ManualHandle") -> bool:
        return (self.due, self.seq) < (other.due, other.seq)


class ManualScheduler(Scheduler):
    """Virtual-time scheduler; nothing runs until :meth:`advance` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[_ManualHandle] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle:
        handle = _ManualHandle(self.now + max(0.0, delay), next(self._seq), callback)
        heapq.heappush(self._queue, handle)
        return handle

    @property
    def pending(self) -> int:
        """Number of live (not cancelled, not yet run) callbacks."""
        return sum(1 for h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Move virtual time forward, running every callback that becomes due.

        Returns the number of callbacks that ran.
        """
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0].due <= target:
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = handle.due
            handle.callback()
            ran += 1
        self.now = target
        return ran
