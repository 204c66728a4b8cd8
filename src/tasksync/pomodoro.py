"""Pomodoro timer shared by every view of the task list.

The timer alternates between a work and a break phase.  It ticks once per
second on a :class:`~tasksync.interfaces.Scheduler`; when the remaining time
of a phase has run out, the next tick starts the other phase and the timer
keeps running.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

from .constants import (
    DEFAULT_POMODORO_BREAK_MINUTES,
    DEFAULT_POMODORO_WORK_MINUTES,
    POMODORO_BREAK_RANGE,
    POMODORO_WORK_RANGE,
)
from .interfaces import ScheduledHandle, Scheduler
from .utils import _clamp

if TYPE_CHECKING:
    from .task_engine.engine import TaskEngine

TICK_SECONDS = 1.0


class PomodoroPhase(str, Enum):
    WORK = "work"
    BREAK = "break"


class PomodoroTimer:
    """Work/break countdown with change subscribers."""

    def __init__(
        self,
        scheduler: Scheduler,
        work_minutes: int = DEFAULT_POMODORO_WORK_MINUTES,
        break_minutes: int = DEFAULT_POMODORO_BREAK_MINUTES,
    ) -> None:
        self._scheduler = scheduler
        self._work_minutes = _clamp(round(work_minutes), *POMODORO_WORK_RANGE)
        self._break_minutes = _clamp(round(break_minutes), *POMODORO_BREAK_RANGE)
        self._phase = PomodoroPhase.WORK
        self._remaining = self._work_minutes * 60
        self._handle: Optional[ScheduledHandle] = None
        self._listeners: list[Callable[[], None]] = []

    @property
    def phase(self) -> PomodoroPhase:
        return self._phase

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def work_minutes(self) -> int:
        return self._work_minutes

    @property
    def break_minutes(self) -> int:
        return self._break_minutes

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()

    def set_durations(self, work_minutes: float, break_minutes: float) -> None:
        """Change the phase lengths; the running countdown keeps its remaining time."""
        self._work_minutes = _clamp(round(work_minutes), *POMODORO_WORK_RANGE)
        self._break_minutes = _clamp(round(break_minutes), *POMODORO_BREAK_RANGE)
        self._notify()

    def start_pause(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("Pomodoro paused with {}s left in {}", self._remaining, self._phase.value)
        else:
            self._arm()
            logger.debug("Pomodoro started: {}s left in {}", self._remaining, self._phase.value)
        self._notify()

    def reset(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._start_phase(PomodoroPhase.WORK)

    def _start_phase(self, phase: PomodoroPhase) -> None:
        self._phase = phase
        minutes = self._work_minutes if phase is PomodoroPhase.WORK else self._break_minutes
        self._remaining = minutes * 60
        self._notify()

    def _arm(self) -> None:
        self._handle = self._scheduler.call_later(TICK_SECONDS, self._tick)

    def _tick(self) -> None:
        self._arm()
        if self._remaining <= 0:
            nxt = PomodoroPhase.BREAK if self._phase is PomodoroPhase.WORK else PomodoroPhase.WORK
            logger.info("Pomodoro {} phase over, starting {}", self._phase.value, nxt.value)
            self._start_phase(nxt)
            return
        self._remaining -= 1
        self._notify()

    def follow(self, engine: "TaskEngine") -> Callable[[], None]:
        """Keep the phase lengths equal to the engine's stored durations."""

        def sync() -> None:
            durations = engine.get_pomodoro_durations()
            if durations != (self._work_minutes, self._break_minutes):
                self.set_durations(*durations)

        sync()
        return engine.subscribe(sync)
