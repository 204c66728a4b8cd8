"""Task, group and parse-provenance model for the synchronization engine.

Everything here is plain data.  The parser and serializer are pure functions
over these types; :class:`~tasksync.task_engine.engine.TaskEngine` owns the
single :class:`StoreState` instance and is the only place that mutates it.
The persisted (camelCase) shapes live in :mod:`.records`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from ..constants import (
    DEFAULT_GROUP_ID,
    DEFAULT_GROUP_TITLE,
    DEFAULT_POMODORO_BREAK_MINUTES,
    DEFAULT_POMODORO_WORK_MINUTES,
    DEFAULT_THEME,
    DEFAULT_VIEW_MODE,
)
from ..utils import _now_iso


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Priority(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskSource(str, Enum):
    """Where the live task list is persisted."""

    KEY_VALUE = "store"
    MARKDOWN = "md"


class LineTag(str, Enum):
    TASK = "task"
    HEADER = "header"
    OTHER = "other"


class TriState(str, Enum):
    CHECKED = "checked"
    UNCHECKED = "unchecked"
    MIXED = "mixed"


def _generate_id() -> str:
    """Id for tasks created in the app: ``task-<12hex>``."""
    return f"task-{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Tasks and groups
# ---------------------------------------------------------------------------

@dataclass
class Task:
    id: str = field(default_factory=_generate_id)
    text: str = ""
    done: bool = False
    order: int = 0
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)
    group_id: str = DEFAULT_GROUP_ID
    priority: Priority = Priority.NONE

    def touch(self) -> None:
        """Bump ``updated_at`` to now."""
        self.updated_at = _now_iso()

    def copy(self) -> "Task":
        return replace(self)


@dataclass(frozen=True)
class Group:
    id: str
    title: str
    icon: Optional[str] = None

    @property
    def is_default(self) -> bool:
        return self.id == DEFAULT_GROUP_ID


# ---------------------------------------------------------------------------
# Parse provenance
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnnotatedLine:
    """One physical line of a parsed document.

    ``group_id`` is set for task and header lines, ``task_id`` for task lines
    only.  A task line without ``task_id`` comes from a foreign producer and
    is passed through untouched on output.
    """

    tag: LineTag
    raw: str
    group_id: Optional[str] = None
    task_id: Optional[str] = None


@dataclass
class ParseResult:
    tasks: list[Task]
    group_order: list[str]
    group_titles: dict[str, str]
    lines: list[AnnotatedLine]


# ---------------------------------------------------------------------------
# Engine state
# ---------------------------------------------------------------------------

@dataclass
class Settings:
    markdown_path: Optional[str] = None
    active_task_id: Optional[str] = None
    collapsed_group_ids: list[str] = field(default_factory=list)
    group_order_override: list[str] = field(default_factory=list)
    group_icons: dict[str, str] = field(default_factory=dict)
    theme: str = DEFAULT_THEME
    view_mode: str = DEFAULT_VIEW_MODE
    debug_mode: bool = False
    pomodoro_work_minutes: int = DEFAULT_POMODORO_WORK_MINUTES
    pomodoro_break_minutes: int = DEFAULT_POMODORO_BREAK_MINUTES


def default_group_titles(default_title: str = DEFAULT_GROUP_TITLE) -> dict[str, str]:
    return {DEFAULT_GROUP_ID: default_title}


@dataclass
class StoreState:
    """Mutable state owned by one :class:`TaskEngine`."""

    tasks: list[Task] = field(default_factory=list)
    group_order: list[str] = field(default_factory=lambda: [DEFAULT_GROUP_ID])
    group_titles: dict[str, str] = field(default_factory=default_group_titles)
    source: TaskSource = TaskSource.KEY_VALUE
    markdown_path: Optional[str] = None
    lines: Optional[list[AnnotatedLine]] = None
    settings: Settings = field(default_factory=Settings)

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def renumber(self) -> None:
        for index, task in enumerate(self.tasks):
            task.order = index
