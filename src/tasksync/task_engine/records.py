"""Pydantic shapes of the records kept in the key-value store.

Two records are persisted:

``data``
    ``{version, tasks[], groupOrder[], groupTitles{}}``.  A version mismatch
    or any shape error makes the whole record count as absent.
``settings``
    ``{markdownPath, activeTaskId, collapsedGroupIds[], groupOrderOverride[],
    groupIcons{}, theme, viewMode, debugMode, pomodoroWorkMinutes,
    pomodoroBreakMinutes}``.  Each field is checked on its own and falls back
    to its default, so one bad value never discards the user's other
    preferences.
"""

from __future__ import annotations

import math
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..constants import (
    DATA_VERSION,
    DEFAULT_GROUP_ID,
    DEFAULT_POMODORO_BREAK_MINUTES,
    DEFAULT_POMODORO_WORK_MINUTES,
    DEFAULT_THEME,
    DEFAULT_VIEW_MODE,
    POMODORO_BREAK_RANGE,
    POMODORO_WORK_RANGE,
    VALID_THEMES,
    VALID_VIEW_MODES,
)
from ..utils import _clamp, _now_iso, _parse_iso
from .model import Priority, Settings, Task


class TaskRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    text: str = ""
    done: bool = False
    order: int = 0
    created_at: str = Field(default_factory=_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=_now_iso, alias="updatedAt")
    group_id: str = Field(default=DEFAULT_GROUP_ID, alias="groupId")
    priority: Priority = Priority.NONE

    @field_validator("group_id", mode="before")
    @classmethod
    def _group_id(cls, value: Any) -> Any:
        # older records omit groupId or store null for the default group
        return DEFAULT_GROUP_ID if value is None else value

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> Any:
        if isinstance(value, Priority):
            return value
        valid = {p.value for p in Priority}
        return value if isinstance(value, str) and value in valid else Priority.NONE.value

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Any:
        return value if _parse_iso(value) is not None else _now_iso()

    @classmethod
    def from_task(cls, task: Task) -> "TaskRecord":
        return cls(
            id=task.id,
            text=task.text,
            done=task.done,
            order=task.order,
            created_at=task.created_at,
            updated_at=task.updated_at,
            group_id=task.group_id,
            priority=task.priority,
        )

    def to_task(self) -> Task:
        return Task(
            id=self.id,
            text=self.text,
            done=self.done,
            order=self.order,
            created_at=self.created_at,
            updated_at=self.updated_at,
            group_id=self.group_id,
            priority=self.priority,
        )


class TaskDataRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str
    tasks: list[TaskRecord]
    group_order: list[str] = Field(default_factory=lambda: [DEFAULT_GROUP_ID], alias="groupOrder")
    group_titles: dict[str, str] = Field(default_factory=dict, alias="groupTitles")

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def build_task_data(
    tasks: list[Task],
    group_order: list[str],
    group_titles: dict[str, str],
) -> dict[str, Any]:
    record = TaskDataRecord(
        version=DATA_VERSION,
        tasks=[TaskRecord.from_task(t) for t in tasks],
        group_order=list(group_order),
        group_titles=dict(group_titles),
    )
    return record.dump()


def load_task_data(raw: Any) -> Optional[TaskDataRecord]:
    """Validate a stored ``data`` record; ``None`` means "no data"."""
    if not isinstance(raw, dict):
        return None
    if raw.get("version") != DATA_VERSION:
        return None
    try:
        return TaskDataRecord.model_validate(raw)
    except ValidationError:
        return None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _minutes(value: Any, bounds: tuple[int, int], default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return _clamp(round(value), *bounds)


class SettingsRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    markdown_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("markdownPath", "brainsMdPath", "markdown_path"),
        serialization_alias="markdownPath",
    )
    active_task_id: Optional[str] = Field(default=None, alias="activeTaskId")
    collapsed_group_ids: list[str] = Field(default_factory=list, alias="collapsedGroupIds")
    group_order_override: list[str] = Field(default_factory=list, alias="groupOrderOverride")
    group_icons: dict[str, str] = Field(default_factory=dict, alias="groupIcons")
    theme: str = DEFAULT_THEME
    view_mode: str = Field(default=DEFAULT_VIEW_MODE, alias="viewMode")
    debug_mode: bool = Field(default=False, alias="debugMode")
    pomodoro_work_minutes: int = Field(default=DEFAULT_POMODORO_WORK_MINUTES, alias="pomodoroWorkMinutes")
    pomodoro_break_minutes: int = Field(default=DEFAULT_POMODORO_BREAK_MINUTES, alias="pomodoroBreakMinutes")

    @field_validator("markdown_path", "active_task_id", mode="before")
    @classmethod
    def _optional_str(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) and value else None

    @field_validator("collapsed_group_ids", "group_order_override", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> list[str]:
        return _str_list(value)

    @field_validator("group_icons", mode="before")
    @classmethod
    def _icons(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {k: v for k, v in value.items() if isinstance(k, str) and isinstance(v, str) and v}

    @field_validator("theme", mode="before")
    @classmethod
    def _theme(cls, value: Any) -> str:
        return value if value in VALID_THEMES else DEFAULT_THEME

    @field_validator("view_mode", mode="before")
    @classmethod
    def _view_mode(cls, value: Any) -> str:
        return value if value in VALID_VIEW_MODES else DEFAULT_VIEW_MODE

    @field_validator("debug_mode", mode="before")
    @classmethod
    def _debug_mode(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else False

    @field_validator("pomodoro_work_minutes", mode="before")
    @classmethod
    def _work(cls, value: Any) -> int:
        return _minutes(value, POMODORO_WORK_RANGE, DEFAULT_POMODORO_WORK_MINUTES)

    @field_validator("pomodoro_break_minutes", mode="before")
    @classmethod
    def _break(cls, value: Any) -> int:
        return _minutes(value, POMODORO_BREAK_RANGE, DEFAULT_POMODORO_BREAK_MINUTES)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettingsRecord":
        return cls(
            markdown_path=settings.markdown_path,
            active_task_id=settings.active_task_id,
            collapsed_group_ids=list(settings.collapsed_group_ids),
            group_order_override=list(settings.group_order_override),
            group_icons=dict(settings.group_icons),
            theme=settings.theme,
            view_mode=settings.view_mode,
            debug_mode=settings.debug_mode,
            pomodoro_work_minutes=settings.pomodoro_work_minutes,
            pomodoro_break_minutes=settings.pomodoro_break_minutes,
        )

    def to_settings(self) -> Settings:
        return Settings(
            markdown_path=self.markdown_path,
            active_task_id=self.active_task_id,
            collapsed_group_ids=list(self.collapsed_group_ids),
            group_order_override=list(self.group_order_override),
            group_icons=dict(self.group_icons),
            theme=self.theme,
            view_mode=self.view_mode,
            debug_mode=self.debug_mode,
            pomodoro_work_minutes=self.pomodoro_work_minutes,
            pomodoro_break_minutes=self.pomodoro_break_minutes,
        )

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def load_settings(raw: Any) -> Settings:
    if not isinstance(raw, dict):
        return Settings()
    return SettingsRecord.model_validate(raw).to_settings()


def dump_settings(settings: Settings) -> dict[str, Any]:
    return SettingsRecord.from_settings(settings).dump()
