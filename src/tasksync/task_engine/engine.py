"""Task engine: the stateful owner of tasks, groups and settings.

This is the primary entry-point for all task manipulation.  It wraps the
pure parser/serializer with persistence, change notification and the
markdown/key-value source state machine:

* every mutation is applied to :class:`StoreState` synchronously, then the
  derived views are invalidated, subscribers are notified and a debounced
  write is scheduled;
* in markdown mode writes go through :func:`serialize` and the injected
  :class:`DocumentIO`; otherwise the ``data`` record is written to the
  :class:`KeyValueStore`;
* external file changes reparse the document off to the side and swap the
  result in only once it is complete.

Operations on unknown task or group ids are silent no-ops.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from loguru import logger

from ..config import SyncConfig
from ..constants import (
    DATA_KEY,
    DEFAULT_GROUP_ID,
    POMODORO_BREAK_RANGE,
    POMODORO_WORK_RANGE,
    SETTINGS_KEY,
    VALID_THEMES,
    VALID_VIEW_MODES,
)
from ..errors import DocumentIOError, StorageError, TaskSyncError
from ..interfaces import DocumentIO, DocumentWatcher, KeyValueStore, ScheduledHandle, Scheduler
from ..scheduling import LoopScheduler
from ..utils import _clamp
from .model import (
    Group,
    Priority,
    StoreState,
    Task,
    TaskSource,
    TriState,
    default_group_titles,
)
from .parser import parse
from .records import build_task_data, dump_settings, load_settings, load_task_data
from .serializer import ordered_group_ids, serialize
from .slug import normalize_text, slugify

Listener = Callable[[], None]


def _single_line(text: str) -> str:
    """Trim and collapse whitespace runs, line breaks included, to one space."""
    return " ".join(text.split())


def _strip_leading_icon(title: str) -> str:
    """Drop a leading emoji/symbol run: ``"🔥 Work"`` and ``"🔥Work"`` both give ``"Work"``."""
    end = 0
    while end < len(title) and not title[end].isspace() and not title[end].isalnum() and ord(title[end]) > 0x2000:
        end += 1
    if not end:
        return title
    return title[end:].lstrip()


class TaskEngine:
    """Own the live task list and keep it in sync with its persistence source.

    Parameters
    ----------
    kv_store:
        Key-value backend holding the ``data`` and ``settings`` records.
    document_io:
        Reads and writes markdown documents.
    watcher:
        Optional change observer for the markdown document.
    scheduler:
        Runs the debounced persist.  Defaults to a :class:`LoopScheduler` on
        the running asyncio loop, so constructing the engine without one
        outside a running loop raises ``RuntimeError``.
    config:
        Debounce window, default group title and empty-task placeholder.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        document_io: DocumentIO,
        watcher: Optional[DocumentWatcher] = None,
        scheduler: Optional[Scheduler] = None,
        *,
        config: Optional[SyncConfig] = None,
    ) -> None:
        self._kv = kv_store
        self._io = document_io
        self._watcher = watcher
        self._scheduler = scheduler or LoopScheduler()
        self._config = config or SyncConfig()
        self.state = StoreState(group_titles=default_group_titles(self._config.default_group_title))
        self.storage_ready = True

        self._listeners: list[Listener] = []
        self._persist_handle: Optional[ScheduledHandle] = None
        self._pending_persist = False
        self._last_written: Optional[str] = None
        # false while the markdown file exists but could not be read
        self._document_readable = True

        self._cache_valid = False
        self._cached_tasks: list[Task] = []
        self._cached_groups: list[Group] = []

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Load settings and tasks; a failing backend leaves an empty, unsynced engine."""
        try:
            self._load_settings()
            self.load()
        except StorageError as exc:
            logger.error("Failed to initialize store, continuing unsynced: {}", exc)
            self.storage_ready = False
            self.state.source = TaskSource.KEY_VALUE
            self.state.markdown_path = None
            self._reset_data()
            self._changed()
            return

        path = self.state.markdown_path
        if self.state.source is TaskSource.MARKDOWN and path:
            try:
                self.load_from_markdown(path)
            except DocumentIOError as exc:
                logger.error("Failed to load tasks from markdown: {}", exc)
                self._document_readable = exc.missing
            self._start_watching(path)

    def _load_settings(self) -> None:
        settings = load_settings(self._kv.get(SETTINGS_KEY))
        self.state.settings = settings
        if settings.markdown_path:
            self.state.source = TaskSource.MARKDOWN
            self.state.markdown_path = settings.markdown_path
        else:
            self.state.source = TaskSource.KEY_VALUE
            self.state.markdown_path = None

    def _save_settings(self) -> None:
        if not self.storage_ready:
            return
        try:
            self._kv.set(SETTINGS_KEY, dump_settings(self.state.settings))
            self._kv.save()
        except StorageError as exc:
            logger.error("Failed to save settings: {}", exc)

    def _reset_data(self) -> None:
        self.state.tasks = []
        self.state.group_order = [DEFAULT_GROUP_ID]
        self.state.group_titles = default_group_titles(self._config.default_group_title)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()

    def _changed(self) -> None:
        self._cache_valid = False
        self._notify()

    def _mutated(self) -> None:
        self._changed()
        self._schedule_persist()

    # ------------------------------------------------------------------
    # Key-value source
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Reload tasks from the key-value store (no-op in markdown mode).

        Raises:
            StorageError: the backend could not be read.
        """
        if self.state.source is TaskSource.MARKDOWN:
            return
        record = load_task_data(self._kv.get(DATA_KEY)) if self.storage_ready else None
        self._reset_data()
        if record is not None:
            self.state.tasks = [r.to_task() for r in record.tasks]
            self.state.group_order = list(record.group_order) or [DEFAULT_GROUP_ID]
            self.state.group_titles.update(record.group_titles)
            self.state.renumber()
        self._changed()

    def _save_key_value(self) -> None:
        if not self.storage_ready:
            logger.warning("Key-value store unavailable; tasks are not saved")
            return
        self._kv.set(DATA_KEY, build_task_data(self.state.tasks, self.state.group_order, self.state.group_titles))
        self._kv.save()

    # ------------------------------------------------------------------
    # Markdown source
    # ------------------------------------------------------------------

    def get_markdown_path(self) -> Optional[str]:
        return self.state.markdown_path

    def get_task_source(self) -> TaskSource:
        return self.state.source

    def set_markdown_path(self, path: Optional[str]) -> None:
        """Switch the data source.

        A path enters markdown mode (load the file, start watching); ``None``
        or ``""`` returns to the key-value store.  Pending writes are flushed
        to the old source first.

        Raises:
            DocumentIOError: the markdown file could not be read.
            StorageError: a pending write or the key-value reload failed.
        """
        path = path or None
        self.flush()
        if path:
            self.state.settings.markdown_path = path
            self._save_settings()
            try:
                self.load_from_markdown(path)
            except DocumentIOError as exc:
                self._stop_watching()
                self._document_readable = exc.missing
                self.state.source = TaskSource.MARKDOWN
                self.state.markdown_path = path
                self.state.lines = None
                self._reset_data()
                self._changed()
                raise
            self._start_watching(path)
            logger.info("Task source switched to markdown: {}", path)
            return

        # observation must stop before provenance is dropped
        self._stop_watching()
        self.state.lines = None
        self.state.source = TaskSource.KEY_VALUE
        self.state.markdown_path = None
        self.state.settings.markdown_path = None
        self._save_settings()
        logger.info("Task source switched to key-value store")
        self.load()

    def load_from_markdown(self, path: str) -> None:
        """Parse *path* and replace the live state with its content.

        Raises:
            DocumentIOError: the file could not be read; state is unchanged.
        """
        content = self._io.read_document(path)
        self._apply_markdown(path, content)

    def reload_from_markdown(self) -> None:
        if self.state.markdown_path:
            self.load_from_markdown(self.state.markdown_path)

    def _apply_markdown(self, path: str, content: str) -> None:
        parsed = parse(
            content,
            default_title=self._config.default_group_title,
            placeholder=self._config.placeholder,
        )
        active_id = self.state.settings.active_task_id
        previous_active = self.state.find_task(active_id) if active_id else None

        self.state.tasks = parsed.tasks
        self.state.group_order = parsed.group_order
        self.state.group_titles = parsed.group_titles
        self.state.lines = parsed.lines
        self.state.source = TaskSource.MARKDOWN
        self.state.markdown_path = path
        self._document_readable = True
        logger.debug("Parsed {} tasks in {} groups from {}", len(parsed.tasks), len(parsed.group_order), path)

        self._rebind_active_task(previous_active)
        self._changed()

    def _rebind_active_task(self, previous: Optional[Task]) -> None:
        active_id = self.state.settings.active_task_id
        if not active_id or self.state.find_task(active_id) is not None:
            return
        match: Optional[Task] = None
        if previous is not None:
            wanted = (normalize_text(previous.text), previous.group_id)
            for task in self.state.tasks:
                if (normalize_text(task.text), task.group_id) == wanted:
                    match = task
                    break
        self.state.settings.active_task_id = match.id if match else None
        self._save_settings()

    def handle_document_changed(self) -> None:
        """Reparse the markdown document after an external change notification.

        Failures are logged and leave the live state exactly as it was.
        """
        path = self.state.markdown_path
        if self.state.source is not TaskSource.MARKDOWN or not path:
            return
        try:
            content = self._io.read_document(path)
        except DocumentIOError as exc:
            logger.exception("Auto-reload from markdown failed: {}", exc)
            if not exc.missing:
                self._document_readable = False
            return
        if self._pending_persist and content == self._last_written:
            # our own previous write; memory is already ahead of it
            logger.debug("Ignoring change echo for {}", path)
            return
        self._apply_markdown(path, content)

    def save_to_markdown(self) -> None:
        """Write the markdown document.

        Raises:
            DocumentIOError: the write failed, or the existing file could not
                be read and would be overwritten.
        """
        path = self.state.markdown_path
        if self.state.source is not TaskSource.MARKDOWN or not path:
            return
        if not self._document_readable:
            raise DocumentIOError(path, "refusing to overwrite a document that could not be read")
        content = serialize(
            self.state.tasks,
            self.state.group_order,
            self.state.group_titles,
            self.state.lines,
            placeholder=self._config.placeholder,
        )
        self._io.write_document(path, content)
        self._last_written = content

    def _start_watching(self, path: str) -> None:
        if self._watcher is None:
            return
        self._watcher.watch(path, self.handle_document_changed)

    def _stop_watching(self) -> None:
        if self._watcher is None:
            return
        self._watcher.unwatch()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        if self.state.source is TaskSource.MARKDOWN:
            self.save_to_markdown()
        else:
            self._save_key_value()

    def save(self) -> None:
        """Write the current state now.

        Raises:
            TaskSyncError: the write failed (also logged).
        """
        try:
            self._persist()
        except TaskSyncError as exc:
            logger.error("Failed to save tasks: {}", exc)
            raise

    @property
    def has_pending_persist(self) -> bool:
        return self._pending_persist

    def _schedule_persist(self) -> None:
        if self._persist_handle is not None:
            self._persist_handle.cancel()
        self._pending_persist = True
        self._persist_handle = self._scheduler.call_later(
            self._config.debounce_seconds, self._run_scheduled_persist
        )

    def _run_scheduled_persist(self) -> None:
        self._persist_handle = None
        if not self._pending_persist:
            return
        if self.state.source is TaskSource.MARKDOWN and not self._document_readable:
            # the edit stays pending; flush() reports it
            logger.warning("Not writing {}: the existing document could not be read", self.state.markdown_path)
            return
        self._pending_persist = False
        try:
            self._persist()
        except TaskSyncError as exc:
            logger.exception("Debounced persist failed: {}", exc)

    def flush(self) -> None:
        """Cancel the debounce timer and perform any pending write immediately.

        Raises:
            TaskSyncError: the write failed (also logged).
        """
        if self._persist_handle is not None:
            self._persist_handle.cancel()
            self._persist_handle = None
        if self._pending_persist:
            self._pending_persist = False
            self.save()

    def close(self) -> None:
        """Flush pending writes and stop observing the document."""
        try:
            self.flush()
        finally:
            self._stop_watching()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def _rebuild_cache(self) -> None:
        state = self.state
        self._cached_tasks = [t.copy() for t in state.tasks]

        order = ordered_group_ids(state.tasks, state.group_order)
        if DEFAULT_GROUP_ID not in order:
            order.insert(0, DEFAULT_GROUP_ID)
        override = state.settings.group_order_override
        if state.source is TaskSource.MARKDOWN and override:
            order = [g for g in override if g in order] + [g for g in order if g not in override]
        elif state.source is TaskSource.KEY_VALUE and order[0] != DEFAULT_GROUP_ID:
            order = [DEFAULT_GROUP_ID] + [g for g in order if g != DEFAULT_GROUP_ID]

        self._cached_groups = [
            Group(
                id=gid,
                title=state.group_titles.get(gid) or gid or self._config.default_group_title,
                icon=state.settings.group_icons.get(gid),
            )
            for gid in order
        ]
        self._cache_valid = True

    def get_tasks(self) -> list[Task]:
        if not self._cache_valid:
            self._rebuild_cache()
        return self._cached_tasks

    def get_groups(self) -> list[Group]:
        if not self._cache_valid:
            self._rebuild_cache()
        return self._cached_groups

    def get_tri_state(self) -> TriState:
        tasks = self.state.tasks
        done = sum(1 for t in tasks if t.done)
        if not tasks or done == 0:
            return TriState.UNCHECKED
        if done == len(tasks):
            return TriState.CHECKED
        return TriState.MIXED

    def _known_group_ids(self) -> list[str]:
        return ordered_group_ids(self.state.tasks, self.state.group_order)

    def _ensure_group(self, group_id: str) -> None:
        if group_id not in self.state.group_order:
            self.state.group_order.append(group_id)

    # ------------------------------------------------------------------
    # Task mutations
    # ------------------------------------------------------------------

    def add_task(
        self,
        text: str,
        group_id: str = DEFAULT_GROUP_ID,
        priority: Priority = Priority.NONE,
    ) -> Optional[Task]:
        clean = _single_line(text)
        if not clean:
            return None
        task = Task(
            text=clean,
            order=len(self.state.tasks),
            group_id=group_id or DEFAULT_GROUP_ID,
            priority=Priority(priority),
        )
        self.state.tasks.append(task)
        self._ensure_group(task.group_id)
        logger.debug("Added task {} to group '{}'", task.id, task.group_id)
        self._mutated()
        return task

    def toggle_task(self, task_id: str) -> None:
        task = self.state.find_task(task_id)
        if task is None:
            return
        task.done = not task.done
        task.touch()
        self._mutated()

    def toggle_all(self, checked: bool) -> None:
        if not self.state.tasks:
            return
        for task in self.state.tasks:
            task.done = checked
            task.touch()
        self._mutated()

    def update_task(self, task_id: str, text: str) -> None:
        task = self.state.find_task(task_id)
        clean = _single_line(text)
        if task is None or not clean or clean == task.text:
            return
        task.text = clean
        task.touch()
        self._mutated()

    def set_priority(self, task_id: str, priority: Priority | str) -> None:
        task = self.state.find_task(task_id)
        if task is None:
            return
        try:
            task.priority = Priority(priority)
        except ValueError:
            return
        task.touch()
        self._mutated()

    def delete_task(self, task_id: str) -> None:
        task = self.state.find_task(task_id)
        if task is None:
            return
        self.state.tasks.remove(task)
        self.state.renumber()
        if self.state.settings.active_task_id == task_id:
            self.state.settings.active_task_id = None
            self._save_settings()
        self._mutated()

    def reorder_task(self, task_id: str, target_group_id: str, target_index: int) -> None:
        """Move a task to position *target_index* within *target_group_id*."""
        task = self.state.find_task(task_id)
        if task is None:
            return
        target = target_group_id or DEFAULT_GROUP_ID
        tasks = [t for t in self.state.tasks if t.id != task_id]
        task.group_id = target
        task.touch()

        group_tasks = [t for t in tasks if t.group_id == target]
        index = max(0, target_index)
        if index >= len(group_tasks):
            insert_at = tasks.index(group_tasks[-1]) + 1 if group_tasks else len(tasks)
        else:
            insert_at = tasks.index(group_tasks[index])
        tasks.insert(insert_at, task)

        self.state.tasks = tasks
        self.state.renumber()
        self._ensure_group(target)
        self._mutated()

    def move_task_to_group(self, task_id: str, group_id: str) -> None:
        task = self.state.find_task(task_id)
        target = group_id or DEFAULT_GROUP_ID
        if task is None or task.group_id == target:
            return
        size = sum(1 for t in self.state.tasks if t.group_id == target)
        self.reorder_task(task_id, target, size)

    # ------------------------------------------------------------------
    # Group mutations
    # ------------------------------------------------------------------

    def add_group(self, title: str) -> str:
        clean = _single_line(title)
        if not clean:
            return DEFAULT_GROUP_ID
        group_id = slugify(clean) or f"group-{int(time.time() * 1000)}"
        if group_id in self.state.group_order:
            return group_id
        self.state.group_order.append(group_id)
        self.state.group_titles[group_id] = clean
        self._mutated()
        return group_id

    def rename_group(self, group_id: str, new_title: str) -> None:
        clean = _single_line(new_title)
        if not clean or not group_id or group_id not in self._known_group_ids():
            return
        if self.state.group_titles.get(group_id) == clean:
            return
        self.state.group_titles[group_id] = clean
        self._mutated()

    def delete_group(self, group_id: str) -> bool:
        """Delete an empty, non-default group.  Returns ``False`` when refused."""
        if group_id == DEFAULT_GROUP_ID or group_id not in self.state.group_order:
            return False
        if any(t.group_id == group_id for t in self.state.tasks):
            return False
        self.state.group_order.remove(group_id)
        self.state.group_titles.pop(group_id, None)

        settings = self.state.settings
        settings_changed = False
        if settings.group_icons.pop(group_id, None) is not None:
            settings_changed = True
        if group_id in settings.collapsed_group_ids:
            settings.collapsed_group_ids.remove(group_id)
            settings_changed = True
        if group_id in settings.group_order_override:
            settings.group_order_override.remove(group_id)
            settings_changed = True
        if settings_changed:
            self._save_settings()

        self._mutated()
        return True

    def reorder_groups(self, group_ids: list[str]) -> None:
        known = self._known_group_ids()
        wanted = [g for g in dict.fromkeys(group_ids) if g in known]
        if not wanted:
            return
        order = wanted + [g for g in known if g not in wanted]
        self.state.group_order = order
        if self.state.source is TaskSource.MARKDOWN:
            # a reparse rebuilds group_order from the file; the override keeps the view order
            self.state.settings.group_order_override = list(order)
            self._save_settings()
        self._mutated()

    def set_group_emoji(self, group_id: str, emoji: str) -> None:
        if group_id not in self._known_group_ids():
            return
        title = self.state.group_titles.get(group_id) or group_id or self._config.default_group_title
        stripped = _strip_leading_icon(title) or title
        icon = _single_line(emoji)
        self.state.group_titles[group_id] = f"{icon} {stripped}" if icon else stripped
        self._mutated()

    def set_group_icon(self, group_id: str, icon: Optional[str]) -> None:
        if group_id not in self._known_group_ids():
            return
        if icon:
            self.state.settings.group_icons[group_id] = icon
        else:
            self.state.settings.group_icons.pop(group_id, None)
        self._save_settings()
        self._mutated()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _settings_changed(self) -> None:
        self._save_settings()
        self._changed()

    def get_active_task_id(self) -> Optional[str]:
        return self.state.settings.active_task_id

    def set_active_task_id(self, task_id: Optional[str]) -> None:
        if task_id is not None and self.state.find_task(task_id) is None:
            return
        self.state.settings.active_task_id = task_id
        self._settings_changed()

    def get_collapsed_group_ids(self) -> set[str]:
        return set(self.state.settings.collapsed_group_ids)

    def toggle_group_collapsed(self, group_id: str) -> None:
        collapsed = self.state.settings.collapsed_group_ids
        if group_id in collapsed:
            collapsed.remove(group_id)
        else:
            collapsed.append(group_id)
        self._settings_changed()

    def get_theme(self) -> str:
        return self.state.settings.theme

    def set_theme(self, theme: str) -> None:
        if theme not in VALID_THEMES:
            return
        self.state.settings.theme = theme
        self._settings_changed()

    def get_view_mode(self) -> str:
        return self.state.settings.view_mode

    def set_view_mode(self, view_mode: str) -> None:
        if view_mode not in VALID_VIEW_MODES:
            return
        self.state.settings.view_mode = view_mode
        self._settings_changed()

    def get_debug_mode(self) -> bool:
        return self.state.settings.debug_mode

    def set_debug_mode(self, value: bool) -> None:
        self.state.settings.debug_mode = bool(value)
        self._settings_changed()

    def get_pomodoro_durations(self) -> tuple[int, int]:
        s = self.state.settings
        return s.pomodoro_work_minutes, s.pomodoro_break_minutes

    def set_pomodoro_durations(self, work_minutes: float, break_minutes: float) -> None:
        s = self.state.settings
        s.pomodoro_work_minutes = _clamp(round(work_minutes), *POMODORO_WORK_RANGE)
        s.pomodoro_break_minutes = _clamp(round(break_minutes), *POMODORO_BREAK_RANGE)
        self._settings_changed()
