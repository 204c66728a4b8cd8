"""Command-line entry point for inspecting and editing a task list."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import VALID_LOG_LEVELS, SyncConfig, find_config_file, load_config
from .debug import DebugLog
from .errors import TaskSyncError
from .interfaces import Scheduler
from .io_utils import LocalDocumentIO
from .pomodoro import PomodoroTimer
from .scheduling import LoopScheduler, ManualScheduler
from .task_engine import (
    FileKeyValueStore,
    MemoryKeyValueStore,
    Priority,
    TaskEngine,
    TaskSource,
)
from .watcher import PollingDocumentWatcher

_PRIORITY_STYLE = {
    Priority.HIGH: "bold red",
    Priority.MEDIUM: "yellow",
    Priority.LOW: "cyan",
    Priority.NONE: "dim",
}


def _configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


def _error(message: str) -> int:
    Console(stderr=True).print(f"[red]error:[/red] {escape(message)}", soft_wrap=True)
    return 1


def _build_engine(
    args: argparse.Namespace,
    scheduler: Optional[Scheduler] = None,
    *,
    watch: bool = False,
) -> TaskEngine:
    """Build and load the engine.

    With *watch* the markdown file is observed by a polling watcher on
    *scheduler*; otherwise nothing is observed and the caller flushes.
    """
    config_path = Path(args.config).expanduser() if args.config else find_config_file(Path.cwd())
    raw, err = load_config(config_path)
    if err:
        logger.warning("Ignoring config file {}: {}", config_path, err)
    config = SyncConfig.from_mapping(raw)
    _configure_logging(args.log_level or config.log_level)

    if args.file and not args.store:
        # a one-off edit of a markdown file keeps no settings around
        kv_store = MemoryKeyValueStore()
    else:
        kv_store = FileKeyValueStore(Path(args.store or config.store_path).expanduser())

    scheduler = scheduler or ManualScheduler()
    watcher = PollingDocumentWatcher(scheduler, interval=config.poll_interval) if watch else None
    engine = TaskEngine(kv_store, LocalDocumentIO(), watcher, scheduler, config=config)
    engine.init()
    if args.file:
        path = str(Path(args.file).expanduser())
        if watch:
            engine.set_markdown_path(path)
        else:
            engine.load_from_markdown(path)
    return engine


def _group_title(engine: TaskEngine, group_id: str) -> str:
    for group in engine.get_groups():
        if group.id == group_id:
            return group.title
    return group_id


def _resolve_group(engine: TaskEngine, name: Optional[str]) -> str:
    """Accept a group id or title; unknown names create the group."""
    if not name:
        return ""
    for group in engine.get_groups():
        if name in (group.id, group.title):
            return group.id
    return engine.add_group(name)


def _has_task(engine: TaskEngine, task_id: str) -> bool:
    return any(t.id == task_id for t in engine.get_tasks())


def _cmd_list(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    table = Table(title=escape(engine.get_markdown_path() or "Tasks"))
    table.add_column("#", justify="right")
    table.add_column("ID", no_wrap=True)
    table.add_column("Group")
    table.add_column("Done", justify="center")
    table.add_column("Priority")
    table.add_column("Text")
    active = engine.get_active_task_id()
    for task in engine.get_tasks():
        text = f"[bold]{escape(task.text)}[/bold]" if task.id == active else escape(task.text)
        table.add_row(
            str(task.order),
            task.id,
            escape(_group_title(engine, task.group_id)),
            "x" if task.done else "",
            f"[{_PRIORITY_STYLE[task.priority]}]{task.priority.value}[/]",
            text,
        )
    console.print(table)
    return 0


def _cmd_groups(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    counts: dict[str, int] = {}
    for task in engine.get_tasks():
        counts[task.group_id] = counts.get(task.group_id, 0) + 1
    table = Table(title="Groups")
    table.add_column("ID", no_wrap=True)
    table.add_column("Title")
    table.add_column("Tasks", justify="right")
    for group in engine.get_groups():
        title = f"{group.icon} {group.title}" if group.icon else group.title
        table.add_row(group.id or "(default)", escape(title), str(counts.get(group.id, 0)))
    console.print(table)
    return 0


def _cmd_add(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    group_id = _resolve_group(engine, args.group)
    task = engine.add_task(args.text, group_id, Priority(args.priority))
    if task is None:
        return _error("task text is empty")
    console.print(task.id)
    return 0


def _cmd_toggle(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    if not _has_task(engine, args.task_id):
        return _error(f"unknown task: {args.task_id}")
    engine.toggle_task(args.task_id)
    return 0


def _cmd_edit(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    if not _has_task(engine, args.task_id):
        return _error(f"unknown task: {args.task_id}")
    if not args.text.strip():
        return _error("task text is empty")
    engine.update_task(args.task_id, args.text)
    return 0


def _cmd_rm(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    if not _has_task(engine, args.task_id):
        return _error(f"unknown task: {args.task_id}")
    engine.delete_task(args.task_id)
    return 0


def _cmd_move(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    if not _has_task(engine, args.task_id):
        return _error(f"unknown task: {args.task_id}")
    group_id = _resolve_group(engine, args.group)
    if args.index is None:
        engine.move_task_to_group(args.task_id, group_id)
    else:
        engine.reorder_task(args.task_id, group_id, args.index)
    return 0


def _cmd_add_group(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    if not args.title.strip():
        return _error("group title is empty")
    console.print(engine.add_group(args.title))
    return 0


def _cmd_rm_group(engine: TaskEngine, args: argparse.Namespace, console: Console) -> int:
    if not engine.delete_group(args.group_id):
        return _error(f"cannot delete group '{args.group_id}' (default, unknown or not empty)")
    return 0


async def _run_watch(args: argparse.Namespace) -> int:
    scheduler = LoopScheduler()
    engine = _build_engine(args, scheduler, watch=True)
    console = Console()
    if engine.get_task_source() is not TaskSource.MARKDOWN:
        engine.close()
        return _error("watch needs a markdown file (--file, or a path stored in settings)")

    def show() -> None:
        _cmd_list(engine, args, console)

    show()
    unsubscribe = engine.subscribe(show)
    timer = PomodoroTimer(scheduler)
    stop_timer = timer.follow(engine)
    if args.pomodoro:
        timer.start_pause()
    try:
        if args.duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(args.duration)
    finally:
        unsubscribe()
        stop_timer()
        timer.reset()
        engine.close()
    return 0


def _print_debug_log(debug_log: DebugLog) -> None:
    entries = debug_log.entries()
    if not entries:
        return
    table = Table(title="Debug log")
    table.add_column("Time", no_wrap=True)
    table.add_column("Level")
    table.add_column("Module")
    table.add_column("Message")
    for entry in entries:
        table.add_row(entry.time, entry.level, entry.module, escape(entry.message))
    Console(stderr=True).print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tasksync",
        description="Keep a checklist in sync between a markdown file and a local store",
    )
    parser.add_argument("--config", default=None, help="Config file (default: tasksync.yaml or .tasksync/config.yaml)")
    parser.add_argument("--store", default=None, help="Key-value store file (default: tasks.json)")
    parser.add_argument("--file", default=None, help="Markdown checklist to operate on")
    parser.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=sorted(VALID_LOG_LEVELS),
        help="Log level (default: from config, else INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    plist = subparsers.add_parser("list", help="List tasks")
    plist.set_defaults(func=_cmd_list)

    pgroups = subparsers.add_parser("groups", help="List groups")
    pgroups.set_defaults(func=_cmd_groups)

    padd = subparsers.add_parser("add", help="Add a task")
    padd.add_argument("text")
    padd.add_argument("--group", default=None, help="Group id or title (created when missing)")
    padd.add_argument("--priority", default=Priority.NONE.value, choices=[p.value for p in Priority])
    padd.set_defaults(func=_cmd_add)

    ptoggle = subparsers.add_parser("toggle", help="Toggle a task's done flag")
    ptoggle.add_argument("task_id")
    ptoggle.set_defaults(func=_cmd_toggle)

    pedit = subparsers.add_parser("edit", help="Replace a task's text")
    pedit.add_argument("task_id")
    pedit.add_argument("text")
    pedit.set_defaults(func=_cmd_edit)

    prm = subparsers.add_parser("rm", help="Delete a task")
    prm.add_argument("task_id")
    prm.set_defaults(func=_cmd_rm)

    pmove = subparsers.add_parser("move", help="Move a task to a group")
    pmove.add_argument("task_id")
    pmove.add_argument("group", help="Group id or title; '' for the default group")
    pmove.add_argument("--index", type=int, default=None, help="Position inside the group (default: end)")
    pmove.set_defaults(func=_cmd_move)

    paddg = subparsers.add_parser("add-group", help="Create a group")
    paddg.add_argument("title")
    paddg.set_defaults(func=_cmd_add_group)

    prmg = subparsers.add_parser("rm-group", help="Delete an empty group")
    prmg.add_argument("group_id")
    prmg.set_defaults(func=_cmd_rm_group)

    pwatch = subparsers.add_parser(
        "watch",
        help="Print the task list whenever the markdown file changes (stores the path when --store is given)",
    )
    pwatch.add_argument("--duration", type=float, default=None, help="Stop after this many seconds (default: run until interrupted)")
    pwatch.add_argument("--pomodoro", action="store_true", help="Run a pomodoro timer with the stored durations")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "watch":
        try:
            return asyncio.run(_run_watch(args))
        except TaskSyncError as exc:
            return _error(str(exc))
        except KeyboardInterrupt:
            return 0

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1

    try:
        engine = _build_engine(args)
    except TaskSyncError as exc:
        return _error(str(exc))

    debug_log = DebugLog()
    stop_following = debug_log.follow(engine)
    try:
        code = int(handler(engine, args, Console()) or 0)
        engine.close()
    except TaskSyncError as exc:
        code = _error(str(exc))
    finally:
        stop_following()
        debug_log.uninstall()
    _print_debug_log(debug_log)
    return code


if __name__ == "__main__":
    raise SystemExit(main())
