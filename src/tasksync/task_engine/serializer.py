"""Write the live task state back into markdown.

Without parse provenance the document is regenerated from scratch.  With
provenance (the normal markdown-mode path) the previous document is replayed
line by line so that everything the task model does not understand survives:

* the trailing ``%%`` metadata block is lifted out and re-appended last;
* sections of deleted groups are dropped up to the next heading, surviving
  headings pick up renamed titles;
* checklist lines are refreshed from the live task with the same id, as long
  as that task is still in the group it was parsed in.  The surviving lines
  of a group are refilled in the group's current order, so reordering in the
  app reaches the file while unrelated lines stay where they were;
* tasks the previous document never held under their current group are
  appended at the end.

An unchanged line is always reproduced byte-for-byte.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional

from ..constants import DEFAULT_GROUP_ID, EMPTY_TASK_PLACEHOLDER, METADATA_MARKER
from .model import AnnotatedLine, LineTag, Task
from .parser import match_checklist, match_header


def format_task_line(task: Task, indent: str = "") -> str:
    return f"{indent}- [{'x' if task.done else ' '}] {task.text}"


def ordered_group_ids(tasks: Iterable[Task], group_order: list[str]) -> list[str]:
    """Explicit order first, then groups only known from task membership."""
    order = list(group_order)
    seen = set(order)
    for task in tasks:
        if task.group_id not in seen:
            seen.add(task.group_id)
            order.append(task.group_id)
    return order


def _tasks_by_group(tasks: Iterable[Task]) -> dict[str, list[Task]]:
    grouped: dict[str, list[Task]] = defaultdict(list)
    for task in tasks:
        grouped[task.group_id].append(task)
    return grouped


def _title(group_id: str, group_titles: dict[str, str]) -> str:
    return group_titles.get(group_id) or group_id


def _strip_trailing_blank(out: list[str]) -> None:
    while out and not out[-1].strip():
        out.pop()


def split_metadata_block(
    lines: list[AnnotatedLine],
) -> tuple[list[str], list[AnnotatedLine]]:
    """Remove the ``%%`` block from *lines*.

    Returns ``(block_raw_lines, remaining_lines)``; the block is empty when
    the document has none.  An unterminated block runs to the end of the
    document.
    """
    start: Optional[int] = None
    for idx, line in enumerate(lines):
        if line.raw.strip().startswith(METADATA_MARKER):
            start = idx
            break
    if start is None:
        return [], list(lines)

    opener = lines[start].raw.strip()
    end = len(lines) - 1
    if len(opener) >= 2 * len(METADATA_MARKER) and opener.endswith(METADATA_MARKER):
        end = start
    else:
        for idx in range(start + 1, len(lines)):
            if lines[idx].raw.strip().startswith(METADATA_MARKER):
                end = idx
                break
    block = [line.raw for line in lines[start:end + 1]]
    return block, lines[:start] + lines[end + 1:]


def _regenerate(tasks: list[Task], group_order: list[str], group_titles: dict[str, str]) -> str:
    grouped = _tasks_by_group(tasks)
    out: list[str] = []
    for group_id in ordered_group_ids(tasks, group_order):
        group_tasks = grouped.get(group_id)
        if not group_tasks:
            continue
        if group_id != DEFAULT_GROUP_ID:
            out.append(f"## {_title(group_id, group_titles)}")
        out.extend(format_task_line(t) for t in group_tasks)
        out.append("")
    return "\n".join(out)


def _merge(
    tasks: list[Task],
    group_order: list[str],
    group_titles: dict[str, str],
    previous: list[AnnotatedLine],
    placeholder: str,
) -> str:
    lines = list(previous)
    trailing_newline = len(lines) > 1 and lines[-1].tag is LineTag.OTHER and lines[-1].raw == ""
    if trailing_newline:
        lines.pop()
    block, body = split_metadata_block(lines)

    live = {t.id: t for t in tasks}
    position = {t.id: i for i, t in enumerate(tasks)}
    groups = ordered_group_ids(tasks, group_order)
    present = set(groups)

    # Pass 1: decide which lines survive and collect task slots per group.
    kept: list[AnnotatedLine] = []
    slots: dict[str, list[str]] = defaultdict(list)
    suppressed = False
    for line in body:
        if line.tag is LineTag.HEADER:
            suppressed = line.group_id not in present
            if not suppressed:
                kept.append(line)
            continue
        if suppressed:
            continue
        if line.tag is LineTag.TASK and line.task_id is not None:
            task = live.get(line.task_id)
            if task is None or task.group_id != line.group_id:
                continue
            slots[task.group_id].append(task.id)
        kept.append(line)

    fill = {gid: sorted(ids, key=position.__getitem__) for gid, ids in slots.items()}
    cursor: dict[str, int] = defaultdict(int)

    # Pass 2: render.
    out: list[str] = []
    first_header: Optional[int] = None
    for line in kept:
        if line.tag is LineTag.HEADER:
            if first_header is None:
                first_header = len(out)
            out.append(_render_header(line, group_titles))
        elif line.tag is LineTag.TASK and line.task_id is not None:
            gid = line.group_id or DEFAULT_GROUP_ID
            task = live[fill[gid][cursor[gid]]]
            cursor[gid] += 1
            out.append(_render_task(line, task, placeholder))
        else:
            out.append(line.raw)

    # Fresh appearances: never seen, or seen under another group.
    recorded = {
        line.task_id: line.group_id
        for line in previous
        if line.tag is LineTag.TASK and line.task_id is not None
    }
    headed = {line.group_id for line in previous if line.tag is LineTag.HEADER}
    fresh = _tasks_by_group(
        t for t in tasks if t.id not in recorded or recorded[t.id] != t.group_id
    )

    default_fresh = [format_task_line(t) for t in fresh.pop(DEFAULT_GROUP_ID, [])]
    appendix: list[str] = []
    if default_fresh:
        if first_header is not None:
            # keep them above the first heading so a reparse leaves them ungrouped
            at = first_header
            while at > 0 and not out[at - 1].strip():
                at -= 1
            out[at:at] = default_fresh + ([""] if at == 0 else [])
        else:
            appendix.extend(default_fresh)
    for group_id in groups:
        if group_id == DEFAULT_GROUP_ID:
            continue
        group_tasks = fresh.get(group_id, [])
        if not group_tasks and group_id in headed:
            continue
        appendix.append(f"## {_title(group_id, group_titles)}")
        appendix.extend(format_task_line(t) for t in group_tasks)

    if appendix:
        _strip_trailing_blank(out)
        if out:
            out.append("")
        out.extend(appendix)

    if block:
        _strip_trailing_blank(out)
        if out:
            out.append("")
        out.extend(block)

    text = "\n".join(out)
    return text + "\n" if trailing_newline else text


def _render_header(line: AnnotatedLine, group_titles: dict[str, str]) -> str:
    parsed = match_header(line.raw)
    title = group_titles.get(line.group_id or DEFAULT_GROUP_ID)
    if parsed is None or not title:
        return line.raw
    depth, old_title = parsed
    if title == old_title:
        return line.raw
    return f"{'#' * depth} {title}"


def _render_task(line: AnnotatedLine, task: Task, placeholder: str) -> str:
    parsed = match_checklist(line.raw, placeholder)
    if parsed is None:
        return format_task_line(task)
    indent, done, text = parsed
    if done == task.done and text == task.text:
        return line.raw
    return format_task_line(task, indent)


def serialize(
    tasks: list[Task],
    group_order: list[str],
    group_titles: dict[str, str],
    previous_lines: Optional[list[AnnotatedLine]] = None,
    *,
    placeholder: str = EMPTY_TASK_PLACEHOLDER,
) -> str:
    if not previous_lines:
        return _regenerate(tasks, group_order, group_titles)
    return _merge(tasks, group_order, group_titles, previous_lines, placeholder)
