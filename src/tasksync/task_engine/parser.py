"""Parse a markdown checklist document into tasks, groups and line provenance.

Only two kinds of lines carry meaning:

* headings (``#`` to ``###``) open a group named after the heading text;
* checklist lines (``- [ ]`` / ``- [x]``) become tasks of the current group.

Every other line is recorded as ``other`` so the serializer can reproduce it
verbatim.  The pass is linear and never looks ahead of the current line.
"""

from __future__ import annotations

import re
from collections import Counter

from ..constants import DEFAULT_GROUP_ID, DEFAULT_GROUP_TITLE, EMPTY_TASK_PLACEHOLDER
from ..utils import _now_iso
from .model import AnnotatedLine, LineTag, ParseResult, Task, default_group_titles
from .slug import normalize_text, slugify, stable_task_id

CHECKLIST_LINE_RE = re.compile(r"^(\s*)-\s+\[([ xX])\]\s*(.*)$")
# four or more "#" is a deeper heading and stays an ordinary line
GROUP_HEADER_RE = re.compile(r"^\s*(#{1,3})(?!#)\s*(.+)$")
LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")
BOM = "\ufeff"


def split_lines(content: str) -> list[str]:
    if content.startswith(BOM):
        content = content[len(BOM):]
    return LINE_SPLIT_RE.split(content)


def match_header(line: str) -> tuple[int, str] | None:
    """Return ``(depth, title)`` for a group heading, ``None`` otherwise."""
    m = GROUP_HEADER_RE.match(line)
    if not m:
        return None
    title = m.group(2).strip()
    if not title:
        return None
    return len(m.group(1)), title


def match_checklist(line: str, placeholder: str = EMPTY_TASK_PLACEHOLDER) -> tuple[str, bool, str] | None:
    """Return ``(indent, done, text)`` for a checklist line, ``None`` otherwise."""
    m = CHECKLIST_LINE_RE.match(line)
    if not m:
        return None
    text = m.group(3).strip() or placeholder
    return m.group(1), m.group(2).lower() == "x", text


def parse(
    content: str,
    *,
    default_title: str = DEFAULT_GROUP_TITLE,
    placeholder: str = EMPTY_TASK_PLACEHOLDER,
) -> ParseResult:
    now = _now_iso()
    tasks: list[Task] = []
    group_order: list[str] = [DEFAULT_GROUP_ID]
    group_titles = default_group_titles(default_title)
    lines: list[AnnotatedLine] = []
    seen: Counter[tuple[str, str]] = Counter()
    current_group = DEFAULT_GROUP_ID

    for raw in split_lines(content):
        header = match_header(raw)
        if header is not None:
            _depth, title = header
            group_id = slugify(title)
            current_group = group_id
            if group_id not in group_order:
                group_order.append(group_id)
            group_titles[group_id] = title
            lines.append(AnnotatedLine(LineTag.HEADER, raw, group_id=group_id))
            continue

        item = match_checklist(raw, placeholder)
        if item is None:
            lines.append(AnnotatedLine(LineTag.OTHER, raw))
            continue

        _indent, done, text = item
        key = (current_group, normalize_text(text))
        task_id = stable_task_id(text, current_group, seen[key])
        seen[key] += 1
        tasks.append(
            Task(
                id=task_id,
                text=text,
                done=done,
                order=len(tasks),
                created_at=now,
                updated_at=now,
                group_id=current_group,
            )
        )
        lines.append(AnnotatedLine(LineTag.TASK, raw, group_id=current_group, task_id=task_id))

    return ParseResult(tasks=tasks, group_order=group_order, group_titles=group_titles, lines=lines)
