"""Pure helpers that turn free text into stable identifiers.

Group ids are slugs of their heading text.  Task ids parsed from markdown
are content fingerprints: the same (group, text, duplicate-count) triple
always yields the same id, across runs and across interpreters, so a
re-parse of an unchanged file never reshuffles identities.
"""

from __future__ import annotations

import math
import re
from typing import Any

from ..constants import DEFAULT_GROUP_ID

_WHITESPACE_RE = re.compile(r"\s+")
# \w also matches "_", which is not a letter or digit
_NON_SLUG_RE = re.compile(r"[^\w-]|_")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def slugify(title: str) -> str:
    text = title.strip()
    if not text:
        return DEFAULT_GROUP_ID
    text = _WHITESPACE_RE.sub("-", text)
    text = _NON_SLUG_RE.sub("", text)
    return text.lower() or DEFAULT_GROUP_ID


def normalize_text(text: str) -> str:
    """Trim, lower-case and collapse inner whitespace runs to one space."""
    return _WHITESPACE_RE.sub(" ", text.strip().lower())


def rolling_hash(value: str) -> int:
    """32-bit ``h * 31 + c`` hash; unlike ``hash()`` it is not salted per process."""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _coerce_index(index: Any) -> int:
    if isinstance(index, bool) or not isinstance(index, (int, float)):
        return 0
    if isinstance(index, float) and not math.isfinite(index):
        return 0
    if index < 0:
        return 0
    return int(index)


def stable_task_id(text: str, group_id: str, occurrence_index: Any = 0) -> str:
    """Return the fingerprint id of a checklist task.

    ``occurrence_index`` is the number of earlier tasks in the same group with
    the same normalized text, which keeps literal duplicates apart while
    leaving ids unchanged when lines are merely reordered.
    """
    digest = rolling_hash(f"{group_id}::{normalize_text(text)}")
    return f"md-{_to_base36(digest)}-{_coerce_index(occurrence_index)}"
