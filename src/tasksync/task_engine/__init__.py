"""Markdown checklist synchronization engine.

The parser and serializer are pure functions over the model types; the
:class:`TaskEngine` owns the live state and its persistence.
"""

from .engine import TaskEngine
from .model import Group, Priority, Settings, Task, TaskSource, TriState
from .parser import parse
from .serializer import serialize
from .slug import slugify, stable_task_id
from .store import FileKeyValueStore, MemoryKeyValueStore

__all__ = [
    "FileKeyValueStore",
    "Group",
    "MemoryKeyValueStore",
    "Priority",
    "Settings",
    "Task",
    "TaskEngine",
    "TaskSource",
    "TriState",
    "parse",
    "serialize",
    "slugify",
    "stable_task_id",
]
