"""Exception types raised by the synchronization engine and its collaborators."""

from __future__ import annotations


class TaskSyncError(Exception):
    """Base class for tasksync failures."""


class DocumentIOError(TaskSyncError):
    """A markdown document could not be read or written.

    ``missing`` is true when the document does not exist at all, as opposed
    to existing but being unreadable.
    """

    def __init__(self, path: str, message: str, *, missing: bool = False) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.missing = missing


class StorageError(TaskSyncError):
    """The key-value backend is unavailable or rejected a write."""
