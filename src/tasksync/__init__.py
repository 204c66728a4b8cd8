"""Provide the public `tasksync` package exports."""

from __future__ import annotations

from .task_engine import TaskEngine, parse, serialize

__version__ = "0.1.0"

__all__ = ["TaskEngine", "parse", "serialize", "__version__"]
