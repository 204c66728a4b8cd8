"""Load optional configuration from `tasksync.yaml` or `.tasksync/config.yaml`."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .constants import (
    CONFIG_FILE,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_GROUP_TITLE,
    DEFAULT_POLL_INTERVAL,
    EMPTY_TASK_PLACEHOLDER,
    ROOT_CONFIG_FILE,
    STATE_DIR_NAME,
    STORE_FILE,
)
from .io_utils import _load_data_with_error

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def find_config_file(project_dir: Path) -> Path | None:
    """Return the first existing config file under *project_dir*, if any."""
    project_dir = project_dir.resolve()
    for candidate in (project_dir / ROOT_CONFIG_FILE, project_dir / STATE_DIR_NAME / CONFIG_FILE):
        if candidate.exists():
            return candidate
    return None


def load_config(path: Path | None) -> tuple[dict[str, Any], str | None]:
    """Load a config file.

    Args:
        path: Config file location, or None when there is no config file.

    Returns:
        A tuple of `(config, error_message)`. A missing file returns `({}, None)`.
    """
    if path is None or not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _positive_number(raw: Any, default: float) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return default
    if not math.isfinite(raw) or raw < 0:
        return default
    return float(raw)


def _non_empty_str(raw: Any, default: str) -> str:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return default


@dataclass(frozen=True)
class SyncConfig:
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    store_path: str = STORE_FILE
    default_group_title: str = DEFAULT_GROUP_TITLE
    placeholder: str = EMPTY_TASK_PLACEHOLDER
    poll_interval: float = DEFAULT_POLL_INTERVAL
    log_level: str = "INFO"

    @classmethod
    def from_mapping(cls, config: dict[str, Any]) -> "SyncConfig":
        """Build a config from a raw mapping, keeping defaults for invalid values.

        `debounce_ms` is accepted as an alternative to `debounce_seconds`.
        """
        debounce = _positive_number(config.get("debounce_seconds"), DEFAULT_DEBOUNCE_SECONDS)
        if "debounce_seconds" not in config and "debounce_ms" in config:
            debounce = _positive_number(config.get("debounce_ms"), DEFAULT_DEBOUNCE_SECONDS * 1000) / 1000
        level = str(config.get("log_level") or "INFO").upper()
        return cls(
            debounce_seconds=debounce,
            store_path=_non_empty_str(config.get("store_path"), STORE_FILE),
            default_group_title=_non_empty_str(config.get("default_group_title"), DEFAULT_GROUP_TITLE),
            placeholder=_non_empty_str(config.get("placeholder"), EMPTY_TASK_PLACEHOLDER),
            poll_interval=_positive_number(config.get("poll_interval"), DEFAULT_POLL_INTERVAL) or DEFAULT_POLL_INTERVAL,
            log_level=level if level in VALID_LOG_LEVELS else "INFO",
        )
