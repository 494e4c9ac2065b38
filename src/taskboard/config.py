"""Load optional board configuration from `.taskboard/config.yaml`."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from .constants import (
    CONFIG_FILE,
    DEFAULT_ACTIVATION_DISTANCE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_TOKEN_EXPIRE_MINUTES,
    STATE_DIR_NAME,
)
from .io_utils import _load_data_with_error


def load_board_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional board config file.

    Args:
        project_dir: Directory holding the `.taskboard/` state directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = project_dir.resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_drag_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the drag configuration block with defaults applied.

    Args:
        config: Board configuration dictionary.

    Returns:
        A mapping with an `activation_distance` key (pixels, non-negative float).
    """
    raw = _get_nested(config, "drag")
    raw = raw if isinstance(raw, dict) else {}
    try:
        distance = float(raw.get("activation_distance", DEFAULT_ACTIVATION_DISTANCE))
    except (TypeError, ValueError):
        distance = DEFAULT_ACTIVATION_DISTANCE
    return {"activation_distance": max(0.0, distance)}


def get_client_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the client configuration block with defaults applied."""
    raw = _get_nested(config, "client")
    raw = raw if isinstance(raw, dict) else {}
    return {
        "base_url": str(raw.get("base_url") or "http://127.0.0.1:8000"),
        "refetch_on_success": bool(raw.get("refetch_on_success", True)),
        "timeout": float(raw.get("timeout", 10.0) or 10.0),
    }


def get_logging_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the logging level, letting `TASKBOARD_LOG_LEVEL` win over the file."""
    level = os.getenv("TASKBOARD_LOG_LEVEL") or _get_nested(config, "logging", "level") or DEFAULT_LOG_LEVEL
    return {"level": str(level).upper()}


class AuthConfig:
    """Token signing configuration, read from the environment."""

    def __init__(self) -> None:
        self.secret_key = os.getenv("TASKBOARD_SECRET_KEY", "taskboard-dev-secret-change-in-production")
        self.algorithm = "HS256"
        self.access_token_expire_minutes = int(
            os.getenv("TASKBOARD_TOKEN_EXPIRE_MINUTES", str(DEFAULT_TOKEN_EXPIRE_MINUTES))
        )
