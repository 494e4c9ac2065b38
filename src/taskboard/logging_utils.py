"""Configure loguru and render compact summaries of board events."""

from __future__ import annotations

import json
import sys
from typing import Any

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan> | "
            "{message}"
        ),
    )


def summarize_event(event: dict[str, Any]) -> str:
    """Render one events.jsonl entry as a single human-readable line.

    Args:
        event: Parsed event payload.

    Returns:
        A line such as ``2026-01-01T00:00:00 tasks.reordered task-ab12cd34 DONE``.
    """
    parts = [str(event.get("ts", "?")), str(event.get("type", "?"))]
    task_id = event.get("task_id")
    if task_id:
        parts.append(str(task_id))
    status = event.get("status")
    if status:
        parts.append(str(status))
    details = event.get("details")
    if details:
        parts.append(json.dumps(details, sort_keys=True))
    return " ".join(parts)


def pretty(obj: Any, *, indent: int = 2) -> str:
    """Serialize an object to a stable JSON string for CLI output."""
    return json.dumps(obj, indent=indent, sort_keys=True, ensure_ascii=False, default=str)
