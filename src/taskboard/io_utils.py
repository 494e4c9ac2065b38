"""Locking, atomic YAML writes and the JSON-lines event log."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional, TextIO

import yaml

from .constants import WINDOWS_LOCK_BYTES
from .utils import _now_iso

if os.name == "nt":  # pragma: no cover - exercised on Windows only
    import msvcrt
else:
    import fcntl


class FileLock:
    """Exclusive advisory lock on ``lock_path``, held for the ``with`` block.

    Serializes board writers across processes.  Threads of one process must
    additionally share a ``threading.RLock``; the lock is not re-entrant.
    """

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path
        self.handle: Optional[TextIO] = None
        self.lock_bytes = WINDOWS_LOCK_BYTES

    def _acquire(self, handle: TextIO) -> None:
        if os.name == "nt":  # pragma: no cover
            handle.seek(0)
            handle.truncate(self.lock_bytes)
            handle.flush()
            msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, self.lock_bytes)
        else:
            fcntl.flock(handle, fcntl.LOCK_EX)

    def _release(self, handle: TextIO) -> None:
        if os.name == "nt":  # pragma: no cover
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, self.lock_bytes)
        else:
            fcntl.flock(handle, fcntl.LOCK_UN)

    def __enter__(self) -> "FileLock":
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+", encoding="utf-8")
        try:
            self._acquire(handle)
        except OSError:
            handle.close()
            raise
        self.handle = handle
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.handle is None:
            return
        try:
            self._release(self.handle)
        finally:
            self.handle.close()
            self.handle = None


def _load_data_with_error(
    path: Path,
    default: dict[str, Any],
) -> tuple[dict[str, Any], str | None]:
    """
    Load a YAML mapping and return (data, error_message).

    A missing or empty file yields *default* with no error.  Parse and IO
    failures are reported instead of swallowed so the store can refuse to
    overwrite a board file it could not read.
    """
    if not path.exists():
        return default, None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        return default, f"{path.name}: {exc.__class__.__name__}: {exc}"
    except yaml.YAMLError as exc:
        return default, f"{path.name}: YAMLError: {exc}"
    if data is None:
        return default, None
    if not isinstance(data, dict):
        return default, f"{path.name}: expected object, got {type(data).__name__}"
    return data, None


def _atomic_write_yaml(path: Path, data: dict[str, Any]) -> None:
    """Write *data* to a sibling temp file, fsync it, then swap it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as handle:
            yaml.safe_dump(data, handle, sort_keys=False, default_flow_style=False, allow_unicode=True)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _append_event(events_path: Path, event: dict[str, Any]) -> None:
    """Append one event to ``events.jsonl``, stamping ``ts`` if absent."""
    events_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"ts": _now_iso(), **event}
    with open(events_path, "a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload) + "\n")
        handle.flush()
        os.fsync(handle.fileno())


def _read_events(events_path: Path, limit: int) -> list[dict[str, Any]]:
    """Return the last *limit* parseable events, oldest first."""
    if limit < 1 or not events_path.exists():
        return []
    events: list[dict[str, Any]] = []
    for line in events_path.read_text(encoding="utf-8").splitlines()[-limit:]:
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            events.append(payload)
    return events
