"""Dense integer ordering of tasks within a status column.

Every (project, status) column keeps positions ``0..n-1`` with no gaps and no
duplicates.  These helpers are pure so the server commit path and the client
board can share them.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Sequence

from ..errors import ValidationError
from .model import Task, TaskStatus


@dataclass(frozen=True)
class ReorderItem:
    """Requested placement of one task in a batch reorder."""

    task_id: str
    status: TaskStatus
    position: int

    def to_dict(self) -> dict[str, object]:
        return {"id": self.task_id, "status": self.status.value, "position": self.position}


def is_dense(positions: Iterable[int]) -> bool:
    """True if *positions* is exactly a permutation of ``0..n-1``."""
    values = list(positions)
    return sorted(values) == list(range(len(values)))


def dense_violations(tasks: Iterable[Task]) -> dict[tuple[str, TaskStatus], list[int]]:
    """Return the sorted positions of every column that is not dense."""
    groups: dict[tuple[str, TaskStatus], list[int]] = defaultdict(list)
    for task in tasks:
        groups[(task.project_id, task.status)].append(task.position)
    return {key: sorted(pos) for key, pos in groups.items() if not is_dense(pos)}


def validate_reorder_items(items: Sequence[ReorderItem]) -> None:
    """Reject malformed batches before anything is read or written."""
    seen_ids: set[str] = set()
    seen_slots: set[tuple[TaskStatus, int]] = set()
    for item in items:
        if not item.task_id:
            raise ValidationError("Every task needs a non-empty id.")
        if item.position < 0:
            raise ValidationError(f"Position for {item.task_id} must be non-negative.")
        if item.task_id in seen_ids:
            raise ValidationError(f"Task {item.task_id} appears more than once.")
        slot = (item.status, item.position)
        if slot in seen_slots:
            raise ValidationError(
                f"Two tasks claim position {item.position} in {item.status.value}."
            )
        seen_ids.add(item.task_id)
        seen_slots.add(slot)


def merge_column(requested: Sequence[tuple[Task, int]], others: Sequence[Task]) -> list[Task]:
    """Final order of a column after a reorder.

    Tasks named in the batch come first in the requested order; tasks of the
    column the batch did not mention (created or moved in by another caller)
    follow in their previous order.
    """
    ordered = [task for task, _ in sorted(requested, key=lambda pair: pair[1])]
    rest = sorted(others, key=lambda t: t.position)
    return ordered + rest


def renumber(tasks: Sequence[Task], status: TaskStatus) -> list[tuple[str, TaskStatus, int]]:
    """Assign ``0..n-1`` in sequence order, placing every task in *status*.

    Triples that already match the stored placement are dropped so an
    unchanged column is not rewritten.
    """
    return [
        (task.id, status, idx)
        for idx, task in enumerate(tasks)
        if task.status != status or task.position != idx
    ]
