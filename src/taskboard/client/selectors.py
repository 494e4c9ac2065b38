"""Normalized client-side board state and the pure selectors over it.

The board is held as tasks keyed by id plus one render order.  Per-column
views are always derived from those two fields, never cached next to them,
so the grouping cannot drift from the raw collection.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from ..board.model import BOARD_COLUMNS, Task, TaskStatus
from ..board.ordering import ReorderItem


@dataclass(frozen=True)
class Placement:
    """Where a task sits: its column and its index inside that column."""

    status: TaskStatus
    index: int


@dataclass(frozen=True)
class BoardState:
    tasks: Mapping[str, Task] = field(default_factory=lambda: MappingProxyType({}))
    order: tuple[str, ...] = ()

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> "BoardState":
        """Build a board ordered by column, then by stored position."""
        ordered = sorted(tasks, key=lambda t: (t.status.sort_key, t.position))
        return cls(
            tasks=MappingProxyType({t.id: t for t in ordered}),
            order=tuple(t.id for t in ordered),
        )

    @classmethod
    def from_payload(cls, payload: Iterable[dict[str, Any]]) -> "BoardState":
        return cls.from_tasks(Task.from_dict(d) for d in payload)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.tasks


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

def column(state: BoardState, status: TaskStatus) -> list[Task]:
    """Tasks of one column in on-screen order."""
    return [state.tasks[tid] for tid in state.order if state.tasks[tid].status == status]


def columns(state: BoardState) -> dict[TaskStatus, list[Task]]:
    return {status: column(state, status) for status in BOARD_COLUMNS}


def locate(state: BoardState, task_id: str) -> Optional[Placement]:
    task = state.tasks.get(task_id)
    if task is None:
        return None
    ids = [t.id for t in column(state, task.status)]
    return Placement(status=task.status, index=ids.index(task_id))


def column_payload(state: BoardState, status: TaskStatus) -> list[ReorderItem]:
    """The column's on-screen order with fresh ``0..n-1`` positions."""
    return [
        ReorderItem(task_id=task.id, status=status, position=idx)
        for idx, task in enumerate(column(state, status))
    ]


def same_columns(a: BoardState, b: BoardState) -> bool:
    """True if both boards show the same tasks in the same columns and order."""
    return {s: [t.id for t in ts] for s, ts in columns(a).items()} == {
        s: [t.id for t in ts] for s, ts in columns(b).items()
    }


# ---------------------------------------------------------------------------
# Pure transforms
# ---------------------------------------------------------------------------

def array_move(state: BoardState, from_index: int, to_index: int) -> BoardState:
    """Move the id at *from_index* of the render order to *to_index*."""
    order = list(state.order)
    order.insert(to_index, order.pop(from_index))
    return replace(state, order=tuple(order))


def with_task(state: BoardState, task: Task) -> BoardState:
    """Replace (or append) *task*, keeping the render order otherwise intact."""
    tasks = dict(state.tasks)
    tasks[task.id] = task
    order = state.order if task.id in state.tasks else state.order + (task.id,)
    return BoardState(tasks=MappingProxyType(tasks), order=order)


def with_status(state: BoardState, task_id: str, status: TaskStatus) -> BoardState:
    task = state.tasks[task_id]
    if task.status == status:
        return state
    return with_task(state, replace(task, status=status))


def with_changes(state: BoardState, task_id: str, changes: Mapping[str, Any]) -> BoardState:
    """Apply field changes locally; a status change appends to the new column."""
    task = state.tasks[task_id]
    fields = {k: v for k, v in changes.items() if hasattr(task, k)}
    new_status = fields.get("status")
    if new_status is not None and not isinstance(new_status, TaskStatus):
        fields["status"] = new_status = TaskStatus.coerce(new_status)
    updated = with_task(state, replace(task, **fields))
    if new_status is None or new_status == task.status:
        return updated
    order = [tid for tid in updated.order if tid != task_id]
    order.append(task_id)
    return replace(updated, order=tuple(order))
