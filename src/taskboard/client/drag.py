"""Drag interaction controller.

Turns pointer gestures into a provisional, purely local reordering of the
board.  Nothing here touches the network; the caller decides what to do with
the :class:`DropOutcome` a drop produces.

Phases::

    IDLE -> PENDING -> DRAGGING -> COMMITTING -> IDLE
              |            |
              +-> IDLE     +-> IDLE   (click / no-op drop / cancel)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from ..board.model import TaskStatus
from ..board.ordering import ReorderItem
from ..constants import DEFAULT_ACTIVATION_DISTANCE
from .selectors import BoardState, Placement, array_move, column_payload, locate, same_columns, with_status


class DragPhase(str, Enum):
    IDLE = "idle"
    PENDING = "pending"          # pointer is down, activation threshold not crossed yet
    DRAGGING = "dragging"
    COMMITTING = "committing"


@dataclass(frozen=True)
class HoverTarget:
    """What the pointer is over: a column sentinel or another task."""

    status: Optional[TaskStatus] = None
    task_id: Optional[str] = None

    @classmethod
    def column(cls, status: TaskStatus) -> "HoverTarget":
        return cls(status=status)

    @classmethod
    def task(cls, task_id: str) -> "HoverTarget":
        return cls(task_id=task_id)

    @property
    def is_task(self) -> bool:
        return self.task_id is not None


class DropKind(str, Enum):
    NOOP = "noop"
    CANCELLED = "cancelled"
    COMMIT = "commit"


@dataclass(frozen=True)
class DropOutcome:
    kind: DropKind
    task_id: str
    origin: Placement
    board: BoardState
    final: Optional[Placement] = None

    @property
    def destination(self) -> Optional[TaskStatus]:
        return self.final.status if self.final is not None else None

    @property
    def items(self) -> list[ReorderItem]:
        """Full destination column with fresh positions; empty unless committing."""
        if self.kind != DropKind.COMMIT or self.final is None:
            return []
        return column_payload(self.board, self.final.status)


class DragController:
    """State machine for one pointer at a time.

    Parameters
    ----------
    board:
        Board the next gesture starts from.
    activation_distance:
        Pointer travel (pixels) required before a press becomes a drag.
    """

    def __init__(self, board: BoardState, activation_distance: float = DEFAULT_ACTIVATION_DISTANCE) -> None:
        self._board = board
        self.activation_distance = activation_distance
        self.phase = DragPhase.IDLE
        self.active_id: Optional[str] = None
        self.snapshot: Optional[Placement] = None
        self._origin: Optional[BoardState] = None
        self._press: Optional[tuple[float, float]] = None

    @property
    def board(self) -> BoardState:
        """The board as it should be rendered right now (provisional while dragging)."""
        return self._board

    def set_board(self, board: BoardState) -> bool:
        """Adopt an externally updated board unless a gesture is in progress."""
        if self.phase in (DragPhase.PENDING, DragPhase.DRAGGING):
            return False
        self._board = board
        return True

    # -- gesture ------------------------------------------------------------

    def pointer_down(self, task_id: str, x: float, y: float) -> None:
        if self.phase in (DragPhase.PENDING, DragPhase.DRAGGING):
            raise RuntimeError(f"A gesture is already in progress ({self.phase.value})")
        if task_id not in self._board:
            raise KeyError(task_id)
        # A new press while a commit is outstanding is allowed; its
        # resolution is reconciled by generation, not fenced here.
        self.phase = DragPhase.PENDING
        self.active_id = task_id
        self._press = (x, y)

    def pointer_move(self, x: float, y: float) -> bool:
        """Track pointer travel; returns True once the drag has started."""
        if self.phase == DragPhase.DRAGGING:
            return True
        if self.phase != DragPhase.PENDING or self._press is None:
            return False
        if math.hypot(x - self._press[0], y - self._press[1]) <= self.activation_distance:
            return False
        self.snapshot = locate(self._board, self.active_id)
        self._origin = self._board
        self.phase = DragPhase.DRAGGING
        logger.debug("Drag started for {} at {}", self.active_id, self.snapshot)
        return True

    def drag_over(self, target: HoverTarget) -> BoardState:
        """Recompute the provisional board for the current hover target.

        Each call derives the placement from the board as it was when the
        drag started, so the latest event fully supersedes earlier ones.
        """
        if self.phase != DragPhase.DRAGGING:
            return self._board
        origin, active = self._origin, self.active_id
        current_status = self._board.tasks[active].status

        if target.is_task:
            if target.task_id == active or target.task_id not in origin:
                return self._board
            over = origin.tasks[target.task_id]
            moved = with_status(origin, active, over.status)
            self._board = array_move(
                moved,
                origin.order.index(active),
                origin.order.index(target.task_id),
            )
        elif target.status is not None and target.status != current_status:
            # Column sentinel: change column, keep the render slot.
            self._board = with_status(origin, active, target.status)
        return self._board

    def release(self, over: Optional[HoverTarget] = None) -> Optional[DropOutcome]:
        """Handle pointer-up.

        Returns None for a plain click (threshold never crossed), otherwise a
        :class:`DropOutcome`.  Dropping outside any target cancels the drag.
        """
        if self.phase == DragPhase.PENDING:
            self._reset(DragPhase.IDLE)
            return None
        if self.phase != DragPhase.DRAGGING:
            return None

        task_id, origin, snapshot = self.active_id, self._origin, self.snapshot
        if over is None:
            self._board = origin
            self._reset(DragPhase.IDLE)
            return DropOutcome(DropKind.CANCELLED, task_id, snapshot, origin)

        self.drag_over(over)
        final = locate(self._board, task_id)
        if same_columns(self._board, origin):
            self._board = origin
            self._reset(DragPhase.IDLE)
            return DropOutcome(DropKind.NOOP, task_id, snapshot, origin, final)

        self._reset(DragPhase.COMMITTING)
        logger.debug("Drop {} {} -> {}", task_id, snapshot, final)
        return DropOutcome(DropKind.COMMIT, task_id, snapshot, self._board, final)

    def cancel(self) -> None:
        if self.phase == DragPhase.DRAGGING and self._origin is not None:
            self._board = self._origin
        if self.phase in (DragPhase.PENDING, DragPhase.DRAGGING):
            self._reset(DragPhase.IDLE)

    def resolve(self, board: Optional[BoardState] = None) -> None:
        """Finish a commit; *board* is the reconciled board to show next."""
        if self.phase == DragPhase.COMMITTING:
            self.phase = DragPhase.IDLE
        if board is not None:
            self.set_board(board)

    def _reset(self, phase: DragPhase) -> None:
        self.phase = phase
        self.active_id = None
        self.snapshot = None
        self._origin = None
        self._press = None
