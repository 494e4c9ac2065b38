"""Client-side board: normalized state, drag controller and optimistic commits."""

from __future__ import annotations

from .drag import DragController, DragPhase, DropKind, DropOutcome, HoverTarget
from .optimistic import BoardSession, DragSession, optimistic_mutation, session_from_config
from .selectors import BoardState, Placement
from .transport import BoardApiClient

__all__ = [
    "BoardApiClient",
    "BoardSession",
    "BoardState",
    "DragController",
    "DragPhase",
    "DragSession",
    "DropKind",
    "DropOutcome",
    "HoverTarget",
    "Placement",
    "optimistic_mutation",
    "session_from_config",
]
