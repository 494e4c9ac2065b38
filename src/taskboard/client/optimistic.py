"""Optimistic update manager.

Applies board changes locally before the server answers, then confirms or
rolls back.  Every request is tagged with the board generation it was
computed against; a response for an older generation never touches newer
local state.  Once the last in-flight commit settles, any dropped response
triggers a refetch so the board converges on what the server holds.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

import httpx
from loguru import logger

from ..board.model import Task
from ..board.ordering import ReorderItem
from ..config import get_client_config, get_drag_config
from ..constants import DEFAULT_ACTIVATION_DISTANCE
from ..errors import BoardError
from .drag import DragController, DropKind, DropOutcome, HoverTarget
from .selectors import BoardState, with_changes, with_task
from .transport import BoardApiClient

T = TypeVar("T")

Notifier = Callable[[str, str], None]

COMMIT_ERRORS = (BoardError, httpx.HTTPError)


def log_notifier(level: str, message: str) -> None:
    """Default notifier: route user-facing toasts to the log."""
    logger.log(level.upper(), message)


class BoardTransport(Protocol):
    async def fetch_board(self, project_id: str) -> list[Task]: ...

    async def update_order(self, project_id: str, items: list[ReorderItem]) -> dict[str, Any]: ...

    async def patch_task(self, task_id: str, changes: dict[str, Any]) -> Task: ...


async def optimistic_mutation(
    apply: Callable[[], None],
    commit: Callable[[], Awaitable[T]],
    confirm: Callable[[T], None],
    rollback: Callable[[Exception], None],
) -> bool:
    """apply(local) -> commit(remote) -> confirm, or rollback on failure.

    Only commit failures (``BoardError`` / ``httpx.HTTPError``) are turned
    into a rollback; anything else propagates after the rollback runs.
    """
    apply()
    try:
        result = await commit()
    except COMMIT_ERRORS as exc:
        rollback(exc)
        return False
    except BaseException as exc:
        rollback(exc if isinstance(exc, Exception) else RuntimeError("commit cancelled"))
        raise
    confirm(result)
    return True


class BoardSession:
    """Client-side board for one project.

    ``visible`` is what the user sees; ``confirmed`` is the last state the
    server acknowledged.  Both are immutable :class:`BoardState` values.
    """

    def __init__(
        self,
        project_id: str,
        transport: BoardTransport,
        notifier: Optional[Notifier] = None,
        refetch_on_success: bool = True,
    ) -> None:
        self.project_id = project_id
        self.transport = transport
        self.notify = notifier or log_notifier
        self.refetch_on_success = refetch_on_success
        self.visible = BoardState()
        self.confirmed = BoardState()
        self.generation = 0
        self._in_flight: set[int] = set()
        self._dropped_confirmations = 0
        self._dropped_failures = 0

    def _next_generation(self) -> int:
        self.generation += 1
        return self.generation

    def _is_current(self, generation: int, what: str) -> bool:
        if generation == self.generation:
            return True
        logger.debug("Ignoring stale {} for generation {} (current {})", what, generation, self.generation)
        return False

    async def load(self) -> BoardState:
        """Fetch the board and adopt it as both confirmed and visible."""
        generation = self.generation
        tasks = await self.transport.fetch_board(self.project_id)
        if not self._is_current(generation, "board fetch"):
            return self.visible
        state = BoardState.from_tasks(tasks)
        self.confirmed = state
        self.visible = state
        self._dropped_confirmations = 0
        self._dropped_failures = 0
        return state

    async def _reconcile(self) -> None:
        try:
            await self.load()
        except COMMIT_ERRORS as exc:
            logger.warning("Background refetch of {} failed: {}", self.project_id, exc)

    # -- commit paths -------------------------------------------------------

    async def commit_drop(self, outcome: DropOutcome) -> bool:
        """Show the dropped board now and persist its destination column."""
        if outcome.kind != DropKind.COMMIT:
            return True
        items = outcome.items
        generation = 0

        def apply() -> None:
            nonlocal generation
            generation = self._next_generation()
            self._in_flight.add(generation)
            self.visible = outcome.board

        def confirm(result: dict[str, Any]) -> None:
            if not self._is_current(generation, "reorder confirmation"):
                self._dropped_confirmations += 1
                return
            self.confirmed = self.visible
            self.notify("success", "Board updated successfully!")

        def rollback(exc: Exception) -> None:
            logger.warning("Reorder of {} failed: {}", outcome.task_id, exc)
            if self._is_current(generation, "reorder failure"):
                self.visible = self.confirmed
            else:
                # Newer local state includes this move; reconciled later.
                self._dropped_failures += 1
            self.notify("error", "Could not save task arrangement. Please refresh.")

        try:
            ok = await optimistic_mutation(
                apply,
                lambda: self.transport.update_order(self.project_id, items),
                confirm,
                rollback,
            )
        finally:
            self._in_flight.discard(generation)
        await self._after_commit(ok, generation)
        return ok

    async def update_task(self, task_id: str, **changes: Any) -> bool:
        """Optimistically edit one task (e.g. a status dropdown) via PATCH."""
        generation = 0

        def apply() -> None:
            nonlocal generation
            generation = self._next_generation()
            self._in_flight.add(generation)
            self.visible = with_changes(self.visible, task_id, changes)

        def confirm(task: Task) -> None:
            if not self._is_current(generation, "task confirmation"):
                self._dropped_confirmations += 1
                return
            self.visible = with_task(self.visible, task)
            self.confirmed = self.visible
            self.notify("success", "Task updated successfully!")

        def rollback(exc: Exception) -> None:
            logger.warning("Update of {} failed: {}", task_id, exc)
            if self._is_current(generation, "task failure"):
                self.visible = self.confirmed
            else:
                self._dropped_failures += 1
            self.notify("error", "Update Failed")

        try:
            ok = await optimistic_mutation(
                apply,
                lambda: self.transport.patch_task(task_id, changes),
                confirm,
                rollback,
            )
        finally:
            self._in_flight.discard(generation)
        await self._after_commit(ok, generation)
        return ok

    async def _after_commit(self, ok: bool, generation: int) -> None:
        """Reconcile with the server once no commit is in flight.

        A dropped response means `confirmed` no longer tracks the server: an
        ignored success is missing from it, an ignored failure is still in
        it.  Either forces a refetch regardless of `refetch_on_success`.
        """
        if self._in_flight:
            return
        if self._dropped_confirmations or self._dropped_failures:
            await self._reconcile()
        elif ok and generation == self.generation and self.refetch_on_success:
            await self._reconcile()


class DragSession:
    """Glue between a :class:`DragController` and a :class:`BoardSession`."""

    def __init__(self, session: BoardSession, activation_distance: float = DEFAULT_ACTIVATION_DISTANCE) -> None:
        self.session = session
        self.controller = DragController(session.visible, activation_distance)

    @property
    def board(self) -> BoardState:
        return self.controller.board

    def pointer_down(self, task_id: str, x: float, y: float) -> None:
        self.controller.set_board(self.session.visible)
        self.controller.pointer_down(task_id, x, y)

    def pointer_move(self, x: float, y: float) -> bool:
        return self.controller.pointer_move(x, y)

    def drag_over(self, target: HoverTarget) -> BoardState:
        return self.controller.drag_over(target)

    async def drop(self, over: Optional[HoverTarget]) -> Optional[DropOutcome]:
        outcome = self.controller.release(over)
        if outcome is None or outcome.kind != DropKind.COMMIT:
            return outcome
        try:
            await self.session.commit_drop(outcome)
        finally:
            self.controller.resolve(self.session.visible)
        return outcome


def session_from_config(
    config: dict[str, Any],
    project_id: str,
    token: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    notifier: Optional[Notifier] = None,
) -> DragSession:
    """Wire transport, board session and drag controller from board config."""
    client_cfg = get_client_config(config)
    transport = BoardApiClient(
        client_cfg["base_url"],
        token,
        client=client,
        timeout=client_cfg["timeout"],
    )
    session = BoardSession(
        project_id,
        transport,
        notifier=notifier,
        refetch_on_success=client_cfg["refetch_on_success"],
    )
    return DragSession(session, get_drag_config(config)["activation_distance"])
