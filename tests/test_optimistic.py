"""Tests for the optimistic board session (client/optimistic.py)."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

import anyio
import httpx
import pytest

from conftest import PROJECT
from taskboard.board.model import Task, TaskStatus
from taskboard.board.ordering import ReorderItem
from taskboard.client.drag import DragPhase, DropKind, DropOutcome, HoverTarget
from taskboard.client.optimistic import BoardSession, DragSession, optimistic_mutation
from taskboard.client.selectors import BoardState, Placement, column, with_status
from taskboard.errors import AuthorizationError, NotFoundError, ValidationError

TODO, REVIEW, DONE = TaskStatus.TODO, TaskStatus.REVIEW, TaskStatus.DONE


class Gate:
    """Holds one transport call until the test releases it."""

    def __init__(self) -> None:
        self.entered = anyio.Event()
        self.release = anyio.Event()


class FakeTransport:
    def __init__(self, tasks: list[Task]) -> None:
        self.server = {t.id: t for t in tasks}
        self.calls: list[tuple[Any, ...]] = []
        self.failures: list[Optional[Exception]] = []
        self.gates: list[Optional[Gate]] = []
        self.patch_error: Optional[Exception] = None

    async def fetch_board(self, project_id: str) -> list[Task]:
        self.calls.append(("fetch_board", project_id))
        return list(self.server.values())

    async def update_order(self, project_id: str, items: list[ReorderItem]) -> dict[str, Any]:
        idx = sum(1 for c in self.calls if c[0] == "update_order")
        self.calls.append(("update_order", project_id, list(items)))
        gate = self.gates[idx] if idx < len(self.gates) else None
        if gate is not None:
            gate.entered.set()
            await gate.release.wait()
        failure = self.failures[idx] if idx < len(self.failures) else None
        if failure is not None:
            raise failure
        for item in items:
            self.server[item.task_id] = replace(self.server[item.task_id], status=item.status, position=item.position)
        return {"success": True, "updated": len(items), "tasks": []}

    async def patch_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        self.calls.append(("patch_task", task_id, dict(changes)))
        if self.patch_error is not None:
            raise self.patch_error
        fields = dict(changes)
        if "status" in fields:
            status = TaskStatus.coerce(fields["status"])
            fields["status"] = status
            fields["position"] = sum(1 for t in self.server.values() if t.status == status)
        self.server[task_id] = replace(self.server[task_id], **fields)
        return self.server[task_id]


def _tasks() -> list[Task]:
    return [
        Task(id="a", project_id=PROJECT, status=TODO, position=0),
        Task(id="b", project_id=PROJECT, status=TODO, position=1),
        Task(id="x", project_id=PROJECT, status=DONE, position=0),
    ]


def _move(board: BoardState, task_id: str, status: TaskStatus) -> DropOutcome:
    """A committed drop of *task_id* onto the *status* column sentinel."""
    moved = with_status(board, task_id, status)
    origin = Placement(board.tasks[task_id].status, [t.id for t in column(board, board.tasks[task_id].status)].index(task_id))
    final = Placement(status, [t.id for t in column(moved, status)].index(task_id))
    return DropOutcome(DropKind.COMMIT, task_id, origin, moved, final)


def ids(state: BoardState, status: TaskStatus) -> list[str]:
    return [t.id for t in column(state, status)]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport(_tasks())


@pytest.fixture
def notes() -> list[tuple[str, str]]:
    return []


@pytest.fixture
async def session(transport: FakeTransport, notes: list[tuple[str, str]]) -> BoardSession:
    s = BoardSession(PROJECT, transport, notifier=lambda level, msg: notes.append((level, msg)), refetch_on_success=False)
    await s.load()
    transport.calls.clear()
    return s


@pytest.mark.anyio
class TestOptimisticMutation:
    async def test_confirm_on_success(self) -> None:
        log: list[str] = []

        async def commit() -> int:
            log.append("commit")
            return 7

        ok = await optimistic_mutation(
            lambda: log.append("apply"), commit, lambda r: log.append(f"confirm:{r}"), lambda e: log.append("rollback")
        )
        assert ok is True
        assert log == ["apply", "commit", "confirm:7"]

    async def test_rollback_on_commit_error(self) -> None:
        log: list[str] = []

        async def commit() -> None:
            raise httpx.ConnectError("down")

        ok = await optimistic_mutation(
            lambda: log.append("apply"), commit, lambda r: log.append("confirm"), lambda e: log.append(type(e).__name__)
        )
        assert ok is False
        assert log == ["apply", "ConnectError"]

    async def test_unexpected_error_rolls_back_then_propagates(self) -> None:
        log: list[str] = []

        async def commit() -> None:
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await optimistic_mutation(lambda: None, commit, lambda r: None, lambda e: log.append("rollback"))
        assert log == ["rollback"]


@pytest.mark.anyio
class TestCommitDrop:
    async def test_success_keeps_dropped_board(
        self, session: BoardSession, transport: FakeTransport, notes: list
    ) -> None:
        outcome = _move(session.visible, "a", REVIEW)

        assert await session.commit_drop(outcome) is True

        assert session.visible == outcome.board
        assert session.confirmed == outcome.board
        assert transport.calls == [("update_order", PROJECT, [ReorderItem("a", REVIEW, 0)])]
        assert notes == [("success", "Board updated successfully!")]

    @pytest.mark.parametrize(
        "error",
        [AuthorizationError(), ValidationError(), NotFoundError("gone"), httpx.ConnectError("down")],
        ids=["403", "400", "404", "network"],
    )
    async def test_failure_restores_confirmed_board(
        self, session: BoardSession, transport: FakeTransport, notes: list, error: Exception
    ) -> None:
        before = session.visible
        transport.failures = [error]

        assert await session.commit_drop(_move(before, "a", DONE)) is False

        assert session.visible is before
        assert ids(session.visible, TODO) == ["a", "b"]
        assert notes == [("error", "Could not save task arrangement. Please refresh.")]

    async def test_noop_drop_makes_no_request(self, session: BoardSession, transport: FakeTransport) -> None:
        board = session.visible
        outcome = DropOutcome(DropKind.NOOP, "a", Placement(TODO, 0), board, Placement(TODO, 0))
        assert await session.commit_drop(outcome) is True
        assert transport.calls == []

    async def test_refetch_after_success(self, transport: FakeTransport) -> None:
        s = BoardSession(PROJECT, transport, notifier=lambda *_: None, refetch_on_success=True)
        await s.load()
        await s.commit_drop(_move(s.visible, "b", DONE))
        assert [c[0] for c in transport.calls] == ["fetch_board", "update_order", "fetch_board"]
        assert ids(s.visible, DONE) == ["b", "x"]

    async def test_stale_confirmation_refetches_once_idle(
        self, session: BoardSession, transport: FakeTransport, notes: list
    ) -> None:
        gate = Gate()
        transport.gates = [gate]
        first = _move(session.visible, "a", REVIEW)

        async with anyio.create_task_group() as tg:
            tg.start_soon(session.commit_drop, first)
            await gate.entered.wait()
            second = _move(session.visible, "b", DONE)
            assert await session.commit_drop(second) is True
            assert transport.calls[-1][0] == "update_order"
            gate.release.set()

        assert transport.calls[-1] == ("fetch_board", PROJECT)
        assert ids(session.visible, REVIEW) == ["a"]
        assert ids(session.visible, DONE) == ["b", "x"]
        assert session.confirmed == session.visible
        assert notes == [("success", "Board updated successfully!")]

    async def test_stale_failure_notifies_and_reconciles(
        self, session: BoardSession, transport: FakeTransport, notes: list
    ) -> None:
        gate = Gate()
        transport.gates = [gate]
        transport.failures = [ValidationError()]
        first = _move(session.visible, "a", REVIEW)

        async with anyio.create_task_group() as tg:
            tg.start_soon(session.commit_drop, first)
            await gate.entered.wait()
            second = _move(session.visible, "b", DONE)
            await session.commit_drop(second)
            gate.release.set()

        assert ("error", "Could not save task arrangement. Please refresh.") in notes
        assert transport.calls[-1] == ("fetch_board", PROJECT)
        assert session.visible.tasks["a"].status == TODO
        assert session.visible.tasks["b"].status == DONE
        assert session.confirmed == session.visible

    async def test_late_success_after_newer_failure_refetches(
        self, session: BoardSession, transport: FakeTransport, notes: list
    ) -> None:
        gate = Gate()
        transport.gates = [gate]
        transport.failures = [None, ValidationError()]
        first = _move(session.visible, "a", REVIEW)

        async with anyio.create_task_group() as tg:
            tg.start_soon(session.commit_drop, first)
            await gate.entered.wait()
            assert await session.commit_drop(_move(session.visible, "b", DONE)) is False
            assert ids(session.visible, TODO) == ["a", "b"]
            gate.release.set()

        assert transport.calls[-1] == ("fetch_board", PROJECT)
        assert ids(session.visible, REVIEW) == ["a"]
        assert ids(session.visible, TODO) == ["b"]
        assert session.confirmed == session.visible
        assert notes == [("error", "Could not save task arrangement. Please refresh.")]

    async def test_failure_after_dropped_confirmation_refetches(
        self, session: BoardSession, transport: FakeTransport
    ) -> None:
        first_gate, second_gate = Gate(), Gate()
        transport.gates = [first_gate, second_gate]
        transport.failures = [None, ValidationError()]
        first = _move(session.visible, "a", REVIEW)

        async with anyio.create_task_group() as tg:
            tg.start_soon(session.commit_drop, first)
            await first_gate.entered.wait()
            second = _move(session.visible, "b", DONE)
            tg.start_soon(session.commit_drop, second)
            await second_gate.entered.wait()
            first_gate.release.set()
            await anyio.sleep(0.01)
            second_gate.release.set()

        assert transport.calls[-1] == ("fetch_board", PROJECT)
        assert ids(session.visible, REVIEW) == ["a"]
        assert ids(session.visible, TODO) == ["b"]
        assert session.confirmed == session.visible


@pytest.mark.anyio
class TestUpdateTask:
    async def test_status_change_success(self, session: BoardSession, transport: FakeTransport, notes: list) -> None:
        assert await session.update_task("a", status=DONE) is True
        assert ids(session.visible, DONE) == ["x", "a"]
        assert session.visible.tasks["a"].position == 1
        assert session.confirmed == session.visible
        assert notes == [("success", "Task updated successfully!")]

    async def test_failure_restores(self, session: BoardSession, transport: FakeTransport, notes: list) -> None:
        before = session.visible
        transport.patch_error = AuthorizationError()
        assert await session.update_task("a", status=DONE) is False
        assert session.visible is before
        assert notes == [("error", "Update Failed")]


@pytest.mark.anyio
class TestDragSession:
    async def test_drag_and_drop_commits_destination_column(
        self, session: BoardSession, transport: FakeTransport
    ) -> None:
        drag = DragSession(session, activation_distance=5)
        drag.pointer_down("b", 0, 0)
        assert drag.pointer_move(0, 30) is True
        drag.drag_over(HoverTarget.task("x"))

        outcome = await drag.drop(HoverTarget.task("x"))

        assert outcome.kind == DropKind.COMMIT
        assert transport.calls == [
            ("update_order", PROJECT, [ReorderItem("x", DONE, 0), ReorderItem("b", DONE, 1)])
        ]
        assert drag.controller.phase == DragPhase.IDLE
        assert drag.board == session.visible
        assert ids(drag.board, DONE) == ["x", "b"]

    async def test_failed_drop_shows_confirmed_board(self, session: BoardSession, transport: FakeTransport) -> None:
        transport.failures = [AuthorizationError()]
        drag = DragSession(session, activation_distance=5)
        drag.pointer_down("a", 0, 0)
        drag.pointer_move(30, 0)

        await drag.drop(HoverTarget.column(REVIEW))

        assert drag.board == session.confirmed
        assert ids(drag.board, TODO) == ["a", "b"]

    async def test_click_makes_no_request(self, session: BoardSession, transport: FakeTransport) -> None:
        drag = DragSession(session, activation_distance=5)
        drag.pointer_down("a", 0, 0)
        assert await drag.drop(HoverTarget.task("b")) is None
        assert transport.calls == []
