from __future__ import annotations

import sys
from pathlib import Path

import pytest
from loguru import logger

from taskboard.board.model import ProjectRole, Task, TaskStatus
from taskboard.board.service import OrderCommitService
from taskboard.board.store import BoardStore

PROJECT = "proj-1"
OTHER_PROJECT = "proj-2"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _restore_loguru():
    """CLI and logging tests reconfigure loguru against a captured stream."""
    yield
    logger.remove()
    logger.add(sys.__stderr__, level="INFO")


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    d = tmp_path / ".taskboard"
    d.mkdir()
    return d


@pytest.fixture
def store(state_dir: Path) -> BoardStore:
    return BoardStore(state_dir)


@pytest.fixture
def service(store: BoardStore) -> OrderCommitService:
    """alice leads proj-1, bob is a member, carol can only view; dave leads proj-2."""
    svc = OrderCommitService(store)
    svc.create_project("alice", "Website", project_id=PROJECT)
    svc.add_member(None, PROJECT, "bob", ProjectRole.MEMBER)
    svc.add_member(None, PROJECT, "carol", ProjectRole.VIEWER)
    svc.create_project("dave", "Internal", project_id=OTHER_PROJECT)
    return svc


def seed(service: OrderCommitService, project_id: str, status: TaskStatus, *titles: str, caller: str = "alice") -> list[Task]:
    """Append tasks to one column; returns them in position order."""
    return [service.create_task(caller, project_id, title, status=status) for title in titles]


def column_ids(store: BoardStore, project_id: str, status: TaskStatus) -> list[str]:
    with store.transaction() as tx:
        return [t.id for t in tx.group(project_id, status)]


def column_positions(store: BoardStore, project_id: str, status: TaskStatus) -> list[int]:
    with store.transaction() as tx:
        return [t.position for t in tx.group(project_id, status)]
