"""Tests for the YAML-backed board store (board/store.py)."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from taskboard.board.model import Project, ProjectRole, Task, TaskStatus
from taskboard.board.store import BoardStore
from taskboard.errors import NotFoundError, PersistenceError


def _task(task_id: str, status: TaskStatus = TaskStatus.TODO, position: int = 0) -> Task:
    return Task(id=task_id, project_id="p", title=task_id, status=status, position=position)


class TestTransaction:
    def test_saves_on_clean_exit(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_project(Project(id="p", name="P"))
            tx.add_task(_task("t1"))
        data = yaml.safe_load(store.path.read_text())
        assert data["version"] == 1
        assert [t["id"] for t in data["tasks"]] == ["t1"]
        assert store.get("t1") is not None

    def test_discards_on_exception(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_task(_task("t1"))
        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                tx.update_many([("t1", TaskStatus.DONE, 0)])
                raise RuntimeError("boom")
        assert store.get("t1").status == TaskStatus.TODO

    def test_read_only_transaction_does_not_write(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            assert tx.list_tasks() == []
        assert not store.path.exists()

    def test_save_failure_is_persistence_error(self, store: BoardStore, monkeypatch: pytest.MonkeyPatch) -> None:
        def fail(path: Path, data: dict) -> None:
            raise OSError("disk full")

        monkeypatch.setattr("taskboard.board.store._atomic_write_yaml", fail)
        with pytest.raises(PersistenceError):
            with store.transaction() as tx:
                tx.add_task(_task("t1"))

    def test_corrupt_file_is_persistence_error(self, store: BoardStore) -> None:
        store.path.write_text("tasks: [\n")
        with pytest.raises(PersistenceError):
            store.read_snapshot()

    def test_unknown_status_on_disk_is_persistence_error(self, store: BoardStore) -> None:
        store.path.write_text(yaml.safe_dump({"tasks": [{"id": "t1", "status": "ARCHIVED"}]}))
        with pytest.raises(PersistenceError):
            store.read_snapshot()


class TestTaskRepository:
    def test_count_and_group(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_task(_task("b", position=1))
            tx.add_task(_task("a", position=0))
            tx.add_task(_task("d", TaskStatus.DONE))
        assert store.count_by_status("p", TaskStatus.TODO) == 2
        assert store.count_by_status("p", TaskStatus.REVIEW) == 0
        with store.transaction() as tx:
            assert [t.id for t in tx.group("p", TaskStatus.TODO)] == ["a", "b"]
        assert {t.id for t in store.list_for_project("p")} == {"a", "b", "d"}

    def test_update_many_unknown_id_aborts_batch(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_task(_task("t1"))
        with pytest.raises(NotFoundError):
            store.update_many([("t1", TaskStatus.DONE, 0), ("ghost", TaskStatus.DONE, 1)])
        assert store.get("t1").status == TaskStatus.TODO

    def test_update_many_moves_tasks(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_task(_task("t1"))
        moved = store.update_many([("t1", TaskStatus.DONE, 0)])
        assert moved[0].status == TaskStatus.DONE
        assert store.get("t1").completed_at is not None

    def test_add_task_rejects_duplicate(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_task(_task("t1"))
            with pytest.raises(ValueError):
                tx.add_task(_task("t1"))

    def test_remove_task_keeps_index_consistent(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            for task_id in ("t1", "t2", "t3"):
                tx.add_task(_task(task_id))
        with store.transaction() as tx:
            assert tx.remove_task("t1").id == "t1"
            assert tx.remove_task("t1") is None
            assert tx.get_task("t1") is None
            assert tx.get_task("t3").id == "t3"
            tx.update_many([("t3", TaskStatus.DONE, 0)])
            tx.add_task(_task("t4"))
            assert tx.get_task("t4").id == "t4"
        assert [t.id for t in store.list_for_project("p")] == ["t2", "t3", "t4"]
        assert store.get("t3").status == TaskStatus.DONE

    def test_remove_unknown_task_writes_nothing(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_task(_task("t1"))
        before = store.path.read_text()
        with store.transaction() as tx:
            assert tx.remove_task("nope") is None
            assert tx.dirty is False
        assert store.path.read_text() == before


class TestMembers:
    def test_add_member_upserts(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_member("p", "u", ProjectRole.VIEWER)
            tx.add_member("p", "u", ProjectRole.LEAD)
        with store.transaction() as tx:
            assert len(tx.members_of("p")) == 1
            assert tx.membership("p", "u").role == ProjectRole.LEAD

    def test_remove_member(self, store: BoardStore) -> None:
        with store.transaction() as tx:
            tx.add_member("p", "u", ProjectRole.MEMBER)
        with store.transaction() as tx:
            assert tx.remove_member("p", "u") is True
            assert tx.remove_member("p", "u") is False
        with store.transaction() as tx:
            assert tx.membership("p", "u") is None
