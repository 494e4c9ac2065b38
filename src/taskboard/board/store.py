"""File-based board store with thread- and process-safe locking.

Projects, memberships and tasks live in a single YAML file (``board.yaml``)
inside the project's ``.taskboard/`` directory.  All reads and writes go
through :meth:`BoardStore.transaction`, which holds an exclusive lock for the
whole read-modify-write cycle and only writes back when the block exits
cleanly, so a failure part-way through a batch never becomes visible.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from ..constants import STORE_FILE, STORE_LOCK_FILE, STORE_VERSION
from ..errors import NotFoundError, PersistenceError
from ..io_utils import FileLock, _atomic_write_yaml, _load_data_with_error
from .interfaces import TaskRepository
from .model import Membership, Project, ProjectRole, Task, TaskStatus


class BoardStore(TaskRepository):
    """Thread-safe, file-backed store for projects, members and tasks.

    Parameters
    ----------
    state_dir:
        Path to the ``.taskboard/`` directory for the deployment.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = state_dir
        self._store_path = state_dir / STORE_FILE
        self._lock = FileLock(state_dir / STORE_LOCK_FILE)
        self._thread_lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._store_path

    # -- internal helpers ---------------------------------------------------

    def _load(self) -> "_BoardTx":
        data, err = _load_data_with_error(self._store_path, {})
        if err:
            raise PersistenceError(f"Board store is unreadable: {err}")
        try:
            projects = [Project.from_dict(d) for d in _as_list(data.get("projects"))]
            members = [Membership.from_dict(d) for d in _as_list(data.get("members"))]
            tasks = [Task.from_dict(d) for d in _as_list(data.get("tasks"))]
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Board store is corrupt: {exc}") from exc
        return _BoardTx(projects, members, tasks)

    def _save(self, tx: "_BoardTx") -> None:
        payload = {
            "version": STORE_VERSION,
            "projects": [p.to_dict() for p in tx.projects],
            "members": [m.to_dict() for m in tx.members],
            "tasks": [t.to_dict() for t in tx.tasks],
        }
        try:
            _atomic_write_yaml(self._store_path, payload)
        except (OSError, yaml.YAMLError) as exc:
            raise PersistenceError(f"Failed to write board store: {exc}") from exc

    # -- public API ---------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["_BoardTx"]:
        """Acquire the locks, load the board, yield a transaction, save on exit.

        Usage::

            with store.transaction() as tx:
                task = tx.get_task("task-abc123")
                tx.update_task(task.id, {"title": "Renamed"})
                # saved on clean exit; discarded if the block raises
        """
        with self._thread_lock:
            with self._lock:
                tx = self._load()
                yield tx
                if tx.dirty:
                    self._save(tx)

    def read_snapshot(self) -> list[Task]:
        """Return every task (no lock held after return)."""
        with self.transaction() as tx:
            return tx.list_tasks()

    # -- TaskRepository -----------------------------------------------------

    def get(self, task_id: str) -> Optional[Task]:
        with self.transaction() as tx:
            return tx.get_task(task_id)

    def list_for_project(self, project_id: str) -> list[Task]:
        with self.transaction() as tx:
            return tx.tasks_for_project(project_id)

    def count_by_status(self, project_id: str, status: TaskStatus) -> int:
        with self.transaction() as tx:
            return tx.count_by_status(project_id, status)

    def update_many(self, updates: list[tuple[str, TaskStatus, int]]) -> list[Task]:
        with self.transaction() as tx:
            return tx.update_many(updates)


def _as_list(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


class _BoardTx:
    """In-memory transaction over the whole board.

    Mutations are collected and flushed back to disk when the ``transaction``
    context-manager exits without an exception.
    """

    def __init__(self, projects: list[Project], members: list[Membership], tasks: list[Task]) -> None:
        self.projects = projects
        self.members = members
        self.tasks = tasks
        self.dirty = False
        self._index: dict[str, int] = {t.id: i for i, t in enumerate(tasks)}

    # -- projects / members -------------------------------------------------

    def get_project(self, project_id: str) -> Optional[Project]:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def add_project(self, project: Project) -> Project:
        if self.get_project(project.id) is not None:
            raise ValueError(f"Project {project.id} already exists")
        self.projects.append(project)
        self.dirty = True
        return project

    def membership(self, project_id: str, user_id: str) -> Optional[Membership]:
        for member in self.members:
            if member.project_id == project_id and member.user_id == user_id:
                return member
        return None

    def members_of(self, project_id: str) -> list[Membership]:
        return [m for m in self.members if m.project_id == project_id]

    def add_member(self, project_id: str, user_id: str, role: ProjectRole) -> Membership:
        """Insert or re-role a membership row."""
        existing = self.membership(project_id, user_id)
        if existing is not None:
            existing.role = role
        else:
            existing = Membership(project_id=project_id, user_id=user_id, role=role)
            self.members.append(existing)
        self.dirty = True
        return existing

    def remove_member(self, project_id: str, user_id: str) -> bool:
        before = len(self.members)
        self.members = [
            m for m in self.members if not (m.project_id == project_id and m.user_id == user_id)
        ]
        removed = len(self.members) != before
        self.dirty = self.dirty or removed
        return removed

    # -- task lookups -------------------------------------------------------

    def get_task(self, task_id: str) -> Optional[Task]:
        idx = self._index.get(task_id)
        return self.tasks[idx] if idx is not None else None

    def list_tasks(self) -> list[Task]:
        return list(self.tasks)

    def tasks_for_project(self, project_id: str) -> list[Task]:
        return [t for t in self.tasks if t.project_id == project_id]

    def group(self, project_id: str, status: TaskStatus) -> list[Task]:
        """Tasks of one column, ordered by position (ties keep storage order)."""
        members = [t for t in self.tasks if t.project_id == project_id and t.status == status]
        return sorted(members, key=lambda t: t.position)

    def count_by_status(self, project_id: str, status: TaskStatus) -> int:
        return sum(1 for t in self.tasks if t.project_id == project_id and t.status == status)

    # -- task mutations -----------------------------------------------------

    def add_task(self, task: Task) -> Task:
        if task.id in self._index:
            raise ValueError(f"Task {task.id} already exists")
        self._index[task.id] = len(self.tasks)
        self.tasks.append(task)
        self.dirty = True
        return task

    def update_task(self, task_id: str, changes: dict[str, Any]) -> Optional[Task]:
        task = self.get_task(task_id)
        if task is None:
            return None
        for key, value in changes.items():
            if hasattr(task, key):
                setattr(task, key, value)
        task.touch()
        self.dirty = True
        return task

    def remove_task(self, task_id: str) -> Optional[Task]:
        """Drop a task and reindex; the caller renumbers the column it left."""
        idx = self._index.get(task_id)
        if idx is None:
            return None
        task = self.tasks.pop(idx)
        self._index = {t.id: i for i, t in enumerate(self.tasks)}
        self.dirty = True
        return task

    def update_many(self, updates: list[tuple[str, TaskStatus, int]]) -> list[Task]:
        """Set status/position on several tasks; any unknown id aborts the batch."""
        missing = [task_id for task_id, _, _ in updates if task_id not in self._index]
        if missing:
            raise NotFoundError(f"Task {missing[0]} not found")
        out: list[Task] = []
        for task_id, status, position in updates:
            task = self.tasks[self._index[task_id]]
            task.move_to(status, position)
            out.append(task)
        if out:
            self.dirty = True
        return out
