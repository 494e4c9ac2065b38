from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .model import ProjectRole, Task, TaskStatus


class TaskRepository(ABC):
    """Task reads and atomic placement writes for the ordering engine."""

    @abstractmethod
    def get(self, task_id: str) -> Optional[Task]:
        raise NotImplementedError

    @abstractmethod
    def list_for_project(self, project_id: str) -> list[Task]:
        raise NotImplementedError

    @abstractmethod
    def count_by_status(self, project_id: str, status: TaskStatus) -> int:
        raise NotImplementedError

    @abstractmethod
    def update_many(self, updates: list[tuple[str, TaskStatus, int]]) -> list[Task]:
        """Apply ``(task_id, status, position)`` triples as one atomic unit."""
        raise NotImplementedError


class MembershipGate(ABC):
    """Answers which role, if any, a user holds in a project."""

    @abstractmethod
    def role_of(self, project_id: str, user_id: str) -> Optional[ProjectRole]:
        raise NotImplementedError

    def is_member(self, project_id: str, user_id: str) -> bool:
        return self.role_of(project_id, user_id) is not None
