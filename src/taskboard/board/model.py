"""Task, project and membership model for the kanban board.

Statuses, priorities and roles are closed enums; raw strings coming from
storage or the wire are coerced through ``from_dict`` and rejected when they
do not name a member.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from ..utils import _new_id, _now_iso


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Board-level status used for Kanban columns, in column order."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"

    @property
    def sort_key(self) -> int:
        return _STATUS_ORDER[self]

    @classmethod
    def coerce(cls, raw: Any) -> "TaskStatus":
        """Return the member named by *raw*; raise ``ValueError`` otherwise."""
        if isinstance(raw, cls):
            return raw
        return cls(str(raw).strip().upper())


_STATUS_ORDER = {status: idx for idx, status in enumerate(TaskStatus)}

BOARD_COLUMNS: tuple[TaskStatus, ...] = tuple(TaskStatus)


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ProjectRole(str, Enum):
    LEAD = "LEAD"        # full access, manages members
    MEMBER = "MEMBER"    # can create, edit and move tasks
    VIEWER = "VIEWER"    # read-only


# Permissions per role
ROLE_PERMISSIONS: dict[ProjectRole, frozenset[str]] = {
    ProjectRole.LEAD: frozenset({"view", "create", "update", "reorder", "manage_members"}),
    ProjectRole.MEMBER: frozenset({"view", "create", "update", "reorder"}),
    ProjectRole.VIEWER: frozenset({"view"}),
}


def _enum_value(enum_cls: type[Enum], raw: Any, default: Optional[Enum]) -> Optional[Enum]:
    if raw is None:
        return default
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw))
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A card on a project's board.

    ``status`` and ``position`` are the only fields the ordering engine
    cares about; the rest is carried through untouched.
    """

    id: str = field(default_factory=lambda: _new_id("task"))
    project_id: str = ""
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    position: int = 0
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[str] = None
    reporter_id: Optional[str] = None
    due_date: Optional[str] = None
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)
    completed_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict for YAML/JSON persistence."""
        data = asdict(self)
        data["status"] = self.status.value
        data["priority"] = self.priority.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict.

        An unknown ``status`` raises ``ValueError``: a task in a column the
        board does not have would silently break the dense ordering.
        """
        raw_status = data.get("status")
        status = TaskStatus.TODO if raw_status is None else TaskStatus.coerce(raw_status)
        priority = _enum_value(TaskPriority, data.get("priority"), TaskPriority.MEDIUM)
        return cls(
            id=str(data.get("id") or _new_id("task")),
            project_id=str(data.get("project_id") or ""),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=status,
            position=int(data.get("position") or 0),
            priority=priority,  # type: ignore[arg-type]
            assignee_id=data.get("assignee_id"),
            reporter_id=data.get("reporter_id"),
            due_date=data.get("due_date"),
            created_at=str(data.get("created_at") or _now_iso()),
            updated_at=str(data.get("updated_at") or _now_iso()),
            completed_at=data.get("completed_at"),
        )

    def touch(self) -> None:
        """Bump ``updated_at`` to now."""
        self.updated_at = _now_iso()

    def move_to(self, status: TaskStatus, position: int) -> None:
        """Set status and position with completion bookkeeping."""
        if status != self.status:
            if status == TaskStatus.DONE:
                self.completed_at = _now_iso()
            elif self.status == TaskStatus.DONE:
                self.completed_at = None
        self.status = status
        self.position = position
        self.touch()


# ---------------------------------------------------------------------------
# Project / membership
# ---------------------------------------------------------------------------

@dataclass
class Project:
    id: str = field(default_factory=lambda: _new_id("proj"))
    name: str = ""
    created_by: Optional[str] = None
    created_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(
            id=str(data.get("id") or _new_id("proj")),
            name=str(data.get("name") or ""),
            created_by=data.get("created_by"),
            created_at=str(data.get("created_at") or _now_iso()),
        )


@dataclass
class Membership:
    """Authorization fact: *user_id* may act on *project_id* with *role*."""

    project_id: str
    user_id: str
    role: ProjectRole = ProjectRole.MEMBER

    def has_permission(self, perm: str) -> bool:
        return perm in ROLE_PERMISSIONS.get(self.role, frozenset())

    def to_dict(self) -> dict[str, Any]:
        return {"project_id": self.project_id, "user_id": self.user_id, "role": self.role.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Membership":
        role = _enum_value(ProjectRole, data.get("role"), ProjectRole.MEMBER)
        return cls(
            project_id=str(data.get("project_id") or ""),
            user_id=str(data.get("user_id") or ""),
            role=role,  # type: ignore[arg-type]
        )
