"""Order commit service: the server side of every board mutation.

This is the primary entry-point for task placement.  It wraps
:class:`BoardStore` with authorization, payload validation and column
renumbering, and runs each call's reads and writes inside one store
transaction so concurrent callers are serialized and every committed column
stays densely numbered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from ..constants import DEFAULT_EVENTS_LIMIT, EVENTS_FILE
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..io_utils import _append_event, _read_events
from ..utils import _parse_iso
from .interfaces import MembershipGate
from .membership import StoreMembershipGate, authorize
from .model import BOARD_COLUMNS, Membership, Project, ProjectRole, Task, TaskPriority, TaskStatus
from .ordering import ReorderItem, dense_violations, merge_column, renumber, validate_reorder_items
from .store import BoardStore, _BoardTx

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"title", "description", "status", "priority", "due_date", "assignee_id"})


@dataclass
class ReorderResult:
    updated: int
    tasks: list[Task] = field(default_factory=list)


class OrderCommitService:
    """Validate callers and atomically persist task placement.

    Parameters
    ----------
    store:
        Board store holding projects, members and tasks.
    gate:
        Optional membership gate.  Defaults to reading membership rows from
        the same transaction that performs the writes.
    events_path:
        Where to append the JSON-lines audit trail.
    """

    def __init__(
        self,
        store: BoardStore,
        gate: Optional[MembershipGate] = None,
        events_path: Optional[Path] = None,
    ) -> None:
        self.store = store
        self._gate = gate
        self._events_path = events_path or store.path.parent / EVENTS_FILE

    @classmethod
    def for_state_dir(cls, state_dir: Path) -> "OrderCommitService":
        return cls(BoardStore(state_dir))

    def _gate_for(self, tx: _BoardTx) -> MembershipGate:
        return self._gate if self._gate is not None else StoreMembershipGate(tx)

    def _emit_event(self, event_type: str, task: Optional[Task], **details: Any) -> None:
        """Append an audit event; never fails the mutation that produced it."""
        payload: dict[str, Any] = {"type": event_type}
        if task is not None:
            payload["task_id"] = task.id
            payload["project_id"] = task.project_id
            payload["status"] = task.status.value
        if details:
            payload["details"] = details
        try:
            _append_event(self._events_path, payload)
        except OSError:
            logger.exception("Failed to append board event %s", event_type)

    def get_recent_events(self, limit: int = DEFAULT_EVENTS_LIMIT) -> list[dict[str, Any]]:
        return _read_events(self._events_path, limit)

    # ------------------------------------------------------------------
    # Projects & membership
    # ------------------------------------------------------------------

    def create_project(self, owner_id: str, name: str, project_id: Optional[str] = None) -> Project:
        """Create a project and make *owner_id* its lead."""
        if not name.strip():
            raise ValidationError("Project name is required.")
        project = Project(name=name.strip(), created_by=owner_id)
        if project_id:
            project.id = project_id
        with self.store.transaction() as tx:
            if tx.get_project(project.id) is not None:
                raise ValidationError(f"Project {project.id} already exists.")
            tx.add_project(project)
            tx.add_member(project.id, owner_id, ProjectRole.LEAD)
        self._emit_event("project.created", None, project_id=project.id, owner_id=owner_id)
        return project

    def add_member(
        self,
        caller_id: Optional[str],
        project_id: str,
        user_id: str,
        role: ProjectRole = ProjectRole.MEMBER,
    ) -> None:
        """Grant *user_id* a role; ``caller_id=None`` skips the lead check (bootstrap)."""
        with self.store.transaction() as tx:
            if tx.get_project(project_id) is None:
                raise NotFoundError(f"Project {project_id} not found")
            if caller_id is not None:
                authorize(self._gate_for(tx), project_id, caller_id, "manage_members")
            tx.add_member(project_id, user_id, role)
        self._emit_event("member.added", None, project_id=project_id, user_id=user_id, role=role.value)

    def remove_member(self, caller_id: Optional[str], project_id: str, user_id: str) -> bool:
        with self.store.transaction() as tx:
            if tx.get_project(project_id) is None:
                raise NotFoundError(f"Project {project_id} not found")
            if caller_id is not None:
                authorize(self._gate_for(tx), project_id, caller_id, "manage_members")
            removed = tx.remove_member(project_id, user_id)
        if removed:
            self._emit_event("member.removed", None, project_id=project_id, user_id=user_id)
        return removed

    def list_members(self, caller_id: str, project_id: str) -> list[Membership]:
        with self.store.transaction() as tx:
            if tx.get_project(project_id) is None:
                raise NotFoundError(f"Project {project_id} not found")
            authorize(self._gate_for(tx), project_id, caller_id, "view")
            return tx.members_of(project_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, caller_id: str, task_id: str) -> Task:
        with self.store.transaction() as tx:
            task = tx.get_task(task_id)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found")
            authorize(self._gate_for(tx), task.project_id, caller_id, "view")
            return task

    def get_board(self, caller_id: str, project_id: str) -> dict[TaskStatus, list[Task]]:
        """Columns in board order, each sorted by position."""
        with self.store.transaction() as tx:
            if tx.get_project(project_id) is None:
                raise NotFoundError(f"Project {project_id} not found")
            authorize(self._gate_for(tx), project_id, caller_id, "view")
            return {status: tx.group(project_id, status) for status in BOARD_COLUMNS}

    def check_positions(self) -> dict[tuple[str, TaskStatus], list[int]]:
        """Every stored column whose positions are not ``0..n-1``."""
        violations = dense_violations(self.store.read_snapshot())
        for (project_id, status), positions in sorted(violations.items()):
            logger.warning("Column %s/%s is not dense: %s", project_id, status.value, positions)
        return violations

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_task(
        self,
        caller_id: str,
        project_id: str,
        title: str,
        status: TaskStatus = TaskStatus.TODO,
        description: str = "",
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> Task:
        """Append a new task to the end of its column."""
        if not title.strip():
            raise ValidationError("Title is required")
        if due_date is not None and _parse_iso(due_date) is None:
            raise ValidationError(f"Invalid due date: {due_date}")
        with self.store.transaction() as tx:
            if tx.get_project(project_id) is None:
                raise NotFoundError(f"Project {project_id} not found")
            authorize(self._gate_for(tx), project_id, caller_id, "create")
            task = Task(
                project_id=project_id,
                title=title.strip(),
                description=description,
                status=status,
                position=tx.count_by_status(project_id, status),
                priority=priority,
                due_date=due_date,
                assignee_id=assignee_id,
                reporter_id=caller_id,
            )
            if status == TaskStatus.DONE:
                task.completed_at = task.created_at
            tx.add_task(task)
        self._emit_event("task.created", task, position=task.position)
        return task

    def update_order(self, caller_id: str, project_id: str, items: Iterable[ReorderItem]) -> ReorderResult:
        """Persist the on-screen order of one or more columns as one atomic unit.

        Every column the batch touches, including the columns moved tasks
        left, is renumbered ``0..n-1`` before the transaction commits.
        """
        items = list(items)
        validate_reorder_items(items)
        with self.store.transaction() as tx:
            if tx.get_project(project_id) is None:
                raise NotFoundError(f"Project {project_id} not found")
            authorize(self._gate_for(tx), project_id, caller_id, "reorder")
            if not items:
                return ReorderResult(updated=0)

            moving: dict[str, Task] = {}
            for item in items:
                task = tx.get_task(item.task_id)
                if task is None:
                    raise NotFoundError(f"Task {item.task_id} not found")
                if task.project_id != project_id:
                    raise AuthorizationError("Cannot modify tasks from different projects.")
                moving[item.task_id] = task

            touched = {item.status for item in items} | {t.status for t in moving.values()}
            columns = sorted(touched, key=lambda s: s.sort_key)
            updates: list[tuple[str, TaskStatus, int]] = []
            for status in columns:
                requested = [(moving[i.task_id], i.position) for i in items if i.status == status]
                others = [t for t in tx.group(project_id, status) if t.id not in moving]
                updates.extend(renumber(merge_column(requested, others), status))
            tx.update_many(updates)
            result = ReorderResult(
                updated=len(items),
                tasks=[t for status in columns for t in tx.group(project_id, status)],
            )

        logger.info(
            "Reordered %d task(s) in project %s (%d row(s) written)",
            len(items), project_id, len(updates),
        )
        self._emit_event(
            "tasks.reordered",
            None,
            project_id=project_id,
            caller_id=caller_id,
            columns=[s.value for s in columns],
            written=len(updates),
        )
        return result

    def update_task(self, caller_id: str, task_id: str, changes: dict[str, Any]) -> Task:
        """Apply a partial update; a status change appends to the new column."""
        changes = _clean_changes(changes)
        new_status: Optional[TaskStatus] = changes.pop("status", None)
        with self.store.transaction() as tx:
            task = tx.get_task(task_id)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found")
            authorize(self._gate_for(tx), task.project_id, caller_id, "update")

            old_status = task.status
            status_changed = new_status is not None and new_status != old_status
            if changes:
                tx.update_task(task_id, changes)
            if status_changed:
                # Count and write under the same lock: concurrent appends
                # into one column get distinct positions.
                position = tx.count_by_status(task.project_id, new_status)
                tx.update_many([(task_id, new_status, position)])
                tx.update_many(renumber(tx.group(task.project_id, old_status), old_status))

        if status_changed:
            self._emit_event(
                "task.status_changed",
                task,
                from_status=old_status.value,
                position=task.position,
            )
        elif changes:
            self._emit_event("task.updated", task, fields=sorted(changes))
        return task

    def delete_task(self, caller_id: str, task_id: str) -> Task:
        """Remove a task and close the gap it leaves in its column."""
        with self.store.transaction() as tx:
            task = tx.get_task(task_id)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found")
            authorize(self._gate_for(tx), task.project_id, caller_id, "update")
            tx.remove_task(task_id)
            tx.update_many(renumber(tx.group(task.project_id, task.status), task.status))

        logger.info("Deleted task %s from %s/%s", task_id, task.project_id, task.status.value)
        self._emit_event("task.deleted", task, position=task.position)
        return task


def _clean_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Validate a PATCH body against the editable fields and coerce enums."""
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")
    out = dict(changes)
    if "title" in out and not str(out["title"] or "").strip():
        raise ValidationError("Title must be non-empty")
    if out.get("status") is None:
        out.pop("status", None)
    else:
        try:
            out["status"] = TaskStatus.coerce(out["status"])
        except ValueError as exc:
            raise ValidationError(f"Unknown status: {out['status']}") from exc
    if "priority" in out:
        try:
            out["priority"] = TaskPriority(out["priority"] or TaskPriority.MEDIUM.value)
        except ValueError as exc:
            raise ValidationError(f"Unknown priority: {out['priority']}") from exc
    if "description" in out and out["description"] is None:
        out["description"] = ""
    if out.get("due_date") is not None and _parse_iso(out["due_date"]) is None:
        raise ValidationError(f"Invalid due date: {out['due_date']}")
    return out
