"""Pydantic request / response models for the board API."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..board.model import TaskPriority, TaskStatus
from ..board.ordering import ReorderItem


class TaskOrderItem(BaseModel):
    """One task's requested placement."""

    id: str = Field(min_length=1)
    status: TaskStatus
    position: int = Field(ge=0)

    def to_item(self) -> ReorderItem:
        return ReorderItem(task_id=self.id, status=self.status, position=self.position)


class UpdateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tasks: list[TaskOrderItem]
    project_id: str = Field(alias="projectId", min_length=1)


class UpdateTaskRequest(BaseModel):
    """Partial task update; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[str] = None
    assignee_id: Optional[str] = None


class CreateTaskRequest(BaseModel):
    title: str = Field(min_length=1)
    status: TaskStatus = TaskStatus.TODO
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[str] = None
    assignee_id: Optional[str] = None


class TaskResponse(BaseModel):
    """Standard wrapper for task responses."""

    task: dict[str, Any]


class UpdateOrderResponse(BaseModel):
    success: bool = True
    updated: int
    tasks: list[dict[str, Any]]


class BoardResponse(BaseModel):
    project_id: str
    columns: dict[str, list[dict[str, Any]]]
    tasks: list[dict[str, Any]]


class ErrorResponse(BaseModel):
    error: str
