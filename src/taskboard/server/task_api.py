"""Task API endpoints for the kanban board.

This module provides a FastAPI router for the commit paths (batch reorder,
single-task update and deletion) plus the board read and task creation
endpoints the client needs.  It is mounted by the ``create_app`` factory.
"""

from __future__ import annotations

from typing import Any, Callable

from fastapi import APIRouter, Depends
from loguru import logger

from ..board.model import Task
from ..board.service import OrderCommitService
from .auth import get_caller_identity
from .models import (
    BoardResponse,
    CreateTaskRequest,
    ErrorResponse,
    TaskResponse,
    UpdateOrderRequest,
    UpdateOrderResponse,
    UpdateTaskRequest,
)


def _dump(tasks: list[Task]) -> list[dict[str, Any]]:
    return [t.to_dict() for t in tasks]


def create_task_router(get_service: Callable[[], OrderCommitService]) -> APIRouter:
    """Create the board task router.

    Parameters
    ----------
    get_service:
        A zero-argument callable returning the :class:`OrderCommitService`
        for this application.
    """
    router = APIRouter(
        tags=["tasks"],
        responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 500)},
    )

    # ------------------------------------------------------------------
    # Commit paths
    # ------------------------------------------------------------------

    @router.post("/tasks/update-order", response_model=UpdateOrderResponse)
    async def update_order(
        body: UpdateOrderRequest,
        caller_id: str = Depends(get_caller_identity),
    ) -> UpdateOrderResponse:
        service = get_service()
        result = service.update_order(caller_id, body.project_id, [t.to_item() for t in body.tasks])
        return UpdateOrderResponse(updated=result.updated, tasks=_dump(result.tasks))

    @router.patch("/tasks/{task_id}", response_model=TaskResponse)
    async def update_task(
        task_id: str,
        body: UpdateTaskRequest,
        caller_id: str = Depends(get_caller_identity),
    ) -> TaskResponse:
        service = get_service()
        changes = body.model_dump(exclude_unset=True)
        task = service.update_task(caller_id, task_id, changes)
        logger.debug("Task {} updated by {}: {}", task_id, caller_id, sorted(changes))
        return TaskResponse(task=task.to_dict())

    @router.delete("/tasks/{task_id}", response_model=TaskResponse)
    async def delete_task(
        task_id: str,
        caller_id: str = Depends(get_caller_identity),
    ) -> TaskResponse:
        task = get_service().delete_task(caller_id, task_id)
        logger.info("Task {} deleted by {}", task_id, caller_id)
        return TaskResponse(task=task.to_dict())

    # ------------------------------------------------------------------
    # Reads & creation
    # ------------------------------------------------------------------

    @router.get("/tasks/{task_id}", response_model=TaskResponse)
    async def get_task(
        task_id: str,
        caller_id: str = Depends(get_caller_identity),
    ) -> TaskResponse:
        task = get_service().get_task(caller_id, task_id)
        return TaskResponse(task=task.to_dict())

    @router.get("/projects/{project_id}/board", response_model=BoardResponse)
    async def get_board(
        project_id: str,
        caller_id: str = Depends(get_caller_identity),
    ) -> BoardResponse:
        columns = get_service().get_board(caller_id, project_id)
        return BoardResponse(
            project_id=project_id,
            columns={status.value: _dump(tasks) for status, tasks in columns.items()},
            tasks=[t.to_dict() for tasks in columns.values() for t in tasks],
        )

    @router.post("/projects/{project_id}/tasks", response_model=TaskResponse, status_code=201)
    async def create_task(
        project_id: str,
        body: CreateTaskRequest,
        caller_id: str = Depends(get_caller_identity),
    ) -> TaskResponse:
        task = get_service().create_task(caller_id, project_id, **body.model_dump())
        return TaskResponse(task=task.to_dict())

    return router
