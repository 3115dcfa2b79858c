"""
Task endpoints: list, create, status transitions, reassignment.

Status workflow: TODO -> IN_PROGRESS -> DONE (DONE is final).
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends

from taskhub.api.deps import get_actor, get_store, list_params
from taskhub.core.errors import parse_input
from taskhub.schemas.common import ListParams, Page, TaskStatus
from taskhub.schemas.tasks import (
    TaskAssigneeBody,
    TaskCreate,
    TaskReassign,
    TaskRead,
    TaskStatusBody,
    TaskStatusUpdate,
)
from taskhub.schemas.users import Actor
from taskhub.services.tasks import create_task, list_visible_tasks, reassign_task, update_task_status
from taskhub.store.base import Store

router = APIRouter()


@router.get("", response_model=Page[TaskRead])
async def list_tasks_endpoint(
    status: Optional[TaskStatus] = None,
    params: ListParams = Depends(list_params),
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    """Tasks visible to the caller, optionally filtered by status."""
    return await list_visible_tasks(store, actor, params, status=status)


@router.post("", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    body: TaskCreate,
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    return await create_task(store, actor, body)


@router.post("/{task_id}/status", response_model=TaskRead)
async def update_status_endpoint(
    task_id: uuid.UUID,
    body: TaskStatusBody,
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    req = parse_input(TaskStatusUpdate, {"task_id": task_id, "status": body.status})
    return await update_task_status(store, actor, req)


@router.post("/{task_id}/assignee", response_model=TaskRead)
async def reassign_endpoint(
    task_id: uuid.UUID,
    body: TaskAssigneeBody,
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    req = parse_input(
        TaskReassign, {"task_id": task_id, "assigned_to_user_id": body.assigned_to_user_id}
    )
    return await reassign_task(store, actor, req)
