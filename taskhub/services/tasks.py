"""
Task service layer: creation, visibility, status transitions and reassignment.

Every lookup is scoped to the actor's organization, so a task in another
tenant reads as NOT_FOUND. Writes that depend on a previously read state are
conditional; zero affected rows means the caller lost a race.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog

from taskhub.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
    maps_store_errors,
)
from taskhub.core.policies import (
    require_membership,
    require_owner_or_admin,
    require_task_assignee_or_manager,
)
from taskhub.schemas.common import MANAGER_ROLES, ListParams, Page, Role, TaskSortField, TaskStatus
from taskhub.schemas.tasks import TaskCreate, TaskReassign, TaskRead, TaskStatusUpdate
from taskhub.schemas.users import Actor
from taskhub.services.task_rules import INITIAL_STATUS, can_transition, reachable_statuses
from taskhub.store.base import Store

log = structlog.get_logger()

_SORT_FIELDS = {f.value for f in TaskSortField}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_task_or_404(store: Store, task_id: uuid.UUID, org_id: uuid.UUID) -> TaskRead:
    task = await store.find_task_scoped(task_id, org_id)
    if task is None:
        raise NotFoundError("Task not found.")
    return task


async def _require_employee_assignee(store: Store, user_id: uuid.UUID, org_id: uuid.UUID) -> None:
    membership = await store.find_membership_scoped(user_id, org_id)
    if membership is None:
        raise NotFoundError("Assignee is not a member of this organization.")
    if membership.role != Role.EMPLOYEE:
        raise PreconditionFailedError("Tasks can only be assigned to employees.")


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@maps_store_errors
async def create_task(store: Store, actor: Optional[Actor], task_in: TaskCreate) -> TaskRead:
    member = require_owner_or_admin(actor)

    status = task_in.status or INITIAL_STATUS
    if status not in reachable_statuses(INITIAL_STATUS):
        raise InvalidTransitionError(f"Tasks cannot start in status '{status.value}'.")

    await _require_employee_assignee(store, task_in.assigned_to_user_id, member.organization_id)

    task = await store.create_task(
        organization_id=member.organization_id,
        title=task_in.title,
        description=task_in.description,
        creator_id=member.id,
        assignee_id=task_in.assigned_to_user_id,
        status=status,
    )
    log.info(
        "task.created",
        task_id=str(task.id),
        org_id=str(task.organization_id),
        assignee_id=str(task.assigned_to_id),
        created_by=str(member.id),
    )
    return task


@maps_store_errors
async def list_visible_tasks(
    store: Store,
    actor: Optional[Actor],
    params: ListParams,
    status: Optional[TaskStatus] = None,
) -> Page[TaskRead]:
    """Managers see the whole tenant; employees see only their own assignments."""
    member = require_membership(actor)
    if params.sort_by not in _SORT_FIELDS:
        raise ValidationError(f"Cannot sort tasks by '{params.sort_by}'.")

    assignee_id = None if member.role in MANAGER_ROLES else member.id
    items, total = await store.list_tasks(
        member.organization_id, params, assignee_id=assignee_id, status=status
    )
    return Page[TaskRead](items=items, total=total, offset=params.offset, limit=params.limit)


@maps_store_errors
async def update_task_status(
    store: Store, actor: Optional[Actor], update: TaskStatusUpdate
) -> TaskRead:
    member = require_membership(actor)
    task = await get_task_or_404(store, update.task_id, member.organization_id)
    require_task_assignee_or_manager(member, task)

    if not can_transition(task.status, update.status):
        log.warning(
            "task.transition_rejected",
            task_id=str(task.id),
            from_status=task.status.value,
            to_status=update.status.value,
        )
        raise InvalidTransitionError(
            f"Cannot transition from '{task.status.value}' to '{update.status.value}'."
        )

    affected = await store.conditional_update_task_status(
        task.id, member.organization_id, task.status, update.status, member.id
    )
    if affected != 1:
        log.warning("task.status_race_lost", task_id=str(task.id), expected=task.status.value)
        raise PreconditionFailedError("The task was modified concurrently. Reload and retry.")

    log.info(
        "task.status_updated",
        task_id=str(task.id),
        from_status=task.status.value,
        to_status=update.status.value,
        updated_by=str(member.id),
    )
    return await get_task_or_404(store, task.id, member.organization_id)


@maps_store_errors
async def reassign_task(store: Store, actor: Optional[Actor], reassign: TaskReassign) -> TaskRead:
    member = require_owner_or_admin(actor)
    task = await get_task_or_404(store, reassign.task_id, member.organization_id)
    if task.status == TaskStatus.DONE:
        raise PreconditionFailedError("Completed tasks cannot be reassigned.")

    await _require_employee_assignee(store, reassign.assigned_to_user_id, member.organization_id)

    affected = await store.conditional_reassign_task(
        task.id, member.organization_id, reassign.assigned_to_user_id, member.id
    )
    if affected != 1:
        log.warning("task.reassign_race_lost", task_id=str(task.id))
        raise PreconditionFailedError("Completed tasks cannot be reassigned.")

    log.info(
        "task.reassigned",
        task_id=str(task.id),
        from_assignee=str(task.assigned_to_id),
        to_assignee=str(reassign.assigned_to_user_id),
        assigned_by=str(member.id),
    )
    return await get_task_or_404(store, task.id, member.organization_id)
