"""
Authorization guards.

Each guard takes the (possibly absent) actor and either returns it narrowed
or raises a DomainError. Guards are pure and call each other.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

from taskhub.core.errors import ForbiddenError, UnauthorizedError
from taskhub.schemas.common import MANAGER_ROLES, Role
from taskhub.schemas.tasks import TaskRead
from taskhub.schemas.users import Actor, MemberActor


def require_authenticated(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise UnauthorizedError()
    return actor


def require_membership(actor: Optional[Actor]) -> MemberActor:
    actor = require_authenticated(actor)
    if isinstance(actor, MemberActor):
        return actor
    if actor.organization_id is None or actor.role is None:
        raise ForbiddenError("You must belong to an organization.")
    return MemberActor(**actor.model_dump())


def require_role(actor: Optional[Actor], allowed_roles: Iterable[Role]) -> MemberActor:
    member = require_membership(actor)
    if member.role not in frozenset(allowed_roles):
        raise ForbiddenError("Your role does not allow this action.")
    return member


def require_owner_or_admin(actor: Optional[Actor]) -> MemberActor:
    return require_role(actor, MANAGER_ROLES)


def ensure_same_tenant(actor_org_id: uuid.UUID, target_org_id: uuid.UUID) -> None:
    """Fail when a record fetched by id belongs to another organization."""
    if actor_org_id != target_org_id:
        raise ForbiddenError("The record belongs to another organization.")


def can_manage_task(actor: MemberActor, assignee_id: uuid.UUID) -> bool:
    """Managers act on any task in their tenant; employees only on their own."""
    return actor.role in MANAGER_ROLES or actor.id == assignee_id


def require_task_assignee_or_manager(actor: Optional[Actor], task: TaskRead) -> MemberActor:
    member = require_membership(actor)
    ensure_same_tenant(member.organization_id, task.organization_id)
    if not can_manage_task(member, task.assigned_to_id):
        raise ForbiddenError("You can only update tasks assigned to you.")
    return member
