"""
Persistence port used by the workflow layer.

Every lookup of a tenant-owned record takes the organization id, so a record
in another tenant is indistinguishable from a missing one. Conditional
updates return the number of affected rows; zero means the expected prior
state no longer holds.
"""

from __future__ import annotations

import uuid
from typing import AsyncContextManager, Optional, Protocol

from taskhub.schemas.common import JoinRequestStatus, ListParams, Role, TaskStatus
from taskhub.schemas.organizations import (
    JoinRequestRead,
    MemberRead,
    MembershipRead,
    OrganizationRead,
    OrganizationSummary,
    PendingJoinRequestRead,
)
from taskhub.schemas.tasks import TaskRead
from taskhub.schemas.users import UserRecord

# Constraint names carried by UniqueViolation.
USER_EMAIL = "users.email"
ORG_SLUG = "organizations.slug"
MEMBERSHIP_USER = "memberships.user_id"
JOIN_REQUEST_USER_ORG = "join_requests.user_id_organization_id"


class Store(Protocol):
    """Storage operations required by the services."""

    def transaction(self) -> AsyncContextManager["Store"]:
        """Open a transaction and yield a store bound to it.

        Commits when the block exits normally, rolls back on any exception.
        Calling it on a store that is already bound to a transaction reuses
        that transaction.
        """
        ...

    # Users

    async def find_user_by_id(self, user_id: uuid.UUID) -> Optional[UserRecord]: ...

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]: ...

    async def create_user(self, email: str, name: str, password_hash: str) -> UserRecord:
        """Raises UniqueViolation(USER_EMAIL) on a duplicate email."""
        ...

    # Memberships

    async def find_membership_by_user_id(self, user_id: uuid.UUID) -> Optional[MembershipRead]: ...

    async def find_membership_scoped(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[MembershipRead]: ...

    async def create_membership(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, role: Role
    ) -> MembershipRead:
        """Raises UniqueViolation(MEMBERSHIP_USER) if the user already has one."""
        ...

    async def list_members(
        self, organization_id: uuid.UUID, params: ListParams, role: Optional[Role] = None
    ) -> tuple[list[MemberRead], int]: ...

    # Organizations

    async def create_organization(
        self, name: str, slug: str, creator_id: uuid.UUID
    ) -> OrganizationRead:
        """Raises UniqueViolation(ORG_SLUG) on a duplicate slug."""
        ...

    async def find_organization_by_id(self, organization_id: uuid.UUID) -> Optional[OrganizationRead]: ...

    async def find_organization_by_slug(self, slug: str) -> Optional[OrganizationRead]: ...

    async def list_organizations(self, params: ListParams) -> tuple[list[OrganizationSummary], int]: ...

    # Join requests

    async def find_join_request_scoped(
        self, join_request_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[JoinRequestRead]: ...

    async def create_or_reopen_join_request(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, role: Role
    ) -> JoinRequestRead:
        """Create a PENDING request, or reopen a resolved one for the same pair.

        Raises UniqueViolation(JOIN_REQUEST_USER_ORG) while one is pending.
        """
        ...

    async def conditional_update_join_request_status(
        self,
        join_request_id: uuid.UUID,
        organization_id: uuid.UUID,
        expected_status: JoinRequestStatus,
        new_status: JoinRequestStatus,
        decider_id: uuid.UUID,
    ) -> int: ...

    async def list_pending_join_requests(
        self, organization_id: uuid.UUID, params: ListParams
    ) -> tuple[list[PendingJoinRequestRead], int]: ...

    async def list_join_requests_for_user(self, user_id: uuid.UUID) -> list[JoinRequestRead]: ...

    # Tasks

    async def find_task_scoped(
        self, task_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[TaskRead]: ...

    async def create_task(
        self,
        organization_id: uuid.UUID,
        title: str,
        description: Optional[str],
        creator_id: uuid.UUID,
        assignee_id: uuid.UUID,
        status: TaskStatus,
    ) -> TaskRead: ...

    async def conditional_update_task_status(
        self,
        task_id: uuid.UUID,
        organization_id: uuid.UUID,
        expected_status: TaskStatus,
        new_status: TaskStatus,
        actor_id: uuid.UUID,
    ) -> int: ...

    async def conditional_reassign_task(
        self,
        task_id: uuid.UUID,
        organization_id: uuid.UUID,
        new_assignee_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> int:
        """Reassign unless the task is DONE."""
        ...

    async def list_tasks(
        self,
        organization_id: uuid.UUID,
        params: ListParams,
        assignee_id: Optional[uuid.UUID] = None,
        status: Optional[TaskStatus] = None,
    ) -> tuple[list[TaskRead], int]: ...
