"""
In-memory implementation of the Store port.

Used by the test suite and for running the API without a database.
A single asyncio.Lock serializes transactions and standalone operations,
and a transaction that exits with an exception restores the snapshot taken
when it began. Records are frozen models; updates replace them.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Iterable, Optional, TypeVar

from taskhub.core.errors import UniqueViolation
from taskhub.models.base import utcnow
from taskhub.schemas.common import (
    TASK_STATUS_RANK,
    JoinRequestStatus,
    ListParams,
    Role,
    SortOrder,
    TaskStatus,
)
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

from .base import JOIN_REQUEST_USER_ORG, MEMBERSHIP_USER, ORG_SLUG, USER_EMAIL

RecordT = TypeVar("RecordT")

_TABLES = ("users", "organizations", "memberships", "join_requests", "tasks")


class _State:
    def __init__(self) -> None:
        self.users: dict[uuid.UUID, UserRecord] = {}
        self.organizations: dict[uuid.UUID, OrganizationRead] = {}
        self.memberships: dict[uuid.UUID, MembershipRead] = {}
        self.join_requests: dict[uuid.UUID, JoinRequestRead] = {}
        self.tasks: dict[uuid.UUID, TaskRead] = {}
        self.lock = asyncio.Lock()

    def snapshot(self) -> dict[str, dict]:
        return {name: dict(getattr(self, name)) for name in _TABLES}

    def restore(self, snapshot: dict[str, dict]) -> None:
        for name, rows in snapshot.items():
            setattr(self, name, rows)


def _sort_value(record: Any, field: str) -> Any:
    value = getattr(record, field)
    if isinstance(value, TaskStatus):
        return TASK_STATUS_RANK[value]
    if isinstance(value, (Role, JoinRequestStatus)):
        return value.value
    return value


def _page(
    records: Iterable[RecordT],
    params: ListParams,
    field: str,
    key: Optional[Callable[[RecordT], Any]] = None,
) -> tuple[list[RecordT], int]:
    rows = sorted(
        records,
        key=key or (lambda r: (_sort_value(r, field), r.id)),
        reverse=params.sort_order == SortOrder.DESC,
    )
    return rows[params.offset : params.offset + params.limit], len(rows)


class InMemoryStore:
    def __init__(self, *, state: Optional[_State] = None, bound: bool = False):
        self._state = state or _State()
        self._bound = bound

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryStore"]:
        if self._bound:
            yield self
            return
        # Yield to the loop first, the way a round trip to a server would.
        await asyncio.sleep(0)
        async with self._state.lock:
            snapshot = self._state.snapshot()
            try:
                yield InMemoryStore(state=self._state, bound=True)
            except BaseException:
                self._state.restore(snapshot)
                raise

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[_State]:
        if self._bound:
            yield self._state
            return
        await asyncio.sleep(0)
        async with self._state.lock:
            yield self._state

    # Users

    async def find_user_by_id(self, user_id: uuid.UUID) -> Optional[UserRecord]:
        async with self._scope() as state:
            return state.users.get(user_id)

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._scope() as state:
            return next((u for u in state.users.values() if u.email == email), None)

    async def create_user(self, email: str, name: str, password_hash: str) -> UserRecord:
        async with self._scope() as state:
            if any(u.email == email for u in state.users.values()):
                raise UniqueViolation(USER_EMAIL)
            user = UserRecord(
                id=uuid.uuid4(),
                email=email,
                name=name,
                password_hash=password_hash,
                created_at=utcnow(),
            )
            state.users[user.id] = user
            return user

    # Memberships

    async def find_membership_by_user_id(self, user_id: uuid.UUID) -> Optional[MembershipRead]:
        async with self._scope() as state:
            return next((m for m in state.memberships.values() if m.user_id == user_id), None)

    async def find_membership_scoped(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[MembershipRead]:
        async with self._scope() as state:
            return next(
                (
                    m
                    for m in state.memberships.values()
                    if m.user_id == user_id and m.organization_id == organization_id
                ),
                None,
            )

    async def create_membership(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, role: Role
    ) -> MembershipRead:
        async with self._scope() as state:
            if any(m.user_id == user_id for m in state.memberships.values()):
                raise UniqueViolation(MEMBERSHIP_USER)
            now = utcnow()
            membership = MembershipRead(
                id=uuid.uuid4(),
                user_id=user_id,
                organization_id=organization_id,
                role=role,
                created_at=now,
                updated_at=now,
            )
            state.memberships[membership.id] = membership
            return membership

    async def list_members(
        self, organization_id: uuid.UUID, params: ListParams, role: Optional[Role] = None
    ) -> tuple[list[MemberRead], int]:
        async with self._scope() as state:
            members = [
                (
                    m.id,
                    MemberRead(
                        user_id=m.user_id,
                        organization_id=m.organization_id,
                        role=m.role,
                        name=state.users[m.user_id].name,
                        email=state.users[m.user_id].email,
                        created_at=m.created_at,
                    ),
                )
                for m in state.memberships.values()
                if m.organization_id == organization_id and (role is None or m.role == role)
            ]
            # Ties break on the membership id, matching the SQL store.
            rows, total = _page(
                members, params, "created_at", key=lambda pair: (pair[1].created_at, pair[0])
            )
            return [member for _, member in rows], total

    # Organizations

    async def create_organization(
        self, name: str, slug: str, creator_id: uuid.UUID
    ) -> OrganizationRead:
        async with self._scope() as state:
            if any(o.slug == slug for o in state.organizations.values()):
                raise UniqueViolation(ORG_SLUG)
            now = utcnow()
            org = OrganizationRead(
                id=uuid.uuid4(),
                name=name,
                slug=slug,
                created_by_id=creator_id,
                created_at=now,
                updated_at=now,
            )
            state.organizations[org.id] = org
            return org

    async def find_organization_by_id(self, organization_id: uuid.UUID) -> Optional[OrganizationRead]:
        async with self._scope() as state:
            return state.organizations.get(organization_id)

    async def find_organization_by_slug(self, slug: str) -> Optional[OrganizationRead]:
        async with self._scope() as state:
            return next((o for o in state.organizations.values() if o.slug == slug), None)

    async def list_organizations(self, params: ListParams) -> tuple[list[OrganizationSummary], int]:
        field = "name" if params.sort_by == "name" else "created_at"
        async with self._scope() as state:
            rows, total = _page(state.organizations.values(), params, field)
            return [OrganizationSummary.model_validate(o) for o in rows], total

    # Join requests

    async def find_join_request_scoped(
        self, join_request_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[JoinRequestRead]:
        async with self._scope() as state:
            jr = state.join_requests.get(join_request_id)
            if jr is None or jr.organization_id != organization_id:
                return None
            return jr

    async def create_or_reopen_join_request(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, role: Role
    ) -> JoinRequestRead:
        async with self._scope() as state:
            now = utcnow()
            existing = next(
                (
                    jr
                    for jr in state.join_requests.values()
                    if jr.user_id == user_id and jr.organization_id == organization_id
                ),
                None,
            )
            if existing is not None:
                if existing.status == JoinRequestStatus.PENDING:
                    raise UniqueViolation(JOIN_REQUEST_USER_ORG)
                jr = existing.model_copy(
                    update={
                        "status": JoinRequestStatus.PENDING,
                        "requested_role": role,
                        "decided_by_id": None,
                        "decided_at": None,
                        "updated_at": now,
                    }
                )
            else:
                jr = JoinRequestRead(
                    id=uuid.uuid4(),
                    user_id=user_id,
                    organization_id=organization_id,
                    requested_role=role,
                    status=JoinRequestStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                )
            state.join_requests[jr.id] = jr
            return jr

    async def conditional_update_join_request_status(
        self,
        join_request_id: uuid.UUID,
        organization_id: uuid.UUID,
        expected_status: JoinRequestStatus,
        new_status: JoinRequestStatus,
        decider_id: uuid.UUID,
    ) -> int:
        async with self._scope() as state:
            jr = state.join_requests.get(join_request_id)
            if jr is None or jr.organization_id != organization_id or jr.status != expected_status:
                return 0
            now = utcnow()
            state.join_requests[jr.id] = jr.model_copy(
                update={
                    "status": new_status,
                    "decided_by_id": decider_id,
                    "decided_at": now,
                    "updated_at": now,
                }
            )
            return 1

    async def list_pending_join_requests(
        self, organization_id: uuid.UUID, params: ListParams
    ) -> tuple[list[PendingJoinRequestRead], int]:
        async with self._scope() as state:
            pending = [
                PendingJoinRequestRead(
                    **jr.model_dump(),
                    requester_name=state.users[jr.user_id].name,
                    requester_email=state.users[jr.user_id].email,
                )
                for jr in state.join_requests.values()
                if jr.organization_id == organization_id and jr.status == JoinRequestStatus.PENDING
            ]
            return _page(pending, params, "created_at")

    async def list_join_requests_for_user(self, user_id: uuid.UUID) -> list[JoinRequestRead]:
        async with self._scope() as state:
            return sorted(
                (jr for jr in state.join_requests.values() if jr.user_id == user_id),
                key=lambda jr: (jr.created_at, jr.id),
                reverse=True,
            )

    # Tasks

    async def find_task_scoped(
        self, task_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[TaskRead]:
        async with self._scope() as state:
            task = state.tasks.get(task_id)
            if task is None or task.organization_id != organization_id:
                return None
            return task

    async def create_task(
        self,
        organization_id: uuid.UUID,
        title: str,
        description: Optional[str],
        creator_id: uuid.UUID,
        assignee_id: uuid.UUID,
        status: TaskStatus,
    ) -> TaskRead:
        async with self._scope() as state:
            now = utcnow()
            task = TaskRead(
                id=uuid.uuid4(),
                organization_id=organization_id,
                title=title,
                description=description,
                status=status,
                created_by_id=creator_id,
                assigned_to_id=assignee_id,
                assigned_by_id=creator_id,
                assigned_at=now,
                created_at=now,
                updated_at=now,
            )
            state.tasks[task.id] = task
            return task

    async def conditional_update_task_status(
        self,
        task_id: uuid.UUID,
        organization_id: uuid.UUID,
        expected_status: TaskStatus,
        new_status: TaskStatus,
        actor_id: uuid.UUID,
    ) -> int:
        async with self._scope() as state:
            task = state.tasks.get(task_id)
            if task is None or task.organization_id != organization_id or task.status != expected_status:
                return 0
            now = utcnow()
            state.tasks[task.id] = task.model_copy(
                update={
                    "status": new_status,
                    "status_updated_by_id": actor_id,
                    "status_updated_at": now,
                    "updated_at": now,
                }
            )
            return 1

    async def conditional_reassign_task(
        self,
        task_id: uuid.UUID,
        organization_id: uuid.UUID,
        new_assignee_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> int:
        async with self._scope() as state:
            task = state.tasks.get(task_id)
            if task is None or task.organization_id != organization_id or task.status == TaskStatus.DONE:
                return 0
            now = utcnow()
            state.tasks[task.id] = task.model_copy(
                update={
                    "assigned_to_id": new_assignee_id,
                    "assigned_by_id": actor_id,
                    "assigned_at": now,
                    "updated_at": now,
                }
            )
            return 1

    async def list_tasks(
        self,
        organization_id: uuid.UUID,
        params: ListParams,
        assignee_id: Optional[uuid.UUID] = None,
        status: Optional[TaskStatus] = None,
    ) -> tuple[list[TaskRead], int]:
        field = params.sort_by if params.sort_by in ("updated_at", "status") else "created_at"
        async with self._scope() as state:
            tasks = [
                t
                for t in state.tasks.values()
                if t.organization_id == organization_id
                and (assignee_id is None or t.assigned_to_id == assignee_id)
                and (status is None or t.status == status)
            ]
            return _page(tasks, params, field)
