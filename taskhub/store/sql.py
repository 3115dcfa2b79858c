"""
SQL implementation of the Store port (SQLModel over an async SQLAlchemy session).

Conditional writes are single UPDATE statements guarded by the expected
prior state; their rowcount is handed back to the caller as-is.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskhub.core.errors import StoreError, UniqueViolation
from taskhub.models.base import utcnow
from taskhub.models.join_request import JoinRequest
from taskhub.models.membership import Membership
from taskhub.models.organization import Organization
from taskhub.models.task import Task
from taskhub.models.user import User
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


def _ordering(column, tie, order: SortOrder):
    if order == SortOrder.ASC:
        return column.asc(), tie.asc()
    return column.desc(), tie.desc()


class SqlStore:
    def __init__(self, session_factory, session: Optional[AsyncSession] = None):
        self._session_factory = session_factory
        self._session = session

    # -----------------------------------------------------------------------
    # Sessions
    # -----------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SqlStore"]:
        if self._session is not None:
            yield self
            return
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield SqlStore(self._session_factory, session)
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[AsyncSession]:
        """Reuse the bound transaction, or run one statement batch in its own."""
        if self._session is not None:
            try:
                yield self._session
            except SQLAlchemyError as exc:
                raise StoreError(str(exc)) from exc
            return
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    @staticmethod
    async def _first(session: AsyncSession, stmt):
        # populate_existing: rows touched by a bulk UPDATE earlier in the same
        # transaction must not come back stale from the identity map.
        result = await session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    @staticmethod
    async def _count(session: AsyncSession, stmt) -> int:
        result = await session.execute(select(func.count()).select_from(stmt.subquery()))
        return result.scalar_one()

    @staticmethod
    async def _insert(session: AsyncSession, row, constraint: str) -> None:
        session.add(row)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise UniqueViolation(constraint) from exc

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    async def find_user_by_id(self, user_id: uuid.UUID) -> Optional[UserRecord]:
        async with self._scope() as session:
            row = await self._first(session, select(User).where(User.id == user_id))
            return UserRecord.model_validate(row) if row else None

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._scope() as session:
            row = await self._first(session, select(User).where(User.email == email))
            return UserRecord.model_validate(row) if row else None

    async def create_user(self, email: str, name: str, password_hash: str) -> UserRecord:
        async with self._scope() as session:
            row = User(email=email, name=name, password_hash=password_hash)
            await self._insert(session, row, USER_EMAIL)
            return UserRecord.model_validate(row)

    # -----------------------------------------------------------------------
    # Memberships
    # -----------------------------------------------------------------------

    async def find_membership_by_user_id(self, user_id: uuid.UUID) -> Optional[MembershipRead]:
        async with self._scope() as session:
            row = await self._first(session, select(Membership).where(Membership.user_id == user_id))
            return MembershipRead.model_validate(row) if row else None

    async def find_membership_scoped(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[MembershipRead]:
        async with self._scope() as session:
            row = await self._first(
                session,
                select(Membership).where(
                    Membership.user_id == user_id,
                    Membership.organization_id == organization_id,
                ),
            )
            return MembershipRead.model_validate(row) if row else None

    async def create_membership(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, role: Role
    ) -> MembershipRead:
        async with self._scope() as session:
            row = Membership(user_id=user_id, organization_id=organization_id, role=role.value)
            await self._insert(session, row, MEMBERSHIP_USER)
            return MembershipRead.model_validate(row)

    async def list_members(
        self, organization_id: uuid.UUID, params: ListParams, role: Optional[Role] = None
    ) -> tuple[list[MemberRead], int]:
        stmt = (
            select(Membership, User.name, User.email)
            .join(User, User.id == Membership.user_id)
            .where(Membership.organization_id == organization_id)
        )
        if role is not None:
            stmt = stmt.where(Membership.role == role.value)
        async with self._scope() as session:
            total = await self._count(session, stmt)
            result = await session.execute(
                stmt.order_by(*_ordering(Membership.created_at, Membership.id, params.sort_order))
                .offset(params.offset)
                .limit(params.limit)
            )
            items = [
                MemberRead(
                    user_id=membership.user_id,
                    organization_id=membership.organization_id,
                    role=membership.role,
                    name=name,
                    email=email,
                    created_at=membership.created_at,
                )
                for membership, name, email in result.all()
            ]
            return items, total

    # -----------------------------------------------------------------------
    # Organizations
    # -----------------------------------------------------------------------

    async def create_organization(
        self, name: str, slug: str, creator_id: uuid.UUID
    ) -> OrganizationRead:
        async with self._scope() as session:
            row = Organization(name=name, slug=slug, created_by_id=creator_id)
            await self._insert(session, row, ORG_SLUG)
            return OrganizationRead.model_validate(row)

    async def find_organization_by_id(self, organization_id: uuid.UUID) -> Optional[OrganizationRead]:
        async with self._scope() as session:
            row = await self._first(
                session, select(Organization).where(Organization.id == organization_id)
            )
            return OrganizationRead.model_validate(row) if row else None

    async def find_organization_by_slug(self, slug: str) -> Optional[OrganizationRead]:
        async with self._scope() as session:
            row = await self._first(session, select(Organization).where(Organization.slug == slug))
            return OrganizationRead.model_validate(row) if row else None

    async def list_organizations(self, params: ListParams) -> tuple[list[OrganizationSummary], int]:
        column = Organization.name if params.sort_by == "name" else Organization.created_at
        stmt = select(Organization)
        async with self._scope() as session:
            total = await self._count(session, stmt)
            result = await session.execute(
                stmt.order_by(*_ordering(column, Organization.id, params.sort_order))
                .offset(params.offset)
                .limit(params.limit)
            )
            return [OrganizationSummary.model_validate(o) for o in result.scalars().all()], total

    # -----------------------------------------------------------------------
    # Join requests
    # -----------------------------------------------------------------------

    async def find_join_request_scoped(
        self, join_request_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[JoinRequestRead]:
        async with self._scope() as session:
            row = await self._first(
                session,
                select(JoinRequest).where(
                    JoinRequest.id == join_request_id,
                    JoinRequest.organization_id == organization_id,
                ),
            )
            return JoinRequestRead.model_validate(row) if row else None

    async def create_or_reopen_join_request(
        self, user_id: uuid.UUID, organization_id: uuid.UUID, role: Role
    ) -> JoinRequestRead:
        pending = JoinRequestStatus.PENDING.value
        async with self._scope() as session:
            reopened = await session.execute(
                update(JoinRequest)
                .where(
                    JoinRequest.user_id == user_id,
                    JoinRequest.organization_id == organization_id,
                    JoinRequest.status != pending,
                )
                .values(
                    status=pending,
                    requested_role=role.value,
                    decided_by_id=None,
                    decided_at=None,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if reopened.rowcount == 1:
                row = await self._first(
                    session,
                    select(JoinRequest).where(
                        JoinRequest.user_id == user_id,
                        JoinRequest.organization_id == organization_id,
                    ),
                )
                return JoinRequestRead.model_validate(row)

            row = JoinRequest(
                user_id=user_id,
                organization_id=organization_id,
                requested_role=role.value,
                status=pending,
            )
            await self._insert(session, row, JOIN_REQUEST_USER_ORG)
            return JoinRequestRead.model_validate(row)

    async def conditional_update_join_request_status(
        self,
        join_request_id: uuid.UUID,
        organization_id: uuid.UUID,
        expected_status: JoinRequestStatus,
        new_status: JoinRequestStatus,
        decider_id: uuid.UUID,
    ) -> int:
        now = utcnow()
        async with self._scope() as session:
            result = await session.execute(
                update(JoinRequest)
                .where(
                    JoinRequest.id == join_request_id,
                    JoinRequest.organization_id == organization_id,
                    JoinRequest.status == expected_status.value,
                )
                .values(
                    status=new_status.value,
                    decided_by_id=decider_id,
                    decided_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def list_pending_join_requests(
        self, organization_id: uuid.UUID, params: ListParams
    ) -> tuple[list[PendingJoinRequestRead], int]:
        stmt = (
            select(JoinRequest, User.name, User.email)
            .join(User, User.id == JoinRequest.user_id)
            .where(
                JoinRequest.organization_id == organization_id,
                JoinRequest.status == JoinRequestStatus.PENDING.value,
            )
        )
        async with self._scope() as session:
            total = await self._count(session, stmt)
            result = await session.execute(
                stmt.order_by(*_ordering(JoinRequest.created_at, JoinRequest.id, params.sort_order))
                .offset(params.offset)
                .limit(params.limit)
            )
            items = [
                PendingJoinRequestRead(
                    **JoinRequestRead.model_validate(jr).model_dump(),
                    requester_name=name,
                    requester_email=email,
                )
                for jr, name, email in result.all()
            ]
            return items, total

    async def list_join_requests_for_user(self, user_id: uuid.UUID) -> list[JoinRequestRead]:
        async with self._scope() as session:
            result = await session.execute(
                select(JoinRequest)
                .where(JoinRequest.user_id == user_id)
                .order_by(JoinRequest.created_at.desc(), JoinRequest.id.desc())
            )
            return [JoinRequestRead.model_validate(jr) for jr in result.scalars().all()]

    # -----------------------------------------------------------------------
    # Tasks
    # -----------------------------------------------------------------------

    async def find_task_scoped(
        self, task_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[TaskRead]:
        async with self._scope() as session:
            row = await self._first(
                session,
                select(Task).where(Task.id == task_id, Task.organization_id == organization_id),
            )
            return TaskRead.model_validate(row) if row else None

    async def create_task(
        self,
        organization_id: uuid.UUID,
        title: str,
        description: Optional[str],
        creator_id: uuid.UUID,
        assignee_id: uuid.UUID,
        status: TaskStatus,
    ) -> TaskRead:
        async with self._scope() as session:
            row = Task(
                organization_id=organization_id,
                title=title,
                description=description,
                status=status.value,
                created_by_id=creator_id,
                assigned_to_id=assignee_id,
                assigned_by_id=creator_id,
            )
            session.add(row)
            await session.flush()
            return TaskRead.model_validate(row)

    async def conditional_update_task_status(
        self,
        task_id: uuid.UUID,
        organization_id: uuid.UUID,
        expected_status: TaskStatus,
        new_status: TaskStatus,
        actor_id: uuid.UUID,
    ) -> int:
        now = utcnow()
        async with self._scope() as session:
            result = await session.execute(
                update(Task)
                .where(
                    Task.id == task_id,
                    Task.organization_id == organization_id,
                    Task.status == expected_status.value,
                )
                .values(
                    status=new_status.value,
                    status_updated_by_id=actor_id,
                    status_updated_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def conditional_reassign_task(
        self,
        task_id: uuid.UUID,
        organization_id: uuid.UUID,
        new_assignee_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> int:
        now = utcnow()
        async with self._scope() as session:
            result = await session.execute(
                update(Task)
                .where(
                    Task.id == task_id,
                    Task.organization_id == organization_id,
                    Task.status != TaskStatus.DONE.value,
                )
                .values(
                    assigned_to_id=new_assignee_id,
                    assigned_by_id=actor_id,
                    assigned_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def list_tasks(
        self,
        organization_id: uuid.UUID,
        params: ListParams,
        assignee_id: Optional[uuid.UUID] = None,
        status: Optional[TaskStatus] = None,
    ) -> tuple[list[TaskRead], int]:
        stmt = select(Task).where(Task.organization_id == organization_id)
        if assignee_id is not None:
            stmt = stmt.where(Task.assigned_to_id == assignee_id)
        if status is not None:
            stmt = stmt.where(Task.status == status.value)
        column = {
            "updated_at": Task.updated_at,
            "status": case(
                {s.value: rank for s, rank in TASK_STATUS_RANK.items()}, value=Task.status
            ),
        }.get(params.sort_by, Task.created_at)
        async with self._scope() as session:
            total = await self._count(session, stmt)
            result = await session.execute(
                stmt.order_by(*_ordering(column, Task.id, params.sort_order))
                .offset(params.offset)
                .limit(params.limit)
            )
            return [TaskRead.model_validate(t) for t in result.scalars().all()], total
