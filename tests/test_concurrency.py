"""
Concurrency properties: racing callers produce exactly one winner and
well-typed failures for everyone else, never a double-applied state.

These run against the in-memory store, whose operations yield to the event
loop before touching state the way a database round trip would.
"""

from __future__ import annotations

import asyncio

import pytest

from taskhub.core.errors import ConflictError, PreconditionFailedError
from taskhub.schemas.common import JoinRequestStatus, ListParams, Role, TaskStatus
from taskhub.schemas.organizations import JoinRequestCreate, JoinRequestReview, OrgCreateRequest
from taskhub.schemas.tasks import TaskCreate, TaskStatusUpdate
from taskhub.services.join_requests import request_to_join, review_join_request
from taskhub.services.organizations import create_organization
from taskhub.services.tasks import create_task, update_task_status

from conftest import make_actor, make_org_with_owner, seed_world

N = 8


def _split(results):
    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, BaseException)]
    return winners, losers


class TestSingleMembership:
    async def test_concurrent_org_creation_by_one_user(self, memory_store):
        store = memory_store
        founder = await make_actor(store, "founder@example.test")

        results = await asyncio.gather(
            *(
                create_organization(store, founder, OrgCreateRequest(name=f"Org {i}", slug=f"org-{i}"))
                for i in range(N)
            ),
            return_exceptions=True,
        )

        winners, losers = _split(results)
        assert len(winners) == 1
        assert len(losers) == N - 1
        assert all(isinstance(e, PreconditionFailedError) for e in losers)

        membership = await store.find_membership_by_user_id(founder.id)
        assert membership.organization_id == winners[0].organization.id
        # Losing transactions left no orphan organizations behind.
        created = [await store.find_organization_by_slug(f"org-{i}") for i in range(N)]
        assert [o.id for o in created if o is not None] == [winners[0].organization.id]

    async def test_concurrent_approvals_from_many_orgs(self, memory_store):
        store = memory_store
        candidate = await make_actor(store, "candidate@example.test")
        reviews = []
        for i in range(N):
            org, owner = await make_org_with_owner(store, f"org-{i}", f"owner{i}@example.test")
            jr = await request_to_join(store, candidate, JoinRequestCreate(organization_id=org.id))
            reviews.append(
                (
                    owner,
                    JoinRequestReview(
                        join_request_id=jr.id,
                        decision=JoinRequestStatus.APPROVED,
                        role_to_assign=Role.EMPLOYEE,
                    ),
                )
            )

        results = await asyncio.gather(
            *(review_join_request(store, owner, review) for owner, review in reviews),
            return_exceptions=True,
        )

        winners, losers = _split(results)
        assert len(winners) == 1
        assert len(losers) == N - 1
        assert all(isinstance(e, PreconditionFailedError) for e in losers)

        membership = await store.find_membership_by_user_id(candidate.id)
        assert membership.organization_id == winners[0].membership.organization_id

        decided = [
            await store.find_join_request_scoped(review.join_request_id, owner.organization_id)
            for owner, review in reviews
        ]
        assert sum(jr.status == JoinRequestStatus.APPROVED for jr in decided) == 1
        assert sum(jr.status == JoinRequestStatus.PENDING for jr in decided) == N - 1

    async def test_concurrent_decisions_on_one_request(self, memory_store):
        store = memory_store
        world = await seed_world(store)
        jr = await request_to_join(
            store, world.outsider, JoinRequestCreate(organization_id=world.acme.id)
        )
        review = JoinRequestReview(
            join_request_id=jr.id, decision=JoinRequestStatus.APPROVED, role_to_assign=Role.EMPLOYEE
        )

        results = await asyncio.gather(
            *(
                review_join_request(store, reviewer, review)
                for reviewer in [world.owner, world.admin] * (N // 2)
            ),
            return_exceptions=True,
        )

        winners, losers = _split(results)
        assert len(winners) == 1
        assert all(isinstance(e, PreconditionFailedError) for e in losers)
        members = await store.list_members(world.acme.id, params=ListParams(limit=100))
        assert sum(m.user_id == world.outsider.id for m in members[0]) == 1


class TestTaskStatusRace:
    async def test_one_transition_wins(self, memory_store):
        store = memory_store
        world = await seed_world(store)
        task = await create_task(
            store, world.owner, TaskCreate(title="Race", assigned_to_user_id=world.alice.id)
        )
        update = TaskStatusUpdate(task_id=task.id, status=TaskStatus.IN_PROGRESS)

        results = await asyncio.gather(
            update_task_status(store, world.alice, update),
            update_task_status(store, world.owner, update),
            return_exceptions=True,
        )

        winners, losers = _split(results)
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], PreconditionFailedError)


@pytest.mark.parametrize("attempts", [2, N])
async def test_pending_requests_stay_unique(memory_store, attempts):
    store = memory_store
    org, _ = await make_org_with_owner(store, "acme", "owner@acme.test")
    user = await make_actor(store, "eager@example.test")

    results = await asyncio.gather(
        *(
            request_to_join(store, user, JoinRequestCreate(organization_id=org.id))
            for _ in range(attempts)
        ),
        return_exceptions=True,
    )

    winners, losers = _split(results)
    assert len(winners) == 1
    assert len(losers) == attempts - 1
    assert all(isinstance(e, ConflictError) for e in losers)
    assert len(await store.list_join_requests_for_user(user.id)) == 1
