"""
Tests for the task workflow: creation, visibility, transitions, reassignment.

Tests cover:
- Role gating and assignment constraints
- Tenant isolation (cross-tenant reads as NOT_FOUND)
- Strict linear status workflow and lost-race detection
- The end-to-end onboarding scenario
"""

from __future__ import annotations

import uuid

import pytest

from taskhub.core.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
    ValidationError,
    parse_input,
)
from taskhub.schemas.common import JoinRequestStatus, ListParams, Role, SortOrder, TaskStatus
from taskhub.schemas.organizations import JoinRequestCreate, JoinRequestReview, OrgCreateRequest
from taskhub.schemas.tasks import TaskCreate, TaskReassign, TaskStatusUpdate
from taskhub.services.join_requests import request_to_join, review_join_request
from taskhub.services.organizations import create_organization
from taskhub.services.tasks import create_task, list_visible_tasks, reassign_task, update_task_status

from conftest import make_actor


async def _task_for(store, creator, assignee, title="Write docs", **kwargs):
    return await create_task(
        store, creator, TaskCreate(title=title, assigned_to_user_id=assignee.id, **kwargs)
    )


class TestTaskCreateValidation:
    def test_title_is_trimmed(self):
        req = parse_input(TaskCreate, {"title": "  Ship it ", "assigned_to_user_id": str(uuid.uuid4())})
        assert req.title == "Ship it"

    @pytest.mark.parametrize("title", ["", "   ", "t" * 201])
    def test_bad_titles(self, title):
        with pytest.raises(ValidationError):
            parse_input(TaskCreate, {"title": title, "assigned_to_user_id": str(uuid.uuid4())})

    def test_blank_description_becomes_none(self):
        req = parse_input(
            TaskCreate,
            {"title": "x", "description": "   ", "assigned_to_user_id": str(uuid.uuid4())},
        )
        assert req.description is None

    def test_description_limit(self):
        with pytest.raises(ValidationError):
            parse_input(
                TaskCreate,
                {"title": "x", "description": "d" * 5001, "assigned_to_user_id": str(uuid.uuid4())},
            )

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            parse_input(TaskStatusUpdate, {"task_id": str(uuid.uuid4()), "status": "BLOCKED"})


class TestCreateTask:
    async def test_manager_creates_for_employee(self, store, world):
        task = await _task_for(store, world.admin, world.alice, description="Document the API")
        assert task.status == TaskStatus.TODO
        assert task.organization_id == world.acme.id
        assert task.created_by_id == world.admin.id
        assert task.assigned_to_id == world.alice.id
        assert task.assigned_by_id == world.admin.id
        assert task.description == "Document the API"

    async def test_explicit_initial_status(self, store, world):
        task = await _task_for(store, world.owner, world.alice, status=TaskStatus.IN_PROGRESS)
        assert task.status == TaskStatus.IN_PROGRESS

    async def test_employee_cannot_create(self, store, world):
        with pytest.raises(ForbiddenError):
            await _task_for(store, world.alice, world.bob)

    async def test_non_member_cannot_create(self, store, world):
        with pytest.raises(ForbiddenError):
            await _task_for(store, world.outsider, world.bob)

    async def test_anonymous_cannot_create(self, store, world):
        with pytest.raises(UnauthorizedError):
            await _task_for(store, None, world.bob)

    @pytest.mark.parametrize("assignee", ["owner", "admin"])
    async def test_assignee_must_be_employee(self, store, world, assignee):
        with pytest.raises(PreconditionFailedError):
            await _task_for(store, world.owner, getattr(world, assignee))

    async def test_assignee_from_other_tenant_is_not_found(self, store, world):
        with pytest.raises(NotFoundError):
            await _task_for(store, world.owner, world.rival_employee)

    async def test_assignee_without_membership_is_not_found(self, store, world):
        with pytest.raises(NotFoundError):
            await _task_for(store, world.owner, world.outsider)


class TestListVisibleTasks:
    async def test_managers_see_whole_tenant(self, store, world):
        await _task_for(store, world.owner, world.alice, "A")
        await _task_for(store, world.owner, world.bob, "B")
        await _task_for(store, world.rival_owner, world.rival_employee, "Rival")

        page = await list_visible_tasks(store, world.admin, ListParams())
        assert page.total == 2
        assert {t.title for t in page.items} == {"A", "B"}

    async def test_employees_see_own_assignments(self, store, world):
        await _task_for(store, world.owner, world.alice, "A")
        await _task_for(store, world.owner, world.bob, "B")

        page = await list_visible_tasks(store, world.bob, ListParams())
        assert [t.title for t in page.items] == ["B"]

    async def test_status_filter(self, store, world):
        first = await _task_for(store, world.owner, world.alice, "A")
        await _task_for(store, world.owner, world.alice, "B")
        await update_task_status(
            store, world.alice, TaskStatusUpdate(task_id=first.id, status=TaskStatus.IN_PROGRESS)
        )

        page = await list_visible_tasks(
            store, world.owner, ListParams(), status=TaskStatus.IN_PROGRESS
        )
        assert [t.id for t in page.items] == [first.id]

    async def test_sort_and_paginate(self, store, world):
        for title in ("one", "two", "three"):
            await _task_for(store, world.owner, world.alice, title)

        oldest_first = await list_visible_tasks(
            store, world.owner, ListParams(sort_by="created_at", sort_order=SortOrder.ASC)
        )
        assert [t.title for t in oldest_first.items] == ["one", "two", "three"]

        second_page = await list_visible_tasks(
            store,
            world.owner,
            ListParams(sort_by="created_at", sort_order=SortOrder.ASC, offset=1, limit=1),
        )
        assert second_page.total == 3
        assert [t.title for t in second_page.items] == ["two"]

    async def test_sort_by_status_follows_workflow(self, store, world):
        done = await _task_for(store, world.owner, world.alice, "done", status=TaskStatus.DONE)
        todo = await _task_for(store, world.owner, world.alice, "todo")
        started = await _task_for(
            store, world.owner, world.alice, "started", status=TaskStatus.IN_PROGRESS
        )

        page = await list_visible_tasks(
            store, world.owner, ListParams(sort_by="status", sort_order=SortOrder.ASC)
        )
        assert [t.id for t in page.items] == [todo.id, started.id, done.id]

        page = await list_visible_tasks(
            store, world.owner, ListParams(sort_by="status", sort_order=SortOrder.DESC)
        )
        assert [t.id for t in page.items] == [done.id, started.id, todo.id]

    async def test_requires_membership(self, store, world):
        with pytest.raises(ForbiddenError):
            await list_visible_tasks(store, world.outsider, ListParams())

    async def test_unknown_sort_field(self, store, world):
        with pytest.raises(ValidationError):
            await list_visible_tasks(store, world.owner, ListParams(sort_by="title"))


class TestUpdateTaskStatus:
    async def test_assignee_moves_own_task(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        updated = await update_task_status(
            store, world.alice, TaskStatusUpdate(task_id=task.id, status=TaskStatus.IN_PROGRESS)
        )
        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.status_updated_by_id == world.alice.id
        assert updated.status_updated_at is not None

    async def test_manager_moves_any_task(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        updated = await update_task_status(
            store, world.admin, TaskStatusUpdate(task_id=task.id, status=TaskStatus.IN_PROGRESS)
        )
        assert updated.status_updated_by_id == world.admin.id

    async def test_other_employee_is_forbidden(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        with pytest.raises(ForbiddenError):
            await update_task_status(
                store, world.bob, TaskStatusUpdate(task_id=task.id, status=TaskStatus.IN_PROGRESS)
            )

    async def test_skipping_a_step_is_invalid(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        with pytest.raises(InvalidTransitionError):
            await update_task_status(
                store, world.alice, TaskStatusUpdate(task_id=task.id, status=TaskStatus.DONE)
            )

    async def test_same_state_is_invalid(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        with pytest.raises(InvalidTransitionError):
            await update_task_status(
                store, world.alice, TaskStatusUpdate(task_id=task.id, status=TaskStatus.TODO)
            )

    async def test_done_is_final(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        for status in (TaskStatus.IN_PROGRESS, TaskStatus.DONE):
            await update_task_status(
                store, world.alice, TaskStatusUpdate(task_id=task.id, status=status)
            )
        for status in (TaskStatus.TODO, TaskStatus.IN_PROGRESS):
            with pytest.raises(InvalidTransitionError):
                await update_task_status(
                    store, world.owner, TaskStatusUpdate(task_id=task.id, status=status)
                )

    async def test_unknown_task_is_not_found(self, store, world):
        with pytest.raises(NotFoundError):
            await update_task_status(
                store, world.owner, TaskStatusUpdate(task_id=uuid.uuid4(), status=TaskStatus.DONE)
            )

    @pytest.mark.parametrize("intruder", ["rival_owner", "rival_employee"])
    async def test_cross_tenant_is_not_found(self, store, world, intruder):
        task = await _task_for(store, world.owner, world.alice)
        with pytest.raises(NotFoundError):
            await update_task_status(
                store,
                getattr(world, intruder),
                TaskStatusUpdate(task_id=task.id, status=TaskStatus.IN_PROGRESS),
            )
        assert await store.find_task_scoped(task.id, world.globex.id) is None

    async def test_lost_race_is_precondition_failed(self, store, world, monkeypatch):
        task = await _task_for(store, world.owner, world.alice)
        await update_task_status(
            store, world.owner, TaskStatusUpdate(task_id=task.id, status=TaskStatus.IN_PROGRESS)
        )

        async def stale_read(task_id, organization_id):
            return task  # still TODO

        monkeypatch.setattr(store, "find_task_scoped", stale_read)
        with pytest.raises(PreconditionFailedError):
            await update_task_status(
                store, world.alice, TaskStatusUpdate(task_id=task.id, status=TaskStatus.IN_PROGRESS)
            )


class TestReassignTask:
    async def test_manager_reassigns(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        moved = await reassign_task(
            store, world.admin, TaskReassign(task_id=task.id, assigned_to_user_id=world.bob.id)
        )
        assert moved.assigned_to_id == world.bob.id
        assert moved.assigned_by_id == world.admin.id

    async def test_employee_cannot_reassign(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        with pytest.raises(ForbiddenError):
            await reassign_task(
                store, world.alice, TaskReassign(task_id=task.id, assigned_to_user_id=world.bob.id)
            )

    async def test_done_task_cannot_be_reassigned(self, store, world):
        task = await _task_for(store, world.owner, world.alice, status=TaskStatus.DONE)
        for actor in (world.owner, world.admin):
            with pytest.raises(PreconditionFailedError):
                await reassign_task(
                    store, actor, TaskReassign(task_id=task.id, assigned_to_user_id=world.bob.id)
                )

    async def test_new_assignee_must_be_employee(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        with pytest.raises(PreconditionFailedError):
            await reassign_task(
                store, world.owner, TaskReassign(task_id=task.id, assigned_to_user_id=world.admin.id)
            )
        with pytest.raises(NotFoundError):
            await reassign_task(
                store,
                world.owner,
                TaskReassign(task_id=task.id, assigned_to_user_id=world.rival_employee.id),
            )

    async def test_cross_tenant_is_not_found(self, store, world):
        task = await _task_for(store, world.owner, world.alice)
        with pytest.raises(NotFoundError):
            await reassign_task(
                store,
                world.rival_owner,
                TaskReassign(task_id=task.id, assigned_to_user_id=world.rival_employee.id),
            )

    async def test_completed_between_read_and_write(self, store, world, monkeypatch):
        task = await _task_for(store, world.owner, world.alice)
        for status in (TaskStatus.IN_PROGRESS, TaskStatus.DONE):
            await update_task_status(
                store, world.alice, TaskStatusUpdate(task_id=task.id, status=status)
            )

        async def stale_read(task_id, organization_id):
            return task  # still TODO

        monkeypatch.setattr(store, "find_task_scoped", stale_read)
        with pytest.raises(PreconditionFailedError):
            await reassign_task(
                store, world.owner, TaskReassign(task_id=task.id, assigned_to_user_id=world.bob.id)
            )


class TestOnboardingScenario:
    async def test_register_join_assign_complete(self, store):
        a = await make_actor(store, "a@example.test", name="A")
        b = await make_actor(store, "b@example.test", name="B")
        c = await make_actor(store, "c@example.test", name="C")

        created = await create_organization(store, a, OrgCreateRequest(name="Acme", slug="acme"))
        acme = created.organization
        a = a.model_copy(update={"organization_id": acme.id, "role": Role.OWNER})

        joins = {}
        for user in (b, c):
            joins[user.id] = await request_to_join(
                store, user, JoinRequestCreate(organization_id=acme.id)
            )
            assert joins[user.id].status == JoinRequestStatus.PENDING

        approve_b = JoinRequestReview(
            join_request_id=joins[b.id].id,
            decision=JoinRequestStatus.APPROVED,
            role_to_assign=Role.EMPLOYEE,
        )
        result = await review_join_request(store, a, approve_b)
        assert (result.membership.organization_id, result.membership.role) == (acme.id, Role.EMPLOYEE)
        with pytest.raises(PreconditionFailedError):
            await review_join_request(store, a, approve_b)

        await review_join_request(
            store,
            a,
            JoinRequestReview(
                join_request_id=joins[c.id].id,
                decision=JoinRequestStatus.APPROVED,
                role_to_assign=Role.EMPLOYEE,
            ),
        )
        b = b.model_copy(update={"organization_id": acme.id, "role": Role.EMPLOYEE})

        task = await _task_for(store, a, b, "Write docs")
        assert task.status == TaskStatus.TODO

        task = await update_task_status(
            store, b, TaskStatusUpdate(task_id=task.id, status=TaskStatus.IN_PROGRESS)
        )
        assert task.status == TaskStatus.IN_PROGRESS
        with pytest.raises(InvalidTransitionError):
            await update_task_status(
                store, b, TaskStatusUpdate(task_id=task.id, status=TaskStatus.TODO)
            )

        task = await reassign_task(
            store, a, TaskReassign(task_id=task.id, assigned_to_user_id=c.id)
        )
        assert task.assigned_to_id == c.id

        await update_task_status(store, a, TaskStatusUpdate(task_id=task.id, status=TaskStatus.DONE))
        with pytest.raises(PreconditionFailedError):
            await reassign_task(store, a, TaskReassign(task_id=task.id, assigned_to_user_id=b.id))
