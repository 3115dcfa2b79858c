"""
Shared fixtures: stores, seeded organizations and actors.
"""

from __future__ import annotations

import uuid
from types import SimpleNamespace
from typing import Optional

import pytest

from taskhub.core.auth import build_actor
from taskhub.core.database import Database
from taskhub.schemas.common import Role
from taskhub.schemas.users import Actor
from taskhub.store.memory import InMemoryStore
from taskhub.store.sql import SqlStore


@pytest.fixture
async def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
async def sql_store(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'taskhub.db'}")
    await database.init_db()
    yield SqlStore(database.session_factory)
    await database.dispose()


@pytest.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    """Workflow tests run once per store implementation."""
    if request.param == "memory":
        yield InMemoryStore()
        return
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'taskhub.db'}")
    await database.init_db()
    yield SqlStore(database.session_factory)
    await database.dispose()


async def make_actor(
    store,
    email: str,
    *,
    name: Optional[str] = None,
    org_id: Optional[uuid.UUID] = None,
    role: Optional[Role] = None,
) -> Actor:
    user = await store.create_user(email, name or email.split("@")[0].title(), "not-a-real-hash")
    membership = None
    if org_id is not None:
        membership = await store.create_membership(user.id, org_id, role)
    return build_actor(user, membership)


async def make_org_with_owner(store, slug: str, owner_email: str):
    user = await store.create_user(owner_email, owner_email.split("@")[0].title(), "not-a-real-hash")
    org = await store.create_organization(slug.title(), slug, user.id)
    membership = await store.create_membership(user.id, org.id, Role.OWNER)
    return org, build_actor(user, membership)


async def seed_world(store) -> SimpleNamespace:
    """Two tenants ("acme" and "globex") plus a user with no membership."""
    acme, owner = await make_org_with_owner(store, "acme", "owner@acme.test")
    admin = await make_actor(store, "admin@acme.test", org_id=acme.id, role=Role.ADMIN)
    alice = await make_actor(store, "alice@acme.test", org_id=acme.id, role=Role.EMPLOYEE)
    bob = await make_actor(store, "bob@acme.test", org_id=acme.id, role=Role.EMPLOYEE)

    globex, rival_owner = await make_org_with_owner(store, "globex", "owner@globex.test")
    rival_employee = await make_actor(
        store, "emp@globex.test", org_id=globex.id, role=Role.EMPLOYEE
    )

    outsider = await make_actor(store, "outsider@example.test")

    return SimpleNamespace(
        acme=acme,
        owner=owner,
        admin=admin,
        alice=alice,
        bob=bob,
        globex=globex,
        rival_owner=rival_owner,
        rival_employee=rival_employee,
        outsider=outsider,
    )


@pytest.fixture
async def world(store) -> SimpleNamespace:
    return await seed_world(store)
