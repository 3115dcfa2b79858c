"""
Organization endpoints: discovery, creation, joining, membership.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends

from taskhub.api.deps import get_actor, get_store, list_params
from taskhub.core.errors import parse_input
from taskhub.schemas.common import ListParams, Page, Role
from taskhub.schemas.organizations import (
    JoinRequestBody,
    JoinRequestCreate,
    JoinRequestRead,
    MemberRead,
    MembershipRead,
    OrgCreateRequest,
    OrgCreateResponse,
    OrganizationSummary,
)
from taskhub.schemas.users import Actor
from taskhub.services import join_requests as join_request_service
from taskhub.services import organizations as org_service
from taskhub.store.base import Store

router = APIRouter()


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


@router.get("/orgs", response_model=Page[OrganizationSummary], tags=["Organizations"])
async def list_orgs(
    params: ListParams = Depends(list_params),
    store: Store = Depends(get_store),
):
    """Public organization directory."""
    return await org_service.list_discoverable_organizations(store, params)


@router.post("/orgs", response_model=OrgCreateResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    """Create an organization. The caller becomes its OWNER."""
    return await org_service.create_organization(store, actor, body)


@router.post(
    "/orgs/{org_id}/join-requests",
    response_model=JoinRequestRead,
    status_code=201,
    tags=["Join Requests"],
)
async def request_to_join(
    org_id: uuid.UUID,
    body: Optional[JoinRequestBody] = None,
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    role = body.requested_role if body else Role.EMPLOYEE
    req = parse_input(JoinRequestCreate, {"organization_id": org_id, "requested_role": role})
    return await join_request_service.request_to_join(store, actor, req)


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


@router.get("/membership", response_model=Optional[MembershipRead], tags=["Membership"])
async def my_membership(
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    return await org_service.get_my_membership(store, actor)


@router.delete("/membership", status_code=204, tags=["Membership"])
async def leave(
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    await org_service.leave_organization(store, actor)


@router.get("/members", response_model=Page[MemberRead], tags=["Membership"])
async def list_members(
    role: Optional[Role] = None,
    params: ListParams = Depends(list_params),
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    """Members of the caller's organization (OWNER/ADMIN only)."""
    return await org_service.list_organization_members(store, actor, params, role=role)
