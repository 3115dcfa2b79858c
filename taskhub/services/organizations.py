"""
Organization service: creation, discovery, membership views.

A user holds at most one membership. Creation checks this up front for a
friendly error and again inside the creating transaction; the unique index
on memberships.user_id is the last line.
"""

from __future__ import annotations

from typing import Optional

import structlog

from taskhub.core.errors import (
    ConflictError,
    ForbiddenError,
    PreconditionFailedError,
    UniqueViolation,
    ValidationError,
    maps_store_errors,
)
from taskhub.core.policies import require_authenticated, require_membership, require_owner_or_admin
from taskhub.schemas.common import ListParams, OrgSortField, Page, Role
from taskhub.schemas.organizations import (
    MemberRead,
    MembershipRead,
    OrgCreateRequest,
    OrgCreateResponse,
    OrganizationSummary,
)
from taskhub.schemas.users import Actor
from taskhub.store.base import ORG_SLUG, Store

log = structlog.get_logger()

_ALREADY_MEMBER = "You already belong to an organization."
_SLUG_TAKEN = "Organization slug already taken."


@maps_store_errors
async def create_organization(
    store: Store, actor: Optional[Actor], req: OrgCreateRequest
) -> OrgCreateResponse:
    """Create an organization and make the creator its OWNER."""
    user = require_authenticated(actor)

    if await store.find_membership_by_user_id(user.id) is not None:
        raise PreconditionFailedError(_ALREADY_MEMBER)
    if await store.find_organization_by_slug(req.slug) is not None:
        raise ConflictError(_SLUG_TAKEN)

    try:
        async with store.transaction() as tx:
            if await tx.find_membership_by_user_id(user.id) is not None:
                raise PreconditionFailedError(_ALREADY_MEMBER)
            org = await tx.create_organization(req.name, req.slug, user.id)
            membership = await tx.create_membership(user.id, org.id, Role.OWNER)
    except UniqueViolation as exc:
        log.warning("org.create_race_lost", user_id=str(user.id), constraint=exc.constraint)
        if exc.constraint == ORG_SLUG:
            raise ConflictError(_SLUG_TAKEN) from exc
        raise PreconditionFailedError(_ALREADY_MEMBER) from exc

    log.info("org.created", org_id=str(org.id), slug=org.slug, owner_id=str(user.id))
    return OrgCreateResponse(organization=org, membership=membership)


@maps_store_errors
async def list_discoverable_organizations(
    store: Store, params: ListParams
) -> Page[OrganizationSummary]:
    """Public listing of id, name and slug."""
    if params.sort_by not in {f.value for f in OrgSortField}:
        raise ValidationError(f"Cannot sort organizations by '{params.sort_by}'.")
    items, total = await store.list_organizations(params)
    return Page[OrganizationSummary](
        items=items, total=total, offset=params.offset, limit=params.limit
    )


@maps_store_errors
async def list_organization_members(
    store: Store,
    actor: Optional[Actor],
    params: ListParams,
    role: Optional[Role] = None,
) -> Page[MemberRead]:
    member = require_owner_or_admin(actor)
    if params.sort_by != "created_at":
        raise ValidationError(f"Cannot sort members by '{params.sort_by}'.")
    items, total = await store.list_members(member.organization_id, params, role=role)
    return Page[MemberRead](items=items, total=total, offset=params.offset, limit=params.limit)


@maps_store_errors
async def get_my_membership(store: Store, actor: Optional[Actor]) -> Optional[MembershipRead]:
    user = require_authenticated(actor)
    return await store.find_membership_by_user_id(user.id)


async def leave_organization(store: Store, actor: Optional[Actor]) -> None:
    """Memberships are permanent; leaving always fails."""
    member = require_membership(actor)
    log.warning("membership.leave_rejected", user_id=str(member.id), org_id=str(member.organization_id))
    raise ForbiddenError("Leaving an organization is not supported.")
