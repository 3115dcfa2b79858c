"""
Join-request lifecycle: request, list, review.

A decision moves a request out of PENDING exactly once. The conditional
status update and the membership insert share one transaction, so a
concurrent reviewer sees the request as already decided.
"""

from __future__ import annotations

from typing import Optional

import structlog

from taskhub.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    UniqueViolation,
    ValidationError,
    maps_store_errors,
)
from taskhub.core.policies import require_authenticated, require_owner_or_admin
from taskhub.schemas.common import JoinRequestStatus, ListParams, Page
from taskhub.schemas.organizations import (
    JoinRequestCreate,
    JoinRequestRead,
    JoinRequestReview,
    PendingJoinRequestRead,
    ReviewResponse,
)
from taskhub.schemas.users import Actor
from taskhub.store.base import Store

log = structlog.get_logger()


@maps_store_errors
async def request_to_join(
    store: Store, actor: Optional[Actor], req: JoinRequestCreate
) -> JoinRequestRead:
    user = require_authenticated(actor)

    try:
        async with store.transaction() as tx:
            if await tx.find_membership_by_user_id(user.id) is not None:
                raise PreconditionFailedError("You already belong to an organization.")
            if await tx.find_organization_by_id(req.organization_id) is None:
                raise NotFoundError("Organization not found.")
            jr = await tx.create_or_reopen_join_request(
                user.id, req.organization_id, req.requested_role
            )
    except UniqueViolation as exc:
        raise ConflictError("A join request for this organization is already pending.") from exc

    log.info(
        "join_request.created",
        join_request_id=str(jr.id),
        org_id=str(jr.organization_id),
        user_id=str(user.id),
        requested_role=jr.requested_role.value,
    )
    return jr


@maps_store_errors
async def list_pending_join_requests(
    store: Store, actor: Optional[Actor], params: ListParams
) -> Page[PendingJoinRequestRead]:
    member = require_owner_or_admin(actor)
    if params.sort_by != "created_at":
        raise ValidationError(f"Cannot sort join requests by '{params.sort_by}'.")
    items, total = await store.list_pending_join_requests(member.organization_id, params)
    return Page[PendingJoinRequestRead](
        items=items, total=total, offset=params.offset, limit=params.limit
    )


@maps_store_errors
async def list_my_join_requests(store: Store, actor: Optional[Actor]) -> list[JoinRequestRead]:
    user = require_authenticated(actor)
    return await store.list_join_requests_for_user(user.id)


@maps_store_errors
async def review_join_request(
    store: Store, actor: Optional[Actor], review: JoinRequestReview
) -> ReviewResponse:
    """Approve or reject a pending request of the reviewer's organization."""
    member = require_owner_or_admin(actor)
    approving = review.decision == JoinRequestStatus.APPROVED
    if approving and review.role_to_assign is None:
        raise ForbiddenError("A role must be assigned when approving a join request.")

    org_id = member.organization_id
    membership = None
    try:
        async with store.transaction() as tx:
            jr = await tx.find_join_request_scoped(review.join_request_id, org_id)
            if jr is None:
                raise NotFoundError("Join request not found.")
            if jr.status != JoinRequestStatus.PENDING:
                raise PreconditionFailedError("Join request is no longer pending.")

            affected = await tx.conditional_update_join_request_status(
                jr.id, org_id, JoinRequestStatus.PENDING, review.decision, member.id
            )
            if affected != 1:
                log.warning("join_request.review_race_lost", join_request_id=str(jr.id))
                raise PreconditionFailedError("Join request is no longer pending.")

            if approving:
                if await tx.find_membership_by_user_id(jr.user_id) is not None:
                    raise PreconditionFailedError("User already belongs to an organization.")
                membership = await tx.create_membership(jr.user_id, org_id, review.role_to_assign)

            decided = await tx.find_join_request_scoped(jr.id, org_id)
    except UniqueViolation as exc:
        log.warning("join_request.membership_race_lost", join_request_id=str(review.join_request_id))
        raise PreconditionFailedError("User already belongs to an organization.") from exc

    log.info(
        "join_request.approved" if approving else "join_request.rejected",
        join_request_id=str(decided.id),
        org_id=str(org_id),
        user_id=str(decided.user_id),
        decided_by=str(member.id),
        role=review.role_to_assign.value if approving else None,
    )
    return ReviewResponse(join_request=decided, membership=membership)
