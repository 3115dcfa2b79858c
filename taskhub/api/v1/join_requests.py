"""
Join-request endpoints: pending queue, own requests, review.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends

from taskhub.api.deps import get_actor, get_store, list_params
from taskhub.core.errors import parse_input
from taskhub.schemas.common import ListParams, Page
from taskhub.schemas.organizations import (
    JoinRequestRead,
    JoinRequestReview,
    JoinRequestReviewBody,
    PendingJoinRequestRead,
    ReviewResponse,
)
from taskhub.schemas.users import Actor
from taskhub.services.join_requests import (
    list_my_join_requests,
    list_pending_join_requests,
    review_join_request,
)
from taskhub.store.base import Store

router = APIRouter()


@router.get("", response_model=Page[PendingJoinRequestRead])
async def pending_join_requests(
    params: ListParams = Depends(list_params),
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    """Pending requests for the caller's organization (OWNER/ADMIN only)."""
    return await list_pending_join_requests(store, actor, params)


@router.get("/mine", response_model=List[JoinRequestRead])
async def my_join_requests(
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    return await list_my_join_requests(store, actor)


@router.post("/{join_request_id}/review", response_model=ReviewResponse)
async def review(
    join_request_id: uuid.UUID,
    body: JoinRequestReviewBody,
    actor: Optional[Actor] = Depends(get_actor),
    store: Store = Depends(get_store),
):
    """Approve (with a role) or reject a pending request."""
    req = parse_input(
        JoinRequestReview,
        {
            "join_request_id": join_request_id,
            "decision": body.decision,
            "role_to_assign": body.role_to_assign,
        },
    )
    return await review_join_request(store, actor, req)
