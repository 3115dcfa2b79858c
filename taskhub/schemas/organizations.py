"""
Organization, membership and join-request schemas.

Covers: organization creation/discovery, membership records, the
join-request lifecycle (request, review) and their list views.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints

from .common import JoinRequestStatus, Role

OrgName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=120)]


def _normalize_slug(value):
    # Lower-cased before the pattern check so "Acme-Corp" becomes "acme-corp".
    return value.strip().lower() if isinstance(value, str) else value


OrgSlug = Annotated[
    str,
    BeforeValidator(_normalize_slug),
    StringConstraints(
        min_length=3,
        max_length=64,
        pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$",
    ),
]


def _not_owner(role: Role) -> Role:
    # OWNER is only ever granted by creating an organization.
    if role == Role.OWNER:
        raise ValueError("The OWNER role cannot be requested or assigned.")
    return role


def _is_decision(status: JoinRequestStatus) -> JoinRequestStatus:
    if status == JoinRequestStatus.PENDING:
        raise ValueError("Decision must be APPROVED or REJECTED.")
    return status


RequestableRole = Annotated[Role, AfterValidator(_not_owner)]
Decision = Annotated[JoinRequestStatus, AfterValidator(_is_decision)]


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class OrganizationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    name: str
    slug: str
    created_by_id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class OrganizationSummary(BaseModel):
    """Public discovery view."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    name: str
    slug: str


class MembershipRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    user_id: uuid.UUID
    organization_id: uuid.UUID
    role: Role
    created_at: datetime
    updated_at: datetime


class MemberRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    user_id: uuid.UUID
    organization_id: uuid.UUID
    role: Role
    name: str
    email: str
    created_at: datetime


class JoinRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    user_id: uuid.UUID
    organization_id: uuid.UUID
    requested_role: Role
    status: JoinRequestStatus
    decided_by_id: Optional[uuid.UUID] = None
    decided_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PendingJoinRequestRead(JoinRequestRead):
    """A pending request with the requester's public profile."""

    requester_name: str
    requester_email: str


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: OrgName
    slug: OrgSlug


class JoinRequestCreate(BaseModel):
    organization_id: uuid.UUID
    requested_role: RequestableRole = Role.EMPLOYEE


class JoinRequestBody(BaseModel):
    """Request body for POST /orgs/{org_id}/join-requests."""

    requested_role: RequestableRole = Role.EMPLOYEE


class JoinRequestReview(BaseModel):
    join_request_id: uuid.UUID
    decision: Decision
    role_to_assign: Optional[RequestableRole] = Field(
        default=None,
        description="Role granted on approval. Required when approving.",
    )


class JoinRequestReviewBody(BaseModel):
    """Request body for POST /join-requests/{id}/review."""

    decision: Decision
    role_to_assign: Optional[RequestableRole] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class OrgCreateResponse(BaseModel):
    organization: OrganizationRead
    membership: MembershipRead


class ReviewResponse(BaseModel):
    join_request: JoinRequestRead
    membership: Optional[MembershipRead] = None
