"""Join request model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class JoinRequest(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "join_requests"
    # A resolved request is reopened rather than duplicated, so this also
    # bounds pending requests to one per (user, organization).
    __table_args__ = (
        sa.UniqueConstraint("user_id", "organization_id", name="uq_join_requests_user_org"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    requested_role: str = Field(nullable=False, default="EMPLOYEE")
    status: str = Field(nullable=False, default="PENDING")  # PENDING | APPROVED | REJECTED
    decided_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    decided_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
