"""User-Organization membership. One per user, ever."""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Membership(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "memberships"

    user_id: uuid.UUID = Field(foreign_key="users.id", unique=True, nullable=False)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    role: str = Field(nullable=False)  # OWNER | ADMIN | EMPLOYEE
