"""Task model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="TODO")  # TODO | IN_PROGRESS | DONE
    created_by_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    assigned_to_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    assigned_by_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    assigned_at: datetime = Field(
        default_factory=utcnow, nullable=False, sa_type=sa.DateTime(timezone=True)
    )
    status_updated_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    status_updated_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
