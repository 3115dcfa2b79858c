"""Task schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, StringConstraints, field_validator

from .common import TaskStatus

TaskTitle = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
TaskDescription = Annotated[str, StringConstraints(strip_whitespace=True, max_length=5000)]


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    title: str
    description: Optional[str] = None
    status: TaskStatus
    created_by_id: uuid.UUID
    assigned_to_id: uuid.UUID
    assigned_by_id: uuid.UUID
    assigned_at: datetime
    status_updated_by_id: Optional[uuid.UUID] = None
    status_updated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TaskCreate(BaseModel):
    title: TaskTitle
    description: Optional[TaskDescription] = None
    assigned_to_user_id: uuid.UUID
    status: Optional[TaskStatus] = None

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class TaskStatusUpdate(BaseModel):
    task_id: uuid.UUID
    status: TaskStatus


class TaskReassign(BaseModel):
    task_id: uuid.UUID
    assigned_to_user_id: uuid.UUID


class TaskStatusBody(BaseModel):
    """Request body for POST /tasks/{taskId}/status."""
    status: TaskStatus


class TaskAssigneeBody(BaseModel):
    """Request body for POST /tasks/{taskId}/assignee."""
    assigned_to_user_id: uuid.UUID
