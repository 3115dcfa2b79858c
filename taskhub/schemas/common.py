from enum import Enum
from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Role(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


MANAGER_ROLES: frozenset[Role] = frozenset({Role.OWNER, Role.ADMIN})


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


# Workflow position, used when sorting by status.
TASK_STATUS_RANK: dict[TaskStatus, int] = {
    TaskStatus.TODO: 0,
    TaskStatus.IN_PROGRESS: 1,
    TaskStatus.DONE: 2,
}


class JoinRequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class TaskSortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    STATUS = "status"


class OrgSortField(str, Enum):
    NAME = "name"
    CREATED_AT = "created_at"


class ListParams(BaseModel):
    """Offset pagination plus a sort field; ties are always broken by id."""

    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=100)
    sort_by: str = "created_at"
    sort_order: SortOrder = SortOrder.DESC


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    offset: int
    limit: int
