from enum import Enum
from math import ceil
from typing import Generic, List, TypeVar

from pydantic import BaseModel


class MemberRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


# Lowest first; the index of a role is its rank
ROLE_ORDER: list["MemberRole"] = [
    MemberRole.VIEWER,
    MemberRole.MEMBER,
    MemberRole.ADMIN,
    MemberRole.OWNER,
]


class ProjectStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=ceil(total / limit) if limit else 0)


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    data: List[T]
    pagination: Pagination
