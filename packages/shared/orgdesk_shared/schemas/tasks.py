from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import TaskPriority, TaskStatus


class TaskMetadata(BaseModel):
    parent_task_id: Optional[UUID] = None
    is_subtask: bool = False
    dependencies: List[UUID] = Field(default_factory=list)
    attachments_count: int = Field(default=0, ge=0)
    comments_count: int = Field(default=0, ge=0)


class TaskBase(BaseModel):
    title: str = Field(..., min_length=2, max_length=500)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    assignee_id: Optional[UUID] = None
    tags: List[str] = Field(default_factory=list)
    metadata: TaskMetadata = Field(default_factory=TaskMetadata)


class TaskCreate(TaskBase):
    project_id: UUID
    # Optional; when given it must name the project's organization
    organization_id: Optional[UUID] = None
    position: Optional[int] = Field(default=None, ge=0)


class TaskUpdate(BaseModel):
    """Partial update. Moving a task between projects or organizations is not supported."""

    title: Optional[str] = Field(None, min_length=2, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)
    assignee_id: Optional[UUID] = None
    tags: Optional[List[str]] = None
    metadata: Optional[dict] = None

    model_config = {"extra": "forbid"}


class TaskPositionUpdate(BaseModel):
    position: int = Field(..., ge=0)


class TaskRead(TaskBase):
    id: UUID
    project_id: UUID
    organization_id: UUID
    created_by: UUID
    position: int
    created_at: datetime
    updated_at: datetime
