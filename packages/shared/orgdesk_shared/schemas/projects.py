from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from .common import ProjectStatus, TaskStatus
from .tasks import TaskRead


class ProjectSettings(BaseModel):
    is_public: bool = False
    allow_guest_comments: bool = False
    task_approval_required: bool = False
    default_task_status: TaskStatus = TaskStatus.TODO


class ProjectBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    progress: int = Field(default=0, ge=0, le=100)
    budget: Optional[float] = Field(default=None, ge=0)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)
    tags: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self


class ProjectCreate(ProjectBase):
    organization_id: UUID


class ProjectUpdate(BaseModel):
    """Partial update. The owning organization is fixed at creation."""

    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    budget: Optional[float] = Field(None, ge=0)
    settings: Optional[dict] = None
    tags: Optional[List[str]] = None

    model_config = {"extra": "forbid"}


class ProjectRead(ProjectBase):
    id: UUID
    organization_id: UUID
    created_by: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectSummary(ProjectRead):
    total_tasks: int = 0
    completed_tasks: int = 0
    overdue_tasks: int = 0


class ProjectDetail(ProjectRead):
    tasks: List[TaskRead] = Field(default_factory=list)


class ProjectStats(BaseModel):
    total_projects: int = 0
    active_projects: int = 0
    completed_projects: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    overdue_tasks: int = 0
