"""Task model."""

from datetime import datetime
from typing import List, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        sa.Index("ix_tasks_project_position", "project_id", "position"),
    )

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    # Denormalized from the project; always equal to the project's organization
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    title: str = Field(nullable=False, max_length=500)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="todo")  # todo | in_progress | review | done | cancelled
    priority: str = Field(nullable=False, default="medium")  # low | medium | high | urgent
    due_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    estimated_hours: Optional[float] = Field(default=None, sa_type=sa.Float)
    actual_hours: Optional[float] = Field(default=None, sa_type=sa.Float)
    assignee_id: Optional[uuid.UUID] = Field(default=None, index=True)
    created_by: uuid.UUID = Field(nullable=False)
    position: int = Field(default=0, nullable=False)
    tags: List[str] = Field(default_factory=list, sa_type=JSONType, nullable=False)
    # "metadata" is reserved on declarative classes, so the attribute is ``meta``
    meta: dict = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", JSONType, nullable=False, default=dict),
    )
