"""Project model."""

from datetime import date
from typing import List, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=255)
    description: Optional[str] = None
    status: str = Field(default="active", nullable=False)  # planning | active | on_hold | completed | archived
    start_date: Optional[date] = Field(default=None, sa_type=sa.Date)
    end_date: Optional[date] = Field(default=None, sa_type=sa.Date)
    progress: int = Field(default=0, nullable=False)
    budget: Optional[float] = Field(default=None, sa_type=sa.Float)
    settings: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
    tags: List[str] = Field(default_factory=list, sa_type=JSONType, nullable=False)
    created_by: uuid.UUID = Field(nullable=False)
