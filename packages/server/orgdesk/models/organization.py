"""Organization model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True, max_length=255)
    slug: str = Field(unique=True, nullable=False, index=True, max_length=100)
    description: Optional[str] = None
    owner_id: uuid.UUID = Field(nullable=False, index=True)  # identity-provider user id
    settings: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
