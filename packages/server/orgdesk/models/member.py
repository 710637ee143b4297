"""Organization membership: the join between an external user and an organization."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin, utcnow


class Member(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "members"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "user_id", name="uq_members_organization_user"),
    )

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(nullable=False, index=True)
    role: str = Field(nullable=False, default="member")  # owner | admin | member | viewer
    permissions: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
