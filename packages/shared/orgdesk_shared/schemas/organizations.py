"""
Organization-related Pydantic schemas shared between server and clients.

Covers: organization CRUD request/response and the OrgSettings bag.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import MemberRole


SLUG_PATTERN = r"^[a-z0-9-]+$"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class OrgSettings(BaseModel):
    """Organization-level settings. All fields optional with defaults."""

    theme: str = Field(default="light", pattern=r"^(light|dark)$")
    language: str = Field(default="en", min_length=2, max_length=10)
    timezone: str = Field(default="UTC", min_length=1, max_length=64)
    allow_registration: bool = False
    max_projects: int = Field(default=10, ge=1, description="Upper bound on projects in the organization")
    max_members: int = Field(default=50, ge=1, description="Upper bound on members in the organization")


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=255, description="Organization display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=100,
        pattern=SLUG_PATTERN,
        description="URL-safe organization identifier, globally unique",
    )
    description: Optional[str] = None
    settings: Optional[dict] = Field(None, description="Partial settings, merged over the defaults")


class OrgUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = None
    settings: Optional[dict] = Field(
        None,
        description="Partial settings update (deep-merged via JSON Merge Patch)",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    owner_id: uuid.UUID
    settings: OrgSettings
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    role: MemberRole  # the requesting user's role in this org

    model_config = {"from_attributes": True}


class OrgListResponse(BaseModel):
    data: list[OrgListItem]
