"""
Membership schemas: the permission record, member CRUD and invitations.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import MemberRole


class MemberPermissions(BaseModel):
    """Closed set of per-member capability flags.

    Unknown keys are rejected so a misspelt flag can never be stored and
    silently read back as "not granted".
    """

    can_create_projects: bool = False
    can_edit_projects: bool = False
    can_delete_projects: bool = False
    can_invite_members: bool = False
    can_remove_members: bool = False
    can_manage_tasks: bool = False

    model_config = {"extra": "forbid"}


class MemberPermissionsPatch(BaseModel):
    can_create_projects: Optional[bool] = None
    can_edit_projects: Optional[bool] = None
    can_delete_projects: Optional[bool] = None
    can_invite_members: Optional[bool] = None
    can_remove_members: Optional[bool] = None
    can_manage_tasks: Optional[bool] = None

    model_config = {"extra": "forbid"}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class MemberCreate(BaseModel):
    organization_id: uuid.UUID
    user_id: uuid.UUID
    role: MemberRole = MemberRole.MEMBER
    permissions: Optional[MemberPermissionsPatch] = None


class MemberUpdate(BaseModel):
    organization_id: Optional[uuid.UUID] = None
    role: Optional[MemberRole] = None
    permissions: Optional[MemberPermissionsPatch] = None


class MemberInvite(BaseModel):
    organization_id: uuid.UUID
    email: EmailStr
    role: MemberRole = MemberRole.MEMBER


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class MemberRead(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    role: MemberRole
    permissions: MemberPermissions
    joined_at: datetime
    created_at: datetime
    updated_at: datetime
    # Directory enrichment; absent when the user is unknown to the directory
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    user_avatar: Optional[str] = None

    model_config = {"from_attributes": True}


class InvitationAccepted(BaseModel):
    organization_id: uuid.UUID
    email: EmailStr
    role: MemberRole
    invited_by: uuid.UUID
    status: str = Field(default="pending")
