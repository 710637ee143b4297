"""
Cross-entity access resolver.

Projects and tasks are addressed by their own ids, so the organization has to
be derived by walking Task -> Project -> Organization -> Member(caller). The
walk is one joined query; any missing link, including the caller's
membership, surfaces as the same NotFoundOrDenied so callers learn nothing
about entities outside their organizations.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgdesk.authz.permissions import Capability, granted, has_capability
from orgdesk.core.errors import Forbidden, NotFoundOrDenied
from orgdesk.models.member import Member
from orgdesk.models.organization import Organization
from orgdesk.models.project import Project
from orgdesk.models.task import Task
from orgdesk_shared.schemas.common import MemberRole

log = structlog.get_logger()


@dataclass(frozen=True)
class EntityAccess:
    organization: Organization
    project: Project
    member: Member
    task: Optional[Task] = None

    @property
    def role(self) -> MemberRole:
        return MemberRole(self.member.role)

    @property
    def permissions(self) -> tuple[str, ...]:
        return granted(self.member.permissions)

    def can(self, capability: Capability) -> bool:
        return has_capability(self.member.role, self.member.permissions, capability)

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            log.info(
                "authz.permission_denied",
                capability=capability.value,
                role=self.member.role,
                organization_id=str(self.organization.id),
            )
            raise Forbidden(f"Missing permission: {capability.value}")


def _member_join(user_id: uuid.UUID):
    return and_(Member.organization_id == Organization.id, Member.user_id == user_id)


def project_access_stmt(project_id: uuid.UUID, user_id: uuid.UUID, *, lock: bool = False):
    stmt = (
        select(Project, Organization, Member)
        .join(Organization, Organization.id == Project.organization_id)
        .join(Member, _member_join(user_id))
        .where(Project.id == project_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update(of=Project)
    return stmt


async def resolve_project_access(
    session: AsyncSession,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    lock: bool = False,
) -> EntityAccess:
    """Resolve a project the caller can see.

    ``lock=True`` holds the project row ``FOR UPDATE`` until the transaction
    ends; task creation relies on it to serialize position assignment.
    """
    stmt = project_access_stmt(project_id, user_id, lock=lock)
    row = (await session.execute(stmt)).first()
    if row is None:
        raise NotFoundOrDenied("Project not found or access denied")
    project, organization, member = row
    return EntityAccess(organization=organization, project=project, member=member)


async def resolve_task_access(
    session: AsyncSession,
    task_id: uuid.UUID,
    user_id: uuid.UUID,
) -> EntityAccess:
    stmt = (
        select(Task, Project, Organization, Member)
        .join(Project, Project.id == Task.project_id)
        .join(Organization, Organization.id == Project.organization_id)
        .join(Member, _member_join(user_id))
        .where(Task.id == task_id)
        .execution_options(populate_existing=True)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        raise NotFoundOrDenied("Task not found or access denied")

    task, project, organization, member = row
    if task.organization_id != project.organization_id:
        log.error(
            "task.organization_mismatch",
            task_id=str(task.id),
            task_organization_id=str(task.organization_id),
            project_organization_id=str(project.organization_id),
        )
        raise NotFoundOrDenied("Task not found or access denied")

    return EntityAccess(organization=organization, project=project, member=member, task=task)
