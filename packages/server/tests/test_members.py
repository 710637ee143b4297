"""
Member service and endpoint tests.

Tests cover:
- The owner/admin escalation scenario on a fresh organization
- Last-owner protection with one and with several owners
- Self-modification and duplicate membership
- Role changes resetting or patching permission flags
- Listing order, pagination and directory enrichment
- Fresh permission reads after a concurrent revocation
- Organization row locking
"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.dialects import postgresql

from conftest import auth_headers, tenant_for
from orgdesk.authz.context import build_tenant_context
from orgdesk.authz.guards import check_permission
from orgdesk.authz.membership import find_membership
from orgdesk.authz.permissions import Capability
from orgdesk.core.errors import (
    AccessDenied,
    DuplicateMembership,
    Forbidden,
    LastOwnerProtected,
    MemberNotFound,
    RoleEscalationBlocked,
    SelfModificationBlocked,
)
from orgdesk.services import members as member_service
from orgdesk.services.directory import StubUserDirectory
from orgdesk_shared.schemas.common import MemberRole
from orgdesk_shared.schemas.members import (
    MemberCreate,
    MemberInvite,
    MemberPermissionsPatch,
    MemberUpdate,
)


async def add(session, org, caller_id, user_id, role, permissions=None):
    tenant = await tenant_for(session, org, caller_id)
    member = await member_service.add_member(
        session,
        tenant,
        MemberCreate(organization_id=org.id, user_id=user_id, role=role, permissions=permissions),
    )
    await session.commit()
    return member


# ---------------------------------------------------------------------------
# Owner / admin scenario
# ---------------------------------------------------------------------------

class TestOwnershipScenario:
    async def test_creator_is_owner_with_every_flag(self, session, org, owner_id):
        member = await find_membership(session, org.id, owner_id)
        assert member.role == "owner"
        assert all(member.permissions[c.value] for c in Capability)

    async def test_full_scenario(self, session, org, owner_id):
        u2, u3 = uuid.uuid4(), uuid.uuid4()

        admin = await add(session, org, owner_id, u2, MemberRole.ADMIN)
        assert admin.role == "admin"

        u2_tenant = await tenant_for(session, org, u2)
        with pytest.raises(RoleEscalationBlocked):
            await member_service.add_member(
                session, u2_tenant, MemberCreate(organization_id=org.id, user_id=u3, role=MemberRole.OWNER)
            )

        owner_member = await find_membership(session, org.id, owner_id)
        owner_tenant = await tenant_for(session, org, owner_id)
        with pytest.raises(SelfModificationBlocked):
            await member_service.remove_member(session, owner_tenant, owner_member.id)

        u2_tenant = await tenant_for(session, org, u2)
        with pytest.raises(LastOwnerProtected):
            await member_service.update_member(
                session, u2_tenant, owner_member.id, MemberUpdate(role=MemberRole.MEMBER)
            )

        still_owner = await find_membership(session, org.id, owner_id)
        assert still_owner.role == "owner"

    async def test_admin_cannot_remove_owner(self, session, org, owner_id):
        u2 = uuid.uuid4()
        await add(session, org, owner_id, u2, MemberRole.ADMIN)
        owner_member = await find_membership(session, org.id, owner_id)

        with pytest.raises(RoleEscalationBlocked):
            await member_service.remove_member(session, await tenant_for(session, org, u2), owner_member.id)


# ---------------------------------------------------------------------------
# Last owner
# ---------------------------------------------------------------------------

class TestLastOwner:
    async def test_single_owner_cannot_be_demoted(self, session, org, owner_id):
        co_owner_candidate = uuid.uuid4()
        await add(session, org, owner_id, co_owner_candidate, MemberRole.ADMIN)
        owner_member = await find_membership(session, org.id, owner_id)
        admin_tenant = await tenant_for(session, org, co_owner_candidate)

        with pytest.raises(LastOwnerProtected):
            await member_service.update_member(
                session, admin_tenant, owner_member.id, MemberUpdate(role=MemberRole.ADMIN)
            )
        assert await member_service.count_owners(session, org.id) == 1

    async def test_owners_can_be_demoted_until_one_remains(self, session, org, owner_id):
        second, third = uuid.uuid4(), uuid.uuid4()
        await add(session, org, owner_id, second, MemberRole.OWNER)
        await add(session, org, owner_id, third, MemberRole.OWNER)
        assert await member_service.count_owners(session, org.id) == 3

        first_member = await find_membership(session, org.id, owner_id)
        second_member = await find_membership(session, org.id, second)

        # third demotes first, then second
        tenant = await tenant_for(session, org, third)
        await member_service.update_member(session, tenant, first_member.id, MemberUpdate(role=MemberRole.ADMIN))
        await session.commit()
        await member_service.update_member(session, tenant, second_member.id, MemberUpdate(role=MemberRole.ADMIN))
        await session.commit()
        assert await member_service.count_owners(session, org.id) == 1

        # A demoted owner cannot remove the one that is left
        third_member = await find_membership(session, org.id, third)
        with pytest.raises(RoleEscalationBlocked):
            await member_service.remove_member(
                session, await tenant_for(session, org, owner_id), third_member.id
            )
        assert await member_service.count_owners(session, org.id) >= 1

    async def test_owner_removed_when_another_owner_remains(self, session, org, owner_id):
        second = uuid.uuid4()
        await add(session, org, owner_id, second, MemberRole.OWNER)
        second_member = await find_membership(session, org.id, second)

        await member_service.remove_member(session, await tenant_for(session, org, owner_id), second_member.id)
        await session.commit()

        assert await find_membership(session, org.id, second) is None
        assert await member_service.count_owners(session, org.id) == 1


# ---------------------------------------------------------------------------
# Add / update / remove
# ---------------------------------------------------------------------------

class TestMemberMutations:
    async def test_duplicate_membership(self, session, org, owner_id):
        user = uuid.uuid4()
        await add(session, org, owner_id, user, MemberRole.MEMBER)
        with pytest.raises(DuplicateMembership):
            await add(session, org, owner_id, user, MemberRole.VIEWER)

    async def test_new_member_gets_role_defaults(self, session, org, owner_id):
        member = await add(session, org, owner_id, uuid.uuid4(), MemberRole.MEMBER)
        assert member.permissions["can_manage_tasks"] is True
        assert member.permissions["can_create_projects"] is False

    async def test_explicit_flags_merge_over_defaults(self, session, org, owner_id):
        member = await add(
            session,
            org,
            owner_id,
            uuid.uuid4(),
            MemberRole.VIEWER,
            permissions=MemberPermissionsPatch(can_create_projects=True),
        )
        assert member.permissions["can_create_projects"] is True
        assert member.permissions["can_manage_tasks"] is False

    async def test_member_without_invite_flag_cannot_add(self, session, org, owner_id):
        plain = uuid.uuid4()
        await add(session, org, owner_id, plain, MemberRole.MEMBER)
        with pytest.raises(Forbidden):
            await add(session, org, plain, uuid.uuid4(), MemberRole.VIEWER)

    async def test_role_change_resets_flags(self, session, org, owner_id):
        user = uuid.uuid4()
        member = await add(
            session, org, owner_id, user, MemberRole.MEMBER,
            permissions=MemberPermissionsPatch(can_invite_members=True),
        )
        tenant = await tenant_for(session, org, owner_id)
        updated = await member_service.update_member(
            session, tenant, member.id, MemberUpdate(role=MemberRole.VIEWER)
        )
        await session.commit()
        assert updated.role == "viewer"
        assert not any(updated.permissions.values())

    async def test_flags_only_update_keeps_role(self, session, org, owner_id):
        member = await add(session, org, owner_id, uuid.uuid4(), MemberRole.MEMBER)
        tenant = await tenant_for(session, org, owner_id)
        updated = await member_service.update_member(
            session,
            tenant,
            member.id,
            MemberUpdate(permissions=MemberPermissionsPatch(can_edit_projects=True)),
        )
        await session.commit()
        assert updated.role == "member"
        assert updated.permissions["can_edit_projects"] is True
        assert updated.permissions["can_manage_tasks"] is True

    async def test_self_update_blocked(self, session, org, owner_id):
        owner_member = await find_membership(session, org.id, owner_id)
        tenant = await tenant_for(session, org, owner_id)
        with pytest.raises(SelfModificationBlocked):
            await member_service.update_member(
                session, tenant, owner_member.id, MemberUpdate(role=MemberRole.ADMIN)
            )

    async def test_unknown_member_id(self, session, org, owner_id):
        tenant = await tenant_for(session, org, owner_id)
        with pytest.raises(MemberNotFound):
            await member_service.remove_member(session, tenant, uuid.uuid4())

    async def test_invite_is_recorded_not_persisted(self, session, org, owner_id):
        tenant = await tenant_for(session, org, owner_id)
        invitation = await member_service.invite_member(
            session,
            tenant,
            MemberInvite(organization_id=org.id, email="new.hire@acme.io", role=MemberRole.ADMIN),
        )
        assert invitation.status == "pending"
        assert invitation.invited_by == owner_id
        listed, _ = await member_service.list_members(session, org.id, StubUserDirectory())
        assert len(listed) == 1


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestListMembers:
    async def test_owners_first_then_by_rank(self, session, org, owner_id):
        await add(session, org, owner_id, uuid.uuid4(), MemberRole.VIEWER)
        await add(session, org, owner_id, uuid.uuid4(), MemberRole.ADMIN)
        await add(session, org, owner_id, uuid.uuid4(), MemberRole.MEMBER)

        items, pagination = await member_service.list_members(session, org.id, StubUserDirectory())
        assert [m.role for m in items] == [
            MemberRole.OWNER, MemberRole.ADMIN, MemberRole.MEMBER, MemberRole.VIEWER,
        ]
        assert pagination.total == 4

    async def test_pagination(self, session, org, owner_id):
        for _ in range(4):
            await add(session, org, owner_id, uuid.uuid4(), MemberRole.VIEWER)

        items, pagination = await member_service.list_members(
            session, org.id, StubUserDirectory(), page=2, limit=2
        )
        assert len(items) == 2
        assert pagination.total == 5
        assert pagination.total_pages == 3

    async def test_enriched_from_directory(self, session, org, owner_id):
        items, _ = await member_service.list_members(session, org.id, StubUserDirectory())
        assert items[0].user_email == f"user-{owner_id}@example.com"
        assert items[0].user_name.startswith("User ")


# ---------------------------------------------------------------------------
# Freshness and locking
# ---------------------------------------------------------------------------

class TestAuthorizationFreshness:
    async def test_revoked_flag_seen_by_next_check(self, session, session_factory, org, owner_id):
        user = uuid.uuid4()
        member = await add(
            session, org, owner_id, user, MemberRole.MEMBER,
            permissions=MemberPermissionsPatch(can_invite_members=True),
        )
        tenant = await tenant_for(session, org, user)
        await check_permission(session, tenant, Capability.INVITE_MEMBERS)
        await session.commit()

        async with session_factory() as other:
            owner_tenant = await tenant_for(other, org, owner_id)
            await member_service.update_member(
                other,
                owner_tenant,
                member.id,
                MemberUpdate(permissions=MemberPermissionsPatch(can_invite_members=False)),
            )
            await other.commit()

        # ``tenant`` still lists the flag; the guard must not trust it
        assert tenant.has("can_invite_members")
        with pytest.raises(Forbidden):
            await check_permission(session, tenant, Capability.INVITE_MEMBERS)

    async def test_removed_member_denied_by_next_check(self, session, session_factory, org, owner_id):
        user = uuid.uuid4()
        member = await add(session, org, owner_id, user, MemberRole.ADMIN)
        tenant = await tenant_for(session, org, user)
        await session.commit()

        async with session_factory() as other:
            await member_service.remove_member(other, await tenant_for(other, org, owner_id), member.id)
            await other.commit()

        with pytest.raises(AccessDenied):
            await check_permission(session, tenant, Capability.CREATE_PROJECTS)

    async def test_context_rebuilt_for_same_state_is_identical(self, session, session_factory, org, owner_id):
        user = uuid.uuid4()
        member = await add(
            session, org, owner_id, user, MemberRole.MEMBER,
            permissions=MemberPermissionsPatch(can_invite_members=True),
        )

        first = await build_tenant_context(session, user, str(org.id))
        second = await build_tenant_context(session, user, str(org.id))
        assert first == second
        assert (first.role, first.permissions) == (MemberRole.MEMBER, ("can_invite_members", "can_manage_tasks"))
        await session.commit()

        async with session_factory() as other:
            await member_service.update_member(
                other,
                await tenant_for(other, org, owner_id),
                member.id,
                MemberUpdate(role=MemberRole.VIEWER),
            )
            await other.commit()

        third = await build_tenant_context(session, user, str(org.id))
        fourth = await build_tenant_context(session, user, str(org.id))
        assert third == fourth
        assert third != first
        assert (third.role, third.permissions) == (MemberRole.VIEWER, ())

    def test_membership_mutations_lock_organization_row(self):
        stmt = member_service.lock_organization_stmt(uuid.uuid4())
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE" in sql
        assert "organizations" in sql


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class TestMemberEndpoints:
    async def _create_org(self, client, user_id):
        resp = await client.post(
            "/api/v1/organizations",
            json={"name": "Acme Corp", "slug": f"acme-{uuid.uuid4().hex[:8]}"},
            headers=auth_headers(user_id),
        )
        assert resp.status_code == 201
        return resp.json()["id"]

    async def test_add_and_list(self, client):
        owner, other = uuid.uuid4(), uuid.uuid4()
        org_id = await self._create_org(client, owner)

        resp = await client.post(
            "/api/v1/members",
            json={"organization_id": org_id, "user_id": str(other), "role": "admin"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 201
        assert resp.json()["role"] == "admin"
        assert resp.json()["permissions"]["can_remove_members"] is True

        resp = await client.get(
            "/api/v1/members", params={"organization_id": org_id}, headers=auth_headers(other)
        )
        assert resp.status_code == 200
        body = resp.json()
        assert [m["role"] for m in body["data"]] == ["owner", "admin"]
        assert body["pagination"]["total"] == 2

    async def test_missing_organization(self, client):
        resp = await client.get("/api/v1/members", headers=auth_headers(uuid.uuid4()))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "MISSING_ORGANIZATION"

    async def test_malformed_organization_is_denied(self, client):
        resp = await client.get(
            "/api/v1/members", params={"organization_id": "nope"}, headers=auth_headers(uuid.uuid4())
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ACCESS_DENIED"

    async def test_non_member_is_denied(self, client):
        org_id = await self._create_org(client, uuid.uuid4())
        resp = await client.get(
            "/api/v1/members/me", params={"organization_id": org_id}, headers=auth_headers(uuid.uuid4())
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ACCESS_DENIED"

    async def test_me(self, client):
        owner = uuid.uuid4()
        org_id = await self._create_org(client, owner)
        resp = await client.get(
            "/api/v1/members/me", params={"organization_id": org_id}, headers=auth_headers(owner)
        )
        assert resp.status_code == 200
        assert resp.json()["user_id"] == str(owner)
        assert resp.json()["user_email"] == f"user-{owner}@example.com"

    async def test_lookup_requires_co_membership(self, client):
        owner = uuid.uuid4()
        org_id = await self._create_org(client, owner)
        resp = await client.get(
            f"/api/v1/members/users/{uuid.uuid4()}",
            params={"organization_id": org_id},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "TARGET_NOT_MEMBER"

    async def test_escalation_rejected_over_http(self, client):
        owner, admin = uuid.uuid4(), uuid.uuid4()
        org_id = await self._create_org(client, owner)
        await client.post(
            "/api/v1/members",
            json={"organization_id": org_id, "user_id": str(admin), "role": "admin"},
            headers=auth_headers(owner),
        )

        resp = await client.post(
            "/api/v1/members",
            json={"organization_id": org_id, "user_id": str(uuid.uuid4()), "role": "owner"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == {
            "code": "ROLE_ESCALATION_BLOCKED",
            "message": "Cannot assign a role higher than your own",
            "status": 403,
        }

    async def test_last_owner_over_http(self, client):
        owner, admin = uuid.uuid4(), uuid.uuid4()
        org_id = await self._create_org(client, owner)
        await client.post(
            "/api/v1/members",
            json={"organization_id": org_id, "user_id": str(admin), "role": "admin"},
            headers=auth_headers(owner),
        )
        me = await client.get(
            "/api/v1/members/me", params={"organization_id": org_id}, headers=auth_headers(owner)
        )

        resp = await client.put(
            f"/api/v1/members/{me.json()['id']}",
            json={"organization_id": org_id, "role": "member"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "LAST_OWNER_PROTECTED"

    async def test_viewer_cannot_invite(self, client):
        owner, viewer = uuid.uuid4(), uuid.uuid4()
        org_id = await self._create_org(client, owner)
        await client.post(
            "/api/v1/members",
            json={"organization_id": org_id, "user_id": str(viewer), "role": "viewer"},
            headers=auth_headers(owner),
        )
        resp = await client.post(
            "/api/v1/members/invite",
            json={"organization_id": org_id, "email": "new.hire@acme.io", "role": "viewer"},
            headers=auth_headers(viewer),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    async def test_invite_accepted(self, client):
        owner = uuid.uuid4()
        org_id = await self._create_org(client, owner)
        resp = await client.post(
            "/api/v1/members/invite",
            json={"organization_id": org_id, "email": "new.hire@acme.io", "role": "member"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 202
        assert resp.json()["status"] == "pending"
