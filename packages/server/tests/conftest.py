"""
Shared fixtures: a file-backed SQLite database per test, service-level
sessions and an HTTP client wired to the same database.
"""

from __future__ import annotations

import os

os.environ.setdefault("OD_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("OD_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("OD_LOG_FORMAT", "console")

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from orgdesk.authz.context import build_tenant_context
from orgdesk.core.auth import create_access_token
from orgdesk.core.database import build_engine, build_session_factory, get_session, init_db
from orgdesk.services import organizations as org_service
from orgdesk.services.directory import StubUserDirectory, get_user_directory
from orgdesk_shared.schemas.organizations import OrgCreateRequest


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orgdesk.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s
        await s.rollback()


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def app(session_factory):
    from orgdesk.main import create_app

    application = create_app()

    async def override_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    application.dependency_overrides[get_session] = override_session
    application.dependency_overrides[get_user_directory] = StubUserDirectory
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
async def org(session, owner_id):
    """An organization owned by ``owner_id``, committed."""
    created = await org_service.create_org(
        OrgCreateRequest(name="Acme Corp", slug=f"acme-{uuid.uuid4().hex[:8]}"),
        owner_id,
        session,
    )
    await session.commit()
    return created


async def tenant_for(session, org, user_id):
    return await build_tenant_context(session, user_id, str(org.id))
