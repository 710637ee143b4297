"""
Database engine and session management.

Membership mutations and task creation read, check and write under a row
lock inside one transaction; PostgreSQL connections therefore run at
READ COMMITTED explicitly rather than relying on the server default.
"""

from collections.abc import AsyncGenerator
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from orgdesk.core.config import get_settings

settings = get_settings()


def engine_options(database_url: str) -> dict:
    if database_url.startswith("postgresql"):
        return {"isolation_level": "READ COMMITTED", "pool_pre_ping": True}
    return {}


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    return create_async_engine(database_url, echo=echo, **engine_options(database_url))


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.debug)
async_session_factory = build_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create all tables (development and tests; production schemas are managed externally)."""
    import orgdesk.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    One request is one transaction: everything the request read under a
    row lock stays locked until this commit or rollback.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
