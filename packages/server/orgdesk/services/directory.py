"""
User directory: display metadata (email, name, avatar) for member listings.

The directory is an enrichment source only. A lookup that fails or finds
nothing yields ``None`` and never affects an authorization decision.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Protocol

import httpx
import structlog

from orgdesk.core.config import get_settings

log = structlog.get_logger()


@dataclass(frozen=True)
class DirectoryUser:
    user_id: uuid.UUID
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None


class UserDirectory(Protocol):
    async def lookup(self, user_id: uuid.UUID) -> Optional[DirectoryUser]: ...


class StubUserDirectory:
    """Fabricates metadata from the user id. Used when no directory is configured."""

    async def lookup(self, user_id: uuid.UUID) -> Optional[DirectoryUser]:
        return DirectoryUser(
            user_id=user_id,
            email=f"user-{user_id}@example.com",
            name=f"User {str(user_id)[:8]}",
        )


class HttpUserDirectory:
    """
    Reads ``GET {base_url}/users/{user_id}`` from the identity provider.

    Expected body: ``{"email": ..., "name": ..., "avatar_url": ...}``.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    async def lookup(self, user_id: uuid.UUID) -> Optional[DirectoryUser]:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(f"/users/{user_id}")
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as exc:
            log.warning(
                "directory.lookup_failed",
                user_id=str(user_id),
                status=exc.response.status_code,
            )
            return None
        except (httpx.HTTPError, ValueError):
            log.warning("directory.unreachable", user_id=str(user_id))
            return None

        return DirectoryUser(
            user_id=user_id,
            email=body.get("email"),
            name=body.get("name"),
            avatar_url=body.get("avatar_url"),
        )


async def lookup_many(
    directory: UserDirectory,
    user_ids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, Optional[DirectoryUser]]:
    unique = list(dict.fromkeys(user_ids))
    found = await asyncio.gather(*(directory.lookup(uid) for uid in unique))
    return dict(zip(unique, found))


@lru_cache
def get_user_directory() -> UserDirectory:
    """FastAPI dependency; tests override it via ``app.dependency_overrides``."""
    settings = get_settings()
    if settings.user_directory_url:
        return HttpUserDirectory(
            settings.user_directory_url,
            timeout_seconds=settings.user_directory_timeout_seconds,
        )
    return StubUserDirectory()
