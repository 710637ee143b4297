"""
User directory tests: the stub and the HTTP client against a mock transport.
"""

from __future__ import annotations

import uuid

import httpx

from orgdesk.services.directory import (
    DirectoryUser,
    HttpUserDirectory,
    StubUserDirectory,
    lookup_many,
)


def directory_for(handler) -> HttpUserDirectory:
    return HttpUserDirectory("http://idp.test/", transport=httpx.MockTransport(handler))


class TestStubDirectory:
    async def test_fabricates_metadata(self):
        uid = uuid.uuid4()
        user = await StubUserDirectory().lookup(uid)
        assert user.email == f"user-{uid}@example.com"
        assert user.name == f"User {str(uid)[:8]}"
        assert user.avatar_url is None


class TestHttpDirectory:
    async def test_found(self):
        uid = uuid.uuid4()

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/users/{uid}"
            return httpx.Response(
                200,
                json={"email": "ada@acme.io", "name": "Ada", "avatar_url": "https://cdn.acme.io/ada.png"},
            )

        user = await directory_for(handler).lookup(uid)
        assert user == DirectoryUser(
            user_id=uid, email="ada@acme.io", name="Ada", avatar_url="https://cdn.acme.io/ada.png"
        )

    async def test_unknown_user(self):
        user = await directory_for(lambda request: httpx.Response(404)).lookup(uuid.uuid4())
        assert user is None

    async def test_server_error_is_swallowed(self):
        user = await directory_for(lambda request: httpx.Response(503)).lookup(uuid.uuid4())
        assert user is None

    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert await directory_for(handler).lookup(uuid.uuid4()) is None

    async def test_malformed_body(self):
        user = await directory_for(lambda request: httpx.Response(200, text="<html>")).lookup(uuid.uuid4())
        assert user is None


class TestLookupMany:
    async def test_deduplicates(self):
        calls = []

        class CountingDirectory(StubUserDirectory):
            async def lookup(self, user_id):
                calls.append(user_id)
                return await super().lookup(user_id)

        a, b = uuid.uuid4(), uuid.uuid4()
        found = await lookup_many(CountingDirectory(), [a, b, a])
        assert set(found) == {a, b}
        assert sorted(calls) == sorted([a, b])
