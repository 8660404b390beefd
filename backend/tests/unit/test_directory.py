"""Unit tests for the identity directory client with mocked API calls using pytest-httpx."""

import asyncio
import time

import httpx
import pytest

from services.directory import Directory, ManagementToken
from services.errors import DirectoryUnavailable

DOMAIN = "https://directory.test"
TOKEN_URL = f"{DOMAIN}/oauth/token"


@pytest.fixture
def token_data():
    return {
        "access_token": "management_token",
        "expires_in": 86400,
        "scope": "read:users delete:users",
        "token_type": "Bearer",
    }


@pytest.fixture
async def directory():
    directory = Directory(domain=DOMAIN)
    yield directory
    await directory.close()


@pytest.fixture
def user_response():
    return {"user_id": "auth0|alice", "email": "alice@example.com", "nickname": "alice"}


class TestDirectory:
    def test_missing_credentials(self, monkeypatch):
        import settings

        monkeypatch.setattr(settings, "DIRECTORY_CLIENT_ID", None)
        with pytest.raises(ValueError, match="Directory credentials not found"):
            Directory(domain=DOMAIN)

    async def test_fetch_user(self, directory, httpx_mock, token_data, user_response):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET",
            url=f"{DOMAIN}/api/v2/users/auth0%7Calice",
            json=user_response,
            match_headers={"Authorization": "Bearer management_token"},
        )

        profile = await directory.fetch_user("auth0|alice")

        assert profile == {
            "id": "auth0|alice",
            "email": "alice@example.com",
            "nickname": "alice",
        }

    async def test_exists(self, directory, httpx_mock, token_data, user_response):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET", url=f"{DOMAIN}/api/v2/users/alice", json=user_response
        )
        httpx_mock.add_response(
            method="GET", url=f"{DOMAIN}/api/v2/users/ghost", status_code=404
        )

        assert await directory.exists("alice") is True
        assert await directory.exists("ghost") is False

    async def test_token_is_fetched_once(
        self, directory, httpx_mock, token_data, user_response
    ):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET",
            url=f"{DOMAIN}/api/v2/users/alice",
            json=user_response,
            is_reusable=True,
        )

        await asyncio.gather(*(directory.fetch_user("alice") for _ in range(5)))

        token_requests = [
            r for r in httpx_mock.get_requests() if r.url == httpx.URL(TOKEN_URL)
        ]
        assert len(token_requests) == 1

    async def test_expired_token_is_renewed(
        self, directory, httpx_mock, token_data, user_response
    ):
        directory._token = ManagementToken("old_token", time.monotonic() - 1)
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET",
            url=f"{DOMAIN}/api/v2/users/alice",
            json=user_response,
            match_headers={"Authorization": "Bearer management_token"},
        )

        assert await directory.exists("alice")

    async def test_revoked_token_is_renewed(
        self, directory, httpx_mock, token_data, user_response
    ):
        directory._token = ManagementToken("revoked", time.monotonic() + 3600)
        httpx_mock.add_response(
            method="GET",
            url=f"{DOMAIN}/api/v2/users/alice",
            status_code=401,
            match_headers={"Authorization": "Bearer revoked"},
        )
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET",
            url=f"{DOMAIN}/api/v2/users/alice",
            json=user_response,
            match_headers={"Authorization": "Bearer management_token"},
        )

        assert await directory.exists("alice")

    async def test_rate_limit_is_retried(
        self, directory, httpx_mock, token_data, user_response
    ):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET",
            url=f"{DOMAIN}/api/v2/users/alice",
            status_code=429,
            headers={"Retry-After": "2"},
        )
        httpx_mock.add_response(
            method="GET", url=f"{DOMAIN}/api/v2/users/alice", json=user_response
        )

        assert await directory.exists("alice")

    async def test_persistent_failure(self, directory, httpx_mock, token_data):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET",
            url=f"{DOMAIN}/api/v2/users/alice",
            status_code=500,
            text="internal error",
            is_reusable=True,
        )

        with pytest.raises(DirectoryUnavailable):
            await directory.exists("alice")

    async def test_client_errors_are_not_retried(
        self, directory, httpx_mock, token_data
    ):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET", url=f"{DOMAIN}/api/v2/users/alice", status_code=400
        )

        with pytest.raises(DirectoryUnavailable):
            await directory.fetch_user("alice")
        assert len(httpx_mock.get_requests()) == 2

    async def test_search(self, directory, httpx_mock, token_data, user_response):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="GET",
            url=httpx.URL(
                f"{DOMAIN}/api/v2/users",
                params={"search_engine": "v3", "q": 'nickname:"alice"'},
            ),
            json=[user_response],
        )

        assert await directory.search("alice") == ["auth0|alice"]

    async def test_delete_user(self, directory, httpx_mock, token_data):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=token_data)
        httpx_mock.add_response(
            method="DELETE", url=f"{DOMAIN}/api/v2/users/alice", status_code=204
        )

        assert await directory.delete_user("alice") is True
