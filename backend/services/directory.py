"""Identity directory (Auth0 management API) integration"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

import settings
from services.directory_retry import (
    DirectoryResponseError,
    directory_retry,
    exception_from_response,
)
from services.errors import DirectoryUnavailable

logger = logging.getLogger("friendgraph.directory")


@dataclass(frozen=True)
class ManagementToken:
    value: str
    expires_at: float  # time.monotonic() based

    def is_fresh(self, skew: float = 0) -> bool:
        return time.monotonic() < self.expires_at - skew


def profile_from_response(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": user["user_id"],
        "email": user.get("email"),
        "nickname": user.get("nickname"),
    }


class Directory:
    """Look up, search and delete accounts.

    The short-lived management token is cached on the instance (one per app)
    and refreshed by a single request even when many callers need it at once.
    """

    def __init__(
        self,
        domain: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.domain = (domain or settings.DIRECTORY_DOMAIN).rstrip("/")
        self.client_id = client_id or settings.DIRECTORY_CLIENT_ID
        self.client_secret = client_secret or settings.DIRECTORY_CLIENT_SECRET
        if not self.client_id or not self.client_secret:
            raise ValueError("Directory credentials not found in environment variables")
        self.token_skew = settings.DIRECTORY_TOKEN_SKEW_SECONDS

        self.client = client or httpx.AsyncClient(
            verify=settings.HTTPS_VERIFY,
            timeout=10.0,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )
        self._token: ManagementToken | None = None
        self._token_lock = asyncio.Lock()

    async def close(self):
        """Explicitly close the HTTP client"""
        await self.client.aclose()

    async def get_token(self) -> str:
        token = self._token
        if token and token.is_fresh(self.token_skew):
            return token.value
        async with self._token_lock:
            # refreshed by someone else while we were waiting
            token = self._token
            if token and token.is_fresh(self.token_skew):
                return token.value
            self._token = await self._fetch_token()
            return self._token.value

    @directory_retry()
    async def _fetch_token(self) -> ManagementToken:
        response = await self.client.post(
            f"{self.domain}/oauth/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "audience": f"{self.domain}/api/v2/",
            },
        )
        if response.status_code != 200:
            raise exception_from_response(response, "Failed to fetch management token")
        body = response.json()
        logger.debug(f"New management token, expires in {body['expires_in']}s")
        return ManagementToken(
            value=body["access_token"],
            expires_at=time.monotonic() + body["expires_in"],
        )

    async def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {await self.get_token()}",
        }

    def _raise_for(self, response: httpx.Response, prefix: str):
        if response.status_code == 401:
            # revoked or expired early: the next attempt fetches a new one
            self._token = None
        raise exception_from_response(response, prefix)

    def _user_url(self, user_id: str) -> str:
        return f"{self.domain}/api/v2/users/{quote(user_id, safe='')}"

    @directory_retry()
    async def _get_user(self, user_id: str) -> dict[str, Any] | None:
        response = await self.client.get(
            self._user_url(user_id), headers=await self._headers()
        )
        if response.status_code == 404:
            return None
        if response.status_code == 200:
            return profile_from_response(response.json())
        self._raise_for(response, f"GET user {user_id} failed")

    @directory_retry()
    async def _search(self, name: str) -> list[str]:
        response = await self.client.get(
            f"{self.domain}/api/v2/users",
            params={"search_engine": "v3", "q": f'nickname:"{name}"'},
            headers=await self._headers(),
        )
        if response.status_code == 200:
            return [user["user_id"] for user in response.json()]
        self._raise_for(response, "User search failed")

    @directory_retry()
    async def _delete_user(self, user_id: str) -> bool:
        response = await self.client.delete(
            self._user_url(user_id), headers=await self._headers()
        )
        if response.status_code == 204:
            return True
        self._raise_for(response, f"DELETE user {user_id} failed")

    async def fetch_user(self, user_id: str) -> dict[str, Any] | None:
        try:
            return await self._get_user(user_id)
        except (DirectoryResponseError, httpx.HTTPError) as e:
            logger.error(f"Cannot fetch user {user_id}: {e}")
            raise DirectoryUnavailable() from e

    async def exists(self, user_id: str) -> bool:
        return await self.fetch_user(user_id) is not None

    async def search(self, name: str) -> list[str]:
        try:
            return await self._search(name)
        except (DirectoryResponseError, httpx.HTTPError) as e:
            logger.error(f"Cannot search users by {name!r}: {e}")
            raise DirectoryUnavailable() from e

    async def delete_user(self, user_id: str) -> bool:
        try:
            return await self._delete_user(user_id)
        except (DirectoryResponseError, httpx.HTTPError) as e:
            logger.error(f"Cannot delete user {user_id}: {e}")
            raise DirectoryUnavailable() from e
