"""Bearer tokens issued by the identity directory.

Tokens are RS256 JWTs signed with one of the keys the directory publishes at
``/.well-known/jwks.json``; the ``sub`` claim is the user id.
"""

import asyncio
import logging
import time
from typing import Any

import httpx
from jose import jwt, JWTError

import settings
from services.directory_retry import (
    DirectoryResponseError,
    directory_retry,
    exception_from_response,
)
from services.errors import DirectoryUnavailable, InvalidToken

logger = logging.getLogger("friendgraph.auth")


class TokenVerifier:
    def __init__(
        self,
        domain: str | None = None,
        audience: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.domain = (domain or settings.DIRECTORY_DOMAIN).rstrip("/")
        self.audience = audience or settings.AUTH_AUDIENCE
        self.client = client or httpx.AsyncClient(
            verify=settings.HTTPS_VERIFY, timeout=10.0
        )
        self._jwks: dict[str, Any] | None = None
        self._jwks_expires_at = 0.0
        self._jwks_lock = asyncio.Lock()

    async def close(self):
        await self.client.aclose()

    @directory_retry()
    async def _fetch_jwks(self) -> dict[str, Any]:
        response = await self.client.get(f"{self.domain}/.well-known/jwks.json")
        if response.status_code != 200:
            raise exception_from_response(response, "Failed to fetch signing keys")
        return response.json()

    async def get_jwks(self, refresh: bool = False) -> dict[str, Any]:
        """The published signing keys, fetched once per cache period"""
        jwks = self._jwks
        if jwks and not refresh and time.monotonic() < self._jwks_expires_at:
            return jwks
        async with self._jwks_lock:
            if self._jwks is not jwks and self._jwks is not None:
                return self._jwks  # someone refreshed while we were waiting
            try:
                self._jwks = await self._fetch_jwks()
            except (DirectoryResponseError, httpx.HTTPError) as e:
                logger.error(f"Cannot fetch signing keys: {e}")
                raise DirectoryUnavailable() from e
            self._jwks_expires_at = time.monotonic() + settings.JWKS_CACHE_SECONDS
            return self._jwks

    async def user_id(self, token: str) -> str:
        """The user a valid token was issued to, InvalidToken otherwise"""
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except JWTError as e:
            raise InvalidToken() from e

        jwks = await self.get_jwks()
        if kid and kid not in {key.get("kid") for key in jwks.get("keys", [])}:
            logger.info(f"Unknown signing key {kid}, refreshing")
            jwks = await self.get_jwks(refresh=True)

        try:
            claims = jwt.decode(
                token,
                jwks,
                algorithms=["RS256"],
                audience=self.audience,
                options={"verify_aud": bool(self.audience)},
            )
        except JWTError as e:
            logger.debug(f"Rejected token: {e}")
            raise InvalidToken() from e
        if not claims.get("sub"):
            raise InvalidToken("Token without a subject.")
        return claims["sub"]
