"""Unit tests for the access token verifier with the signing keys mocked using pytest-httpx."""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from services.auth import TokenVerifier
from services.errors import DirectoryUnavailable, InvalidToken

DOMAIN = "https://directory.test"
JWKS_URL = f"{DOMAIN}/.well-known/jwks.json"


@pytest.fixture
async def verifier():
    verifier = TokenVerifier(domain=DOMAIN, audience=None)
    yield verifier
    await verifier.close()


@pytest.fixture
def jwks(signing_key):
    return signing_key[1]


class TestTokenVerifier:
    async def test_valid_token(self, verifier, httpx_mock, jwks, make_token):
        httpx_mock.add_response(method="GET", url=JWKS_URL, json=jwks)

        assert await verifier.user_id(make_token("auth0|alice")) == "auth0|alice"

    async def test_keys_are_fetched_once(
        self, verifier, httpx_mock, jwks, make_token
    ):
        httpx_mock.add_response(method="GET", url=JWKS_URL, json=jwks)

        for user_id in ("alice", "bob", "carol"):
            assert await verifier.user_id(make_token(user_id)) == user_id
        assert len(httpx_mock.get_requests()) == 1

    async def test_unknown_key_refreshes_the_keys(
        self, verifier, httpx_mock, jwks, make_token
    ):
        rotated = {"keys": [dict(jwks["keys"][0], kid="rotated-key")]}
        httpx_mock.add_response(method="GET", url=JWKS_URL, json=jwks)
        httpx_mock.add_response(method="GET", url=JWKS_URL, json=rotated)

        assert await verifier.user_id(make_token("alice")) == "alice"
        token = make_token("bob", kid="rotated-key")
        assert await verifier.user_id(token) == "bob"

    async def test_expired_token(self, verifier, httpx_mock, jwks, make_token):
        httpx_mock.add_response(method="GET", url=JWKS_URL, json=jwks)

        with pytest.raises(InvalidToken):
            await verifier.user_id(make_token("alice", expires_in=-60))

    async def test_token_signed_by_someone_else(self, verifier, httpx_mock, jwks):
        httpx_mock.add_response(method="GET", url=JWKS_URL, json=jwks)
        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        pem = other_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode()
        forged = jwt.encode(
            {"sub": "alice"}, pem, algorithm="RS256", headers={"kid": "test-key"}
        )

        with pytest.raises(InvalidToken):
            await verifier.user_id(forged)

    async def test_garbage_is_rejected_without_fetching_keys(self, verifier):
        with pytest.raises(InvalidToken):
            await verifier.user_id("definitely.not.a-token")

    async def test_audience_is_checked_when_configured(
        self, httpx_mock, jwks, make_token
    ):
        httpx_mock.add_response(method="GET", url=JWKS_URL, json=jwks)
        verifier = TokenVerifier(domain=DOMAIN, audience="https://friendgraph.test")

        good = make_token("alice", aud="https://friendgraph.test")
        assert await verifier.user_id(good) == "alice"
        with pytest.raises(InvalidToken):
            await verifier.user_id(make_token("alice", aud="https://other.test"))
        await verifier.close()

    async def test_token_without_subject(self, verifier, httpx_mock, jwks, make_token):
        httpx_mock.add_response(method="GET", url=JWKS_URL, json=jwks)

        with pytest.raises(InvalidToken, match="subject"):
            await verifier.user_id(make_token(""))

    async def test_keys_unavailable(self, verifier, httpx_mock, make_token):
        httpx_mock.add_response(
            method="GET", url=JWKS_URL, status_code=503, is_reusable=True
        )

        with pytest.raises(DirectoryUnavailable):
            await verifier.user_id(make_token("alice"))
