"""Test configuration and fixtures for the friend graph backend tests."""

import os
import sys
import pathlib
import time
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool

BACKEND_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Set test environment before importing backend modules
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SESSION_SECRET_KEY"] = "test_secret_key"
os.environ["TESTING_MODE"] = "True"
os.environ["STORE_BACKEND"] = "memory"
os.environ["DIRECTORY_DOMAIN"] = "https://directory.test"
os.environ["DIRECTORY_CLIENT_ID"] = "test_client_id"
os.environ["DIRECTORY_CLIENT_SECRET"] = "test_client_secret"


class FakeDirectory:
    """Stands in for the identity directory: knows a fixed set of users"""

    def __init__(self, *user_ids):
        self.users = {
            uid: {"id": uid, "email": f"{uid}@example.com", "nickname": uid}
            for uid in user_ids
        }
        self.deleted = []

    async def fetch_user(self, user_id):
        return self.users.get(user_id)

    async def exists(self, user_id):
        return user_id in self.users

    async def search(self, name):
        return [uid for uid, user in self.users.items() if user["nickname"] == name]

    async def delete_user(self, user_id):
        self.users.pop(user_id, None)
        self.deleted.append(user_id)
        return True

    async def close(self):
        pass


@pytest.fixture
def test_engine():
    """Create a test database engine."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # Ensure models are imported so tables are registered in SQLModel.metadata
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def directory():
    return FakeDirectory("alice", "bob", "carol", "dave")


@pytest.fixture
def store():
    from services.store import MemoryStore

    return MemoryStore()


@pytest.fixture
def relationships(store, directory):
    from services.relationships import RelationshipService

    return RelationshipService(store, directory, ignore_clears_sender=False)


@pytest.fixture
def test_app():
    """Create a test FastAPI application."""
    from app import create_app

    return create_app()


@pytest.fixture(scope="session")
def signing_key():
    """An RSA key pair: the private PEM and the published JWKS"""
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa
    from jose import jwk

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    public_jwk = jwk.construct(public_pem, "RS256").to_dict()
    public_jwk.update(kid="test-key", use="sig")
    return private_pem, {"keys": [public_jwk]}


@pytest.fixture
def make_token(signing_key):
    """Sign an access token for the given user"""
    from jose import jwt

    private_pem, _ = signing_key

    def _make_token(user_id, expires_in=3600, kid="test-key", **extra):
        claims = {"sub": user_id, "exp": int(time.time()) + expires_in, **extra}
        return jwt.encode(
            claims, private_pem, algorithm="RS256", headers={"kid": kid}
        )

    return _make_token


@pytest.fixture
def verifier(signing_key):
    """A token verifier reading the test JWKS without any network"""
    from services.auth import TokenVerifier

    _, jwks = signing_key
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=jwks))
    return TokenVerifier(client=httpx.AsyncClient(transport=transport))


@pytest.fixture
def client(test_app, relationships, directory, verifier):
    """Create a test client wired to the in-memory store and fake directory."""
    with patch("app.Directory", return_value=directory), patch(
        "app.build_store", return_value=relationships.store
    ), patch("app.TokenVerifier", return_value=verifier):
        with TestClient(test_app) as client:
            # the lifespan built its own service, use the fixture one
            test_app.state.relationships = relationships
            yield client


@pytest.fixture
def login(test_app):
    """Act as the given user id on the following requests"""
    from routes.deps import get_current_user_id

    def _login(user_id):
        test_app.dependency_overrides[get_current_user_id] = lambda: user_id

    yield _login
    test_app.dependency_overrides.pop(get_current_user_id, None)


def check_invariants(store):
    """Symmetry, pairing, exclusivity and no self relations.

    A request the receiver ignored stays outgoing on the sender side and is
    listed among the receiver's ignored senders instead of incoming ones.
    """
    from models.relationships import RelationKind, RecordKey

    records = store.dump()

    def members(kind, user_id):
        return records.get(RecordKey(kind, user_id), frozenset())

    for key, users in records.items():
        owner = key.user_id
        assert owner not in users, f"{owner} relates to itself in {key}"
        for other in users:
            match key.kind:
                case RelationKind.friends:
                    assert owner in members(RelationKind.friends, other)
                    for kind in (
                        RelationKind.outgoing,
                        RelationKind.incoming,
                        RelationKind.ignored,
                    ):
                        assert other not in members(kind, owner), f"{key} / {kind}"
                case RelationKind.outgoing:
                    incoming = owner in members(RelationKind.incoming, other)
                    ignored = owner in members(RelationKind.ignored, other)
                    assert incoming != ignored, f"{key}: {incoming=} {ignored=}"
                case RelationKind.incoming | RelationKind.ignored:
                    assert owner in members(RelationKind.outgoing, other), str(key)


@pytest.fixture
def invariants():
    return check_invariants


@pytest.fixture
def make_directory():
    return FakeDirectory
