import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ["PRESENCE_BACKEND"] = "memory"
os.environ.setdefault("JWT_SECRET", "test-secret-key")

import random

import pytest
from fastapi.testclient import TestClient

from config import reset_config

reset_config()

from finsphere import models
from finsphere.auth import IdentityVerifier
from finsphere.errors import AuthenticationError
from finsphere.presence import InMemoryPresenceRegistry
from finsphere.server import app, init_state

API = "/api/v1"


class FakeIdentityVerifier(IdentityVerifier):
    """Identity platform stand-in: tokens are registered up front"""

    enabled = True

    def __init__(self):
        self.tokens = {}

    def issue(self, uid: str, email: str) -> str:
        token = f"idp-token-{uid}"
        self.tokens[token] = {"uid": uid, "email": email, "email_verified": True}
        return token

    def verify(self, token: str) -> dict:
        claims = self.tokens.get(token)
        if claims is None:
            raise AuthenticationError("Invalid token")
        return dict(claims)


class APIClient:
    """API client for making requests"""

    def __init__(self, client: TestClient):
        self.client = client

    def make_request(self, method, endpoint, data=None, params=None, expected_status=200, token=None):
        """Make HTTP request and fail the test on an unexpected status"""
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        response = self.client.request(method.upper(), f"{API}{endpoint}", json=data, params=params,
                                       headers=headers)

        if response.status_code != expected_status:
            pytest.fail(f"Expected {expected_status}, got {response.status_code}: {response.text}")

        if response.headers.get('content-type', '').startswith('application/json'):
            return response.json()
        return response.text

    def register(self, first_name="Test", last_name="User", interests=None, **extra):
        user_data = {
            "email": f"test{random.randint(100000, 999999)}@example.com",
            "password": "testpass123",
            "first_name": first_name,
            "last_name": last_name,
            "interests": interests or [],
        }
        user_data.update(extra)
        body = self.make_request("POST", "/auth/register", user_data, expected_status=201)
        return body["data"]["user"], body["data"]["access_token"]


@pytest.fixture
def database():
    db = models.Database("sqlite://")
    db.create_all()
    yield db
    db.drop_all()
    db.engine.dispose()


@pytest.fixture
def session(database):
    db_session = database.get_session()
    yield db_session
    db_session.close()


@pytest.fixture
def identity_verifier():
    return FakeIdentityVerifier()


@pytest.fixture
def presence():
    return InMemoryPresenceRegistry()


@pytest.fixture
def client(database, identity_verifier, presence):
    init_state(app, database=database, registry=presence, verifier=identity_verifier)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_client(client):
    return APIClient(client)


@pytest.fixture
def make_user(session):
    """Insert an active user directly; used by module-level tests that skip HTTP"""
    counter = {"n": 0}

    def _make(first_name="User", last_name=None, interests=None, city=None, state=None, **extra):
        counter["n"] += 1
        n = counter["n"]
        user = models.UserAccount(
            auth_id=f"test-auth-{n}",
            email=f"user{n}@example.com",
            first_name=first_name,
            last_name=last_name or str(n),
            interests=interests or [],
            city=city,
            state=state,
            **extra,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make
