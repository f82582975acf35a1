"""Shared test fixtures and configuration for backend tests."""
import uuid

import pytest
from fastapi.testclient import TestClient

from app.auth.tokens import Identity, TokenVerifier
from app.config import AppConfig, JWTSecrets, Secrets, StoreSettings
from app.main import create_app
from app.realtime.broadcaster import Connection

TEST_SECRET = "test-secret-key"


class FakeWebSocket:
    """Records frames sent to it; optionally fails every send."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail
        self.closed = False

    async def send_json(self, data: dict) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = None) -> None:
        self.closed = True


@pytest.fixture
def config():
    """App config using the in-memory store and a fixed JWT secret."""
    return AppConfig(
        store=StoreSettings(backend="memory"),
        secrets=Secrets(jwt=JWTSecrets(secret_key=TEST_SECRET)),
    )


@pytest.fixture
def verifier(config):
    return TokenVerifier.from_config(config)


@pytest.fixture
def make_token(verifier):
    """Issue a valid token for a user ID."""
    def _make(user_id: str, email: str = None) -> str:
        return verifier.issue(user_id, email or f"{user_id}@example.com")
    return _make


@pytest.fixture
def api_client(config):
    """TestClient with the application lifespan running (in-memory store)."""
    with TestClient(create_app(config)) as client:
        yield client


@pytest.fixture
def make_connection():
    """Build a Connection for a user, backed by a FakeWebSocket."""
    def _make(user_id: str, fail: bool = False) -> Connection:
        return Connection(
            session_id=str(uuid.uuid4()),
            identity=Identity(user_id=user_id, email=f"{user_id}@example.com"),
            websocket=FakeWebSocket(fail=fail),
        )
    return _make
