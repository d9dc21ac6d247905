"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import fakeredis
import pytest

from ticket_claims.config import get_settings
from ticket_claims.contracts import ClaimKey
from ticket_claims.service import TicketClaimService
from ticket_claims.storage import LocalProcessStore, RemoteCoordinatedStore

REDIS_ENV = (
    "REDIS_HOST",
    "REDIS_PORT",
    "REDIS_DB",
    "REDIS_PASSWORD",
    "CLAIM_LOCK_TTL_SECONDS",
    "CLAIM_OPTIMISTIC_ATTEMPTS",
    "DEBUG_TICKET_REACTIONS",
)

FIXED_NOW = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch) -> None:
    """Start every test without Redis configured and with fresh settings."""
    for name in REDIS_ENV:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    """Fixed timestamp source."""
    return lambda: FIXED_NOW


@pytest.fixture
def key() -> ClaimKey:
    return ClaimKey(chat_id="chatA", notification_message_id="msg1")


@pytest.fixture
def local_store() -> LocalProcessStore:
    return LocalProcessStore()


@pytest.fixture
def local_service(local_store, clock) -> TicketClaimService:
    return TicketClaimService(local_store, clock=clock)


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """In-process Redis server shared by every client of one test."""
    return fakeredis.FakeServer()


@pytest.fixture
def make_remote_store(redis_server):
    """Factory for stores that behave like separate bot processes on one Redis."""

    def _make(**kwargs) -> RemoteCoordinatedStore:
        client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
        return RemoteCoordinatedStore(
            host="redis.test",
            port=6379,
            client=client,
            **kwargs,
        )

    return _make


@pytest.fixture
def remote_store(make_remote_store) -> RemoteCoordinatedStore:
    return make_remote_store()


@pytest.fixture
def redis_sync(redis_server) -> fakeredis.FakeRedis:
    """Synchronous client on the same server, for inspecting and tampering with keys."""
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def remote_service(remote_store, clock) -> TicketClaimService:
    return TicketClaimService(remote_store, clock=clock)
