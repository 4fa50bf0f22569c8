"""
NoteSync — Test Configuration (conftest.py)
===========================================

Shared fixtures for the whole suite.

Fixture Overview:
    test_settings     Settings pointed at a per-test temporary directory
    store / registry / gateway / sync_service
                      engine components built from test_settings
    make_subscriber   factory for Subscribers that record what they receive
    app               FastAPI application with an isolated engine
    test_client       HTTPX AsyncClient (no lifespan) for HTTP endpoints
    ws_client         Starlette TestClient (runs lifespan) for WebSockets
"""

import os
import tempfile
from typing import Any, Callable, Dict, List, Tuple

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any app import so the default app never touches ./data
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="notesync_test_")
os.environ["LOG_LEVEL"] = "WARNING"

from notesync.config import Settings  # noqa: E402
from notesync.main import create_app  # noqa: E402
from notesync.services.note_store import NoteStore  # noqa: E402
from notesync.services.persistence import PersistenceGateway  # noqa: E402
from notesync.services.subscriptions import Subscriber, SubscriptionRegistry  # noqa: E402
from notesync.services.sync_service import SyncService  # noqa: E402


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        storage_root=str(tmp_path / "data"),
        save_retry_attempts=2,
        save_retry_min_wait=0,
        save_retry_max_wait=0,
        rate_limit_requests=1000,
        send_timeout_seconds=0.2,
        log_level="WARNING",
    )


@pytest.fixture
def store(test_settings) -> NoteStore:
    return NoteStore(
        id_length=test_settings.note_id_length,
        max_content_length=test_settings.max_content_length,
    )


@pytest.fixture
def registry(test_settings) -> SubscriptionRegistry:
    return SubscriptionRegistry(send_timeout=test_settings.send_timeout_seconds)


@pytest.fixture
def gateway(test_settings) -> PersistenceGateway:
    return PersistenceGateway(
        test_settings.snapshot_path,
        id_length=test_settings.note_id_length,
        retry_attempts=test_settings.save_retry_attempts,
        retry_min_wait=0,
        retry_max_wait=0,
    )


@pytest.fixture
def sync_service(store, registry, gateway) -> SyncService:
    return SyncService(store, registry, gateway)


@pytest.fixture
def make_subscriber() -> Callable[[], Tuple[Subscriber, List[Dict[str, Any]]]]:
    """
    Factory returning (subscriber, inbox); every delivered message is appended
    to inbox.

    Usage:
        sub, inbox = make_subscriber()
        registry.join("ab12cd", sub)
    """

    def factory() -> Tuple[Subscriber, List[Dict[str, Any]]]:
        inbox: List[Dict[str, Any]] = []

        async def send(message: Dict[str, Any]) -> None:
            inbox.append(message)

        return Subscriber(send), inbox

    return factory


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX client talking to the app in-process.

    ASGITransport does not send lifespan events, so the engine is used
    without loading a snapshot or starting timers.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def ws_client(app):
    """TestClient with lifespan: the engine is started and stopped around the test."""
    with TestClient(app) as client:
        yield client
