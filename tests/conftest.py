"""Shared test fixtures for mattermost-relay tests."""

from pathlib import Path

import pytest
from starlette.testclient import TestClient

from mattermost_relay.auth import AuthService
from mattermost_relay.client import MemoryMattermostServer
from mattermost_relay.server.services import (
    init_services,
    memory_client_factory,
    reset_services,
)
from mattermost_relay.sessions import SessionRegistry
from mattermost_relay.store import MemoryStore
from mattermost_relay.sync import SyncReconciler

SERVER_URL = "https://chat.example.com"


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fake_server() -> MemoryMattermostServer:
    """In-memory Mattermost seeded with alice, bob and carol (password 'secret')."""
    return MemoryMattermostServer.with_demo_accounts()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def registry(store) -> SessionRegistry:
    return SessionRegistry(store)


@pytest.fixture
def auth(store, registry, fake_server) -> AuthService:
    return AuthService(store, registry, memory_client_factory(fake_server))


@pytest.fixture
def reconciler(store) -> SyncReconciler:
    return SyncReconciler(store)


@pytest.fixture
async def alice(auth, registry):
    """Log alice in. Returns (user, bound client)."""
    user, token = await auth.login("alice", "secret", SERVER_URL)
    return registry.authenticate(token)


@pytest.fixture
def relay_client(fake_server):
    """TestClient for the full relay app wired to the in-memory Mattermost."""
    from mattermost_relay.server.app import RelayServer

    reset_services()
    init_services(dev_mode=True, fake_server=fake_server)
    server = RelayServer(dev_mode=True)
    yield TestClient(server.app)
    reset_services()
