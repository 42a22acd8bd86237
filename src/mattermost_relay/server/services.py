"""Server-level shared services (composition root).

The server creates ONE set of services at startup and shares them with
every route. Nothing is created at import time.

Usage:
    # At server startup (in cli.py):
    from mattermost_relay.server.services import init_services
    services = init_services(config=cfg)

    # In route handlers:
    services = get_services()
    user, client = services.registry.authenticate(token)

    # In tests:
    services = init_services(dev_mode=True)
    # ... run tests ...
    reset_services()
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from mattermost_relay.auth import AuthService, ClientFactory
from mattermost_relay.client import (
    HttpMattermostClient,
    MemoryMattermostClient,
    MemoryMattermostServer,
)
from mattermost_relay.schema import RelayConfig
from mattermost_relay.sessions import SessionRegistry
from mattermost_relay.store import MemoryStore, Store
from mattermost_relay.sync import SyncReconciler

logger = logging.getLogger(__name__)

# Module-level singleton
_instance: ServerServices | None = None
_instance_lock = threading.Lock()


@dataclass
class ServerServices:
    """Shared services available to all routes.

    Attributes:
        config: Effective relay configuration
        store: Local store of mirrored state
        registry: Session token -> Mattermost client bindings
        auth: Login/logout orchestration
        reconciler: Remote-to-local sync
        dev_mode: Whether the in-process fake Mattermost is wired in
        fake_server: The fake Mattermost server (dev mode only)
    """

    config: RelayConfig
    store: Store
    registry: SessionRegistry
    auth: AuthService
    reconciler: SyncReconciler
    dev_mode: bool = False
    fake_server: MemoryMattermostServer | None = None


def http_client_factory(config: RelayConfig) -> ClientFactory:
    """Factory producing real HTTP clients with the configured timeout."""
    mm = config.mattermost

    def factory(server_url: str) -> HttpMattermostClient:
        return HttpMattermostClient(
            server_url,
            timeout=mm.request_timeout,
            api_version=mm.api_version,
        )

    return factory


def memory_client_factory(server: MemoryMattermostServer) -> ClientFactory:
    """Factory producing clients bound to an in-process fake server."""

    def factory(server_url: str) -> MemoryMattermostClient:
        return MemoryMattermostClient(server, server_url)

    return factory


def init_services(
    *,
    config: RelayConfig | None = None,
    dev_mode: bool = False,
    store: Store | None = None,
    client_factory: ClientFactory | None = None,
    fake_server: MemoryMattermostServer | None = None,
) -> ServerServices:
    """Initialize server services. Called once at server startup.

    Args:
        config: Relay configuration. Defaults to schema defaults.
        dev_mode: Talk to an in-process fake Mattermost instead of HTTP.
        store: Override the store (for testing).
        client_factory: Override how Mattermost clients are built (for testing).
        fake_server: Fake Mattermost to use in dev mode.

    Returns:
        The initialized ServerServices instance.
    """
    global _instance

    config = config or RelayConfig()
    store = store or MemoryStore()

    if client_factory is None:
        if dev_mode:
            fake_server = fake_server or MemoryMattermostServer.with_demo_accounts()
            client_factory = memory_client_factory(fake_server)
            logger.info("Server services: using in-memory Mattermost (dev mode)")
        else:
            client_factory = http_client_factory(config)
            logger.info(
                "Server services: using Mattermost HTTP API (timeout %.1fs)",
                config.mattermost.request_timeout,
            )

    registry = SessionRegistry(store)
    services = ServerServices(
        config=config,
        store=store,
        registry=registry,
        auth=AuthService(store, registry, client_factory),
        reconciler=SyncReconciler(
            store,
            users_per_page=config.mattermost.users_per_page,
            posts_per_page=config.mattermost.posts_per_page,
        ),
        dev_mode=dev_mode,
        fake_server=fake_server,
    )

    with _instance_lock:
        _instance = services
        return _instance


def get_services() -> ServerServices:
    """Get the shared services instance.

    Raises RuntimeError if services haven't been initialized.
    """
    with _instance_lock:
        if _instance is None:
            raise RuntimeError(
                "Server services not initialized. Call init_services() first."
            )
        return _instance


def reset_services() -> None:
    """Reset services (for testing). Not for production use."""
    global _instance
    with _instance_lock:
        _instance = None
