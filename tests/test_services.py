"""Server services layer tests.

init_services() builds the shared store, session registry, auth service
and reconciler once; routes reach them through get_services().
"""

import pytest

from mattermost_relay.client import (
    HttpMattermostClient,
    MemoryMattermostClient,
    MemoryMattermostServer,
)
from mattermost_relay.schema import RelayConfig
from mattermost_relay.server.services import (
    get_services,
    http_client_factory,
    init_services,
    reset_services,
)
from mattermost_relay.store import MemoryStore


@pytest.fixture(autouse=True)
def _clean_services():
    reset_services()
    yield
    reset_services()


class TestInitServices:
    def test_get_before_init_raises(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            get_services()

    def test_get_returns_initialized_instance(self):
        services = init_services()
        assert get_services() is services

    def test_dev_mode_seeds_fake_server(self):
        services = init_services(dev_mode=True)
        assert services.dev_mode is True
        assert services.fake_server is not None
        assert services.fake_server.user_by_name("alice") is not None

    def test_production_mode_has_no_fake_server(self):
        services = init_services()
        assert services.fake_server is None

    def test_custom_store_injected(self):
        store = MemoryStore()
        services = init_services(store=store)
        assert services.store is store

    def test_reconciler_uses_configured_page_sizes(self):
        cfg = RelayConfig()
        cfg.mattermost.users_per_page = 10
        services = init_services(config=cfg)
        assert services.reconciler._users_per_page == 10

    async def test_dev_mode_login_uses_memory_client(self):
        server = MemoryMattermostServer.with_demo_accounts()
        services = init_services(dev_mode=True, fake_server=server)
        _user, token = await services.auth.login(
            "bob", "secret", "https://chat.example.com"
        )
        _, client = services.registry.authenticate(token)
        assert isinstance(client, MemoryMattermostClient)
        assert server.calls_to("login")


class TestHttpClientFactory:
    def test_builds_http_client_with_config(self):
        cfg = RelayConfig()
        cfg.mattermost.request_timeout = 3.0
        client = http_client_factory(cfg)("https://chat.example.com/")
        assert isinstance(client, HttpMattermostClient)
        assert client.server_url == "https://chat.example.com"
        assert client.api_url == "https://chat.example.com/api/v4"
