"""Tests for SessionRegistry and AuthService.

Covers: bind/resolve/unbind, binding before the login result is
returned, re-login rebinding, logout invalidation, and recording of
the upstream server.
"""

import pytest

from mattermost_relay.client import MemoryMattermostClient
from mattermost_relay.errors import AuthenticationError, NotAuthenticated
from mattermost_relay.models import UserStatus

SERVER_URL = "https://chat.example.com"


class TestSessionRegistry:
    def test_resolve_unknown_token(self, registry):
        with pytest.raises(NotAuthenticated, match="Invalid token"):
            registry.resolve("nope")

    def test_resolve_missing_token(self, registry):
        with pytest.raises(NotAuthenticated, match="No authorization header"):
            registry.resolve(None)

    def test_resolve_by_stored_token(self, store, registry):
        user = store.create_user(remote_id="r1", username="alice", session_token="tok")
        assert registry.resolve("tok") == user.id
        assert registry.resolve_user("tok") == user

    def test_bind_and_client_for(self, registry, fake_server):
        client = MemoryMattermostClient(fake_server, "https://x")
        registry.bind("local-1", client)
        assert registry.client_for("local-1") is client
        assert registry.is_bound("local-1")
        assert len(registry) == 1

    def test_client_for_unbound(self, registry):
        with pytest.raises(NotAuthenticated, match="not available"):
            registry.client_for("local-1")

    def test_bind_replaces_and_clears_old_client(self, registry, fake_server):
        old = MemoryMattermostClient(fake_server, "https://x")
        old.set_token("old-token")
        new = MemoryMattermostClient(fake_server, "https://x")
        registry.bind("local-1", old)
        registry.bind("local-1", new)
        assert registry.client_for("local-1") is new
        assert old.token is None
        assert len(registry) == 1

    def test_unbind_absent_is_noop(self, registry):
        assert registry.unbind("nobody") is None

    def test_authenticate_requires_binding(self, store, registry):
        store.create_user(remote_id="r1", username="alice", session_token="tok")
        with pytest.raises(NotAuthenticated):
            registry.authenticate("tok")


class TestLogin:
    async def test_login_creates_online_user_and_binds(self, auth, registry, store):
        user, token = await auth.login("alice", "secret", SERVER_URL)

        assert user.username == "alice"
        assert user.status == UserStatus.ONLINE
        assert user.session_token == token
        assert user.first_name == "Alice"
        resolved, client = registry.authenticate(token)
        assert resolved.id == user.id
        assert client.is_authenticated
        assert client.server_url == SERVER_URL

    async def test_bad_credentials(self, auth, store, registry):
        with pytest.raises(AuthenticationError):
            await auth.login("alice", "wrong", SERVER_URL)
        assert store.list_users() == []
        assert len(registry) == 0

    async def test_relogin_rebinds(self, auth, registry, store):
        first, token1 = await auth.login("alice", "secret", SERVER_URL)
        second, token2 = await auth.login("alice", "secret", SERVER_URL)

        assert token1 != token2
        assert first.id == second.id
        assert len(store.list_users()) == 1
        with pytest.raises(NotAuthenticated):
            registry.resolve(token1)
        assert registry.resolve(token2) == second.id

    async def test_login_updates_previously_synced_user(self, auth, store, fake_server):
        bob = fake_server.user_by_name("bob")
        store.create_user(remote_id=bob.id, username="bob", email="old@example.com")

        user, _ = await auth.login("bob", "secret", SERVER_URL)

        assert len(store.list_users()) == 1
        assert user.email == "bob@example.com"
        assert user.status == UserStatus.ONLINE

    async def test_first_login_records_server(self, auth, store):
        await auth.login("alice", "secret", SERVER_URL + "/")
        await auth.login("bob", "secret", "https://other.example.com")
        record = store.get_active_server_config()
        assert record.server_url == SERVER_URL
        assert record.api_version == "v4"


class TestLogout:
    async def test_logout_clears_token_and_binding(self, auth, registry, store):
        user, token = await auth.login("alice", "secret", SERVER_URL)
        client = registry.client_for(user.id)

        auth.logout(token)

        stored = store.get_user(user.id)
        assert stored.session_token is None
        assert stored.status == UserStatus.OFFLINE
        assert not registry.is_bound(user.id)
        assert client.token is None
        with pytest.raises(NotAuthenticated):
            auth.current_user(token)

    async def test_logout_unknown_token(self, auth):
        with pytest.raises(NotAuthenticated):
            auth.logout("nope")
