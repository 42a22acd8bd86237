"""Login, logout and current-user handling.

Login creates a fresh MattermostClient for the requested server,
authenticates it, mirrors the remote account into the local store and
binds the client to the local user before anything is returned to the
caller, so a token handed out always has a client behind it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from mattermost_relay import conventions
from mattermost_relay.client import MattermostClient
from mattermost_relay.errors import DuplicateRecord, RelayError
from mattermost_relay.models import RemoteUser, User, UserStatus
from mattermost_relay.sessions import SessionRegistry
from mattermost_relay.store import Store

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], MattermostClient]


class AuthService:
    def __init__(
        self,
        store: Store,
        registry: SessionRegistry,
        client_factory: ClientFactory,
    ) -> None:
        self._store = store
        self._registry = registry
        self._client_factory = client_factory
        self._lock = threading.Lock()

    async def login(
        self, username: str, password: str, server_url: str
    ) -> tuple[User, str]:
        """Authenticate against *server_url*. Returns (local user, token).

        Raises AuthenticationError on bad credentials and UpstreamError
        when the server cannot be reached.
        """
        client = self._client_factory(server_url)
        try:
            remote_user, token = await client.login(username, password)
        except RelayError:
            logger.info("Login failed for %s at %s", username, client.server_url)
            raise

        user = self._upsert_logged_in_user(remote_user, token)
        self._registry.bind(user.id, client)
        self._record_server(client.server_url)
        logger.info("User %s logged in (local id %s)", user.username, user.id)
        return user, token

    def _upsert_logged_in_user(self, remote_user: RemoteUser, token: str) -> User:
        profile = {
            "session_token": token,
            "status": UserStatus.ONLINE,
            "first_name": remote_user.first_name or None,
            "last_name": remote_user.last_name or None,
            "email": remote_user.email,
        }
        with self._lock:
            user = self._store.get_user_by_remote_id(remote_user.id)
            if user is None:
                try:
                    return self._store.create_user(
                        remote_id=remote_user.id,
                        username=remote_user.username,
                        **profile,
                    )
                except DuplicateRecord:
                    user = self._store.get_user_by_remote_id(remote_user.id)
                    if user is None:
                        raise
            updated = self._store.update_user(user.id, **profile)
            assert updated is not None
            return updated

    def _record_server(self, server_url: str) -> None:
        if self._store.get_active_server_config() is not None:
            return
        self._store.create_server_config(
            server_url=server_url,
            api_version=conventions.UPSTREAM_API_VERSION,
            is_active=True,
        )
        logger.info("Recorded Mattermost server %s", server_url)

    def logout(self, session_token: str | None) -> User:
        """End the session behind *session_token*.

        Clears the stored token, marks the user offline and drops the
        bound client. Raises NotAuthenticated for unknown tokens.
        """
        user = self._registry.resolve_user(session_token)
        updated = self._store.update_user(
            user.id, session_token=None, status=UserStatus.OFFLINE
        )
        client = self._registry.unbind(user.id)
        if client is not None:
            client.clear_token()
        logger.info("User %s logged out", user.username)
        return updated or user

    def current_user(self, session_token: str | None) -> User:
        return self._registry.resolve_user(session_token)
