"""Session registry - binds local users to authenticated Mattermost clients.

The registry is the single authority for "which Mattermost client serves
this request". A session token resolves to a local User through the
store (the token lives on the User record); the User's local id then
maps to exactly one bound MattermostClient.

Lifecycle:
- bind() on login, replacing any earlier client for the same user
- unbind() on logout
Bindings are not persisted. After a restart users log in again.
"""

from __future__ import annotations

import logging
import threading

from mattermost_relay.client import MattermostClient
from mattermost_relay.errors import NotAuthenticated
from mattermost_relay.models import User
from mattermost_relay.store import Store

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps local user id -> authenticated MattermostClient."""

    def __init__(self, store: Store) -> None:
        self._store = store
        self._clients: dict[str, MattermostClient] = {}
        self._lock = threading.Lock()

    def bind(self, local_user_id: str, client: MattermostClient) -> None:
        """Bind *client* to a user, replacing any previous binding."""
        with self._lock:
            previous = self._clients.get(local_user_id)
            self._clients[local_user_id] = client
        if previous is not None and previous is not client:
            previous.clear_token()
            logger.info("Replaced Mattermost client for user %s", local_user_id)

    def unbind(self, local_user_id: str) -> MattermostClient | None:
        """Remove a user's binding. Returns the removed client, if any."""
        with self._lock:
            return self._clients.pop(local_user_id, None)

    def is_bound(self, local_user_id: str) -> bool:
        with self._lock:
            return local_user_id in self._clients

    def client_for(self, local_user_id: str) -> MattermostClient:
        with self._lock:
            client = self._clients.get(local_user_id)
        if client is None:
            raise NotAuthenticated("Mattermost service not available")
        return client

    def resolve_user(self, session_token: str | None) -> User:
        """The User whose current session token is *session_token*."""
        if not session_token:
            raise NotAuthenticated("No authorization header")
        user = self._store.get_user_by_session_token(session_token)
        if user is None:
            raise NotAuthenticated("Invalid token")
        return user

    def resolve(self, session_token: str | None) -> str:
        """Resolve a session token to a local user id."""
        return self.resolve_user(session_token).id

    def authenticate(self, session_token: str | None) -> tuple[User, MattermostClient]:
        """Resolve a token to its User and that user's bound client."""
        user = self.resolve_user(session_token)
        return user, self.client_for(user.id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
