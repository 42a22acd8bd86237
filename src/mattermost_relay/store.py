"""Local store for mirrored Mattermost state.

Provides the Store protocol the rest of the relay is written against,
and MemoryStore, a volatile in-memory implementation.

Contract:
- create_* always assigns a fresh local id and fails with
  DuplicateRecord on a unique-key violation (remote id, username).
  The store does not upsert; callers check for existence first.
- update_* returns the updated record, or None for an unknown id.
- Every operation is atomic: each collection has its own lock, so no
  partial write is ever observable.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from mattermost_relay import conventions
from mattermost_relay.errors import DuplicateRecord
from mattermost_relay.models import (
    DirectConversation,
    Message,
    ServerConfigRecord,
    User,
    utcnow,
)


@runtime_checkable
class Store(Protocol):
    """Storage contract used by the session registry and reconciler."""

    # Users
    def get_user(self, user_id: str) -> User | None: ...
    def get_user_by_username(self, username: str) -> User | None: ...
    def get_user_by_remote_id(self, remote_id: str) -> User | None: ...
    def get_user_by_session_token(self, token: str) -> User | None: ...
    def list_users(self) -> list[User]: ...
    def create_user(self, **fields: Any) -> User: ...
    def update_user(self, user_id: str, **updates: Any) -> User | None: ...

    # Direct conversations
    def get_direct_conversation(self, channel_id: str) -> DirectConversation | None: ...
    def list_direct_conversations_for(
        self, remote_user_id: str
    ) -> list[DirectConversation]: ...
    def create_direct_conversation(self, **fields: Any) -> DirectConversation: ...
    def update_direct_conversation(
        self, conversation_id: str, **updates: Any
    ) -> DirectConversation | None: ...

    # Messages
    def get_message(self, message_id: str) -> Message | None: ...
    def get_message_by_remote_id(self, remote_id: str) -> Message | None: ...
    def list_channel_messages(
        self, channel_id: str, limit: int = 50
    ) -> list[Message]: ...
    def create_message(self, **fields: Any) -> Message: ...
    def update_message(self, message_id: str, **updates: Any) -> Message | None: ...

    # Upstream server record
    def get_active_server_config(self) -> ServerConfigRecord | None: ...
    def create_server_config(self, **fields: Any) -> ServerConfigRecord: ...
    def update_server_config(
        self, config_id: str, **updates: Any
    ) -> ServerConfigRecord | None: ...


def _new_id() -> str:
    return str(uuid.uuid4())


def _sort_key(message: Message) -> datetime:
    return message.created_at


class MemoryStore:
    """In-memory Store. Contents are lost when the process exits."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._conversations: dict[str, DirectConversation] = {}
        self._messages: dict[str, Message] = {}
        self._server_configs: dict[str, ServerConfigRecord] = {}
        self._users_lock = threading.Lock()
        self._conversations_lock = threading.Lock()
        self._messages_lock = threading.Lock()
        self._server_configs_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User | None:
        with self._users_lock:
            return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> User | None:
        with self._users_lock:
            return next(
                (u for u in self._users.values() if u.username == username), None
            )

    def get_user_by_remote_id(self, remote_id: str) -> User | None:
        with self._users_lock:
            return next(
                (u for u in self._users.values() if u.remote_id == remote_id), None
            )

    def get_user_by_session_token(self, token: str) -> User | None:
        """Linear scan over users; fine for a small team."""
        if not token:
            return None
        with self._users_lock:
            return next(
                (u for u in self._users.values() if u.session_token == token), None
            )

    def list_users(self) -> list[User]:
        with self._users_lock:
            return list(self._users.values())

    def create_user(self, **fields: Any) -> User:
        with self._users_lock:
            remote_id = fields.get("remote_id")
            username = fields.get("username")
            for existing in self._users.values():
                if existing.remote_id == remote_id:
                    raise DuplicateRecord(f"User with remote id {remote_id} exists")
                if existing.username == username:
                    raise DuplicateRecord(f"Username {username!r} is taken")
            fields.setdefault("created_at", utcnow())
            user = User(id=_new_id(), **fields)
            self._users[user.id] = user
            return user

    def update_user(self, user_id: str, **updates: Any) -> User | None:
        with self._users_lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = replace(user, **updates)
            self._users[user_id] = updated
            return updated

    # ------------------------------------------------------------------
    # Direct conversations
    # ------------------------------------------------------------------

    def get_direct_conversation(self, channel_id: str) -> DirectConversation | None:
        with self._conversations_lock:
            return next(
                (
                    c
                    for c in self._conversations.values()
                    if c.channel_id == channel_id
                ),
                None,
            )

    def list_direct_conversations_for(
        self, remote_user_id: str
    ) -> list[DirectConversation]:
        with self._conversations_lock:
            return [
                c for c in self._conversations.values() if c.involves(remote_user_id)
            ]

    def create_direct_conversation(self, **fields: Any) -> DirectConversation:
        with self._conversations_lock:
            pair = {fields.get("user_id_1"), fields.get("user_id_2")}
            for existing in self._conversations.values():
                if {existing.user_id_1, existing.user_id_2} == pair:
                    raise DuplicateRecord(
                        f"Direct conversation {existing.id} already covers this pair"
                    )
            conversation = DirectConversation(id=_new_id(), **fields)
            self._conversations[conversation.id] = conversation
            return conversation

    def update_direct_conversation(
        self, conversation_id: str, **updates: Any
    ) -> DirectConversation | None:
        with self._conversations_lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return None
            updated = replace(conversation, **updates)
            self._conversations[conversation_id] = updated
            return updated

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def get_message(self, message_id: str) -> Message | None:
        with self._messages_lock:
            return self._messages.get(message_id)

    def get_message_by_remote_id(self, remote_id: str) -> Message | None:
        with self._messages_lock:
            return next(
                (m for m in self._messages.values() if m.remote_id == remote_id), None
            )

    def list_channel_messages(
        self,
        channel_id: str,
        limit: int = conventions.CHANNEL_MESSAGES_DEFAULT_LIMIT,
    ) -> list[Message]:
        """The last *limit* messages of a channel, oldest first."""
        with self._messages_lock:
            in_channel = [
                m for m in self._messages.values() if m.channel_id == channel_id
            ]
        in_channel.sort(key=_sort_key)
        return in_channel[-limit:] if limit > 0 else []

    def create_message(self, **fields: Any) -> Message:
        with self._messages_lock:
            remote_id = fields.get("remote_id")
            if any(m.remote_id == remote_id for m in self._messages.values()):
                raise DuplicateRecord(f"Message with remote id {remote_id} exists")
            now = utcnow()
            fields.setdefault("created_at", now)
            fields.setdefault("updated_at", fields["created_at"])
            message = Message(id=_new_id(), **fields)
            self._messages[message.id] = message
            return message

    def update_message(self, message_id: str, **updates: Any) -> Message | None:
        with self._messages_lock:
            message = self._messages.get(message_id)
            if message is None:
                return None
            updates["updated_at"] = utcnow()
            updated = replace(message, **updates)
            self._messages[message_id] = updated
            return updated

    # ------------------------------------------------------------------
    # Upstream server record
    # ------------------------------------------------------------------

    def get_active_server_config(self) -> ServerConfigRecord | None:
        with self._server_configs_lock:
            return next(
                (c for c in self._server_configs.values() if c.is_active), None
            )

    def create_server_config(self, **fields: Any) -> ServerConfigRecord:
        with self._server_configs_lock:
            record = ServerConfigRecord(id=_new_id(), **fields)
            self._server_configs[record.id] = record
            return record

    def update_server_config(
        self, config_id: str, **updates: Any
    ) -> ServerConfigRecord | None:
        with self._server_configs_lock:
            record = self._server_configs.get(config_id)
            if record is None:
                return None
            updated = replace(record, **updates)
            self._server_configs[config_id] = updated
            return updated
