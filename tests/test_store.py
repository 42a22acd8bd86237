"""Tests for MemoryStore.

Covers: unique-key constraints, lookups, update semantics, channel
message listing, server config records, and atomicity under threads.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest

from mattermost_relay.errors import DuplicateRecord
from mattermost_relay.models import User, UserStatus
from mattermost_relay.store import MemoryStore, Store


def _user(store, remote_id="r1", username="alice", **fields):
    return store.create_user(remote_id=remote_id, username=username, **fields)


class TestStoreProtocol:
    def test_memory_store_implements_protocol(self):
        assert isinstance(MemoryStore(), Store)


class TestUsers:
    def test_create_assigns_fresh_local_id(self, store):
        a = _user(store, "r1", "alice")
        b = _user(store, "r2", "bob")
        assert a.id and b.id
        assert a.id != b.id
        assert isinstance(a, User)

    def test_create_defaults(self, store):
        user = _user(store)
        assert user.status == UserStatus.OFFLINE
        assert user.session_token is None
        assert user.created_at is not None

    def test_duplicate_remote_id_rejected(self, store):
        _user(store, "r1", "alice")
        with pytest.raises(DuplicateRecord):
            _user(store, "r1", "alice2")

    def test_duplicate_username_rejected(self, store):
        _user(store, "r1", "alice")
        with pytest.raises(DuplicateRecord):
            _user(store, "r2", "alice")

    def test_lookups(self, store):
        user = _user(store, "r1", "alice", session_token="tok")
        assert store.get_user(user.id) == user
        assert store.get_user_by_remote_id("r1") == user
        assert store.get_user_by_username("alice") == user
        assert store.get_user_by_session_token("tok") == user

    def test_lookups_miss(self, store):
        assert store.get_user("nope") is None
        assert store.get_user_by_remote_id("nope") is None
        assert store.get_user_by_username("nope") is None
        assert store.get_user_by_session_token("nope") is None

    def test_empty_token_never_matches(self, store):
        _user(store)  # session_token None
        assert store.get_user_by_session_token("") is None

    def test_update_returns_new_record(self, store):
        user = _user(store)
        updated = store.update_user(user.id, status=UserStatus.ONLINE)
        assert updated is not None
        assert updated.status == UserStatus.ONLINE
        assert store.get_user(user.id).status == UserStatus.ONLINE
        assert updated.remote_id == user.remote_id

    def test_update_unknown_returns_none(self, store):
        assert store.update_user("missing", status=UserStatus.AWAY) is None

    def test_concurrent_creates_yield_one_user(self, store):
        def attempt(_):
            try:
                return _user(store, "r1", "alice")
            except DuplicateRecord:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(32)))

        assert sum(r is not None for r in results) == 1
        assert len(store.list_users()) == 1


class TestDirectConversations:
    def _create(self, store, a="ra", b="rb", channel="ch1"):
        return store.create_direct_conversation(
            channel_id=channel, user_id_1=a, user_id_2=b
        )

    def test_create_and_get_by_channel(self, store):
        conv = self._create(store)
        assert store.get_direct_conversation("ch1") == conv
        assert conv.unread_count == "0"

    def test_list_for_either_participant(self, store):
        conv = self._create(store)
        assert store.list_direct_conversations_for("ra") == [conv]
        assert store.list_direct_conversations_for("rb") == [conv]
        assert store.list_direct_conversations_for("rc") == []

    def test_pair_is_unordered_and_unique(self, store):
        self._create(store, "ra", "rb", "ch1")
        with pytest.raises(DuplicateRecord):
            self._create(store, "rb", "ra", "ch2")

    def test_update(self, store):
        conv = self._create(store)
        when = datetime(2026, 1, 1, tzinfo=UTC)
        updated = store.update_direct_conversation(conv.id, last_message_at=when)
        assert updated.last_message_at == when
        assert store.update_direct_conversation("missing", unread_count="3") is None


class TestMessages:
    def _create(self, store, remote_id, channel="ch1", created_at=None):
        fields = {}
        if created_at is not None:
            fields["created_at"] = created_at
        return store.create_message(
            remote_id=remote_id,
            channel_id=channel,
            user_id="ra",
            content=f"post {remote_id}",
            **fields,
        )

    def test_create_keeps_given_timestamps(self, store):
        created = datetime(2026, 3, 1, tzinfo=UTC)
        msg = self._create(store, "p1", created_at=created)
        assert msg.created_at == created
        assert msg.updated_at == created
        assert msg.kind == "text"

    def test_duplicate_remote_id_rejected(self, store):
        self._create(store, "p1")
        with pytest.raises(DuplicateRecord):
            self._create(store, "p1")

    def test_lookup_by_remote_id(self, store):
        msg = self._create(store, "p1")
        assert store.get_message_by_remote_id("p1") == msg
        assert store.get_message(msg.id) == msg
        assert store.get_message_by_remote_id("p2") is None

    def test_update_refreshes_updated_at(self, store):
        old = datetime(2020, 1, 1, tzinfo=UTC)
        msg = self._create(store, "p1", created_at=old)
        updated = store.update_message(msg.id, content="edited")
        assert updated.content == "edited"
        assert updated.updated_at > old
        assert updated.created_at == old

    def test_list_channel_messages_oldest_first_last_n(self, store):
        base = datetime(2026, 1, 1, tzinfo=UTC)
        for i in (3, 1, 4, 0, 2):
            self._create(store, f"p{i}", created_at=base + timedelta(minutes=i))
        self._create(store, "other", channel="ch2")

        listed = store.list_channel_messages("ch1", limit=3)
        assert [m.remote_id for m in listed] == ["p2", "p3", "p4"]
        assert len(store.list_channel_messages("ch1")) == 5


class TestServerConfig:
    def test_none_until_created(self, store):
        assert store.get_active_server_config() is None

    def test_create_and_deactivate(self, store):
        record = store.create_server_config(server_url="https://x", is_active=True)
        assert store.get_active_server_config() == record
        store.update_server_config(record.id, is_active=False)
        assert store.get_active_server_config() is None
