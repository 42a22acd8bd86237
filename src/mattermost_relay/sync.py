"""Sync reconciler - merges Mattermost state into the local store.

Every read that needs fresh data pulls from the user's MattermostClient
and merges the result into the Store, keyed by Mattermost ids so a
remote object is mirrored at most once no matter how often it is seen.

Merge rules:
- Users: unknown remote users are created with status "offline". Only
  the logged-in user's own status is known; the rest stay offline until
  something fetches their status.
- Direct conversations: an existing record for the unordered participant
  pair is reused without calling Mattermost.
- Messages: each post id in the order array is looked up in the posts
  map (ids missing from the map are skipped), created locally if absent,
  and the result is sorted by creation time, oldest first.

A remote failure aborts the operation with UpstreamError. Records
created before the failure stay; a retry skips them by remote id.

Check-then-create sections never await, and run under a per-collection
lock, so concurrent polls cannot both create the same record.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from mattermost_relay import conventions
from mattermost_relay.client import MattermostClient
from mattermost_relay.errors import DuplicateRecord, NotFound
from mattermost_relay.models import (
    DirectConversation,
    Message,
    RemotePost,
    RemoteUser,
    User,
    UserStatus,
    utcnow,
)
from mattermost_relay.store import Store

logger = logging.getLogger(__name__)


@dataclass
class ConversationView:
    """A direct conversation joined with the other participant."""

    conversation: DirectConversation
    other_user: User | None


@dataclass
class MessageView:
    """A message joined with its author (None if never synced)."""

    message: Message
    user: User | None


class SyncReconciler:
    """Pulls Mattermost state and merges it into the Store."""

    def __init__(
        self,
        store: Store,
        *,
        users_per_page: int = conventions.UPSTREAM_USERS_PER_PAGE,
        posts_per_page: int = conventions.UPSTREAM_POSTS_PER_PAGE,
    ) -> None:
        self._store = store
        self._users_per_page = users_per_page
        self._posts_per_page = posts_per_page
        self._users_lock = threading.Lock()
        self._conversations_lock = threading.Lock()
        self._messages_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def sync_users(self, requester: User, client: MattermostClient) -> list[User]:
        """Mirror remote users, return every known user except *requester*."""
        remote_users = await client.list_users(self._users_per_page)

        created = 0
        with self._users_lock:
            for remote_user in remote_users:
                if remote_user.id == requester.remote_id:
                    continue
                if self._store.get_user_by_remote_id(remote_user.id) is not None:
                    continue
                if self._create_user(remote_user) is not None:
                    created += 1
        if created:
            logger.info("Synced %d new user(s) from Mattermost", created)

        return [u for u in self._store.list_users() if u.id != requester.id]

    def _create_user(self, remote_user: RemoteUser) -> User | None:
        try:
            return self._store.create_user(
                remote_id=remote_user.id,
                username=remote_user.username,
                email=remote_user.email,
                first_name=remote_user.first_name or None,
                last_name=remote_user.last_name or None,
                status=UserStatus.OFFLINE,
            )
        except DuplicateRecord as exc:
            # Same remote id raced in, or a username clash with another account.
            logger.warning("Skipping remote user %s: %s", remote_user.id, exc)
            return None

    # ------------------------------------------------------------------
    # Direct conversations
    # ------------------------------------------------------------------

    def list_direct_conversations(self, requester: User) -> list[ConversationView]:
        """The requester's conversations, each joined with the other user."""
        return [
            self._view(conversation, requester)
            for conversation in self._store.list_direct_conversations_for(
                requester.remote_id
            )
        ]

    def _view(
        self, conversation: DirectConversation, requester: User
    ) -> ConversationView:
        other_id = conversation.other_participant(requester.remote_id)
        return ConversationView(
            conversation=conversation,
            other_user=self._store.get_user_by_remote_id(other_id),
        )

    def _find_conversation(
        self, requester: User, other_remote_id: str
    ) -> DirectConversation | None:
        for conversation in self._store.list_direct_conversations_for(
            requester.remote_id
        ):
            if conversation.is_between(requester.remote_id, other_remote_id):
                return conversation
        return None

    async def open_direct_conversation(
        self,
        requester: User,
        client: MattermostClient,
        other_remote_id: str,
    ) -> ConversationView:
        """Return the conversation with *other_remote_id*, creating it once.

        Raises NotFound when the other user has never been synced.
        """
        other_user = self._store.get_user_by_remote_id(other_remote_id)
        if other_user is None:
            raise NotFound("User not found")

        existing = self._find_conversation(requester, other_remote_id)
        if existing is not None:
            return ConversationView(conversation=existing, other_user=other_user)

        channel = await client.get_or_create_direct_channel(
            requester.remote_id, other_remote_id
        )

        with self._conversations_lock:
            existing = self._find_conversation(requester, other_remote_id)
            if existing is None:
                try:
                    existing = self._store.create_direct_conversation(
                        channel_id=channel.id,
                        user_id_1=requester.remote_id,
                        user_id_2=other_remote_id,
                        last_message_at=utcnow(),
                        unread_count=conventions.DEFAULT_UNREAD_COUNT,
                    )
                    logger.info(
                        "Opened direct conversation %s (channel %s)",
                        existing.id,
                        channel.id,
                    )
                except DuplicateRecord:
                    existing = self._find_conversation(requester, other_remote_id)
                    if existing is None:
                        raise
        return ConversationView(conversation=existing, other_user=other_user)

    def _touch_conversation(self, channel_id: str, when: datetime) -> None:
        conversation = self._store.get_direct_conversation(channel_id)
        if conversation is None:
            return
        if conversation.last_message_at is None or conversation.last_message_at < when:
            self._store.update_direct_conversation(
                conversation.id, last_message_at=when
            )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _mirror_post(self, post: RemotePost, channel_id: str) -> tuple[Message, bool]:
        """Return the local Message for *post*, creating it if absent.

        Caller holds the messages lock. The bool is True when created.
        """
        message = self._store.get_message_by_remote_id(post.id)
        if message is not None:
            return message, False
        try:
            message = self._store.create_message(
                remote_id=post.id,
                channel_id=post.channel_id or channel_id,
                user_id=post.user_id,
                content=post.message,
                kind=conventions.MESSAGE_KIND_TEXT,
                metadata=post.props,
                created_at=post.created,
                updated_at=post.updated,
            )
        except DuplicateRecord:
            message = self._store.get_message_by_remote_id(post.id)
            if message is None:
                raise
            return message, False
        return message, True

    async def sync_channel_messages(
        self,
        client: MattermostClient,
        channel_id: str,
        page: int = 0,
    ) -> list[MessageView]:
        """Mirror a page of channel posts. Result is oldest first."""
        post_list = await client.list_channel_posts(
            channel_id, page, self._posts_per_page
        )

        messages: list[Message] = []
        seen: set[str] = set()
        created = 0
        with self._messages_lock:
            for post_id in post_list.order:
                post = post_list.posts.get(post_id)
                if post is None:
                    logger.debug("Post %s in order but not in posts map", post_id)
                    continue
                if post.id in seen:
                    continue
                seen.add(post.id)
                message, was_created = self._mirror_post(post, channel_id)
                created += was_created
                messages.append(message)

        if created:
            logger.info("Synced %d new message(s) in channel %s", created, channel_id)
            self._touch_conversation(
                channel_id, max(m.created_at for m in messages)
            )

        messages.sort(key=lambda m: m.created_at)
        return [
            MessageView(
                message=m, user=self._store.get_user_by_remote_id(m.user_id)
            )
            for m in messages
        ]

    async def send_message(
        self,
        requester: User,
        client: MattermostClient,
        channel_id: str,
        content: str,
    ) -> MessageView:
        """Post to Mattermost and mirror the created post exactly once."""
        post = await client.create_post(channel_id, content)
        with self._messages_lock:
            message, _ = self._mirror_post(post, channel_id)
        self._touch_conversation(message.channel_id, message.created_at)
        return MessageView(message=message, user=requester)
