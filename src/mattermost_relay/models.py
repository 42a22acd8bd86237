"""Data models for the relay.

Defines the core data structures:
- Local records mirrored from Mattermost (users, direct conversations,
  messages) plus the recorded upstream server
- Remote payloads as returned by the Mattermost v4 API
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC)


def from_epoch_ms(value: int | float) -> datetime:
    """Convert a Mattermost millisecond epoch into an aware datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC)


class UserStatus(StrEnum):
    """Presence status of a user."""

    ONLINE = "online"
    OFFLINE = "offline"
    AWAY = "away"
    DND = "dnd"


# --- Local records ---


@dataclass
class User:
    """Local identity mirroring a Mattermost account.

    remote_id is the Mattermost user id and never changes once set.
    session_token is only present while the user is logged in here.
    """

    id: str
    remote_id: str
    username: str
    email: str = ""
    first_name: str | None = None
    last_name: str | None = None
    avatar: str | None = None
    status: UserStatus = UserStatus.OFFLINE
    session_token: str | None = None
    refresh_token: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class DirectConversation:
    """Local record of a Mattermost direct (1:1) channel.

    The participant pair is unordered: (a, b) and (b, a) are the same
    conversation.
    """

    id: str
    channel_id: str
    user_id_1: str
    user_id_2: str
    last_message_at: datetime | None = None
    unread_count: str = "0"

    def involves(self, remote_user_id: str) -> bool:
        return remote_user_id in (self.user_id_1, self.user_id_2)

    def is_between(self, remote_user_a: str, remote_user_b: str) -> bool:
        return {self.user_id_1, self.user_id_2} == {remote_user_a, remote_user_b}

    def other_participant(self, remote_user_id: str) -> str:
        """The participant that is not *remote_user_id*."""
        if self.user_id_1 == remote_user_id:
            return self.user_id_2
        return self.user_id_1


@dataclass
class Message:
    """Local mirror of a Mattermost post."""

    id: str
    remote_id: str
    channel_id: str
    user_id: str  # author's Mattermost user id
    content: str
    kind: str = "text"
    metadata: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ServerConfigRecord:
    """The Mattermost server the relay was first logged into."""

    id: str
    server_url: str
    api_version: str = "v4"
    is_active: bool = True


# --- Remote payloads ---


@dataclass
class RemoteUser:
    id: str
    username: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    nickname: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteUser:
        return cls(
            id=data["id"],
            username=data.get("username", ""),
            email=data.get("email", ""),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            nickname=data.get("nickname", ""),
        )


@dataclass
class RemoteChannel:
    id: str
    type: str = "D"
    name: str = ""
    display_name: str = ""
    last_post_at: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteChannel:
        return cls(
            id=data["id"],
            type=data.get("type", "D"),
            name=data.get("name", ""),
            display_name=data.get("display_name", ""),
            last_post_at=data.get("last_post_at") or 0,
        )


@dataclass
class RemotePost:
    id: str
    channel_id: str
    user_id: str
    message: str
    create_at: int = 0
    update_at: int = 0
    props: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemotePost:
        return cls(
            id=data["id"],
            channel_id=data.get("channel_id", ""),
            user_id=data.get("user_id", ""),
            message=data.get("message", ""),
            create_at=data.get("create_at") or 0,
            update_at=data.get("update_at") or 0,
            props=data.get("props") or {},
        )

    @property
    def created(self) -> datetime:
        return from_epoch_ms(self.create_at)

    @property
    def updated(self) -> datetime:
        """update_at, falling back to create_at when zero or absent."""
        return from_epoch_ms(self.update_at or self.create_at)


@dataclass
class PostList:
    """Posts of a channel page: a map keyed by post id plus an order array.

    The order array is not guaranteed to be chronological, and may name
    ids that are missing from the map.
    """

    posts: dict[str, RemotePost] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> PostList:
        raw_posts = data.get("posts") or {}
        return cls(
            posts={pid: RemotePost.from_api(p) for pid, p in raw_posts.items()},
            order=list(data.get("order") or []),
        )


@dataclass
class RemoteStatus:
    user_id: str
    status: str
    manual: bool = False
    last_activity_at: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteStatus:
        return cls(
            user_id=data["user_id"],
            status=data.get("status", "offline"),
            manual=bool(data.get("manual", False)),
            last_activity_at=data.get("last_activity_at") or 0,
        )
