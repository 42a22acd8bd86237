"""JSON views of local records for the REST API.

Keys are camelCase and timestamps ISO 8601, which is what the
browser/desktop client reads. Session and refresh tokens are never
part of a user view; the login response carries the caller's token
separately.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from mattermost_relay.models import User
from mattermost_relay.sync import ConversationView, MessageView


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def user_view(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "mattermostId": user.remote_id,
        "username": user.username,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "avatar": user.avatar,
        "status": str(user.status),
        "createdAt": _ts(user.created_at),
    }


def conversation_view(view: ConversationView) -> dict[str, Any]:
    c = view.conversation
    return {
        "id": c.id,
        "channelId": c.channel_id,
        "userId1": c.user_id_1,
        "userId2": c.user_id_2,
        "lastMessageAt": _ts(c.last_message_at),
        "unreadCount": c.unread_count,
        "otherUser": user_view(view.other_user),
    }


def message_view(view: MessageView) -> dict[str, Any]:
    m = view.message
    return {
        "id": m.id,
        "mattermostId": m.remote_id,
        "channelId": m.channel_id,
        "userId": m.user_id,
        "content": m.content,
        "type": m.kind,
        "metadata": m.metadata,
        "createdAt": _ts(m.created_at),
        "updatedAt": _ts(m.updated_at),
        "user": user_view(view.user),
    }
