"""Relay REST API.

Routes (mounted under /api):
    POST /auth/login                     - Log in against Mattermost
    POST /auth/logout                    - End the caller's session
    GET  /auth/me                        - The caller's user record
    GET  /users                          - Known users except the caller (syncs)
    GET  /direct-conversations           - Caller's direct conversations
    POST /direct-conversations           - Open (or reuse) a direct conversation
    GET  /channels/{channel_id}/messages - Channel messages, oldest first (syncs)
    POST /messages                       - Send a message

/direct-messages is an alias of /direct-conversations.

Every route but login takes ``Authorization: Bearer <token>``. Errors are
raised as RelayError subclasses and turned into responses by the
handlers registered in server/app.py.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field

from mattermost_relay.client import MattermostClient
from mattermost_relay.errors import ValidationError
from mattermost_relay.models import User

from .services import ServerServices, get_services
from .views import conversation_view, message_view, user_view

logger = logging.getLogger(__name__)

router = APIRouter()

# auto_error=False so a missing header reaches our own NotAuthenticated.
_bearer_scheme = HTTPBearer(auto_error=False)
_bearer_dependency = Depends(_bearer_scheme)
_services_dependency = Depends(get_services)


# --- Request bodies ---


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    server_url: AnyHttpUrl | None = Field(default=None, alias="serverUrl")


class OpenConversationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    other_user_id: str = Field(min_length=1, alias="otherUserId")


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    channel_id: str = Field(min_length=1, alias="channelId")
    content: str = Field(min_length=1)


# --- Dependencies ---


def _token(credentials: HTTPAuthorizationCredentials | None) -> str | None:
    return credentials.credentials if credentials is not None else None


def current_user(
    credentials: HTTPAuthorizationCredentials | None = _bearer_dependency,
    services: ServerServices = _services_dependency,
) -> User:
    """The caller's User. Does not require a bound Mattermost client."""
    return services.registry.resolve_user(_token(credentials))


def current_session(
    credentials: HTTPAuthorizationCredentials | None = _bearer_dependency,
    services: ServerServices = _services_dependency,
) -> tuple[User, MattermostClient]:
    """The caller's User plus their bound Mattermost client."""
    return services.registry.authenticate(_token(credentials))


_user_dependency = Depends(current_user)
_session_dependency = Depends(current_session)


# --- Auth ---


@router.post("/auth/login")
async def login(
    body: LoginRequest,
    services: ServerServices = _services_dependency,
) -> dict[str, Any]:
    server_url = (
        str(body.server_url)
        if body.server_url is not None
        else services.config.mattermost.default_server_url
    )
    if not server_url:
        raise ValidationError("serverUrl is required")

    user, token = await services.auth.login(body.username, body.password, server_url)
    return {"user": user_view(user), "token": token}


@router.post("/auth/logout")
async def logout(
    credentials: HTTPAuthorizationCredentials | None = _bearer_dependency,
    services: ServerServices = _services_dependency,
) -> dict[str, str]:
    services.auth.logout(_token(credentials))
    return {"message": "Logged out successfully"}


@router.get("/auth/me")
async def me(user: User = _user_dependency) -> dict[str, Any] | None:
    return user_view(user)


# --- Users ---


@router.get("/users")
async def list_users(
    session: tuple[User, MattermostClient] = _session_dependency,
    services: ServerServices = _services_dependency,
) -> list[dict[str, Any] | None]:
    user, client = session
    users = await services.reconciler.sync_users(user, client)
    return [user_view(u) for u in users]


# --- Direct conversations ---


@router.get("/direct-conversations")
@router.get("/direct-messages", include_in_schema=False)
async def list_direct_conversations(
    user: User = _user_dependency,
    services: ServerServices = _services_dependency,
) -> list[dict[str, Any]]:
    # Local records only; no bound Mattermost client needed.
    return [
        conversation_view(v)
        for v in services.reconciler.list_direct_conversations(user)
    ]


@router.post("/direct-conversations")
@router.post("/direct-messages", include_in_schema=False)
async def open_direct_conversation(
    body: OpenConversationRequest,
    session: tuple[User, MattermostClient] = _session_dependency,
    services: ServerServices = _services_dependency,
) -> dict[str, Any]:
    user, client = session
    view = await services.reconciler.open_direct_conversation(
        user, client, body.other_user_id
    )
    return conversation_view(view)


# --- Messages ---


@router.get("/channels/{channel_id}/messages")
async def channel_messages(
    channel_id: str,
    session: tuple[User, MattermostClient] = _session_dependency,
    services: ServerServices = _services_dependency,
) -> list[dict[str, Any]]:
    _user, client = session
    views = await services.reconciler.sync_channel_messages(client, channel_id)
    return [message_view(v) for v in views]


@router.post("/messages")
async def send_message(
    body: SendMessageRequest,
    session: tuple[User, MattermostClient] = _session_dependency,
    services: ServerServices = _services_dependency,
) -> dict[str, Any]:
    user, client = session
    view = await services.reconciler.send_message(
        user, client, body.channel_id, body.content
    )
    return message_view(view)
