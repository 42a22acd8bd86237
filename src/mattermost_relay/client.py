"""Mattermost API client abstraction.

Provides a Protocol for the Mattermost v4 operations the relay needs and
two implementations:
- HttpMattermostClient: Real Mattermost HTTP API calls (production)
- MemoryMattermostClient: Talks to an in-process MemoryMattermostServer
  (tests and dev mode), no network calls

Each client instance owns at most one bearer token. Every call that
needs a token fails with NotAuthenticated before touching the network
when none is set.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar, runtime_checkable

import httpx

from mattermost_relay import conventions
from mattermost_relay.errors import (
    AuthenticationError,
    NotAuthenticated,
    UpstreamError,
    UpstreamTimeout,
)
from mattermost_relay.models import (
    PostList,
    RemoteChannel,
    RemotePost,
    RemoteStatus,
    RemoteUser,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class MattermostClient(Protocol):
    """Protocol for Mattermost API operations."""

    @property
    def server_url(self) -> str:
        """Normalized server URL (no trailing slash)."""
        ...

    @property
    def is_authenticated(self) -> bool:
        ...

    async def login(self, username: str, password: str) -> tuple[RemoteUser, str]:
        """Log in and keep the token. Returns (user, token)."""
        ...

    async def get_current_user(self) -> RemoteUser:
        ...

    async def list_users(self, per_page: int = 200) -> list[RemoteUser]:
        ...

    async def list_direct_channels(self) -> list[RemoteChannel]:
        ...

    async def get_or_create_direct_channel(
        self, user_id_a: str, user_id_b: str
    ) -> RemoteChannel:
        """Return the direct channel between two users, creating it if needed."""
        ...

    async def list_channel_posts(
        self, channel_id: str, page: int = 0, per_page: int = 60
    ) -> PostList:
        ...

    async def create_post(self, channel_id: str, message: str) -> RemotePost:
        ...

    async def get_user_status(self, user_id: str) -> RemoteStatus:
        ...

    def clear_token(self) -> None:
        ...


def _new_id() -> str:
    """Mattermost-style 26 character identifier."""
    return uuid.uuid4().hex[:26]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _list_of(parse: Callable[[dict[str, Any]], T]) -> Callable[[Any], list[T]]:
    """Decoder for a JSON array of objects."""

    def decode(data: Any) -> list[T]:
        if not isinstance(data, list):
            raise TypeError(f"expected a list, got {type(data).__name__}")
        return [parse(item) for item in data]

    return decode


class HttpMattermostClient:
    """Real Mattermost v4 API client.

    Args:
        server_url: Base URL of the Mattermost server.
        timeout: Upper bound in seconds for every request, end to end.
        api_version: API version segment, "v4" for any current server.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        server_url: str,
        *,
        timeout: float = conventions.UPSTREAM_DEFAULT_TIMEOUT,
        api_version: str = conventions.UPSTREAM_API_VERSION,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._server_url = server_url.rstrip("/")
        self._api_url = f"{self._server_url}/api/{api_version}"
        self._timeout = httpx.Timeout(timeout)
        self._deadline = timeout
        self._transport = transport
        self._token: str | None = None

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def api_url(self) -> str:
        return self._api_url

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def set_token(self, token: str) -> None:
        self._token = token

    def clear_token(self) -> None:
        self._token = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request, mapping transport failures to UpstreamError.

        httpx timeouts bound each phase separately; the outer deadline
        bounds the whole exchange, including a slowly trickled body.
        """
        headers: dict[str, str] = {}
        if authenticated:
            if self._token is None:
                raise NotAuthenticated("Not authenticated with Mattermost")
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            async with asyncio.timeout(self._deadline):
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    return await client.request(
                        method, f"{self._api_url}{path}", headers=headers, **kwargs
                    )
        except (httpx.TimeoutException, TimeoutError) as exc:
            logger.warning("Mattermost %s %s timed out", method, path)
            raise UpstreamTimeout(f"Mattermost {method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Mattermost %s %s failed: %s", method, path, exc)
            raise UpstreamError(f"Mattermost {method} {path} failed: {exc}") from exc

    async def _call(
        self,
        method: str,
        path: str,
        action: str,
        parse: Callable[[Any], T],
        **kwargs: Any,
    ) -> T:
        """Authenticated call returning the body decoded by *parse*."""
        response = await self._request(method, path, **kwargs)
        if not response.is_success:
            raise UpstreamError(
                f"Failed to {action}: {response.status_code} {response.text}",
                status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(f"Failed to {action}: invalid JSON response") from exc
        try:
            return parse(data)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Malformed Mattermost response to %s %s", method, path)
            raise UpstreamError(f"Failed to {action}: malformed response") from exc

    async def login(self, username: str, password: str) -> tuple[RemoteUser, str]:
        response = await self._request(
            "POST",
            "/users/login",
            authenticated=False,
            json={"login_id": username, "password": password},
        )
        if not response.is_success:
            raise AuthenticationError(f"Login failed: {response.text}")

        token = response.headers.get(conventions.UPSTREAM_TOKEN_HEADER)
        if not token:
            raise AuthenticationError("No authentication token received")

        try:
            user = RemoteUser.from_api(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise AuthenticationError("Login failed: malformed user payload") from exc

        self._token = token
        return user, token

    async def get_current_user(self) -> RemoteUser:
        return await self._call(
            "GET", "/users/me", "get current user", RemoteUser.from_api
        )

    async def list_users(
        self, per_page: int = conventions.UPSTREAM_USERS_PER_PAGE
    ) -> list[RemoteUser]:
        return await self._call(
            "GET",
            "/users",
            "get users",
            _list_of(RemoteUser.from_api),
            params={"per_page": per_page},
        )

    async def list_direct_channels(self) -> list[RemoteChannel]:
        return await self._call(
            "GET",
            "/channels/direct",
            "get direct channels",
            _list_of(RemoteChannel.from_api),
        )

    async def get_or_create_direct_channel(
        self, user_id_a: str, user_id_b: str
    ) -> RemoteChannel:
        return await self._call(
            "POST",
            "/channels/direct",
            "create direct channel",
            RemoteChannel.from_api,
            json=[user_id_a, user_id_b],
        )

    async def list_channel_posts(
        self,
        channel_id: str,
        page: int = 0,
        per_page: int = conventions.UPSTREAM_POSTS_PER_PAGE,
    ) -> PostList:
        return await self._call(
            "GET",
            f"/channels/{channel_id}/posts",
            "get channel posts",
            PostList.from_api,
            params={"page": page, "per_page": per_page},
        )

    async def create_post(self, channel_id: str, message: str) -> RemotePost:
        return await self._call(
            "POST",
            "/posts",
            "create post",
            RemotePost.from_api,
            json={"channel_id": channel_id, "message": message},
        )

    async def get_user_status(self, user_id: str) -> RemoteStatus:
        return await self._call(
            "GET",
            f"/users/{user_id}/status",
            "get user status",
            RemoteStatus.from_api,
        )


# --- In-memory upstream ---


@dataclass
class _Account:
    user: RemoteUser
    password: str
    status: str = "offline"


@dataclass
class MemoryMattermostServer:
    """In-process stand-in for a Mattermost server.

    Holds accounts, direct channels and posts, and records every call
    made through MemoryMattermostClient for inspection. Posts are listed
    newest first, like the real server; tests can replace a channel's
    order array through ``order_overrides`` and make any operation fail
    with ``fail_on``.
    """

    accounts: dict[str, _Account] = field(default_factory=dict)
    channels: dict[str, RemoteChannel] = field(default_factory=dict)
    channel_members: dict[str, frozenset[str]] = field(default_factory=dict)
    posts: dict[str, list[RemotePost]] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)  # token -> user id
    order_overrides: dict[str, list[str]] = field(default_factory=dict)
    calls: list[dict[str, Any]] = field(default_factory=list)
    _failures: dict[str, Exception] = field(default_factory=dict)

    @classmethod
    def with_demo_accounts(cls, password: str = "secret") -> MemoryMattermostServer:
        """A server seeded with alice, bob and carol."""
        server = cls()
        for name in ("alice", "bob", "carol"):
            server.add_user(name, password, first_name=name.capitalize())
        return server

    def add_user(
        self,
        username: str,
        password: str,
        *,
        user_id: str | None = None,
        email: str | None = None,
        first_name: str = "",
        last_name: str = "",
    ) -> RemoteUser:
        user = RemoteUser(
            id=user_id or _new_id(),
            username=username,
            email=email if email is not None else f"{username}@example.com",
            first_name=first_name,
            last_name=last_name,
        )
        self.accounts[user.id] = _Account(user=user, password=password)
        return user

    def user_by_name(self, username: str) -> RemoteUser | None:
        for account in self.accounts.values():
            if account.user.username == username:
                return account.user
        return None

    def add_post(
        self,
        channel_id: str,
        user_id: str,
        message: str,
        *,
        post_id: str | None = None,
        create_at: int | None = None,
        update_at: int = 0,
    ) -> RemotePost:
        post = RemotePost(
            id=post_id or _new_id(),
            channel_id=channel_id,
            user_id=user_id,
            message=message,
            create_at=create_at if create_at is not None else _now_ms(),
            update_at=update_at,
        )
        self.posts.setdefault(channel_id, []).append(post)
        return post

    def fail_on(self, method: str, error: Exception) -> None:
        """Make the next call to *method* raise *error*."""
        self._failures[method] = error

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["method"] == method]

    def _record(self, method: str, **kwargs: Any) -> None:
        self.calls.append({"method": method, **kwargs})
        error = self._failures.pop(method, None)
        if error is not None:
            raise error


class MemoryMattermostClient:
    """Client bound to a MemoryMattermostServer. Implements MattermostClient."""

    def __init__(self, server: MemoryMattermostServer, server_url: str) -> None:
        self._server = server
        self._server_url = server_url.rstrip("/")
        self._token: str | None = None

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def set_token(self, token: str) -> None:
        self._token = token

    def clear_token(self) -> None:
        self._token = None

    def _require_user_id(self) -> str:
        if self._token is None:
            raise NotAuthenticated("Not authenticated with Mattermost")
        user_id = self._server.tokens.get(self._token)
        if user_id is None:
            raise UpstreamError("Failed: 401 invalid session", status=401)
        return user_id

    async def login(self, username: str, password: str) -> tuple[RemoteUser, str]:
        self._server._record("login", username=username)
        user = self._server.user_by_name(username)
        if user is None or self._server.accounts[user.id].password != password:
            raise AuthenticationError("Login failed: invalid credentials")
        token = uuid.uuid4().hex
        self._server.tokens[token] = user.id
        self._server.accounts[user.id].status = "online"
        self._token = token
        return user, token

    async def get_current_user(self) -> RemoteUser:
        user_id = self._require_user_id()
        self._server._record("get_current_user")
        return self._server.accounts[user_id].user

    async def list_users(self, per_page: int = 200) -> list[RemoteUser]:
        self._require_user_id()
        self._server._record("list_users", per_page=per_page)
        return [a.user for a in self._server.accounts.values()][:per_page]

    async def list_direct_channels(self) -> list[RemoteChannel]:
        user_id = self._require_user_id()
        self._server._record("list_direct_channels")
        return [
            self._server.channels[cid]
            for cid, members in self._server.channel_members.items()
            if user_id in members
        ]

    async def get_or_create_direct_channel(
        self, user_id_a: str, user_id_b: str
    ) -> RemoteChannel:
        self._require_user_id()
        self._server._record(
            "get_or_create_direct_channel", user_id_a=user_id_a, user_id_b=user_id_b
        )
        members = frozenset((user_id_a, user_id_b))
        for cid, existing in self._server.channel_members.items():
            if existing == members:
                return self._server.channels[cid]
        for uid in members:
            if uid not in self._server.accounts:
                raise UpstreamError(f"Failed: 400 unknown user {uid}", status=400)
        channel = RemoteChannel(
            id=_new_id(), type="D", name="__".join(sorted((user_id_a, user_id_b)))
        )
        self._server.channels[channel.id] = channel
        self._server.channel_members[channel.id] = members
        return channel

    async def list_channel_posts(
        self, channel_id: str, page: int = 0, per_page: int = 60
    ) -> PostList:
        self._require_user_id()
        self._server._record(
            "list_channel_posts", channel_id=channel_id, page=page, per_page=per_page
        )
        newest_first = sorted(
            self._server.posts.get(channel_id, []),
            key=lambda p: p.create_at,
            reverse=True,
        )
        window = newest_first[page * per_page : (page + 1) * per_page]
        order = self._server.order_overrides.get(channel_id, [p.id for p in window])
        return PostList(posts={p.id: p for p in window}, order=list(order))

    async def create_post(self, channel_id: str, message: str) -> RemotePost:
        user_id = self._require_user_id()
        self._server._record("create_post", channel_id=channel_id, message=message)
        return self._server.add_post(channel_id, user_id, message)

    async def get_user_status(self, user_id: str) -> RemoteStatus:
        self._require_user_id()
        self._server._record("get_user_status", user_id=user_id)
        account = self._server.accounts.get(user_id)
        if account is None:
            raise UpstreamError(f"Failed: 404 unknown user {user_id}", status=404)
        return RemoteStatus(user_id=user_id, status=account.status)
