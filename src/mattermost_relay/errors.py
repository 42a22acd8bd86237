"""Error taxonomy for the relay.

Every error the relay raises on purpose derives from RelayError and
carries the HTTP status the REST layer answers with. Handlers in
server/app.py translate them to ``{"message": ...}`` responses.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        default = (self.__class__.__doc__ or self.__class__.__name__).strip()
        super().__init__(message or default.splitlines()[0])

    @property
    def message(self) -> str:
        return str(self)


class AuthenticationError(RelayError):
    """Authentication failed"""

    status_code = 401


class NotAuthenticated(RelayError):
    """Not authenticated"""

    status_code = 401


class NotFound(RelayError):
    """Not found"""

    status_code = 404


class ValidationError(RelayError):
    """Invalid request"""

    status_code = 400


class DuplicateRecord(RelayError):
    """Record already exists"""

    status_code = 409


class UpstreamError(RelayError):
    """Mattermost request failed

    status is the upstream HTTP status when one was received.
    """

    def __init__(self, message: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class UpstreamTimeout(UpstreamError):
    """Mattermost request timed out"""
