"""Tests for the relay error taxonomy."""

import pytest

from mattermost_relay.errors import (
    AuthenticationError,
    DuplicateRecord,
    NotAuthenticated,
    NotFound,
    RelayError,
    UpstreamError,
    UpstreamTimeout,
    ValidationError,
)


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (AuthenticationError, 401),
        (NotAuthenticated, 401),
        (NotFound, 404),
        (ValidationError, 400),
        (DuplicateRecord, 409),
        (UpstreamError, 500),
        (UpstreamTimeout, 500),
    ],
)
def test_status_codes(error, status):
    assert issubclass(error, RelayError)
    assert error.status_code == status


def test_default_message_is_first_docstring_line():
    assert UpstreamError().message == "Mattermost request failed"
    assert NotFound().message == "Not found"


def test_explicit_message_and_upstream_status():
    exc = UpstreamError("Failed to get users: 503 down", status=503)
    assert exc.message == "Failed to get users: 503 down"
    assert exc.status == 503


def test_timeout_is_an_upstream_error():
    with pytest.raises(UpstreamError):
        raise UpstreamTimeout()
