"""Allow ``python -m mattermost_relay.server``."""

from mattermost_relay.server.cli import serve

serve()
