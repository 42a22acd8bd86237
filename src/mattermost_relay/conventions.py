"""Mattermost Relay Conventions

Canonical names, paths and fixed constants the relay relies on.
These values are NOT configurable. Things that CAN be configured
(server URL, timeouts, page sizes) live in relay.yaml, see schema.py.
"""

# --- The Root ---
# Everything the relay writes lives under this directory.
RELAY_HOME = "~/.mattermost-relay"

# --- Configuration ---
CONFIG_FILENAME = "relay.yaml"
ENV_FILENAME = ".env"
# Full path: ~/.mattermost-relay/relay.yaml

# --- Server ---
SERVER_DIR = "server"  # relative to RELAY_HOME
SERVER_LOG_FILE = "relay.log"  # relative to SERVER_DIR
SERVER_DEFAULT_HOST = "127.0.0.1"
SERVER_DEFAULT_PORT = 5000
API_PREFIX = "/api"

# --- Upstream (Mattermost v4 API) ---
UPSTREAM_API_VERSION = "v4"
UPSTREAM_TOKEN_HEADER = "Token"
UPSTREAM_DEFAULT_TIMEOUT = 15.0  # seconds
UPSTREAM_USERS_PER_PAGE = 200
UPSTREAM_POSTS_PER_PAGE = 60

# --- Local store ---
CHANNEL_MESSAGES_DEFAULT_LIMIT = 50
DEFAULT_UNREAD_COUNT = "0"
MESSAGE_KIND_TEXT = "text"

# --- Environment overrides ---
ENV_HOST = "MM_RELAY_HOST"
ENV_PORT = "MM_RELAY_PORT"
ENV_REQUEST_TIMEOUT = "MM_RELAY_REQUEST_TIMEOUT"
ENV_SERVER_URL = "MM_RELAY_SERVER_URL"
ENV_LOG_LEVEL = "MM_RELAY_LOG_LEVEL"
