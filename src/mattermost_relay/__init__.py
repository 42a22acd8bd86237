"""Mattermost Relay

A thin relay in front of a Mattermost server that:
- Authenticates users against the remote server
- Mirrors users, direct channels and posts into local volatile storage
- Serves a small REST API that browser/desktop clients poll
"""

__version__ = "0.1.0"
