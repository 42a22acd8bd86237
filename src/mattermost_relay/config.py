"""Config I/O for relay.yaml.

Priority order (highest wins):
1. Environment variables (MM_RELAY_HOST, MM_RELAY_PORT, ...)
2. ~/.mattermost-relay/relay.yaml
3. Schema defaults
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from mattermost_relay import conventions

from .schema import RelayConfig

logger = logging.getLogger(__name__)


def relay_home() -> Path:
    return Path(conventions.RELAY_HOME).expanduser()


def config_path() -> Path:
    """Return the path to ~/.mattermost-relay/relay.yaml, expanded."""
    return relay_home() / conventions.CONFIG_FILENAME


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s", path, exc_info=True)
        return {}
    return data if isinstance(data, dict) else {}


_ENV_OVERRIDES = {
    conventions.ENV_HOST: ("server", "host"),
    conventions.ENV_PORT: ("server", "port"),
    conventions.ENV_REQUEST_TIMEOUT: ("mattermost", "request_timeout"),
    conventions.ENV_SERVER_URL: ("mattermost", "default_server_url"),
    conventions.ENV_LOG_LEVEL: ("logging", "level"),
}


def _with_override(
    data: dict[str, Any], section: str, key: str, value: str
) -> dict[str, Any]:
    """Copy of *data* with one section key replaced."""
    block = data.get(section)
    block = dict(block) if isinstance(block, dict) else {}
    block[key] = value
    return {**data, section: block}


def load_config(path: Path | None = None) -> RelayConfig:
    """Load relay.yaml plus env overrides.

    An invalid file logs a warning and falls back to defaults. An
    invalid MM_RELAY_* value is dropped with a warning naming it; the
    rest of the configuration still applies.
    """
    path = path or config_path()
    data = _read_yaml(path)

    try:
        config = RelayConfig(**data)
    except ValidationError as exc:
        logger.warning("Invalid relay config at %s: %s. Using defaults.", path, exc)
        data, config = {}, RelayConfig()

    for env_key, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_key, "")
        if not value:
            continue
        candidate = _with_override(data, section, key, value)
        try:
            config = RelayConfig(**candidate)
        except ValidationError as exc:
            logger.warning("Ignoring %s=%r: %s", env_key, value, exc)
            continue
        data = candidate

    return config


def save_config(config: RelayConfig, path: Path | None = None) -> Path:
    """Write config to relay.yaml. Returns the written path."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump()
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path
