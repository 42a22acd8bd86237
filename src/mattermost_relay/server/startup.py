"""Server startup utilities: structured logging, .env loading, startup banner.

Handles server initialization tasks that run before the event loop:
- Structured logging (JSON to file, human-readable to console)
- .env loading into the environment (existing variables win)
- Version and bind address logging

All paths are constructed from conventions.py constants.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from importlib.metadata import PackageNotFoundError
from logging.handlers import RotatingFileHandler
from pathlib import Path

from mattermost_relay import conventions

logger = logging.getLogger(__name__)


def log_file_path() -> Path:
    """Return the server log file path, constructed from conventions."""
    return (
        Path(conventions.RELAY_HOME).expanduser()
        / conventions.SERVER_DIR
        / conventions.SERVER_LOG_FILE
    )


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured file logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string."""
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(
    log_file: Path | None = None,
    level: int | str = logging.INFO,
    json_file: bool = True,
) -> None:
    """Configure logging: human-readable console, optional rotating JSON file.

    Args:
        log_file: Path for the JSON log file. Uses convention default if None.
        level: Logging level (int or name) for both handlers.
        json_file: Whether to add the JSON file handler.
    """
    root = logging.getLogger()
    root.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root.addHandler(console_handler)

    if not json_file:
        return

    if log_file is None:
        log_file = log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        str(log_file), maxBytes=10 * 1024 * 1024, backupCount=3
    )
    file_handler.setFormatter(JSONFormatter())
    root.addHandler(file_handler)


def load_env_file(env_file: Path | None = None) -> list[str]:
    """Load environment variables from a .env file.

    Parses simple ``KEY=value`` lines (with optional quoting) and sets
    them via ``os.environ.setdefault`` so existing env vars take
    precedence. Comments (``#``) and blank lines are skipped.

    Args:
        env_file: Explicit path. Defaults to ``~/.mattermost-relay/.env``.

    Returns:
        List of variable names that were loaded.
    """
    if env_file is None:
        env_file = Path(conventions.RELAY_HOME).expanduser() / conventions.ENV_FILENAME
    if not env_file.exists():
        return []

    loaded: list[str] = []
    try:
        lines = env_file.read_text().splitlines()
    except OSError:
        logger.warning("Could not read %s", env_file, exc_info=True)
        return []

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        if key:
            os.environ.setdefault(key, value)
            loaded.append(key)

    return loaded


def log_startup_info(
    *,
    host: str,
    port: int,
    dev_mode: bool,
    upstream: str,
    logger: logging.Logger,
) -> None:
    """Log server version, bind address and upstream at startup."""
    try:
        from importlib.metadata import version as pkg_version

        version = pkg_version("mattermost-relay")
    except (ImportError, PackageNotFoundError):
        logger.debug("Could not determine package version, using default")
        from mattermost_relay import __version__ as version

    logger.info("Mattermost Relay v%s", version)
    logger.info("Bind: %s:%d (dev_mode=%s)", host, port, dev_mode)
    logger.info("Default Mattermost server: %s", upstream or "(none, set per login)")
