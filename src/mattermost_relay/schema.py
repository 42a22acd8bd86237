"""Pydantic schema for ~/.mattermost-relay/relay.yaml

Default values here MUST match the constants in conventions.py.
conventions.py is the source of truth for fixed names and defaults;
this schema defines the shape of relay.yaml.
"""

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    """Where the relay itself listens."""

    host: str = "127.0.0.1"
    port: int = Field(default=5000, ge=1, le=65535)


class MattermostConfig(BaseModel):
    """Upstream Mattermost settings.

    default_server_url is used when a login request omits serverUrl.
    request_timeout bounds every upstream call (seconds).
    """

    default_server_url: str = ""
    api_version: str = "v4"
    request_timeout: float = Field(default=15.0, gt=0)
    users_per_page: int = Field(default=200, ge=1, le=200)
    posts_per_page: int = Field(default=60, ge=1, le=200)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_file: bool = True

    @field_validator("level")
    @classmethod
    def _upper(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level


class RelayConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    mattermost: MattermostConfig = Field(default_factory=MattermostConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
