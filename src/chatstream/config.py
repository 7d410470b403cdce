"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from chatstream.exceptions import ConfigError
from chatstream.observability import LogLevel

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ConfigError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


class PathsConfig(BaseModel):
    """Endpoint paths on the agent service."""

    chat: str = "/api/agent/chat"
    chat_stream: str = "/api/agent/chat/stream"
    health: str = "/health"


class BasicAuthConfig(BaseModel):
    """Credential pair sent as HTTP basic auth."""

    username: str
    password: str


class TimeoutConfig(BaseModel):
    """Transport timeouts in seconds."""

    connect: float = 10.0
    read: float = 300.0


class StreamPolicy(BaseModel):
    """How the stream driver treats recoverable protocol conditions."""

    on_malformed: Literal["discard", "raise"] = "discard"
    on_premature_end: Literal["complete", "raise"] = "complete"
    encoding: str = "utf-8"


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: LogLevel = LogLevel.INFO
    format: Literal["json", "text"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ClientConfig(BaseModel):
    """Main configuration for a chatstream client."""

    base_url: str = "http://localhost:8080"
    paths: PathsConfig = Field(default_factory=PathsConfig)
    auth: BasicAuthConfig | None = None
    timeout: TimeoutConfig = Field(default_factory=TimeoutConfig)
    stream: StreamPolicy = Field(default_factory=StreamPolicy)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "ClientConfig":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientConfig":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
