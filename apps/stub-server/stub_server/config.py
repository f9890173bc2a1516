"""Runtime settings for the stub server.

Every setting resolves with the same priority: CLI option > environment
variable > default.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError

LogFormat = Literal["json", "console", "plain"]

LOG_FORMAT_ENV_VAR = "CONSOLE_OUTPUT_FORMAT"
ENV_PREFIX = "STUB_SERVER_"
ENV_FIELDS = ("host", "port", "stubs_dir", "log_level")
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def get_log_format(cli_override: str | None = None) -> LogFormat:
    """Resolve the log format.

    ``CONSOLE_OUTPUT_FORMAT`` is shared with the other test tooling and also
    accepts ``auto`` and ``rich``, both meaning colored console output.
    """

    if cli_override and cli_override.lower() in ("json", "console", "plain"):
        return cli_override.lower()  # type: ignore[return-value]

    env_value = os.environ.get(LOG_FORMAT_ENV_VAR, "").lower()
    if env_value in ("json", "plain"):
        return env_value  # type: ignore[return-value]
    return "console"


class ServerSettings(BaseModel):
    """Bind address, stub source and logging options of a server process."""

    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)
    stubs_dir: Optional[Path] = None
    log_level: str = "INFO"
    log_format: LogFormat = "console"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {sorted(LOG_LEVELS)}")
        return level


def load_settings(**overrides: Any) -> ServerSettings:
    """Build settings from CLI overrides and ``STUB_SERVER_*`` environment variables.

    Overrides that are ``None`` are treated as not given.
    """

    values: dict[str, Any] = {}
    for name in ENV_FIELDS:
        env_value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if env_value:
            values[name] = env_value
    values.update({key: value for key, value in overrides.items() if value is not None})
    values["log_format"] = get_log_format(overrides.get("log_format"))

    try:
        return ServerSettings.model_validate(values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid stub server settings: {exc}") from exc
