"""Structured logging helpers for the stub server."""

from __future__ import annotations

import logging
import sys
from io import StringIO
from typing import Any, TextIO

import structlog
from rich.console import Console
from rich.text import Text

from .config import LogFormat

LOGGER_NAME = "stub_server"

# Shown right after the event name, in this order, when present.
REQUEST_KEYS = ("method", "path", "status")
HIDDEN_KEYS = {"color_message", "stack", "exception"}


class RichConsoleRenderer:
    """structlog renderer printing one colored line per event.

    Request events lead with ``METHOD path status`` so a test log reads like an
    access log; every other key follows as ``key=value``.
    """

    def __init__(self, width: int = 200) -> None:
        self._width = width
        self.level_styles = {
            "debug": "dim cyan",
            "info": "cyan",
            "warning": "yellow",
            "error": "bold red",
            "critical": "bold white on red",
        }

    def _status_style(self, status: Any) -> str:
        try:
            code = int(status)
        except (TypeError, ValueError):
            return "white"
        if code >= 500:
            return "bold red"
        if code >= 400:
            return "yellow"
        return "green"

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info")
        event = event_dict.pop("event", "")

        text = Text()
        text.append(timestamp, style="dim white")
        text.append(" ")
        text.append(f"[{level:<8}]", style=self.level_styles.get(level, "white"))
        text.append(" ")
        text.append(f"{event:<24}", style="bold white")

        for key in REQUEST_KEYS:
            if key not in event_dict:
                continue
            value = event_dict.pop(key)
            style = self._status_style(value) if key == "status" else "bright_cyan"
            text.append(" ")
            text.append(str(value), style=style)

        for key, value in sorted(event_dict.items()):
            if key in HIDDEN_KEYS:
                continue
            text.append(f" {key}=", style="dim white")
            text.append(str(value), style="bright_cyan")

        buffer = StringIO()
        Console(file=buffer, force_terminal=True, width=self._width, legacy_windows=False).print(text, end="")
        return buffer.getvalue()


def configure_logging(
    log_level: str,
    log_format: LogFormat = "console",
    stream: TextIO | None = None,
) -> structlog.stdlib.BoundLogger:
    """Route structlog events through stdlib logging, on stdout unless ``stream`` is given."""

    normalized_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=normalized_level,
        stream=stream or sys.stdout,
        format="%(message)s",
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.format_exc_info,
    ]
    if log_format == "console":
        processors.append(RichConsoleRenderer())
    elif log_format == "plain":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(normalized_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(LOGGER_NAME)
