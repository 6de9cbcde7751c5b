"""Structured logging setup shared by the CLI and embedding applications."""

import logging
from typing import Any

import structlog

REDACTED = "***"
SECRET_KEY_MARKERS = ("api_key", "authorization", "token", "secret")


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor masking values whose key looks like a credential."""
    for key in list(event_dict):
        lowered = key.lower()
        if any(marker in lowered for marker in SECRET_KEY_MARKERS):
            # counters such as total_tokens are not credentials
            if isinstance(event_dict[key], (int, float, bool)) or event_dict[key] is None:
                continue
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(level: str = "WARNING", json_output: bool = False) -> None:
    """
    Configure stdlib logging and structlog.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
        json_output: Render JSON lines instead of the console renderer
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.WARNING

    logging.basicConfig(level=numeric_level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )
