"""Structured logging for the session core.

Tokens and secrets must never reach a log line in clear text; the redaction
processor below masks any field whose name looks sensitive.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Final

import structlog

_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset(
    {"token", "secret", "authorization", "signature", "cookie", "password"}
)

_configured = False


def _redact_sensitive(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask values of keys that look like credentials, keeping 2 chars each side."""
    for key, value in event_dict.items():
        if key == "event" or not isinstance(value, str):
            continue
        lowered = key.lower()
        if any(s in lowered for s in _SENSITIVE_KEYS):
            event_dict[key] = value[:2] + "***" + value[-2:] if len(value) > 4 else "***"
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog once for the process.

    Args:
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR).
        json_output: JSON lines when True, colourless console output otherwise.
    """
    global _configured

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_sensitive,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    _configured = True


def get_logger(name: str) -> Any:
    """Return a bound structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            json_output=os.getenv("LOG_JSON", "false").lower() in {"1", "true", "yes", "on"},
        )
    return structlog.get_logger(name)
