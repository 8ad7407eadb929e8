"""
Logging configuration using structlog.
Outputs one JSON object per line (or a readable console format) to stdout.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any

import structlog
from structlog.typing import EventDict

REDACTED = "[REDACTED]"
REDACT_KEYS = ("token", "authorization", "secret", "password", "api_key", "apikey")

# LOG_LEVEL uses "warn", stdlib uses "WARNING"
_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _should_redact(key: str) -> bool:
    lowered = key.lower()
    return any(needle in lowered for needle in REDACT_KEYS)


def _sanitize(value: Any, key: str | None = None) -> Any:
    if key is not None and _should_redact(key):
        return REDACTED
    if isinstance(value, BaseException):
        return {"name": type(value).__name__, "message": str(value)}
    if isinstance(value, dict):
        return {k: _sanitize(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return value


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-looking fields and flatten exception objects."""
    for key, value in list(event_dict.items()):
        if key in ("event", "exc_info"):
            continue
        event_dict[key] = _sanitize(value, key)
    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add ISO timestamp to log entry."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def setup_logging(log_level: str = "info", log_format: str = "json") -> None:
    """
    Configure structlog on top of stdlib logging.

    json    — machine-readable lines for the log collector
    console — coloured human-readable output for local runs
    """
    level = _LEVELS.get(log_level.lower(), logging.INFO)

    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # ConsoleRenderer formats exceptions itself
    if log_format == "console":
        final_processors = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        final_processors = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final_processors],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logger = logging.getLogger(logger_name)
        logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
