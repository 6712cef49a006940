"""Structured logging — structlog on top of stdlib logging, with credential redaction.

Every record (structlog or foreign, e.g. uvicorn) passes through
:func:`redact_credentials`, so a repository URL carrying ``user:token@``
never reaches a handler.
"""

from __future__ import annotations

import logging
import logging.config
import os
from typing import Any

import structlog

from depaudit.core.git import redact_url

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS: dict[str, str] = {
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "sqlalchemy.engine": "WARNING",
    "asyncpg": "WARNING",
    "aiosqlite": "WARNING",
    "httpx": "WARNING",
    "httpcore": "WARNING",
}


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return redact_url(value) if "://" in value else value
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(item) for item in value)
    if isinstance(value, dict):
        return {key: _redact(item) for key, item in value.items()}
    return value


def redact_credentials(
    _logger: object, _method: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Strip URL userinfo from every value, including rendered tracebacks."""
    return {key: _redact(value) for key, value in event_dict.items()}


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging() -> None:
    """Configure structlog and stdlib logging.

    Reads from environment variables:
        DEPAUDIT_LOG_LEVEL   level of the ``depaudit.*`` loggers (default: INFO)
        DEPAUDIT_LOG_FORMAT  console | json (default: console)
    """
    log_level = os.environ.get("DEPAUDIT_LOG_LEVEL", "INFO").upper()
    log_format = os.environ.get("DEPAUDIT_LOG_FORMAT", "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        redact_credentials,
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict[str, str]] = {
        name: {"level": level} for name, level in _QUIET_LOGGERS.items()
    }
    loggers["depaudit"] = {"level": log_level}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["default"], "level": log_level},
            "loggers": loggers,
        }
    )
