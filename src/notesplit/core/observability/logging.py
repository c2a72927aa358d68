"""
Structured Logging Configuration
================================

Application-wide logging using ``structlog``.

- **Dev / human**: console renderer.
- **Prod / json**: machine-readable JSON lines.

Environment variables
~~~~~~~~~~~~~~~~~~~~~
- ``LOG_LEVEL``  – DEBUG | INFO | WARNING | ERROR | CRITICAL  (default: INFO)
- ``LOG_FORMAT`` – ``json`` | ``human``  (default: ``json``)

Standard-library loggers are routed through structlog so that every log
line, including third-party libraries, obeys the configured level and
format.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

from notesplit.shared.context import get_request_id

_NOISY_LOGGERS: dict[str, int] = {
    # HTTP clients (extractor endpoint)
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
    # Database drivers
    "aiosqlite": logging.WARNING,
    "asyncpg": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    # Web server internals
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.WARNING,
    "multipart": logging.WARNING,
    "multipart.multipart": logging.WARNING,
    "python_multipart": logging.WARNING,
}


def _add_request_id(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Inject the current correlation ID when available."""
    request_id = get_request_id()
    if request_id and "request_id" not in event_dict:
        event_dict["request_id"] = request_id
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_format: bool | None = None,
) -> None:
    """Configure application-wide structured logging.

    Parameters
    ----------
    log_level:
        Minimum severity.
    json_format:
        ``True`` → JSON lines, ``False`` → console output.
        When *None* the format is read from ``LOG_FORMAT``.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "json").lower() != "human"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _add_request_id,
    ]

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove any pre-existing handlers to avoid duplicate lines
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    for logger_name, level in _NOISY_LOGGERS.items():
        # Only raise the level, never lower it below the configured one
        logging.getLogger(logger_name).setLevel(max(level, numeric_level))

    # Request logging middleware replaces uvicorn's access log
    logging.getLogger("uvicorn.access").disabled = True
