"""Structured logging for Taleforge.

Every module logs through structlog key-value events. A turn binds its
``turn_id`` into the context so the model call, the parser and the roll
chain of one player action can be followed together. Provider keys never
reach the output.

Applications call :func:`configure_from_settings` once at startup;
:meth:`taleforge.dm.session.DungeonMasterSession.create` does it for you.

Example:
    >>> from taleforge.core.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Rolls resolved", count=2, depth=0)
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor


if TYPE_CHECKING:
    from structlog.types import EventDict, WrappedLogger

    from taleforge.core.config import Settings


REDACTED = "***"

_SECRET_SUFFIXES = ("api_key", "authorization", "secret")

# stdlib loggers of the model transport
_TRANSPORT_LOGGERS = ("httpx", "httpcore", "openai")


# =============================================================================
# Processors
# =============================================================================


def _app_context(app_name: str, app_version: str | None) -> Processor:
    """Build a processor stamping the application name and version."""

    def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", app_name)
        if app_version:
            event_dict.setdefault("version", app_version)
        return event_dict

    return add_app_context


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values logged under credential-like keys.

    Args:
        logger: The wrapped logger instance.
        method_name: Name of the logging method called.
        event_dict: The event dictionary to modify.

    Returns:
        The event dictionary with secrets replaced by ``***``.
    """
    for key in event_dict:
        if key.lower().endswith(_SECRET_SUFFIXES) and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


# =============================================================================
# Setup
# =============================================================================


def configure_logging(
    *,
    level: str = "INFO",
    json_format: bool = False,
    app_name: str = "taleforge",
    app_version: str | None = None,
) -> None:
    """Configure structlog and the transport's stdlib loggers.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Emit one JSON object per line instead of console output.
        app_name: Value of the ``app`` field on every event.
        app_version: Value of the ``version`` field, omitted when None.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _app_context(app_name, app_version),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=log_level,
        stream=sys.stdout,
        force=True,
    )
    # Request-level chatter from the SDK stays out unless it is a problem
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def configure_from_settings(settings: Settings) -> None:
    """Configure logging from application settings.

    Args:
        settings: Uses ``log_level``, ``log_json``, ``app_name`` and ``app_version``.
    """
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        app_name=settings.app_name.lower(),
        app_version=settings.app_version,
    )


# =============================================================================
# Access
# =============================================================================


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Return a structlog logger, typically for ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields onto every following event in this context.

    Example:
        >>> bind_context(turn_id="abc123")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all bound fields; called when a turn ends."""
    structlog.contextvars.clear_contextvars()


__all__ = [
    "REDACTED",
    "bind_context",
    "clear_context",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
    "redact_secrets",
]
