"""ReplayLens — Structured logging configuration.

Uses structlog for levelled, key/value logging with consistent event names
across recorder and executor.  Entries carry ``execution_id`` /
``workflow_id`` / ``session_id`` when bound through the context helpers.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

_ctx_execution_id: ContextVar[str | None] = ContextVar("execution_id", default=None)
_ctx_workflow_id: ContextVar[str | None] = ContextVar("workflow_id", default=None)
_ctx_session_id: ContextVar[str | None] = ContextVar("session_id", default=None)


def bind_execution_context(
    execution_id: str | None = None,
    workflow_id: str | None = None,
    session_id: str | None = None,
) -> None:
    """Bind engine ids to the current async task."""
    if execution_id is not None:
        _ctx_execution_id.set(execution_id)
    if workflow_id is not None:
        _ctx_workflow_id.set(workflow_id)
    if session_id is not None:
        _ctx_session_id.set(session_id)


def clear_execution_context() -> None:
    _ctx_execution_id.set(None)
    _ctx_workflow_id.set(None)
    _ctx_session_id.set(None)


def _inject_context_vars(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    if (execution_id := _ctx_execution_id.get()) is not None:
        event_dict.setdefault("execution_id", execution_id)
    if (workflow_id := _ctx_workflow_id.get()) is not None:
        event_dict.setdefault("workflow_id", workflow_id)
    if (session_id := _ctx_session_id.get()) is not None:
        event_dict.setdefault("session_id", session_id)
    return event_dict


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        level:    One of debug, info, warning, error, critical.
        format:   ``"console"`` for human-readable output, ``"json"`` for
                  machine-readable structured logs.
        log_file: Optional path to write logs to in addition to stderr.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_vars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    for noisy in ("asyncio", "playwright"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.info("execution_started", workflow_id="abc123", step_count=5)
    """
    return structlog.get_logger(name)
