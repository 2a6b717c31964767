"""
Structured logging for surql-migrate.

Manifesto:
    Migration runs touch live databases. Every applied unit, every ledger
    write and every rollback must leave a trace that can be grepped or
    shipped to a log aggregator:

    - **Structures:** Events are dotted names with key/value fields
      (``migration.applied version=...``)
    - **Correlates:** ``version`` is bound for the duration of a unit
    - **Flexes:** Console output for operators, JSON for CI pipelines

Architecture:
    ::

        configure_logging(level="INFO", json_format=None)
            ↓
        structlog processor chain:
          1. merge_contextvars (version bound by LogContext)
          2. add_log_level, TimeStamper (iso, optional)
          3. _tag_tool
          4. JSONRenderer (CI) or ConsoleRenderer (tty)
            ↓
        PrintLogger on stderr (stdout is left to command output)

Examples:
    >>> from surql_migrate.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("diff.resolved", creates=2, alters=0, drops=0)

Tags:
    logging, structlog, observability, surql-migrate
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

TOOL_NAME = "surql-migrate"


def _tag_tool(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Name the emitting tool, so shipped logs can be told apart."""
    event_dict.setdefault("tool", TOOL_NAME)
    return event_dict


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    timestamps: bool = True,
    cache_loggers: bool = True,
) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum level to emit (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines when True, console when False; when None,
            JSON unless stderr is a terminal
        timestamps: Prefix events with an ISO timestamp
        cache_loggers: Cache bound loggers on first use (off for short-lived
            invocations whose stderr may be swapped, such as CLI test runs)
    """
    threshold = logging.getLevelName(level.upper())
    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    if timestamps:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors.append(_tag_tool)
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=cache_loggers,
    )
    # The SDK and websocket libraries log through the stdlib.
    logging.basicConfig(format="%(name)s %(levelname)s %(message)s", stream=sys.stderr, level=threshold)


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``).

    The name is bound as the ``logger_name`` field rather than resolved from
    the underlying print logger, which has no name.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name, logger_name=name)


class LogContext:
    """Bind fields to every event logged inside the block.

    Example:
        with LogContext(version="20240101_120000"):
            logger.info("migration.applying")
    """

    def __init__(self, **fields: Any) -> None:
        self._fields = fields

    def __enter__(self) -> LogContext:
        structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self._fields)


__all__ = ["TOOL_NAME", "configure_logging", "get_logger", "LogContext"]
