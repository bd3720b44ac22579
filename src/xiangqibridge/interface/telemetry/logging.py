from __future__ import annotations

from typing import Any
import logging
import sys
from uuid import uuid4

import structlog

TRACE_HEADER = "X-Trace-Id"


def resolve_level(level: int | str) -> int:
    """Map a level name or number to a logging level, falling back to INFO."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: int | str = "INFO", *, console: bool = False) -> None:
    """Configure structlog for request-correlated engine logs.

    Output is one JSON object per line unless ``console`` is set, in which case
    the human-readable development renderer is used instead.
    """
    min_level = resolve_level(level)
    logging.basicConfig(format="%(message)s", level=min_level, stream=sys.stdout)

    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if console
        else structlog.processors.JSONRenderer(ensure_ascii=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None):
    return structlog.get_logger(name or "xiangqibridge")


def bind_request_context(trace_id: str | None = None, **fields: Any) -> str:
    """Bind a trace id (fresh when absent) plus request fields to every log line
    emitted on the current request, and return the trace id."""
    trace_id = trace_id or uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trace_id=trace_id, **fields)
    return trace_id


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = [
    "TRACE_HEADER",
    "bind_request_context",
    "clear_request_context",
    "get_logger",
    "resolve_level",
    "setup_logging",
]
