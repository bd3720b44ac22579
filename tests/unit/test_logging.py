from __future__ import annotations

import logging

import structlog

from src.xiangqibridge.interface.telemetry.logging import (
    bind_request_context,
    clear_request_context,
    resolve_level,
)


def test_resolve_level_accepts_names_and_numbers() -> None:
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(" warning ") == logging.WARNING
    assert resolve_level(logging.ERROR) == logging.ERROR


def test_resolve_level_falls_back_to_info() -> None:
    assert resolve_level("chatty") == logging.INFO


def test_request_context_is_bound_and_cleared() -> None:
    trace_id = bind_request_context("abc123", method="POST", path="/api/xiangqi/command")
    try:
        assert trace_id == "abc123"
        assert structlog.contextvars.get_contextvars() == {
            "trace_id": "abc123",
            "method": "POST",
            "path": "/api/xiangqi/command",
        }
    finally:
        clear_request_context()
    assert structlog.contextvars.get_contextvars() == {}


def test_missing_trace_id_is_generated() -> None:
    try:
        trace_id = bind_request_context(None)
        assert len(trace_id) == 32
        assert structlog.contextvars.get_contextvars()["trace_id"] == trace_id
    finally:
        clear_request_context()
