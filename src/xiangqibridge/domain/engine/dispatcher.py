from __future__ import annotations

import math
import threading

from src.xiangqibridge.domain.engine.errors import EngineError, ProcessNotRunningError
from src.xiangqibridge.domain.engine.registry import SessionRegistry
from src.xiangqibridge.domain.engine.session import EngineResponse
from src.xiangqibridge.interface.telemetry.logging import get_logger

logger = get_logger("xiangqibridge.engine.dispatcher")

DEFAULT_MAX_TIMEOUT = 300.0


class CommandDispatcher:
    """Request/response facade over the line-oriented engine sessions."""

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        default_timeout: float = 1.0,
        max_timeout: float = DEFAULT_MAX_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._default_timeout = default_timeout
        self._max_timeout = min(max_timeout, threading.TIMEOUT_MAX)

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def max_timeout(self) -> float:
        return self._max_timeout

    def clamp_timeout(self, timeout: float | None) -> float:
        if timeout is None or math.isnan(timeout) or timeout < 0:
            timeout = self._default_timeout
        return min(timeout, self._max_timeout)

    def send(self, session_id: str, command: str, timeout: float | None = None) -> EngineResponse:
        """Write ``command`` to the session's engine and return the next line it prints.

        Falls back to the last line seen when nothing arrives within ``timeout``,
        which is capped at ``max_timeout``.
        """
        session = self._registry.get(session_id)
        if not session.running:
            self._registry.discard(session_id)
            raise ProcessNotRunningError(f"Engine process for session {session_id} has terminated.")

        wait = self.clamp_timeout(timeout)
        waiter = session.expect_response()
        try:
            session.write(command)
        except EngineError:
            session.cancel(waiter)
            raise

        logger.debug("command_sent", session_id=session_id, command=command)
        response = session.await_response(wait, waiter)
        if response.timed_out:
            logger.debug("command_timed_out", session_id=session_id, command=command, timeout=wait)
        return response


__all__ = ["CommandDispatcher", "DEFAULT_MAX_TIMEOUT"]
