from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Event, Lock
from typing import Any, Protocol

from src.xiangqibridge.domain.engine.errors import ProcessNotRunningError
from src.xiangqibridge.interface.telemetry.logging import get_logger

logger = get_logger("xiangqibridge.engine.session")

RECENT_OUTPUT_LINES = 3


class EngineProcess(Protocol):
    """Subset of ProcessHandle a session relies on."""

    @property
    def pid(self) -> int:
        ...

    @property
    def running(self) -> bool:
        ...

    def write(self, data: bytes) -> None:
        ...

    def wait_exit(self, timeout: float | None = None) -> bool:
        ...

    def kill(self) -> None:
        ...


@dataclass(frozen=True, slots=True)
class EngineResponse:
    """Best-effort answer to a command: the next engine line, or the last one seen."""

    line: str
    timed_out: bool = False
    terminated: bool = False
    recent_output: tuple[str, ...] = ()


@dataclass(eq=False)
class ResponseWaiter:
    """A pending request for the next line of engine output."""

    event: Event = field(default_factory=Event)
    line: str | None = None
    terminated: bool = False

    def fulfil(self, line: str, *, terminated: bool = False) -> None:
        self.line = line
        self.terminated = terminated
        self.event.set()


class EngineSession:
    """Bind one engine process's output lines to the callers waiting on it.

    Correlation is positional: each line received is handed to the oldest
    pending waiter. The engine protocol carries no request identifiers, so the
    line a caller receives may be an intermediate ``info`` line rather than the
    final answer to its own command.
    """

    def __init__(self, session_id: str, process: EngineProcess, *, executable: str = "") -> None:
        self.id = session_id
        self.process = process
        self.executable = executable
        self.started_at = datetime.now(timezone.utc)
        self._log: list[str] = []
        self._last_line = ""
        self._pending: deque[ResponseWaiter] = deque()
        self._closed = False
        self._lock = Lock()

    @property
    def log(self) -> list[str]:
        with self._lock:
            return list(self._log)

    @property
    def last_line(self) -> str:
        with self._lock:
            return self._last_line

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def running(self) -> bool:
        return not self.closed and self.process.running

    def write(self, command: str) -> None:
        if not self.running:
            raise ProcessNotRunningError(f"Engine process for session {self.id} has terminated.")
        self.process.write(f"{command}\n".encode("utf-8"))

    def on_line(self, line: str) -> None:
        if not line.strip():
            return

        with self._lock:
            self._log.append(line)
            self._last_line = line
            waiter = self._pending.popleft() if self._pending else None
            if waiter is not None:
                waiter.fulfil(line)

        logger.debug("engine_line", session_id=self.id, line=line, delivered=waiter is not None)

    def expect_response(self) -> ResponseWaiter:
        """Enqueue a waiter for the next line without blocking."""
        waiter = ResponseWaiter()
        with self._lock:
            if self._closed:
                waiter.fulfil(self._last_line, terminated=True)
            else:
                self._pending.append(waiter)
        return waiter

    def cancel(self, waiter: ResponseWaiter) -> None:
        with self._lock:
            try:
                self._pending.remove(waiter)
            except ValueError:
                pass

    def await_response(self, timeout: float, waiter: ResponseWaiter | None = None) -> EngineResponse:
        waiter = waiter or self.expect_response()
        try:
            waiter.event.wait(timeout)
        except BaseException:
            self.cancel(waiter)
            raise

        with self._lock:
            if waiter.event.is_set():
                line = waiter.line or ""
                timed_out = False
            else:
                # Drop the stale waiter so it cannot swallow a later, unrelated line.
                try:
                    self._pending.remove(waiter)
                except ValueError:
                    pass
                line = self._last_line
                timed_out = True
            recent = tuple(self._log[-RECENT_OUTPUT_LINES:])

        return EngineResponse(
            line=line,
            timed_out=timed_out,
            terminated=waiter.terminated,
            recent_output=recent,
        )

    def terminate(self, reason: str = "terminated") -> int:
        """Close the session and release every pending waiter; return how many were released."""
        with self._lock:
            if self._closed:
                return 0
            self._closed = True
            released = list(self._pending)
            self._pending.clear()
            for waiter in released:
                waiter.fulfil(self._last_line, terminated=True)

        logger.info("session_terminated", session_id=self.id, reason=reason, released_waiters=len(released))
        return len(released)

    def recent_output(self, count: int = RECENT_OUTPUT_LINES) -> list[str]:
        with self._lock:
            return self._log[-count:] if count > 0 else []

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "sessionId": self.id,
                "enginePath": self.executable,
                "pid": self.process.pid,
                "startedAt": self.started_at.isoformat(),
                "lines": len(self._log),
                "lastOutput": self._last_line,
                "pendingResponses": len(self._pending),
                "closed": self._closed,
            }


__all__ = [
    "EngineProcess",
    "EngineResponse",
    "EngineSession",
    "RECENT_OUTPUT_LINES",
    "ResponseWaiter",
]
