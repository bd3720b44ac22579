from __future__ import annotations

import time
from pathlib import Path
from threading import Lock
from typing import Callable, Sequence

from src.xiangqibridge.domain.engine.errors import (
    EarlyExitError,
    EngineError,
    SessionNotFoundError,
)
from src.xiangqibridge.domain.engine.process_handle import ProcessHandle
from src.xiangqibridge.domain.engine.session import EngineSession
from src.xiangqibridge.interface.telemetry.logging import get_logger

logger = get_logger("xiangqibridge.engine.registry")

QUIT_COMMAND = "quit"

Spawner = Callable[..., ProcessHandle]


class SessionRegistry:
    """Track live engine sessions by id and own their creation and teardown."""

    def __init__(
        self,
        *,
        stabilization_window: float = 2.0,
        quit_grace: float = 1.0,
        write_timeout: float = 2.0,
        cwd: str | Path | None = None,
        spawner: Spawner = ProcessHandle.spawn,
    ) -> None:
        self._stabilization_window = stabilization_window
        self._quit_grace = quit_grace
        self._write_timeout = write_timeout
        self._cwd = cwd
        self._spawner = spawner
        self._sessions: dict[str, EngineSession] = {}
        self._lock = Lock()
        self._last_id = 0

    def create(self, executable: str | Path, args: Sequence[str] = ()) -> str:
        """Spawn an engine and return its session id once it survives the stabilization window."""
        handle = self._spawner(
            executable,
            args,
            cwd=self._cwd,
            write_timeout=self._write_timeout,
        )
        session = EngineSession(self._next_id(), handle, executable=handle.executable)
        log = logger.bind(session_id=session.id, pid=handle.pid)

        handle.on_line(session.on_line)
        handle.on_exit(lambda code: self._evict(session, f"exit code {code}"))
        handle.on_error(lambda exc: self._evict(session, f"process error: {exc}"))
        handle.start()

        survived = not handle.wait_exit(self._stabilization_window)
        if survived:
            with self._lock:
                # An exit landing between the wait and this insert has already closed the session.
                survived = not session.closed
                if survived:
                    self._sessions[session.id] = session

        if not survived:
            log.warning("engine_early_exit", returncode=handle.returncode)
            raise EarlyExitError(
                f"Engine {handle.executable} exited during startup (code {handle.returncode}).",
                returncode=handle.returncode,
            )

        log.info("session_created", executable=handle.executable)
        return session.id

    def get(self, session_id: str) -> EngineSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found.")
        return session

    def discard(self, session_id: str) -> EngineSession | None:
        """Drop a session from the map without shutting its engine down."""
        with self._lock:
            return self._sessions.pop(session_id, None)

    def remove(self, session_id: str) -> bool:
        """Shut a session's engine down and forget it; unknown ids are a no-op."""
        session = self.discard(session_id)
        if session is None:
            logger.debug("session_remove_noop", session_id=session_id)
            return False

        self._shutdown(session)
        logger.info("session_removed", session_id=session_id)
        return True

    def shutdown(self) -> int:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            self._shutdown(session)
        if sessions:
            logger.info("registry_shutdown", sessions=len(sessions))
        return len(sessions)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def sessions(self) -> list[EngineSession]:
        with self._lock:
            return list(self._sessions.values())

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _next_id(self) -> str:
        with self._lock:
            candidate = max(time.time_ns(), self._last_id + 1)
            self._last_id = candidate
        return str(candidate)

    def _evict(self, session: EngineSession, reason: str) -> None:
        session.terminate(reason)
        with self._lock:
            if self._sessions.get(session.id) is session:
                del self._sessions[session.id]
                evicted = True
            else:
                evicted = False
        if evicted:
            logger.info("session_evicted", session_id=session.id, reason=reason)

    def _shutdown(self, session: EngineSession) -> None:
        handle = session.process
        try:
            session.write(QUIT_COMMAND)
        except EngineError as exc:
            logger.warning("engine_quit_failed", session_id=session.id, error=str(exc))

        if not handle.wait_exit(self._quit_grace):
            handle.kill()
        session.terminate("removed")


__all__ = ["QUIT_COMMAND", "SessionRegistry"]
