from __future__ import annotations


class EngineError(RuntimeError):
    """Base class for engine session errors."""

    code: str = "engine_error"


class SpawnError(EngineError):
    code = "spawn_failed"


class EarlyExitError(EngineError):
    code = "early_exit"

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class SessionNotFoundError(EngineError):
    code = "session_not_found"


class ProcessNotRunningError(EngineError):
    code = "process_not_running"


class EngineIOError(EngineError):
    code = "engine_io_error"


__all__ = [
    "EarlyExitError",
    "EngineError",
    "EngineIOError",
    "ProcessNotRunningError",
    "SessionNotFoundError",
    "SpawnError",
]
