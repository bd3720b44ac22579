from .dispatcher import CommandDispatcher
from .errors import (
    EarlyExitError,
    EngineError,
    EngineIOError,
    ProcessNotRunningError,
    SessionNotFoundError,
    SpawnError,
)
from .line_reader import LineReader, iter_lines
from .process_handle import ProcessHandle
from .registry import QUIT_COMMAND, SessionRegistry
from .session import EngineResponse, EngineSession, ResponseWaiter

__all__ = [
    "CommandDispatcher",
    "EarlyExitError",
    "EngineError",
    "EngineIOError",
    "EngineResponse",
    "EngineSession",
    "LineReader",
    "ProcessHandle",
    "ProcessNotRunningError",
    "QUIT_COMMAND",
    "ResponseWaiter",
    "SessionNotFoundError",
    "SessionRegistry",
    "SpawnError",
    "iter_lines",
]
