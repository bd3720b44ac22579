from __future__ import annotations

import queue
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from threading import Event, Lock, Thread
from typing import Callable, Sequence

from src.xiangqibridge.domain.engine.errors import (
    EngineIOError,
    ProcessNotRunningError,
    SpawnError,
)
from src.xiangqibridge.domain.engine.line_reader import LineReader
from src.xiangqibridge.interface.telemetry.logging import get_logger

logger = get_logger("xiangqibridge.engine.process")

LineCallback = Callable[[str], None]
ExitCallback = Callable[[int | None], None]
ErrorCallback = Callable[[BaseException], None]

_STDERR_NOISE = ("pthread",)


@dataclass
class _WriteRequest:
    data: bytes
    done: Event = field(default_factory=Event)
    error: BaseException | None = None


def _resolve_executable(executable: str) -> str | None:
    if Path(executable).exists():
        return executable
    return shutil.which(executable)


class ProcessHandle:
    """Own one engine subprocess: its pipes, reader/writer threads, and lifecycle events."""

    def __init__(
        self,
        process: subprocess.Popen,
        *,
        executable: str,
        write_timeout: float = 2.0,
    ) -> None:
        self._process = process
        self._executable = executable
        self._write_timeout = write_timeout
        self._line_callbacks: list[LineCallback] = []
        self._exit_callbacks: list[ExitCallback] = []
        self._error_callbacks: list[ErrorCallback] = []
        self._lock = Lock()
        self._exited = Event()
        self._started = False
        self._killed = False
        self._finished = False
        self._writes: queue.Queue[_WriteRequest | None] = queue.Queue()
        self._writer = Thread(
            target=self._write_loop,
            daemon=True,
            name=f"engine-stdin-{process.pid}",
        )
        self._writer.start()

    @classmethod
    def spawn(
        cls,
        executable: str | Path,
        args: Sequence[str] = (),
        *,
        cwd: str | Path | None = None,
        write_timeout: float = 2.0,
    ) -> "ProcessHandle":
        path = str(executable)
        resolved = _resolve_executable(path)
        if resolved is None:
            raise SpawnError(f"Engine executable not found: {path}")

        try:
            process = subprocess.Popen(
                [resolved, *args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                cwd=str(cwd) if cwd else None,
            )
        except OSError as exc:
            raise SpawnError(f"Unable to start engine {path}: {exc}") from exc

        logger.info("engine_spawned", executable=resolved, pid=process.pid)
        return cls(process, executable=resolved, write_timeout=write_timeout)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def executable(self) -> str:
        return self._executable

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def running(self) -> bool:
        return not self._exited.is_set() and self._process.poll() is None

    def on_line(self, callback: LineCallback) -> None:
        self._line_callbacks.append(callback)

    def on_exit(self, callback: ExitCallback) -> None:
        self._exit_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    def start(self) -> None:
        """Begin draining stdout and stderr. Subscribe before calling this."""
        with self._lock:
            if self._started:
                return
            self._started = True

        Thread(
            target=self._read_stdout,
            daemon=True,
            name=f"engine-stdout-{self.pid}",
        ).start()
        Thread(
            target=self._read_stderr,
            daemon=True,
            name=f"engine-stderr-{self.pid}",
        ).start()

    def write(self, data: bytes) -> None:
        if not self.running:
            raise ProcessNotRunningError(f"Engine process {self.pid} is not running.")

        request = _WriteRequest(data=data)
        self._writes.put(request)
        if not request.done.wait(self._write_timeout):
            raise EngineIOError(
                f"Engine process {self.pid} did not accept input within {self._write_timeout}s."
            )
        if request.error is not None:
            raise EngineIOError(f"Write to engine process {self.pid} failed: {request.error}") from request.error

    def wait_exit(self, timeout: float | None = None) -> bool:
        """Block until exit listeners have run; return False on timeout."""
        return self._exited.wait(timeout)

    def kill(self) -> None:
        with self._lock:
            if self._killed or self._process.poll() is not None:
                return
            self._killed = True
        try:
            self._process.kill()
        except ProcessLookupError:
            return
        logger.info("engine_killed", pid=self.pid)

    def _write_loop(self) -> None:
        stdin = self._process.stdin
        while True:
            request = self._writes.get()
            if request is None:
                break
            try:
                view = memoryview(request.data)
                while view:
                    written = stdin.write(view)
                    view = view[written:]
                stdin.flush()
            except (OSError, ValueError) as exc:
                request.error = exc
            finally:
                request.done.set()

        try:
            stdin.close()
        except OSError as exc:
            logger.debug("engine_stdin_close_failed", pid=self.pid, error=str(exc))

    def _read_stdout(self) -> None:
        try:
            for line in LineReader(self._process.stdout):
                for callback in list(self._line_callbacks):
                    self._invoke(callback, line)
        except OSError as exc:
            logger.error("engine_stdout_failed", pid=self.pid, error=str(exc))
            self.kill()
            self._process.wait()
            self._finish(self._error_callbacks, exc)
            return

        returncode = self._process.wait()
        logger.info("engine_exited", pid=self.pid, returncode=returncode)
        self._finish(self._exit_callbacks, returncode)

    def _read_stderr(self) -> None:
        try:
            for line in LineReader(self._process.stderr):
                if not line.strip() or any(noise in line for noise in _STDERR_NOISE):
                    continue
                logger.debug("engine_stderr", pid=self.pid, line=line)
        except OSError as exc:
            logger.debug("engine_stderr_closed", pid=self.pid, error=str(exc))

    def _finish(self, callbacks: list[Callable], argument: object) -> None:
        # Exit and error notifications are terminal and delivered once.
        with self._lock:
            if self._finished:
                return
            self._finished = True
        self._writes.put(None)
        try:
            for callback in list(callbacks):
                self._invoke(callback, argument)
        finally:
            self._exited.set()

    def _invoke(self, callback: Callable, argument: object) -> None:
        try:
            callback(argument)
        except Exception:
            logger.exception("engine_listener_failed", pid=self.pid)


__all__ = ["ProcessHandle"]
