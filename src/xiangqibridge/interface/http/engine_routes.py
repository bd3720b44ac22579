from __future__ import annotations

import math
from typing import Any

from flask import Blueprint, current_app, jsonify, request

from src.xiangqibridge.domain.engine import (
    CommandDispatcher,
    EarlyExitError,
    EngineIOError,
    EngineResponse,
    ProcessNotRunningError,
    SessionNotFoundError,
    SessionRegistry,
    SpawnError,
)
from src.xiangqibridge.infrastructure.config import AppConfig
from src.xiangqibridge.interface.telemetry.logging import get_logger

engine_bp = Blueprint("engine", __name__)
logger = get_logger("xiangqibridge.api.engine")


def _app_config() -> AppConfig:
    return current_app.config["APP_CONFIG"]


def _dispatcher() -> CommandDispatcher:
    return current_app.extensions["engine_dispatcher"]


def _registry() -> SessionRegistry:
    return _dispatcher().registry


def _request_logger(**kwargs: Any):
    # trace_id, method and path arrive through the request context.
    return logger.bind(**kwargs)


def _domain_error(code: str, message: str, status: int = 400, **detail: Any):
    payload: dict[str, Any] = {"success": False, "code": code, "error": message}
    payload.update(detail)
    return jsonify(payload), status


def _serialize_response(command: str, response: EngineResponse) -> dict[str, Any]:
    return {
        "success": True,
        "command": command,
        "response": response.line,
        "timedOut": response.timed_out,
        "terminated": response.terminated,
        "recentOutput": "\n".join(response.recent_output),
    }


@engine_bp.post("/initialize")
def initialize_engine():
    payload = request.get_json(silent=True) or {}
    log = _request_logger()
    cfg = _app_config()

    engine_path = payload.get("enginePath") or (str(cfg.engine_path) if cfg.engine_path else None)
    if not engine_path or not isinstance(engine_path, str):
        return _domain_error("engine_path_required", "enginePath is required when ENGINE_PATH is not configured.")

    try:
        session_id = _registry().create(engine_path, cfg.engine_args)
    except SpawnError as exc:
        log.error("engine_spawn_failed", engine_path=engine_path, detail=str(exc))
        return _domain_error(exc.code, str(exc), status=500, enginePath=engine_path)
    except EarlyExitError as exc:
        log.error("engine_early_exit", engine_path=engine_path, returncode=exc.returncode)
        return _domain_error(exc.code, str(exc), status=500, enginePath=engine_path)

    log.info("engine_initialized", session_id=session_id, engine_path=engine_path)
    return (
        jsonify(
            {
                "success": True,
                "sessionId": session_id,
                "message": "Engine started.",
                "enginePath": engine_path,
            }
        ),
        200,
    )


@engine_bp.post("/command")
def send_command():
    payload = request.get_json(silent=True) or {}
    session_id = payload.get("sessionId")
    command = payload.get("command")
    log = _request_logger(session_id=session_id)

    if not isinstance(session_id, str) or not session_id:
        return _domain_error("invalid_session_id", "sessionId must be provided as a string.")
    if not isinstance(command, str):
        return _domain_error("invalid_command", "command must be provided as a string.")

    timeout: float | None = None
    timeout_ms = payload.get("timeoutMs")
    if timeout_ms is not None:
        max_ms = _dispatcher().max_timeout * 1000.0
        if (
            not isinstance(timeout_ms, (int, float))
            or isinstance(timeout_ms, bool)
            or (isinstance(timeout_ms, float) and not math.isfinite(timeout_ms))
            or not 0 <= timeout_ms <= max_ms
        ):
            return _domain_error(
                "invalid_timeout",
                f"timeoutMs must be a number between 0 and {max_ms:g}.",
            )
        timeout = timeout_ms / 1000.0

    try:
        response = _dispatcher().send(session_id, command, timeout)
    except SessionNotFoundError as exc:
        log.warning("session_not_found")
        return _domain_error(exc.code, str(exc), status=404, availableSessions=_registry().ids())
    except ProcessNotRunningError as exc:
        log.warning("engine_not_running")
        return _domain_error(exc.code, str(exc), status=404)
    except EngineIOError as exc:
        log.error("engine_write_failed", command=command, detail=str(exc))
        return _domain_error(exc.code, str(exc), status=500)

    log.info("command_answered", command=command, timed_out=response.timed_out)
    return jsonify(_serialize_response(command, response)), 200


@engine_bp.post("/cleanup")
def cleanup_session():
    payload = request.get_json(silent=True) or {}
    session_id = payload.get("sessionId")
    log = _request_logger(session_id=session_id)

    removed = isinstance(session_id, str) and _registry().remove(session_id)
    log.info("session_cleanup", removed=removed)
    return jsonify({"success": True, "clearedSession": session_id, "removed": removed}), 200


@engine_bp.get("/sessions")
def list_sessions():
    sessions = [session.snapshot() for session in _registry().sessions()]
    return jsonify({"sessions": sessions, "count": len(sessions)}), 200


__all__ = ["engine_bp"]
