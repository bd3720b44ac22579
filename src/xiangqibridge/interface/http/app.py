from __future__ import annotations

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from src.xiangqibridge.domain.engine import CommandDispatcher, SessionRegistry
from src.xiangqibridge.infrastructure.config import AppConfig, load_config
from src.xiangqibridge.infrastructure.recognition import RecognitionClient
from src.xiangqibridge.interface.http.engine_routes import engine_bp
from src.xiangqibridge.interface.http.recognition_routes import recognition_bp
from src.xiangqibridge.interface.telemetry.logging import (
    TRACE_HEADER,
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)

# Room for the multipart envelope around an image at the size limit.
MULTIPART_OVERHEAD_BYTES = 64 * 1024

RESPONSE_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": f"Content-Type, {TRACE_HEADER}",
    "Access-Control-Expose-Headers": TRACE_HEADER,
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Embedder-Policy": "require-corp",
}


def create_app(
    config: AppConfig | None = None,
    *,
    registry: SessionRegistry | None = None,
    recognition_client: RecognitionClient | None = None,
) -> Flask:
    """Instantiate Flask application owning one engine session registry."""
    cfg = config or load_config()

    setup_logging(
        cfg.additional.get("STRUCTLOG_LEVEL", "INFO"),
        console=cfg.flask_env == "development",
    )
    logger = get_logger("xiangqibridge.app")

    app = Flask(__name__)
    app.config.update(
        ENV=cfg.flask_env,
        APP_CONFIG=cfg,
        MAX_CONTENT_LENGTH=cfg.recognition_max_bytes + MULTIPART_OVERHEAD_BYTES,
    )

    if registry is None:
        registry = SessionRegistry(
            stabilization_window=cfg.stabilization_window,
            quit_grace=cfg.quit_grace,
            write_timeout=cfg.write_timeout,
            cwd=cfg.engine_workdir,
        )
    app.extensions["engine_dispatcher"] = CommandDispatcher(
        registry,
        default_timeout=cfg.command_timeout,
        max_timeout=cfg.max_command_timeout,
    )
    app.extensions["recognition_client"] = recognition_client or RecognitionClient(
        cfg.recognition_url,
        timeout=cfg.recognition_timeout,
    )

    app.register_blueprint(engine_bp, url_prefix="/api/xiangqi")
    app.register_blueprint(recognition_bp, url_prefix="/api")

    @app.before_request
    def log_request():
        g.trace_id = bind_request_context(
            request.headers.get(TRACE_HEADER),
            method=request.method,
            path=request.path,
        )
        logger.info("request_received")

    @app.teardown_request
    def drop_request_context(exc):
        clear_request_context()

    @app.after_request
    def add_response_headers(response):
        for header, value in RESPONSE_HEADERS.items():
            response.headers.setdefault(header, value)
        if "trace_id" in g:
            response.headers.setdefault(TRACE_HEADER, g.trace_id)
        return response

    @app.errorhandler(RequestEntityTooLarge)
    def payload_too_large(exc: RequestEntityTooLarge):
        return jsonify({"code": 413, "msg": "Upload exceeds the configured size limit.", "data": None}), 413

    @app.errorhandler(Exception)
    def unhandled_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("unhandled_request_error", path=request.path)
        return jsonify({"success": False, "error": "Internal server error", "message": str(exc)}), 500

    @app.get("/healthz")
    def healthcheck():
        return {"status": "ok", "sessions": len(registry)}, 200

    logger.info(
        "flask_app_initialized",
        env=cfg.flask_env,
        engine_path=str(cfg.engine_path) if cfg.engine_path else None,
        stabilization_window=cfg.stabilization_window,
    )
    return app


def registry_for(app: Flask) -> SessionRegistry:
    return app.extensions["engine_dispatcher"].registry


__all__ = ["create_app", "registry_for"]
