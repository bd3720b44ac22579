from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify, request

from src.xiangqibridge.infrastructure.config import AppConfig
from src.xiangqibridge.infrastructure.recognition import RecognitionClient, RecognitionError
from src.xiangqibridge.interface.telemetry.logging import get_logger

recognition_bp = Blueprint("recognition", __name__)
logger = get_logger("xiangqibridge.api.recognition")


def _client() -> RecognitionClient:
    return current_app.extensions["recognition_client"]


def _error(status: int, message: str):
    return jsonify({"code": status, "msg": message, "data": None}), status


@recognition_bp.post("/pikafish-recognize")
def recognize_board():
    """Relay an uploaded board image to the recognition API and return its JSON verbatim."""
    log = logger.bind(upstream=_client().endpoint)
    cfg: AppConfig = current_app.config["APP_CONFIG"]

    upload = request.files.get("image")
    if upload is None:
        log.warning("recognition_missing_image")
        return _error(400, "No image uploaded.")

    image = upload.read()
    if len(image) > cfg.recognition_max_bytes:
        log.warning("recognition_image_too_large", size=len(image), limit=cfg.recognition_max_bytes)
        return _error(413, f"Image exceeds {cfg.recognition_max_bytes} bytes.")

    filename = upload.filename or "board.jpg"
    content_type = upload.mimetype or "image/jpeg"
    log.info("recognition_forwarded", filename=filename, size=len(image), content_type=content_type)

    try:
        result = _client().recognize(image, filename=filename, content_type=content_type)
    except RecognitionError as exc:
        log.error("recognition_upstream_unreachable", detail=str(exc))
        return _error(502, str(exc))

    if not result.ok:
        log.error("recognition_upstream_error", status=result.status_code, body=result.text[:500])
        return _error(result.status_code, f"Recognition API error: {result.reason}")

    if not result.is_json:
        log.error("recognition_invalid_payload", status=result.status_code)
        return _error(502, "Recognition API returned a non-JSON body.")

    data: Any = result.payload.get("data") if isinstance(result.payload, dict) else None
    if isinstance(data, dict):
        log.info("recognition_completed", fen=data.get("fen"), orientation=data.get("orientation"))
    return jsonify(result.payload), result.status_code


@recognition_bp.get("/pikafish-test")
def recognition_info():
    cfg: AppConfig = current_app.config["APP_CONFIG"]
    return jsonify(
        {
            "status": "OK",
            "message": "Recognition proxy is running.",
            "endpoint": "POST /api/pikafish-recognize",
            "method": "multipart/form-data",
            "field": "image",
            "maxFileSize": cfg.recognition_max_bytes,
            "upstream": _client().endpoint,
        }
    )


__all__ = ["recognition_bp"]
