from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import math
import os
import shlex

DEFAULT_RECOGNITION_URL = "https://xiangqiai.com/api/board_recognition"
DEFAULT_RECOGNITION_MAX_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Centralized runtime configuration for the engine bridge service."""

    engine_path: Path | None = None
    engine_args: tuple[str, ...] = ()
    engine_workdir: Path | None = None
    stabilization_window: float = 2.0
    command_timeout: float = 1.0
    max_command_timeout: float = 300.0
    quit_grace: float = 1.0
    write_timeout: float = 2.0
    recognition_url: str = DEFAULT_RECOGNITION_URL
    recognition_max_bytes: int = DEFAULT_RECOGNITION_MAX_BYTES
    recognition_timeout: float = 30.0
    server_host: str = "127.0.0.1"
    server_port: int = 3001
    flask_env: str = "production"
    additional: dict[str, str] = field(default_factory=dict)


def load_config(prefix: str = "") -> AppConfig:
    """Load application configuration from environment variables."""

    def _get_env(key: str, default: str = "") -> str:
        env_key = f"{prefix}{key}"
        return os.getenv(env_key, default)

    def _parse_float(raw: str, fallback: float) -> float:
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return fallback
        return value if math.isfinite(value) and value >= 0 else fallback

    def _parse_int(raw: str, fallback: int) -> int:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return fallback
        return value if value > 0 else fallback

    engine_raw = _get_env("ENGINE_PATH", "")
    workdir_raw = _get_env("ENGINE_WORKDIR", "")

    additional_keys = ("STRUCTLOG_LEVEL",)
    additional: dict[str, str] = {}
    for key in additional_keys:
        value = _get_env(key, "")
        if value:
            additional[key] = value

    return AppConfig(
        engine_path=Path(engine_raw) if engine_raw else None,
        engine_args=tuple(shlex.split(_get_env("ENGINE_ARGS", ""))),
        engine_workdir=Path(workdir_raw).resolve() if workdir_raw else None,
        stabilization_window=_parse_float(_get_env("ENGINE_STABILIZATION_SECONDS", "2.0"), 2.0),
        command_timeout=_parse_float(_get_env("ENGINE_COMMAND_TIMEOUT_SECONDS", "1.0"), 1.0),
        max_command_timeout=_parse_float(_get_env("ENGINE_MAX_COMMAND_TIMEOUT_SECONDS", "300"), 300.0),
        quit_grace=_parse_float(_get_env("ENGINE_QUIT_GRACE_SECONDS", "1.0"), 1.0),
        write_timeout=_parse_float(_get_env("ENGINE_WRITE_TIMEOUT_SECONDS", "2.0"), 2.0),
        recognition_url=_get_env("RECOGNITION_URL", DEFAULT_RECOGNITION_URL),
        recognition_max_bytes=_parse_int(
            _get_env("RECOGNITION_MAX_BYTES", str(DEFAULT_RECOGNITION_MAX_BYTES)),
            DEFAULT_RECOGNITION_MAX_BYTES,
        ),
        recognition_timeout=_parse_float(_get_env("RECOGNITION_TIMEOUT_SECONDS", "30"), 30.0),
        server_host=_get_env("SERVER_HOST", "127.0.0.1"),
        server_port=_parse_int(_get_env("SERVER_PORT", "3001"), 3001),
        flask_env=_get_env("FLASK_ENV", "production"),
        additional=additional,
    )


__all__ = ["AppConfig", "DEFAULT_RECOGNITION_MAX_BYTES", "DEFAULT_RECOGNITION_URL", "load_config"]
