from __future__ import annotations

import sys
from pathlib import Path

import pytest

from src.xiangqibridge.domain.engine import CommandDispatcher, SessionRegistry
from src.xiangqibridge.infrastructure.config import AppConfig
from src.xiangqibridge.interface.http.app import create_app, registry_for

FAKE_ENGINE = Path(__file__).parent / "fixtures" / "fake_engine.py"


@pytest.fixture(scope="session")
def fake_engine() -> tuple[str, tuple[str, ...]]:
    """Executable and arguments that launch the scripted test engine."""
    return sys.executable, ("-u", str(FAKE_ENGINE))


@pytest.fixture(scope="session")
def app_config(fake_engine) -> AppConfig:
    """Provide a configuration tuned for fast, isolated tests."""
    executable, args = fake_engine
    return AppConfig(
        engine_path=Path(executable),
        engine_args=args,
        stabilization_window=0.3,
        command_timeout=1.0,
        max_command_timeout=5.0,
        quit_grace=1.0,
        write_timeout=1.0,
        recognition_url="https://recognition.invalid/api/board_recognition",
        recognition_max_bytes=1024,
        flask_env="test",
        additional={},
    )


@pytest.fixture
def registry(app_config: AppConfig):
    registry = SessionRegistry(
        stabilization_window=app_config.stabilization_window,
        quit_grace=app_config.quit_grace,
        write_timeout=app_config.write_timeout,
    )
    try:
        yield registry
    finally:
        registry.shutdown()


@pytest.fixture
def dispatcher(registry: SessionRegistry, app_config: AppConfig) -> CommandDispatcher:
    return CommandDispatcher(
        registry,
        default_timeout=app_config.command_timeout,
        max_timeout=app_config.max_command_timeout,
    )


@pytest.fixture
def app(app_config: AppConfig):
    flask_app = create_app(app_config)
    flask_app.config.update(TESTING=True)
    try:
        yield flask_app
    finally:
        registry_for(flask_app).shutdown()
