from __future__ import annotations

import pytest


@pytest.fixture()
def client(app):
    return app.test_client()


def _initialize(client) -> str:
    response = client.post("/api/xiangqi/initialize", json={})
    assert response.status_code == 200, response.get_json()
    return response.get_json()["sessionId"]


def test_initialize_uses_configured_engine(client, app_config):
    response = client.post("/api/xiangqi/initialize", json={})
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["sessionId"]
    assert payload["enginePath"] == str(app_config.engine_path)


def test_initialize_with_missing_engine_reports_spawn_failure(client, tmp_path):
    response = client.post("/api/xiangqi/initialize", json={"enginePath": str(tmp_path / "pikafish")})
    assert response.status_code == 500
    payload = response.get_json()
    assert payload["success"] is False
    assert payload["code"] == "spawn_failed"

    sessions = client.get("/api/xiangqi/sessions").get_json()
    assert sessions["count"] == 0


def test_command_round_trip(client):
    session_id = _initialize(client)

    response = client.post(
        "/api/xiangqi/command",
        json={"sessionId": session_id, "command": "isready", "timeoutMs": 2000},
    )
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["command"] == "isready"
    assert payload["response"] == "readyok"
    assert payload["timedOut"] is False
    assert payload["recentOutput"] == "readyok"


def test_command_timeout_returns_last_output(client):
    session_id = _initialize(client)
    client.post("/api/xiangqi/command", json={"sessionId": session_id, "command": "echo ready", "timeoutMs": 2000})

    response = client.post(
        "/api/xiangqi/command",
        json={"sessionId": session_id, "command": "silent", "timeoutMs": 200},
    )
    payload = response.get_json()
    assert response.status_code == 200
    assert payload["timedOut"] is True
    assert payload["response"] == "ready"


def test_command_for_unknown_session_is_not_found(client):
    response = client.post("/api/xiangqi/command", json={"sessionId": "123", "command": "isready"})
    assert response.status_code == 404
    payload = response.get_json()
    assert payload["code"] == "session_not_found"
    assert payload["availableSessions"] == []


def test_command_requires_string_command(client):
    session_id = _initialize(client)
    response = client.post("/api/xiangqi/command", json={"sessionId": session_id, "command": 7})
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_command"


def test_command_rejects_negative_timeout(client):
    session_id = _initialize(client)
    response = client.post(
        "/api/xiangqi/command",
        json={"sessionId": session_id, "command": "isready", "timeoutMs": -1},
    )
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_timeout"


def test_cleanup_is_idempotent(client):
    session_id = _initialize(client)

    first = client.post("/api/xiangqi/cleanup", json={"sessionId": session_id})
    second = client.post("/api/xiangqi/cleanup", json={"sessionId": session_id})

    assert first.status_code == 200
    assert first.get_json() == {"success": True, "clearedSession": session_id, "removed": True}
    assert second.status_code == 200
    assert second.get_json()["removed"] is False

    after = client.post("/api/xiangqi/command", json={"sessionId": session_id, "command": "isready"})
    assert after.status_code == 404


def test_sessions_listing(client):
    session_id = _initialize(client)
    payload = client.get("/api/xiangqi/sessions").get_json()
    assert payload["count"] == 1
    assert payload["sessions"][0]["sessionId"] == session_id
    assert payload["sessions"][0]["closed"] is False


def test_healthcheck_and_isolation_headers(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"
    assert response.headers["Cross-Origin-Opener-Policy"] == "same-origin"
    assert response.headers["Cross-Origin-Embedder-Policy"] == "require-corp"
    assert response.headers["Access-Control-Allow-Origin"] == "*"


@pytest.mark.parametrize(
    "raw_timeout",
    ["1e13", "NaN", "Infinity", "\"soon\""],
)
def test_command_rejects_unusable_timeouts(client, raw_timeout):
    session_id = _initialize(client)
    body = '{"sessionId": "%s", "command": "isready", "timeoutMs": %s}' % (session_id, raw_timeout)

    rejected = client.post("/api/xiangqi/command", data=body, content_type="application/json")
    assert rejected.status_code == 400
    assert rejected.get_json()["code"] == "invalid_timeout"

    follow_up = client.post(
        "/api/xiangqi/command",
        json={"sessionId": session_id, "command": "isready", "timeoutMs": 2000},
    )
    payload = follow_up.get_json()
    assert payload["response"] == "readyok"
    assert payload["timedOut"] is False


def test_trace_id_is_echoed_or_generated(client):
    traced = client.get("/healthz", headers={"X-Trace-Id": "trace-42"})
    assert traced.headers["X-Trace-Id"] == "trace-42"

    untraced = client.get("/healthz")
    assert len(untraced.headers["X-Trace-Id"]) == 32
