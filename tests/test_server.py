import time

import pytest
from fastapi.testclient import TestClient

from browser_copilot.llm.mock import ScriptedGenerator
from browser_copilot.server import create_app
from browser_copilot.session.orchestrator import Session
from browser_copilot.session.registry import SessionRegistry

from conftest import NAVIGATE_EXAMPLE, StubBrowser


@pytest.fixture
def browsers() -> list[StubBrowser]:
    return []


@pytest.fixture
def registry(browsers) -> SessionRegistry:
    def factory(session_id, sink):
        browser = StubBrowser()
        browsers.append(browser)
        return Session(
            session_id,
            browser=browser,
            generator=ScriptedGenerator([NAVIGATE_EXAMPLE, "Navigation succeeded."]),
            sink=sink,
        )

    return SessionRegistry(factory)


@pytest.fixture
def client(registry):
    with TestClient(create_app(registry=registry)) as test_client:
        yield test_client


def _receive_until(websocket, event_type: str, limit: int = 20) -> list[dict]:
    frames = []
    for _ in range(limit):
        frame = websocket.receive_json()
        frames.append(frame)
        if frame["event"] == event_type:
            return frames
    raise AssertionError(f"{event_type} not received; got {[f['event'] for f in frames]}")


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "sessions": 0}


def test_instruction_round_trip(client, registry, browsers):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "initialize-session"})
        ready = websocket.receive_json()
        assert ready["event"] == "session-ready"
        assert "timestamp" in ready

        websocket.send_json({"event": "run-instruction", "data": {"prompt": "go to example.com"}})
        frames = _receive_until(websocket, "generator-feedback")

        events = [frame["event"] for frame in frames]
        assert events[:2] == ["instruction-started", "generator-text"]
        state = next(frame for frame in frames if frame["event"] == "state-update")
        assert state["data"]["url"] == "https://example.com/"
        assert frames[-1]["data"]["feedback"] == "Navigation succeeded."

        websocket.send_json({"event": "get-history"})
        history = websocket.receive_json()
        assert history["event"] == "history"
        assert history["data"] == {"history": []}

    assert _wait_for(lambda: len(registry) == 0)
    assert browsers[0].teardowns == 1


def test_approval_over_websocket(client, browsers):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "initialize-session"})
        websocket.receive_json()

        websocket.send_json(
            {
                "event": "run-instruction",
                "data": {"prompt": "go to example.com", "requireApproval": True},
            }
        )
        needed = _receive_until(websocket, "approval-needed")[-1]
        assert browsers[0].commands == []

        websocket.send_json(
            {
                "event": "user-action",
                "data": {"type": "approve", "data": {"proposal_id": needed["data"]["proposal_id"]}},
            }
        )
        result = _receive_until(websocket, "user-action-result")[-1]

    assert result["data"]["success"] is True
    assert result["data"]["disposition"] == "approved"
    assert browsers[0].url == "https://example.com/"


def test_instruction_before_initialize(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "run-instruction", "data": {"prompt": "go to example.com"}})
        error = websocket.receive_json()

    assert error["event"] == "error"
    assert error["data"]["code"] == "session_not_initialized"


def test_malformed_and_unknown_frames_keep_connection_open(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text("not json")
        malformed = websocket.receive_json()
        websocket.send_json({"event": "teleport"})
        unknown = websocket.receive_json()
        websocket.send_json({"event": "user-action", "data": {"type": "pause"}})
        paused = _receive_until(websocket, "paused")

    assert malformed["event"] == "error"
    assert malformed["data"]["code"] == "invalid_command"
    assert unknown["data"]["message"] == "Unknown event: teleport"
    assert paused[0]["data"]["success"] is True


def test_disconnect_event_destroys_session(client, registry, browsers):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "initialize-session"})
        websocket.receive_json()
        assert len(registry) == 1
        websocket.send_json({"event": "disconnect"})

        assert _wait_for(lambda: len(registry) == 0)

    assert browsers[0].teardowns == 1


def test_connections_are_isolated(client, browsers):
    with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
        first.send_json({"event": "initialize-session"})
        first.receive_json()
        first.send_json({"event": "user-action", "data": {"type": "pause"}})
        _receive_until(first, "paused")

        second.send_json({"event": "initialize-session"})
        second.receive_json()
        second.send_json({"event": "run-instruction", "data": {"prompt": "go to example.com"}})
        frames = _receive_until(second, "generator-feedback")

    assert "error" not in [frame["event"] for frame in frames]
    assert len(browsers) == 2


def test_non_boolean_require_approval_is_rejected(client, browsers):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"event": "initialize-session"})
        websocket.receive_json()
        websocket.send_json(
            {
                "event": "run-instruction",
                "data": {"prompt": "go to example.com", "requireApproval": "false"},
            }
        )
        error = websocket.receive_json()

    assert error["event"] == "error"
    assert error["data"]["code"] == "invalid_command"
    assert browsers[0].commands == []
