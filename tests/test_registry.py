import pytest

from browser_copilot.llm.mock import ScriptedGenerator
from browser_copilot.session.orchestrator import Session
from browser_copilot.session.registry import SessionRegistry

from conftest import CollectingSink, StubBrowser


@pytest.fixture
def browsers() -> dict[str, StubBrowser]:
    return {}


@pytest.fixture
def registry(browsers) -> SessionRegistry:
    def factory(session_id, sink):
        browsers[session_id] = StubBrowser()
        return Session(
            session_id,
            browser=browsers[session_id],
            generator=ScriptedGenerator([]),
            sink=sink,
        )

    return SessionRegistry(factory)


def test_each_connection_gets_isolated_session(registry, browsers):
    first = registry.create(CollectingSink())
    second = registry.create(CollectingSink())

    first.initialize()
    first.user_action("pause")

    assert first.id != second.id
    assert second.paused is False
    assert browsers[second.id].started is False
    assert registry.lookup(first.id) is first
    assert sorted(registry.session_ids()) == sorted([first.id, second.id])


def test_duplicate_session_id_is_rejected(registry):
    registry.create(CollectingSink(), session_id="abc")

    with pytest.raises(ValueError):
        registry.create(CollectingSink(), session_id="abc")


def test_destroy_closes_session(registry, browsers):
    session = registry.create(CollectingSink())
    session.initialize()

    assert registry.destroy(session.id) is True
    assert registry.destroy(session.id) is False
    assert session.closed is True
    assert browsers[session.id].teardowns == 1
    assert registry.lookup(session.id) is None


def test_close_all(registry):
    sessions = [registry.create(CollectingSink()) for _ in range(3)]

    registry.close_all()

    assert len(registry) == 0
    assert all(session.closed for session in sessions)
