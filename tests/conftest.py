from __future__ import annotations

from typing import Any, Callable, Iterable
from urllib.parse import urlparse

import pytest

from browser_copilot.browser.base import BrowserCapability
from browser_copilot.errors import CapabilityFailure
from browser_copilot.events import EventSink
from browser_copilot.llm.mock import ScriptedGenerator
from browser_copilot.models import ActionCommand, BrowserState, SessionEvent
from browser_copilot.session.orchestrator import Session


class StubBrowser(BrowserCapability):
    def __init__(self, *, failing_actions: Iterable[str] = ()) -> None:
        self.started = False
        self.commands: list[ActionCommand] = []
        self.snapshots = 0
        self.teardowns = 0
        self.url = "about:blank"
        self.failing_actions = set(failing_actions)

    @property
    def is_initialized(self) -> bool:
        return self.started

    def initialize(self) -> None:
        self.started = True

    def execute(self, command: ActionCommand) -> dict[str, Any]:
        self.commands.append(command)
        if command.action in self.failing_actions:
            raise CapabilityFailure(f"{command.action} failed")
        if command.action == "navigate":
            url = command.params["url"]
            self.url = url if urlparse(url).path else f"{url}/"
        if command.action == "extract":
            return {"extracted_content": "Example Domain"}
        return {}

    def snapshot(self) -> BrowserState:
        self.snapshots += 1
        return BrowserState(
            url=self.url,
            title="Example Domain",
            screenshot="c2NyZWVuc2hvdA==",
            content="<html><body>Example Domain</body></html>",
        )

    def go_back(self) -> None:
        self.url = "https://previous.example/"

    def go_forward(self) -> None:
        self.url = "https://next.example/"

    def teardown(self) -> None:
        self.teardowns += 1
        self.started = False


class CollectingSink(EventSink):
    def __init__(self) -> None:
        self.events: list[SessionEvent] = []

    def emit(self, event: SessionEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type for event in self.events]

    def last(self, event_type: str) -> SessionEvent:
        matches = [event for event in self.events if event.type == event_type]
        assert matches, f"no {event_type} event emitted; got {self.types()}"
        return matches[-1]


def fenced(payload: str) -> str:
    return f"Here is the next step.\n```json\n{payload}\n```"


NAVIGATE_EXAMPLE = fenced(
    '{"action": "navigate", "params": {"url": "https://example.com"}, '
    '"reasoning": "open the requested site"}'
)


@pytest.fixture
def browser() -> StubBrowser:
    return StubBrowser()


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def make_session(
    browser: StubBrowser,
    sink: CollectingSink,
) -> Callable[..., tuple[Session, ScriptedGenerator]]:
    def _factory(*responses: str, initialize: bool = True) -> tuple[Session, ScriptedGenerator]:
        generator = ScriptedGenerator(responses)
        session = Session("test-session", browser=browser, generator=generator, sink=sink)
        if initialize:
            assert session.initialize() is True
        return session, generator

    return _factory
