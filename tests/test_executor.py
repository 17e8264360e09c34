import pytest

from browser_copilot.browser.playwright_session import PlaywrightBrowser
from browser_copilot.config import BrowserConfig
from browser_copilot.errors import CapabilityFailure, InvalidCommand, SessionNotInitialized
from browser_copilot.executor import ActionExecutor
from browser_copilot.models import ActionCommand, BrowserState

from conftest import StubBrowser


@pytest.fixture
def executor(browser: StubBrowser) -> ActionExecutor:
    browser.initialize()
    return ActionExecutor(browser, home_url="https://home.example/")


def test_navigate_merges_post_action_state(executor, browser):
    result = executor.execute(ActionCommand(action="navigate", params={"url": "https://example.com"}))

    assert result.success is True
    assert result.action == "navigate"
    assert result.state is not None
    assert result.state.url == "https://example.com/"
    payload = result.to_payload()
    assert payload["url"] == "https://example.com/"
    assert payload["title"] == "Example Domain"
    assert browser.snapshots == 1


@pytest.mark.parametrize(
    "command",
    [
        ActionCommand(action="click", params={"selector": "button.submit"}),
        ActionCommand(action="click", params={"x": 10, "y": 20}),
        ActionCommand(action="type", params={"selector": "#q", "text": "hi", "pressEnter": True}),
        ActionCommand(action="wait", params={}),
        ActionCommand(action="scroll", params={"direction": "up", "amount": 100}),
    ],
)
def test_mutating_actions_resnapshot(executor, browser, command):
    result = executor.execute(command)

    assert result.success is True
    assert result.state is not None
    assert browser.snapshots == 1


def test_extract_is_read_only(executor, browser):
    result = executor.execute(ActionCommand(action="extract", params={"selector": "h1"}))

    assert result.success is True
    assert result.extracted_content == "Example Domain"
    assert result.state is None
    assert browser.snapshots == 0


def test_unknown_action_never_touches_browser(executor, browser):
    result = executor.execute(ActionCommand(action="hover", params={"selector": "a"}))

    assert result.success is False
    assert result.error == "unknown action"
    assert result.error_code == "invalid_command"
    assert browser.commands == []


@pytest.mark.parametrize(
    "command",
    [
        ActionCommand(action="navigate", params={}),
        ActionCommand(action="click", params={"x": 10}),
        ActionCommand(action="type", params={"selector": "#q"}),
        ActionCommand(action="extract", params={}),
    ],
)
def test_missing_required_params_fail_at_execution(executor, browser, command):
    result = executor.execute(command)

    assert result.success is False
    assert result.error_code == "invalid_command"
    assert browser.commands == []


def test_capability_failure_becomes_result_and_session_stays_usable():
    browser = StubBrowser(failing_actions={"click"})
    browser.initialize()
    executor = ActionExecutor(browser)

    failed = executor.execute(ActionCommand(action="click", params={"selector": "#missing"}))
    recovered = executor.execute(ActionCommand(action="navigate", params={"url": "https://example.com"}))

    assert failed.success is False
    assert failed.error_code == "capability_failure"
    assert "click failed" in failed.error
    assert recovered.success is True


def test_unexpected_exceptions_do_not_escape(executor, browser, monkeypatch):
    def explode(command):
        raise RuntimeError("socket closed")

    monkeypatch.setattr(browser, "execute", explode)

    result = executor.execute(ActionCommand(action="wait", params={"time": 10}))

    assert result.success is False
    assert result.error == "socket closed"
    assert result.error_code == "capability_failure"


def test_uninitialized_browser_reports_session_not_initialized():
    executor = ActionExecutor(StubBrowser())

    result = executor.execute(ActionCommand(action="navigate", params={"url": "https://example.com"}))

    assert result.success is False
    assert result.error_code == "session_not_initialized"
    with pytest.raises(SessionNotInitialized):
        executor.snapshot()


def test_convenience_calls(executor, browser):
    home = executor.navigate_home()
    back = executor.navigate_back()
    forward = executor.navigate_forward()
    down = executor.scroll_down()
    up = executor.scroll_up()
    capture = executor.capture()

    assert home.state.url == "https://home.example/"
    assert back.state.url == "https://previous.example/"
    assert forward.state.url == "https://next.example/"
    assert [c.params for c in browser.commands[1:]] == [
        {"direction": "down", "amount": 300},
        {"direction": "up", "amount": 300},
    ]
    assert capture.success is True
    assert capture.action == "capture_screenshot"
    assert isinstance(capture.state, BrowserState)


def test_playwright_browser_teardown_is_idempotent_without_initialize():
    browser = PlaywrightBrowser()

    browser.teardown()
    browser.teardown()

    assert browser.is_initialized is False
    with pytest.raises(SessionNotInitialized):
        browser.snapshot()


class FakePage:
    def __init__(self) -> None:
        self.waits: list[float] = []

    def wait_for_timeout(self, timeout: float) -> None:
        self.waits.append(timeout)


def _playwright_with_fake_page(timeout_seconds: float = 30) -> tuple[PlaywrightBrowser, FakePage]:
    browser = PlaywrightBrowser(BrowserConfig(timeout_seconds=timeout_seconds))
    page = FakePage()
    browser._page = page
    return browser, page


def test_playwright_wait_uses_default_and_requested_time():
    browser, page = _playwright_with_fake_page()

    browser.execute(ActionCommand(action="wait", params={}))
    browser.execute(ActionCommand(action="wait", params={"time": "2500"}))

    assert page.waits == [1000.0, 2500.0]


def test_playwright_wait_is_bounded_by_browser_timeout():
    browser, page = _playwright_with_fake_page(timeout_seconds=30)

    with pytest.raises(CapabilityFailure, match="exceeds"):
        browser.execute(ActionCommand(action="wait", params={"time": 86_400_000}))
    assert page.waits == []


@pytest.mark.parametrize("value", ["soon", -5, True, [1]])
def test_playwright_wait_rejects_malformed_time(value):
    browser, page = _playwright_with_fake_page()

    with pytest.raises(InvalidCommand):
        browser.execute(ActionCommand(action="wait", params={"time": value}))
    assert page.waits == []


def test_oversized_wait_is_reported_as_capability_failure():
    browser, _ = _playwright_with_fake_page(timeout_seconds=1)
    executor = ActionExecutor(browser)

    result = executor.execute(ActionCommand(action="wait", params={"time": 5000}))

    assert result.success is False
    assert result.error_code == "capability_failure"
