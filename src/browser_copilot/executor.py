"""Adapter that runs :class:`ActionCommand` objects against a browser."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .browser.base import BrowserCapability
from .errors import CapabilityFailure, CopilotError, InvalidCommand, SessionNotInitialized
from .models import MUTATING_ACTIONS, ActionCommand, ActionType, BrowserState, ExecutionResult

LOGGER = logging.getLogger(__name__)

DEFAULT_HOME_URL = "https://www.google.com"
SHORTCUT_SCROLL_AMOUNT = 300

_REQUIRED_PARAMS: dict[ActionType, tuple[str, ...]] = {
    ActionType.NAVIGATE: ("url",),
    ActionType.TYPE: ("selector", "text"),
    ActionType.EXTRACT: ("selector",),
}


class ActionExecutor:
    """Execute commands and normalise every outcome into an :class:`ExecutionResult`.

    Mutating actions are followed by a fresh snapshot so callers always see the
    post-action page. ``extract`` is read-only and skips the snapshot. No
    exception raised by the browser escapes :meth:`execute`.
    """

    def __init__(self, browser: BrowserCapability, *, home_url: str = DEFAULT_HOME_URL) -> None:
        self._browser = browser
        self._home_url = home_url

    @property
    def browser(self) -> BrowserCapability:
        return self._browser

    def execute(self, command: ActionCommand) -> ExecutionResult:
        action = command.action_type
        if action is None:
            LOGGER.warning("Rejecting unknown action %r", command.action)
            return ExecutionResult(
                success=False,
                action=command.action,
                error="unknown action",
                error_code=InvalidCommand.code,
            )
        try:
            _validate_params(action, command.params)
            self._require_browser()
            output = self._browser.execute(command)
            state = self._browser.snapshot() if action in MUTATING_ACTIONS else None
        except Exception as exc:
            return _failure(command.action, exc)
        return ExecutionResult(
            success=True,
            action=command.action,
            state=state,
            extracted_content=output.get("extracted_content"),
        )

    def snapshot(self) -> BrowserState:
        self._require_browser()
        return self._browser.snapshot()

    # Convenience calls for direct user actions --------------------------------

    def navigate_back(self) -> ExecutionResult:
        return self._run_step("navigate_back", self._browser.go_back)

    def navigate_forward(self) -> ExecutionResult:
        return self._run_step("navigate_forward", self._browser.go_forward)

    def navigate_home(self) -> ExecutionResult:
        return self.execute(
            ActionCommand(action=ActionType.NAVIGATE.value, params={"url": self._home_url})
        )

    def scroll_up(self) -> ExecutionResult:
        return self._scroll("up")

    def scroll_down(self) -> ExecutionResult:
        return self._scroll("down")

    def capture(self) -> ExecutionResult:
        return self._run_step("capture_screenshot", None)

    def _scroll(self, direction: str) -> ExecutionResult:
        return self.execute(
            ActionCommand(
                action=ActionType.SCROLL.value,
                params={"direction": direction, "amount": SHORTCUT_SCROLL_AMOUNT},
            )
        )

    def _run_step(self, name: str, step: Optional[Callable[[], Any]]) -> ExecutionResult:
        try:
            self._require_browser()
            if step is not None:
                step()
            state = self._browser.snapshot()
        except Exception as exc:
            return _failure(name, exc)
        return ExecutionResult(success=True, action=name, state=state)

    def _require_browser(self) -> None:
        if not self._browser.is_initialized:
            raise SessionNotInitialized()


def _validate_params(action: ActionType, params: dict[str, Any]) -> None:
    missing = [name for name in _REQUIRED_PARAMS.get(action, ()) if params.get(name) is None]
    if missing:
        raise InvalidCommand(f"{action.value} requires {', '.join(missing)}")
    if action == ActionType.CLICK and not params.get("selector"):
        if params.get("x") is None or params.get("y") is None:
            raise InvalidCommand("click requires a selector or x/y coordinates")


def _failure(action: Optional[str], exc: Exception) -> ExecutionResult:
    if isinstance(exc, CopilotError):
        LOGGER.warning("Command %s failed: %s", action, exc)
        code = exc.code
    else:
        LOGGER.exception("Unexpected error while executing %s", action)
        code = CapabilityFailure.code
    return ExecutionResult(success=False, action=action, error=str(exc), error_code=code)
