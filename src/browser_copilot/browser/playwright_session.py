"""Playwright-powered browser capability."""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional

from playwright.sync_api import Error, sync_playwright

from ..config import BrowserConfig
from ..errors import CapabilityFailure, InvalidCommand, SessionNotInitialized
from ..models import ActionCommand, ActionType, BrowserState
from .base import BrowserCapability

LOGGER = logging.getLogger(__name__)

DEFAULT_WAIT_MS = 1000
DEFAULT_SCROLL_AMOUNT = 300

_SCROLL_VECTORS = {
    "down": (0, 1),
    "up": (0, -1),
    "right": (1, 0),
    "left": (-1, 0),
}


class PlaywrightBrowser(BrowserCapability):
    """Browser capability backed by a Playwright Chromium page.

    The sync API binds every object to the thread that started Playwright, so
    a single instance must only be driven from one thread.
    """

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    @property
    def is_initialized(self) -> bool:
        return self._page is not None

    def initialize(self) -> None:
        if self._page is not None:
            return
        LOGGER.debug("Starting Playwright browser")
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=self._config.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            viewport = {
                "width": self._config.viewport_width,
                "height": self._config.viewport_height,
            }
            self._context = self._browser.new_context(viewport=viewport)
            self._page = self._context.new_page()
            timeout_ms = self._config.timeout_seconds * 1000
            self._page.set_default_timeout(timeout_ms)
            self._page.set_default_navigation_timeout(timeout_ms)
        except Error as exc:
            self.teardown()
            raise CapabilityFailure(f"Browser failed to start: {exc}") from exc

    def teardown(self) -> None:
        LOGGER.debug("Stopping Playwright browser")
        context, browser, playwright = self._context, self._browser, self._playwright
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None
        for closer in (
            context.close if context else None,
            browser.close if browser else None,
            playwright.stop if playwright else None,
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception:  # pragma: no cover - best-effort shutdown
                LOGGER.warning("Error while closing browser resources", exc_info=True)

    def execute(self, command: ActionCommand) -> dict[str, Any]:
        page = self._require_page()
        params = command.params
        LOGGER.info("Executing browser command %s %s", command.action, params)
        action = command.action_type
        try:
            if action == ActionType.NAVIGATE:
                url = params.get("url")
                if not url:
                    raise InvalidCommand("navigate requires a url")
                page.goto(url, wait_until="load")
            elif action == ActionType.CLICK:
                if params.get("selector"):
                    page.click(params["selector"])
                elif params.get("x") is not None and params.get("y") is not None:
                    page.mouse.click(float(params["x"]), float(params["y"]))
                else:
                    raise InvalidCommand("click requires a selector or x/y coordinates")
            elif action == ActionType.TYPE:
                if not params.get("selector"):
                    raise InvalidCommand("type requires a selector")
                if params.get("text") is None:
                    raise InvalidCommand("type requires text")
                page.type(params["selector"], str(params["text"]))
                if params.get("pressEnter"):
                    page.keyboard.press("Enter")
            elif action == ActionType.WAIT:
                wait_ms = _wait_milliseconds(params)
                limit_ms = self._config.timeout_seconds * 1000
                if wait_ms > limit_ms:
                    raise CapabilityFailure(
                        f"wait of {wait_ms:g} ms exceeds the {limit_ms:g} ms browser timeout"
                    )
                page.wait_for_timeout(wait_ms)
            elif action == ActionType.EXTRACT:
                if not params.get("selector"):
                    raise InvalidCommand("extract requires a selector")
                element = page.query_selector(params["selector"])
                return {"extracted_content": element.text_content() if element else None}
            elif action == ActionType.SCROLL:
                direction = params.get("direction") or "down"
                if direction not in _SCROLL_VECTORS:
                    raise InvalidCommand(f"unsupported scroll direction: {direction}")
                amount = int(params.get("amount") or DEFAULT_SCROLL_AMOUNT)
                dx, dy = _SCROLL_VECTORS[direction]
                page.evaluate(
                    "([x, y]) => window.scrollBy(x, y)",
                    [dx * amount, dy * amount],
                )
            else:
                raise InvalidCommand(f"unknown action: {command.action}")
        except Error as exc:
            raise CapabilityFailure(str(exc)) from exc
        return {}

    def snapshot(self) -> BrowserState:
        page = self._require_page()
        try:
            screenshot = page.screenshot(type="png")
            return BrowserState(
                url=page.url,
                title=page.title(),
                screenshot=base64.b64encode(screenshot).decode("ascii"),
                content=page.content(),
            )
        except Error as exc:
            LOGGER.warning("Failed to capture browser state: %s", exc)
            return BrowserState(url=page.url, error=str(exc))

    def go_back(self) -> None:
        page = self._require_page()
        try:
            page.go_back()
        except Error as exc:
            raise CapabilityFailure(str(exc)) from exc

    def go_forward(self) -> None:
        page = self._require_page()
        try:
            page.go_forward()
        except Error as exc:
            raise CapabilityFailure(str(exc)) from exc

    def _require_page(self):
        if self._page is None:
            raise SessionNotInitialized()
        return self._page


def _wait_milliseconds(params: dict[str, Any]) -> float:
    raw = params.get("time")
    if raw is None:
        return float(DEFAULT_WAIT_MS)
    if isinstance(raw, bool):
        raise InvalidCommand(f"wait time must be a number of milliseconds, got {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidCommand(f"wait time must be a number of milliseconds, got {raw!r}") from exc
    if not value >= 0:
        raise InvalidCommand(f"wait time must not be negative, got {raw!r}")
    return value
