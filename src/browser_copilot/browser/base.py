"""Browser capability abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models import ActionCommand, BrowserState


class BrowserCapability(ABC):
    """Narrow contract to an automation-capable browser.

    Implementations raise :class:`~browser_copilot.errors.CapabilityFailure`
    (or :class:`~browser_copilot.errors.InvalidCommand` for malformed
    parameters); the executor turns those into result values.
    """

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        """Whether :meth:`initialize` completed successfully."""

    @abstractmethod
    def initialize(self) -> None:
        """Launch the browser and open a page."""

    @abstractmethod
    def execute(self, command: ActionCommand) -> dict[str, Any]:
        """Run one command and return action-specific output fields."""

    @abstractmethod
    def snapshot(self) -> BrowserState:
        """Return the current page state."""

    @abstractmethod
    def go_back(self) -> None:
        """Navigate one step back in the page history."""

    @abstractmethod
    def go_forward(self) -> None:
        """Navigate one step forward in the page history."""

    @abstractmethod
    def teardown(self) -> None:
        """Release the browser. Must be idempotent."""
