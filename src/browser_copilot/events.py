"""Outbound event channels for sessions."""

from __future__ import annotations

from abc import ABC, abstractmethod

from rich.console import Console

from .models import SessionEvent

_STYLES = {
    "error": "red",
    "session-error": "red",
    "approval-needed": "yellow",
    "paused": "yellow",
    "resumed": "green",
    "session-ready": "green",
    "generator-text": "cyan",
    "generator-feedback": "cyan",
}

# Large payload fields that are pointless to print on a terminal.
_HIDDEN_FIELDS = {"screenshot", "content"}


class EventSink(ABC):
    """Interface for delivering session events to a display."""

    @abstractmethod
    def emit(self, event: SessionEvent) -> None:
        """Deliver a single event."""


class ConsoleEventSink(EventSink):
    """Print events to the terminal using Rich."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    def emit(self, event: SessionEvent) -> None:
        style = _STYLES.get(event.type, "white")
        self._console.print(f"[{event.type}]", style=f"bold {style}", end=" ", markup=False)
        data = {key: value for key, value in event.data.items() if key not in _HIDDEN_FIELDS}
        message = data.pop("message", None) or data.pop("text", None)
        if message:
            self._console.print(str(message), style=style, markup=False)
        else:
            self._console.print("", end="\n")
        if data:
            self._console.print(data, style="dim")
