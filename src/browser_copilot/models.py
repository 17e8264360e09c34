"""Shared models used across the browser copilot."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class ActionType(str, enum.Enum):
    """Enumerated browser commands that the executor understands."""

    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    WAIT = "wait"
    EXTRACT = "extract"
    SCROLL = "scroll"


MUTATING_ACTIONS = frozenset(
    {
        ActionType.NAVIGATE,
        ActionType.CLICK,
        ActionType.TYPE,
        ActionType.WAIT,
        ActionType.SCROLL,
    }
)


class ActionCommand(BaseModel):
    """A single browser-affecting action derived from generator output.

    ``action`` is kept as a plain string so that commands outside the known
    vocabulary survive extraction and are rejected by the executor instead.
    """

    action: str
    params: dict[str, Any] = Field(default_factory=dict)
    reasoning: Optional[str] = None

    @property
    def action_type(self) -> Optional[ActionType]:
        try:
            return ActionType(self.action)
        except ValueError:
            return None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class BrowserState(BaseModel):
    """Snapshot of the browser after an action."""

    url: Optional[str] = None
    title: Optional[str] = None
    screenshot: Optional[str] = Field(default=None, description="Base64 encoded PNG.")
    content: Optional[str] = None
    error: Optional[str] = None


class ExecutionResult(BaseModel):
    """Outcome of executing one command against the browser."""

    success: bool
    action: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    state: Optional[BrowserState] = None
    extracted_content: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Flatten the result, merging the browser state into the top level."""

        payload = self.model_dump(exclude={"state"}, exclude_none=True)
        if self.state is not None:
            payload.update(self.state.model_dump(exclude_none=True))
        return payload


class Disposition(str, enum.Enum):
    """Outcome tag of a history entry.

    ``replayed`` labels the result of re-running an entry; replays add no entry.
    """

    APPROVED = "approved"
    REJECTED = "rejected"
    MODIFIED = "modified"
    REPLAYED = "replayed"


class HistoryEntry(BaseModel):
    """Record of a command that went through the approval workflow."""

    command: ActionCommand
    disposition: Disposition
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    original_command: Optional[ActionCommand] = None
    feedback: Optional[str] = None


class Proposal(BaseModel):
    """A command awaiting a decision from the operator."""

    command: ActionCommand
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SessionEvent(BaseModel):
    """Outbound event emitted by a session."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
