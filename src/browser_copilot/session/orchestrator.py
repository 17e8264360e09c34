"""Per-connection session that routes requests to the executor and generator."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError

from ..browser.base import BrowserCapability
from ..errors import (
    CapabilityFailure,
    CopilotError,
    ExtractionFailure,
    InvalidCommand,
    SessionNotInitialized,
)
from ..events import EventSink
from ..executor import DEFAULT_HOME_URL, ActionExecutor
from ..llm.base import GeneratorClient, GeneratorContext
from ..llm.extractor import extract_command, extract_json_value
from ..models import (
    ActionCommand,
    BrowserState,
    Disposition,
    ExecutionResult,
    HistoryEntry,
    Proposal,
    SessionEvent,
)
from .approval import ApprovalOutcome, ApprovalWorkflow
from .control import SessionControl
from .history import CommandHistory
from .prompt_builder import PromptBuilder

LOGGER = logging.getLogger(__name__)

FEEDBACK_SYSTEM_PROMPT = (
    "You evaluate the outcome of browser actions, summarise progress and propose the next step."
)
ANALYSIS_SYSTEM_PROMPT = (
    "You analyse the visual content of web pages and identify their structure, "
    "main elements and interactive controls."
)
FEEDBACK_UNAVAILABLE = "Could not evaluate the result of the browser action."

# User actions that work before the browser is initialized.
_NO_BROWSER_ACTIONS = frozenset({"pause", "resume", "stop"})


@dataclass
class InstructionOutcome:
    """Result of routing one instruction through the session."""

    command: Optional[ActionCommand] = None
    proposal: Optional[Proposal] = None
    result: Optional[ExecutionResult] = None
    error: Optional[CopilotError] = None
    raw_text: Optional[str] = None


class Session:
    """All state for one connection: browser, pause flag, approvals and history.

    Every operation that touches the browser or the generator runs under a
    single per-session lock, so at most one action is outstanding at any time.
    The browser is only launched by an explicit :meth:`initialize` call.
    """

    def __init__(
        self,
        session_id: str,
        *,
        browser: BrowserCapability,
        generator: GeneratorClient,
        sink: EventSink,
        home_url: str = DEFAULT_HOME_URL,
        prompt_builder: Optional[PromptBuilder] = None,
    ) -> None:
        self.id = session_id
        self._browser = browser
        self._generator = generator
        self._sink = sink
        self._prompts = prompt_builder or PromptBuilder()
        self._executor = ActionExecutor(browser, home_url=home_url)
        self._history = CommandHistory()
        self._workflow = ApprovalWorkflow(self._executor, self._history, self._revise)
        self._control = SessionControl(on_stop=self._workflow.clear_pending)
        self._lock = threading.RLock()
        self._closed = threading.Event()
        self._user_actions: dict[str, Callable[[Any], dict[str, Any]]] = {
            "navigate_back": lambda _: self._execution(self._executor.navigate_back()),
            "navigate_forward": lambda _: self._execution(self._executor.navigate_forward()),
            "navigate_home": lambda _: self._execution(self._executor.navigate_home()),
            "scroll_up": lambda _: self._execution(self._executor.scroll_up()),
            "scroll_down": lambda _: self._execution(self._executor.scroll_down()),
            "capture_screenshot": lambda _: self._execution(self._executor.capture()),
            "request_analysis": self._request_analysis,
            "suggest_actions": self._suggest_actions,
            "explain_current_state": self._explain_current_state,
            "pause": self._pause,
            "resume": self._resume,
            "stop": self._stop,
            "approve": self._approve,
            "reject": self._reject,
            "modify": self._modify,
            "replay_command": self._replay,
        }

    # Public API --------------------------------------------------------------

    @property
    def paused(self) -> bool:
        return self._control.paused

    @property
    def initialized(self) -> bool:
        return self._browser.is_initialized

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def control(self) -> SessionControl:
        return self._control

    @property
    def workflow(self) -> ApprovalWorkflow:
        return self._workflow

    def initialize(self) -> bool:
        """Launch the browser (first call only) and report the initial state."""

        with self._lock:
            if self.closed:
                self._emit("session-error", message="Session is closed")
                return False
            try:
                if not self._browser.is_initialized:
                    LOGGER.info("Initializing browser for session %s", self.id)
                    self._browser.initialize()
                state = self._executor.snapshot()
            except Exception as exc:
                LOGGER.warning("Browser initialization failed for session %s: %s", self.id, exc)
                self._emit("session-error", message=str(exc))
                return False
            self._emit("session-ready", state=state.model_dump(exclude_none=True))
            return True

    def run_instruction(self, prompt: str, *, require_approval: bool = False) -> InstructionOutcome:
        """Turn ``prompt`` into a command and execute or propose it."""

        with self._lock:
            try:
                self._require_initialized()
                self._control.ensure_running()
                if not prompt or not prompt.strip():
                    raise InvalidCommand("Instruction prompt is empty")
            except CopilotError as exc:
                self._emit_error(exc)
                return InstructionOutcome(error=exc)

            self._emit("instruction-started", prompt=prompt)
            try:
                state = self._executor.snapshot()
                text = self._generator.complete(
                    self._prompts.instruction(prompt, state),
                    GeneratorContext(system_prompt=self._prompts.system_prompt()),
                )
            except CopilotError as exc:
                self._emit_error(exc)
                return InstructionOutcome(error=exc)
            self._emit("generator-text", text=text)

            command = extract_command(text)
            if command is None:
                failure = ExtractionFailure(text)
                self._emit_error(failure, raw_text=text)
                return InstructionOutcome(error=failure, raw_text=text)

            if require_approval:
                proposal = self._workflow.propose(command)
                self._emit(
                    "approval-needed",
                    proposal_id=proposal.id,
                    command=command.to_payload(),
                )
                return InstructionOutcome(command=command, proposal=proposal, raw_text=text)

            self._emit("command", command=command.to_payload())
            result = self._executor.execute(command)
            self._emit("state-update", **result.to_payload())
            self._emit("generator-feedback", feedback=self._evaluate(result, prompt))
            return InstructionOutcome(command=command, result=result, raw_text=text)

    def user_action(self, action_type: str, data: Any = None) -> dict[str, Any]:
        """Handle a direct operator action, bypassing extraction."""

        with self._lock:
            handler = self._user_actions.get(action_type)
            if handler is None:
                result: dict[str, Any] = {
                    "success": False,
                    "action_type": action_type,
                    "error": f"Unknown user action: {action_type}",
                    "error_code": InvalidCommand.code,
                }
            else:
                try:
                    if action_type not in _NO_BROWSER_ACTIONS:
                        self._require_initialized()
                    result = {"success": True, "action_type": action_type, **handler(data)}
                except CopilotError as exc:
                    result = {
                        "success": False,
                        "action_type": action_type,
                        "error": str(exc),
                        "error_code": exc.code,
                    }
            self._publish_user_action(action_type, result)
            return result

    def get_history(self) -> list[HistoryEntry]:
        entries = self._history.entries()
        self._emit("history", history=[entry.model_dump(mode="json") for entry in entries])
        return entries

    def get_state(self) -> Optional[BrowserState]:
        with self._lock:
            try:
                self._require_initialized()
                state = self._executor.snapshot()
            except CopilotError as exc:
                self._emit_error(exc)
                return None
            self._emit("state-update", **state.model_dump(exclude_none=True))
            return state

    def close(self) -> None:
        """Release the browser and drop all state. Safe to call repeatedly."""

        if self._closed.is_set():
            return
        self._closed.set()
        with self._lock:
            self._workflow.clear_pending()
            try:
                self._browser.teardown()
            except Exception:
                LOGGER.warning("Browser teardown failed for session %s", self.id, exc_info=True)
            try:
                self._generator.close()
            except Exception:
                LOGGER.warning("Generator close failed for session %s", self.id, exc_info=True)
        LOGGER.info("Session %s closed", self.id)

    # User action handlers ----------------------------------------------------

    def _execution(self, result: ExecutionResult) -> dict[str, Any]:
        payload = result.to_payload()
        payload.pop("action", None)
        return payload

    def _request_analysis(self, _: Any) -> dict[str, Any]:
        state = self._executor.snapshot()
        text = self._generator.complete(
            self._prompts.analysis(state),
            GeneratorContext(
                system_prompt=ANALYSIS_SYSTEM_PROMPT,
                image_base64=state.screenshot,
                max_tokens=800,
            ),
        )
        try:
            analysis = extract_json_value(text, "object")
        except ValueError:
            analysis = {"raw_analysis": text, "error": "Analysis was not valid JSON"}
        return {"analysis": analysis, **state.model_dump(exclude_none=True)}

    def _suggest_actions(self, _: Any) -> dict[str, Any]:
        state = self._executor.snapshot()
        text = self._generator.complete(
            self._prompts.suggestions(state),
            GeneratorContext(system_prompt=self._prompts.system_prompt()),
        )
        try:
            suggestions = extract_json_value(text, "array")
        except ValueError:
            suggestions = [
                {
                    "action": "error",
                    "params": {},
                    "description": "Could not parse the suggested actions",
                    "reasoning": "The generator response was not a JSON array",
                }
            ]
        return {"suggested_actions": suggestions, **state.model_dump(exclude_none=True)}

    def _explain_current_state(self, _: Any) -> dict[str, Any]:
        state = self._executor.snapshot()
        text = self._generator.complete(
            self._prompts.explanation(state),
            GeneratorContext(system_prompt=self._prompts.system_prompt()),
        )
        return {"explanation": text, **state.model_dump(exclude_none=True)}

    def _pause(self, _: Any) -> dict[str, Any]:
        self._control.pause()
        return {"paused": True}

    def _resume(self, _: Any) -> dict[str, Any]:
        self._control.resume()
        return {"paused": False}

    def _stop(self, _: Any) -> dict[str, Any]:
        return {"cleared_proposals": self._control.stop(), "paused": self._control.paused}

    def _approve(self, data: Any) -> dict[str, Any]:
        proposal_id, command = _proposal_reference(data)
        return self._outcome(self._workflow.approve(proposal_id=proposal_id, command=command))

    def _reject(self, data: Any) -> dict[str, Any]:
        proposal_id, command = _proposal_reference(data)
        return self._outcome(self._workflow.reject(proposal_id=proposal_id, command=command))

    def _modify(self, data: Any) -> dict[str, Any]:
        if not isinstance(data, Mapping) or not data.get("feedback"):
            raise InvalidCommand("modify requires a command and feedback")
        proposal_id, command = _proposal_reference(data)
        outcome = self._workflow.modify(
            str(data["feedback"]),
            proposal_id=proposal_id,
            command=command,
        )
        return self._outcome(outcome)

    def _replay(self, data: Any) -> dict[str, Any]:
        index = None
        if isinstance(data, Mapping):
            index = data.get("commandIndex", data.get("index"))
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidCommand("A command index must be provided")
        command, result = self._workflow.replay(index)
        return {
            "disposition": Disposition.REPLAYED.value,
            "replayed_command": command.to_payload(),
            **self._execution(result),
        }

    def _outcome(self, outcome: ApprovalOutcome) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "disposition": outcome.disposition.value,
            "command": outcome.command.to_payload(),
            "history_index": outcome.history_index,
        }
        if outcome.original_command is not None:
            payload["original_command"] = outcome.original_command.to_payload()
        if outcome.result is not None:
            payload.update(self._execution(outcome.result))
        return payload

    # Internal helpers --------------------------------------------------------

    def _revise(self, command: ActionCommand, feedback: str) -> ActionCommand:
        try:
            text = self._generator.complete(
                self._prompts.revision(command, feedback),
                GeneratorContext(system_prompt=self._prompts.system_prompt()),
            )
        except CapabilityFailure as exc:
            LOGGER.warning("Generator could not revise command, keeping original: %s", exc)
            return command
        revised = extract_command(text)
        if revised is None:
            LOGGER.info("Revision response held no command, keeping original")
            return command
        return revised

    def _evaluate(self, result: ExecutionResult, prompt: str) -> str:
        try:
            return self._generator.complete(
                self._prompts.feedback(result, prompt),
                GeneratorContext(system_prompt=FEEDBACK_SYSTEM_PROMPT, max_tokens=300),
            )
        except CapabilityFailure as exc:
            LOGGER.warning("Generator feedback unavailable: %s", exc)
            return FEEDBACK_UNAVAILABLE

    def _require_initialized(self) -> None:
        if self.closed or not self._browser.is_initialized:
            raise SessionNotInitialized()

    def _publish_user_action(self, action_type: str, result: dict[str, Any]) -> None:
        self._emit("user-action-result", **result)
        if not result["success"]:
            return
        if result.get("url") is not None or result.get("screenshot") is not None:
            self._emit(
                "state-update",
                **{key: result[key] for key in BrowserState.model_fields if key in result},
            )
        if "suggested_actions" in result:
            self._emit("suggested-actions", actions=result["suggested_actions"])
        if "explanation" in result:
            self._emit("state-explanation", explanation=result["explanation"])
        if "analysis" in result:
            self._emit("page-analysis", analysis=result["analysis"])
        if action_type == "pause":
            self._emit("paused")
        elif action_type == "resume":
            self._emit("resumed")

    def _emit_error(self, exc: CopilotError, **extra: Any) -> None:
        self._emit("error", message=str(exc), code=exc.code, **extra)

    def _emit(self, event_type: str, **data: Any) -> None:
        self._sink.emit(SessionEvent(type=event_type, data=data))


def _proposal_reference(data: Any) -> tuple[Optional[str], Optional[ActionCommand]]:
    """Accept ``{"proposal_id": ...}``, ``{"command": {...}}`` or a bare command."""

    if not isinstance(data, Mapping):
        raise InvalidCommand("No command data provided")
    proposal_id = data.get("proposal_id", data.get("proposalId"))
    if proposal_id is not None:
        return str(proposal_id), None
    raw = data.get("command", data)
    if not isinstance(raw, Mapping) or not isinstance(raw.get("action"), str):
        raise InvalidCommand("No command data provided")
    try:
        return None, ActionCommand.model_validate(
            {key: raw[key] for key in ("action", "params", "reasoning") if key in raw}
        )
    except ValidationError as exc:
        raise InvalidCommand(f"Malformed command: {exc}") from exc
