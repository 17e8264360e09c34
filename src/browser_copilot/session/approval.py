"""Human approval gate placed in front of the executor."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import InvalidCommand
from ..executor import ActionExecutor
from ..models import ActionCommand, Disposition, ExecutionResult, HistoryEntry, Proposal
from .history import CommandHistory

LOGGER = logging.getLogger(__name__)

Reviser = Callable[[ActionCommand, str], ActionCommand]


@dataclass
class ApprovalOutcome:
    """What happened to a proposal once the operator decided."""

    disposition: Disposition
    command: ActionCommand
    history_index: int
    result: Optional[ExecutionResult] = None
    original_command: Optional[ActionCommand] = None


class ApprovalWorkflow:
    """Hold proposed commands until they are approved, rejected or modified.

    Every decision appends exactly one :class:`HistoryEntry`. Replays run the
    recorded command again without re-entering the gate and do not add a new
    entry.
    """

    def __init__(
        self,
        executor: ActionExecutor,
        history: CommandHistory,
        reviser: Reviser,
    ) -> None:
        self._executor = executor
        self._history = history
        self._reviser = reviser
        self._lock = threading.Lock()
        self._pending: dict[str, Proposal] = {}

    def propose(self, command: ActionCommand) -> Proposal:
        proposal = Proposal(command=command)
        with self._lock:
            self._pending[proposal.id] = proposal
        LOGGER.info("Proposed %s command %s", command.action, proposal.id)
        return proposal

    def pending(self) -> list[Proposal]:
        with self._lock:
            return list(self._pending.values())

    def clear_pending(self) -> int:
        with self._lock:
            count = len(self._pending)
            self._pending.clear()
        return count

    def approve(
        self,
        *,
        proposal_id: Optional[str] = None,
        command: Optional[ActionCommand] = None,
    ) -> ApprovalOutcome:
        target = self._resolve(proposal_id, command)
        result = self._executor.execute(target)
        index = self._history.append(
            HistoryEntry(command=target, disposition=Disposition.APPROVED)
        )
        return ApprovalOutcome(Disposition.APPROVED, target, index, result=result)

    def reject(
        self,
        *,
        proposal_id: Optional[str] = None,
        command: Optional[ActionCommand] = None,
    ) -> ApprovalOutcome:
        target = self._resolve(proposal_id, command)
        index = self._history.append(
            HistoryEntry(command=target, disposition=Disposition.REJECTED)
        )
        LOGGER.info("Rejected %s command", target.action)
        return ApprovalOutcome(Disposition.REJECTED, target, index)

    def modify(
        self,
        feedback: str,
        *,
        proposal_id: Optional[str] = None,
        command: Optional[ActionCommand] = None,
    ) -> ApprovalOutcome:
        if not feedback or not feedback.strip():
            raise InvalidCommand("modify requires feedback")
        original = self._resolve(proposal_id, command)
        revised = self._reviser(original, feedback)
        result = self._executor.execute(revised)
        index = self._history.append(
            HistoryEntry(
                command=revised,
                disposition=Disposition.MODIFIED,
                original_command=original,
                feedback=feedback,
            )
        )
        return ApprovalOutcome(
            Disposition.MODIFIED,
            revised,
            index,
            result=result,
            original_command=original,
        )

    def replay(self, index: int) -> tuple[ActionCommand, ExecutionResult]:
        try:
            entry = self._history.get(index)
        except IndexError as exc:
            raise InvalidCommand(f"No command recorded at history index {index}") from exc
        LOGGER.info("Replaying history entry %d (%s)", index, entry.command.action)
        return entry.command, self._executor.execute(entry.command)

    def _resolve(
        self,
        proposal_id: Optional[str],
        command: Optional[ActionCommand],
    ) -> ActionCommand:
        with self._lock:
            if proposal_id is not None:
                proposal = self._pending.pop(proposal_id, None)
                if proposal is None:
                    raise InvalidCommand(f"No pending proposal with id {proposal_id}")
                return proposal.command
            if command is None:
                raise InvalidCommand("No command data provided")
            for key, proposal in self._pending.items():
                if proposal.command == command:
                    del self._pending[key]
                    break
            return command
