"""Pause/resume/stop state machine for a single session."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Optional

from ..errors import PausedRejection

LOGGER = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    """Whether instruction-driven execution may start."""

    RUNNING = "running"
    PAUSED = "paused"


class SessionControl:
    """Track the pause flag and fan ``stop`` out to whoever holds pending work.

    The flag only changes through :meth:`pause` and :meth:`resume`. Pausing
    never interrupts work already in flight; it only makes
    :meth:`ensure_running` reject the next instruction.
    """

    def __init__(self, on_stop: Optional[Callable[[], int]] = None) -> None:
        self._lock = threading.Lock()
        self._state = RunState.RUNNING
        self._on_stop = on_stop

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def paused(self) -> bool:
        return self.state is RunState.PAUSED

    def pause(self) -> None:
        with self._lock:
            self._state = RunState.PAUSED
        LOGGER.info("Session paused")

    def resume(self) -> None:
        with self._lock:
            self._state = RunState.RUNNING
        LOGGER.info("Session resumed")

    def stop(self) -> int:
        """Drop pending proposals without touching the pause flag.

        Returns the number of proposals discarded.
        """

        cleared = self._on_stop() if self._on_stop else 0
        LOGGER.info("Session stop requested; discarded %d pending proposal(s)", cleared)
        return cleared

    def ensure_running(self) -> None:
        if self.paused:
            raise PausedRejection()
