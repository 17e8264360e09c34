"""Append-only command history."""

from __future__ import annotations

import threading
from typing import List

from ..models import HistoryEntry


class CommandHistory:
    """Ordered log of approval outcomes; an entry's index never changes."""

    def __init__(self) -> None:
        self._entries: List[HistoryEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: HistoryEntry) -> int:
        with self._lock:
            self._entries.append(entry)
            return len(self._entries) - 1

    def entries(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def get(self, index: int) -> HistoryEntry:
        """Return the entry at ``index``; negative indices are not accepted."""

        with self._lock:
            if index < 0 or index >= len(self._entries):
                raise IndexError(f"No history entry at index {index}")
            return self._entries[index]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
