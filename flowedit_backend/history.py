"""
History Manager - Linear undo/redo over whole-buffer snapshots.

The history is a list of buffer texts plus a cursor:
- commit() drops everything after the cursor, appends, and moves to the tail
- committing the text already under the cursor does nothing
- the oldest snapshot is evicted once the list is longer than `max_history`
"""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class RecordHistory(str, Enum):
    """Whether a buffer change becomes an undo step."""
    YES = "yes"
    NO = "no"


class HistoryManager:
    """Bounded linear history. There is never more than one redo branch."""

    def __init__(self, initial: str = "", max_history: int = 100):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self._max_history = max_history
        self._snapshots: list[str] = [initial]
        self._cursor = 0

    # --- Properties ---

    @property
    def current(self) -> str:
        """The snapshot under the cursor."""
        return self._snapshots[self._cursor]

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._snapshots) - 1

    @property
    def max_history(self) -> int:
        return self._max_history

    def __len__(self) -> int:
        return len(self._snapshots)

    # --- Operations ---

    def reset(self, text: str) -> None:
        """Forget everything and start over from `text`."""
        self._snapshots = [text]
        self._cursor = 0

    def commit(self, text: str) -> bool:
        """Record `text` as the newest snapshot. Returns False for a no-op."""
        if text == self.current:
            return False

        # A new edit abandons the redo branch
        del self._snapshots[self._cursor + 1:]
        self._snapshots.append(text)

        if len(self._snapshots) > self._max_history:
            self._snapshots.pop(0)
            logger.debug("History full, evicted oldest snapshot")

        self._cursor = len(self._snapshots) - 1
        return True

    def undo(self) -> Optional[str]:
        """Step back one snapshot and return it, or None at the oldest."""
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self.current

    def redo(self) -> Optional[str]:
        """Step forward one snapshot and return it, or None at the newest."""
        if not self.can_redo:
            return None
        self._cursor += 1
        return self.current
