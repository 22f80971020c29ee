from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from policy.policy_config import PolicyConfig
from session.shelf_encoding import apply_encoded_state, encode_shelf
from shelving.catalog import DEFAULT_CATALOG, Catalog
from shelving.model import Shelf

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 150


@dataclass
class HistoryEntry:
    encoded: str
    timestamp: float
    action_type: str


class UndoManager:
    """
    Linear undo/redo over encoded snapshots of one shelf.

    `current_index` points at the entry matching the live shelf. Saving a new state
    after an undo drops the redo tail. Restores rewrite the bound shelf in place, so
    callers holding a reference to it see the restored contents.
    """

    def __init__(
        self,
        shelf: Shelf,
        max_size: int = DEFAULT_MAX_HISTORY,
        *,
        catalog: Catalog = DEFAULT_CATALOG,
        policy: PolicyConfig | None = None,
        on_restore: Callable[[Shelf], None] | None = None,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.shelf = shelf
        self.max_size = int(max_size)
        self.catalog = catalog
        self.policy = policy
        self.on_restore = on_restore
        self.history: list[HistoryEntry] = []
        self.current_index = -1

    def save_state(self, action_type: str = "unknown") -> None:
        if self.current_index < len(self.history) - 1:
            del self.history[self.current_index + 1:]

        self.history.append(HistoryEntry(encode_shelf(self.shelf), time.time(), action_type))

        if len(self.history) > self.max_size:
            # Oldest entry goes; current_index already points at the new last entry.
            self.history.pop(0)
        else:
            self.current_index += 1

    def can_undo(self) -> bool:
        return self.current_index > 0

    def can_redo(self) -> bool:
        return self.current_index < len(self.history) - 1

    def _restore(self, index: int) -> bool:
        entry = self.history[index]
        if not apply_encoded_state(entry.encoded, self.shelf, catalog=self.catalog, policy=self.policy):
            logger.error("history entry %d (%s) could not be restored", index, entry.action_type)
            return False
        self.current_index = index
        if self.on_restore is not None:
            self.on_restore(self.shelf)
        return True

    def undo(self) -> bool:
        if not self.can_undo():
            return False
        return self._restore(self.current_index - 1)

    def redo(self) -> bool:
        if not self.can_redo():
            return False
        return self._restore(self.current_index + 1)

    def clear(self) -> None:
        self.history.clear()
        self.current_index = -1

    def history_size(self) -> int:
        return len(self.history)

    def debug_info(self) -> dict[str, Any]:
        return {
            "history_size": len(self.history),
            "current_index": self.current_index,
            "max_size": self.max_size,
            "can_undo": self.can_undo(),
            "can_redo": self.can_redo(),
            "actions": [e.action_type for e in self.history],
        }
