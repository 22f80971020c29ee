from __future__ import annotations

import logging
from typing import Any

from policy.policy_config import PolicyConfig
from session.shelf_encoding import apply_encoded_state
from session.undo_manager import DEFAULT_MAX_HISTORY, UndoManager
from shelving.catalog import DEFAULT_CATALOG, Catalog
from shelving.ghosts import regenerate_ghost_plates, regenerate_ghost_rods
from shelving.model import Shelf, create_empty_shelf

logger = logging.getLogger(__name__)

DEFAULT_MAX_TRACE_EVENTS = 5000


class ShelfSession:
    """One editable shelf with its undo history and decision trace."""

    def __init__(
        self,
        session_id: str,
        *,
        catalog: Catalog = DEFAULT_CATALOG,
        policy: PolicyConfig | None = None,
        shelf: Shelf | None = None,
        max_history: int = DEFAULT_MAX_HISTORY,
        max_trace_events: int = DEFAULT_MAX_TRACE_EVENTS,
    ) -> None:
        self.session_id = session_id
        self.catalog = catalog
        self.policy = policy or PolicyConfig()
        self.shelf = shelf if shelf is not None else create_empty_shelf()
        self.trace: list[dict[str, Any]] = []
        self.max_trace_events = max_trace_events
        self.revision = 0
        self.undo = UndoManager(self.shelf, max_history, catalog=catalog, policy=self.policy)
        self.refresh_ghosts()
        self.undo.save_state("initial")

    def refresh_ghosts(self) -> None:
        regenerate_ghost_plates(self.shelf, catalog=self.catalog, policy=self.policy, trace=self.trace)
        regenerate_ghost_rods(self.shelf, catalog=self.catalog, trace=self.trace)

    def trim_trace(self) -> None:
        """Drop the oldest events beyond `max_trace_events` (0 keeps everything)."""
        if self.max_trace_events > 0 and len(self.trace) > self.max_trace_events:
            del self.trace[: len(self.trace) - self.max_trace_events]

    def commit(self, action_type: str) -> None:
        """Call after every successful edit: ghosts are re-derived and the state is recorded."""
        self.refresh_ghosts()
        self.trim_trace()
        self.undo.save_state(action_type)
        self.revision += 1
        logger.debug("session %s rev %d after %s", self.session_id, self.revision, action_type)

    def undo_last(self) -> bool:
        if not self.undo.undo():
            return False
        self.revision += 1
        return True

    def redo_last(self) -> bool:
        if not self.undo.redo():
            return False
        self.revision += 1
        return True

    def load_encoded(self, encoded: str) -> bool:
        """Replace the shelf with an encoded one and record it as a new undo step."""
        if not apply_encoded_state(encoded, self.shelf, catalog=self.catalog, policy=self.policy):
            return False
        self.commit("load")
        return True
