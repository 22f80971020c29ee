from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import Any
from uuid import uuid4

from observability.decision_trace import trace_to_ndjson_bytes
from session.artifacts import ensure_dirs, list_snapshots, load_json, prune_ndjson_tail, save_bytes, save_json

logger = logging.getLogger(__name__)


class SessionStore:
    """
    On-disk layout per session:

      <root>/<session_id>/snapshots/<revision>.json
      <root>/<session_id>/snapshots/latest.json
      <root>/<session_id>/trace.ndjson
    """

    def __init__(self, sessions_root: str = "sessions") -> None:
        self.root = Path(sessions_root)
        self.root.mkdir(parents=True, exist_ok=True)

    def create_session(self) -> str:
        session_id = str(uuid4())
        ensure_dirs(self.root / session_id / "snapshots")
        return session_id

    def session_root(self, session_id: str) -> Path:
        return self.root / session_id

    def has_session(self, session_id: str) -> bool:
        return (self.session_root(session_id) / "snapshots").is_dir()

    def save_snapshot(
        self,
        session_id: str,
        revision: int,
        encoded: str,
        shelf_state: dict[str, Any],
        *,
        action_type: str | None = None,
    ) -> Path:
        payload = {
            "session_id": session_id,
            "revision": int(revision),
            "saved_at": float(time.time()),
            "action_type": action_type,
            "encoded": encoded,
            "shelf": shelf_state,
        }
        base = ensure_dirs(self.session_root(session_id) / "snapshots")
        path = base / f"{int(revision)}.json"
        save_json(path, payload)
        save_json(base / "latest.json", {"revision": int(revision), "encoded": encoded})
        return path

    def load_latest(self, session_id: str) -> dict[str, Any] | None:
        path = self.session_root(session_id) / "snapshots" / "latest.json"
        if not path.exists():
            return None
        return load_json(path)

    def load_snapshot(self, session_id: str, revision: int) -> dict[str, Any] | None:
        path = self.session_root(session_id) / "snapshots" / f"{int(revision)}.json"
        if not path.exists():
            return None
        return load_json(path)

    def list_snapshots(self, session_id: str) -> list[str]:
        return list_snapshots(self.session_root(session_id))

    def trace_path(self, session_id: str) -> Path:
        return self.session_root(session_id) / "trace.ndjson"

    def save_trace(self, session_id: str, trace: list[dict[str, Any]]) -> Path:
        path = self.trace_path(session_id)
        save_bytes(path, trace_to_ndjson_bytes(trace))
        return path

    def prune_sessions(self, *, max_age_days: int) -> dict[str, int]:
        """Delete whole session directories older than max_age_days by mtime."""
        if max_age_days <= 0:
            return {"deleted": 0, "kept": 0}

        cutoff = float(time.time()) - float(max_age_days) * 86400.0
        deleted = 0
        kept = 0
        for d in self.root.iterdir():
            if not d.is_dir() or d.name.startswith("_"):
                continue
            if float(d.stat().st_mtime) < cutoff:
                shutil.rmtree(d, ignore_errors=True)
                deleted += 1
            else:
                kept += 1
        if deleted:
            logger.info("pruned %d sessions older than %d days", deleted, max_age_days)
        return {"deleted": int(deleted), "kept": int(kept)}

    def prune_traces(self, *, max_file_bytes: int = 5_000_000, max_lines: int = 20_000) -> dict[str, int]:
        kept = 0
        dropped = 0
        for d in self.root.iterdir():
            if not d.is_dir() or d.name.startswith("_"):
                continue
            out = prune_ndjson_tail(d / "trace.ndjson", max_bytes=max_file_bytes, max_lines=max_lines)
            kept += out["kept_lines"]
            dropped += out["dropped_lines"]
        return {"kept_lines": int(kept), "dropped_lines": int(dropped)}
