from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from fastapi import HTTPException

from config.load_config import AppConfig, find_default_config, load_app_config
from policy.load_policy import find_policy_file, load_policy_from_yaml
from policy.policy_config import PolicyConfig
from session.session_store import SessionStore
from session.shelf_encoding import encode_shelf
from session.shelf_session import ShelfSession
from shelving.catalog import DEFAULT_CATALOG, Catalog
from shelving.load_catalog import find_catalog_file, load_catalog_from_yaml
from shelving.model import shelf_to_dict

logger = logging.getLogger(__name__)


def _existing(path: str | None) -> Path | None:
    if not path:
        return None
    candidate = Path(path)
    if candidate.exists() and candidate.is_file():
        return candidate
    logger.warning("configured file %s does not exist, falling back to discovery", path)
    return None


def _posix(path: Path | None) -> str | None:
    return str(path).replace("\\", "/") if path is not None else None


@dataclass
class RuntimeState:
    config: AppConfig = field(default_factory=AppConfig)
    config_source: str | None = None

    store: SessionStore = field(default_factory=SessionStore)

    catalog: Catalog = DEFAULT_CATALOG
    catalog_source: str | None = None

    policy: PolicyConfig = field(default_factory=PolicyConfig)
    policy_source: str | None = None

    sessions: dict[str, ShelfSession] = field(default_factory=dict)

    @classmethod
    def build(cls) -> "RuntimeState":
        cfg_path = find_default_config()
        if cfg_path is not None:
            config = load_app_config(cfg_path)
        else:
            config = AppConfig()

        store = SessionStore(sessions_root=config.storage.sessions_root)

        catalog_file = _existing(config.catalog.catalog_yaml_path) or find_catalog_file()
        catalog = load_catalog_from_yaml(catalog_file) if catalog_file is not None else DEFAULT_CATALOG

        policy_file = _existing(config.policy.policy_yaml_path) or find_policy_file()
        policy = load_policy_from_yaml(policy_file) if policy_file is not None else PolicyConfig()

        return cls(
            config=config,
            config_source=_posix(cfg_path),
            store=store,
            catalog=catalog,
            catalog_source=_posix(catalog_file),
            policy=policy,
            policy_source=_posix(policy_file),
        )

    def prices(self) -> dict[str, Any]:
        return self.config.pricing.model_dump()

    def create_session(self) -> ShelfSession:
        session_id = self.store.create_session()
        session = ShelfSession(
            session_id,
            catalog=self.catalog,
            policy=self.policy,
            max_history=self.config.undo.max_size,
            max_trace_events=self.config.retention.memory_trace_max_events,
        )
        self.sessions[session_id] = session
        return session

    def get_session(self, session_id: str) -> ShelfSession:
        session = self.sessions.get(session_id)
        if session is not None:
            return session

        # Sessions survive restarts through their latest snapshot.
        latest = self.store.load_latest(session_id) if self.store.has_session(session_id) else None
        if latest is None:
            raise HTTPException(status_code=404, detail={"status": "NOT_FOUND", "session_id": session_id})
        session = ShelfSession(
            session_id,
            catalog=self.catalog,
            policy=self.policy,
            max_history=self.config.undo.max_size,
            max_trace_events=self.config.retention.memory_trace_max_events,
        )
        if not session.load_encoded(str(latest.get("encoded", ""))):
            logger.warning("latest snapshot of session %s is unreadable, starting empty", session_id)
        session.revision = int(latest.get("revision", 0))
        self.sessions[session_id] = session
        return session

    def forget_pruned_sessions(self) -> int:
        """Drop in-memory sessions whose directory retention has deleted."""
        gone = [sid for sid in self.sessions if not self.store.has_session(sid)]
        for sid in gone:
            del self.sessions[sid]
        return len(gone)

    def save_snapshot(self, session: ShelfSession, action_type: str | None = None) -> Path:
        path = self.store.save_snapshot(
            session.session_id,
            session.revision,
            encode_shelf(session.shelf),
            shelf_to_dict(session.shelf),
            action_type=action_type,
        )
        self.store.save_trace(session.session_id, session.trace)
        return path

    def autosave(self, session: ShelfSession, action_type: str) -> None:
        if self.config.storage.autosave_snapshots:
            self.save_snapshot(session, action_type=action_type)

    def policy_status(self) -> dict[str, Any]:
        return {
            "config": {"source": self.config_source, "config": self.config.model_dump()},
            "catalog": {
                "source": self.catalog_source,
                "rods": len(self.catalog.rods),
                "plates": len(self.catalog.plates),
            },
            "policy": {"source": self.policy_source, "policy": asdict(self.policy)},
        }
