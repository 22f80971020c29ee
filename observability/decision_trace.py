from __future__ import annotations

import json
import logging
import time
import uuid
from collections import Counter
from typing import Any

logger = logging.getLogger(__name__)


def new_decision_id(operation: str) -> str:
    return f"{operation}:{uuid.uuid4()}"


def add_trace_event(
    trace: list[dict[str, Any]],
    event: str,
    data: dict[str, Any] | None = None,
    *,
    level: str = "info",
) -> None:
    """
    Stable, machine-readable decision trace events.

    Keep payloads small: ids, heights and span lists, never whole shelves.
    """
    if data is None:
        data = {}

    trace.append(
        {
            "id": str(uuid.uuid4()),
            "ts": float(time.time()),
            "event": str(event),
            "level": str(level),
            "data": data,
        }
    )


def add_constraint_eval(
    trace: list[dict[str, Any]],
    *,
    decision_id: str,
    constraint_id: str,
    ok: bool,
    reason: str | None = None,
    metrics: dict[str, Any] | None = None,
    element_id: int | str | None = None,
    severity: str = "info",
) -> None:
    """Minimal "why accepted / why rejected" event for a single shelf constraint."""
    payload: dict[str, Any] = {
        "decision_id": str(decision_id),
        "constraint_id": str(constraint_id),
        "ok": bool(ok),
    }
    if reason is not None:
        payload["reason"] = str(reason)
    if metrics is not None:
        payload["metrics"] = metrics
    if element_id is not None:
        payload["element_id"] = str(element_id)

    add_trace_event(trace, "constraint_eval", payload, level=str(severity))


def record_rejection(
    trace: list[dict[str, Any]] | None,
    *,
    decision_id: str,
    constraint_id: str,
    reason: str,
    metrics: dict[str, Any] | None = None,
    element_id: int | str | None = None,
) -> None:
    logger.debug("%s rejected by %s: %s", decision_id.split(":", 1)[0], constraint_id, reason)
    if trace is None:
        return
    add_constraint_eval(
        trace,
        decision_id=decision_id,
        constraint_id=constraint_id,
        ok=False,
        reason=reason,
        metrics=metrics,
        element_id=element_id,
        severity="warning",
    )


def summarize_trace(trace: list[dict[str, Any]]) -> dict[str, Any]:
    """Counts of events and of failed constraints, for status endpoints."""
    events = Counter(str(ev.get("event")) for ev in trace)
    rejected = Counter(
        str(ev["data"].get("constraint_id"))
        for ev in trace
        if ev.get("event") == "constraint_eval" and not ev.get("data", {}).get("ok", True)
    )
    return {
        "events": dict(sorted(events.items())),
        "rejections": dict(sorted(rejected.items())),
        "total": len(trace),
    }


def trace_to_ndjson_bytes(trace: list[dict[str, Any]]) -> bytes:
    """NDJSON is better for streaming/large traces than a single huge JSON array."""
    lines = [json.dumps(ev, ensure_ascii=False, separators=(",", ":"), default=str) for ev in trace]
    return ("\n".join(lines) + ("\n" if lines else "")).encode("utf-8")
