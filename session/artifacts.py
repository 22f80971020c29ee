from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def ensure_dirs(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_json(path: Path, data: Any) -> None:
    ensure_dirs(path.parent)
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")


def load_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def save_bytes(path: Path, data: bytes) -> None:
    ensure_dirs(path.parent)
    path.write_bytes(data)


def list_snapshots(session_root: Path) -> list[str]:
    """Snapshot revision names in revision order, `latest.json` excluded."""
    snap_root = session_root / "snapshots"
    if not snap_root.exists():
        return []
    revs = [p.stem for p in snap_root.glob("*.json") if p.stem != "latest"]
    return sorted(revs, key=lambda s: (len(s), s))


def prune_ndjson_tail(path: Path, *, max_bytes: int = 5_000_000, max_lines: int = 20_000) -> dict[str, int]:
    """Keep only the tail of an NDJSON file to enforce size/line limits."""
    if max_bytes <= 0 and max_lines <= 0:
        return {"kept_lines": 0, "dropped_lines": 0}

    if not path.exists() or not path.is_file():
        return {"kept_lines": 0, "dropped_lines": 0}

    raw = path.read_text(encoding="utf-8", errors="ignore")
    lines = [ln for ln in raw.splitlines() if ln.strip()]
    if not lines:
        return {"kept_lines": 0, "dropped_lines": 0}

    keep = lines
    if max_lines > 0 and len(keep) > max_lines:
        keep = keep[-max_lines:]

    if max_bytes > 0:
        while keep and (sum(len(x) for x in keep) + (len(keep) - 1)) > max_bytes:
            keep.pop(0)

    dropped = max(0, len(lines) - len(keep))
    if dropped:
        path.write_text("\n".join(keep) + ("\n" if keep else ""), encoding="utf-8")
    return {"kept_lines": int(len(keep)), "dropped_lines": int(dropped)}
