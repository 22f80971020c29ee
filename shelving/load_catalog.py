from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from shelving.catalog import Catalog, PlateSKU, RodSKU


def _spans(entry: dict[str, Any], kind: str) -> tuple[int, ...]:
    spans = entry.get("spans", [])
    if not isinstance(spans, list) or not all(isinstance(s, (int, float)) and s > 0 for s in spans):
        raise ValueError(f"{kind} {entry.get('name')!r}: spans must be a list of positive millimetre values")
    return tuple(int(s) if float(s).is_integer() else float(s) for s in spans)


def _build_catalog(raw: dict) -> Catalog:
    rods: list[RodSKU] = []
    for entry in raw.get("rods", []) or []:
        if not isinstance(entry, dict) or "id" not in entry or "name" not in entry:
            raise ValueError(f"Rod entry needs `id` and `name`, got {entry!r}")
        rods.append(RodSKU(int(entry["id"]), str(entry["name"]), _spans(entry, "rod")))

    plates: list[PlateSKU] = []
    for entry in raw.get("plates", []) or []:
        if not isinstance(entry, dict) or "id" not in entry or "name" not in entry:
            raise ValueError(f"Plate entry needs `id` and `name`, got {entry!r}")
        spans = _spans(entry, "plate")
        if len(spans) < 3:
            raise ValueError(f"plate {entry['name']!r}: spans need two paddings and at least one gap")
        plates.append(PlateSKU(int(entry["id"]), str(entry["name"]), spans, depth=int(entry.get("depth", 200))))

    for kind, items in (("rod", rods), ("plate", plates)):
        ids = [i.sku_id for i in items]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate {kind} sku ids in catalog")
    return Catalog(rods=rods, plates=plates)


def load_catalog_from_yaml(path: Path) -> Catalog:
    """Never silently fallback: an existing but malformed catalog file raises."""
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Catalog YAML must be a mapping, got {type(raw).__name__}")
    return _build_catalog(raw)


def find_catalog_file() -> Path | None:
    candidate = Path("config") / "catalog.yaml"
    if candidate.exists() and candidate.is_file():
        return candidate
    return None
