from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

PLATE_PADDING_MM = 35


@dataclass(frozen=True)
class RodSKU:
    sku_id: int
    name: str
    spans: tuple[int, ...]

    @property
    def height(self) -> int:
        return int(sum(self.spans))


@dataclass(frozen=True)
class PlateSKU:
    sku_id: int
    name: str
    spans: tuple[int, ...]
    depth: int = 200

    @property
    def interior_spans(self) -> tuple[int, ...]:
        """Rod-to-rod distances; the first and last entries are end padding."""
        return self.spans[1:-1]

    @property
    def rod_count(self) -> int:
        return len(self.interior_spans) + 1

    @property
    def length(self) -> int:
        return int(sum(self.spans))


def attachment_offsets(sku: RodSKU) -> list[float]:
    """Relative Y of every attachment point: 0 followed by the running sum of spans."""
    offsets = np.concatenate(([0], np.cumsum(np.asarray(sku.spans, dtype=np.int64))))
    return [int(v) for v in offsets]


def spans_between(values: Sequence[float]) -> list[float]:
    """Consecutive differences of an ordered coordinate list."""
    if len(values) < 2:
        return []
    return [v.item() for v in np.diff(np.asarray(values))]


def plate_spans_for_distances(distances: Iterable[float]) -> list[float]:
    return [PLATE_PADDING_MM, *distances, PLATE_PADDING_MM]


class Catalog:
    """Read-only rod and plate tables, shared by every shelf."""

    def __init__(
        self,
        rods: Iterable[RodSKU] | None = None,
        plates: Iterable[PlateSKU] | None = None,
    ) -> None:
        self.rods: dict[int, RodSKU] = {}
        self.plates: dict[int, PlateSKU] = {}
        if rods is None and plates is None:
            self._init_defaults()
            return
        for r in rods or []:
            self.rods[int(r.sku_id)] = r
        for p in plates or []:
            self.plates[int(p.sku_id)] = p

    def _init_defaults(self) -> None:
        rod_table = [
            (1, "1P", ()),
            (2, "2P_2", (200,)),
            (3, "2P_3", (300,)),
            (4, "3P_22", (200, 200)),
            (5, "3P_23", (200, 300)),
            (6, "3P_32", (300, 200)),
            (7, "4P_223", (200, 200, 300)),
            (8, "4P_232", (200, 300, 200)),
            (9, "4P_322", (300, 200, 200)),
            (10, "5P_2232", (200, 200, 300, 200)),
            (11, "5P_2322", (200, 300, 200, 200)),
            (12, "5P_3223", (300, 200, 200, 300)),
            (13, "6P_22322", (200, 200, 300, 200, 200)),
            (14, "6P_32232", (300, 200, 200, 300, 200)),
            (15, "7P_322322", (300, 200, 200, 300, 200, 200)),
        ]
        for sku_id, name, spans in rod_table:
            self.rods[sku_id] = RodSKU(sku_id, name, spans)

        pad = PLATE_PADDING_MM
        plate_table = [
            (1, "670mm", (pad, 600, pad)),
            (2, "1270mm-single", (pad, 1200, pad)),
            (3, "1270mm-double", (pad, 600, 600, pad)),
            (4, "1870mm", (pad, 600, 600, 600, pad)),
        ]
        for sku_id, name, spans in plate_table:
            self.plates[sku_id] = PlateSKU(sku_id, name, spans, depth=200)

    def get_rod(self, sku_id: int) -> RodSKU | None:
        return self.rods.get(sku_id)

    def get_plate(self, sku_id: int) -> PlateSKU | None:
        return self.plates.get(sku_id)

    def rod_by_name(self, name: str) -> RodSKU | None:
        for sku in self.rods.values():
            if sku.name == name:
                return sku
        return None

    def plate_by_name(self, name: str) -> PlateSKU | None:
        for sku in self.plates.values():
            if sku.name == name:
                return sku
        return None

    def find_plate_by_spans(self, spans: Sequence[float]) -> PlateSKU | None:
        # Exact sequence equality, padding included. No nearest match.
        target = list(spans)
        for sku in self.plates.values():
            if list(sku.spans) == target:
                return sku
        return None

    def find_plate_for_gap(self, gap: float) -> PlateSKU | None:
        for sku in self.plates.values():
            if len(sku.spans) == 3 and sku.spans[1] == gap:
                return sku
        return None

    def find_rod_by_spans(self, spans: Sequence[float]) -> RodSKU | None:
        target = list(spans)
        for sku in self.rods.values():
            if list(sku.spans) == target:
                return sku
        return None

    def find_rod_extension(self, sku: RodSKU, span: float, vertical: str) -> RodSKU | None:
        """SKU whose spans equal `sku.spans` with one more span on top ("up") or bottom ("down")."""
        if vertical == "up":
            return self.find_rod_by_spans([*sku.spans, span])
        if vertical == "down":
            return self.find_rod_by_spans([span, *sku.spans])
        return None


DEFAULT_CATALOG = Catalog()
