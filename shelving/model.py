from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from shelving.catalog import DEFAULT_CATALOG, Catalog, attachment_offsets

logger = logging.getLogger(__name__)

# Placeholder in GhostPlate.connections for a rod that does not exist yet.
NEW_ROD_ID = -1


class Direction(str, Enum):
    LEFT = "left"
    RIGHT = "right"

    @property
    def opposite(self) -> "Direction":
        return Direction.RIGHT if self is Direction.LEFT else Direction.LEFT


class Vertical(str, Enum):
    UP = "up"
    DOWN = "down"


@dataclass
class Position:
    x: float
    y: float


@dataclass
class AttachmentPoint:
    y: float
    plate_id: int | None = None


@dataclass
class Rod:
    sku_id: int
    position: Position
    attachment_points: list[AttachmentPoint] = field(default_factory=list)

    @property
    def bottom(self) -> float:
        if not self.attachment_points:
            return self.position.y
        return self.position.y + self.attachment_points[0].y

    @property
    def top(self) -> float:
        if not self.attachment_points:
            return self.position.y
        return self.position.y + self.attachment_points[-1].y

    def absolute_ys(self) -> list[float]:
        return [self.position.y + ap.y for ap in self.attachment_points]

    def attachment_at(self, height: float) -> AttachmentPoint | None:
        rel = height - self.position.y
        for ap in self.attachment_points:
            if ap.y == rel:
                return ap
        return None

    def covers(self, height: float) -> bool:
        return self.bottom <= height <= self.top


@dataclass
class Plate:
    sku_id: int
    connections: list[int]
    y: float


@dataclass
class ShelfMetadata:
    next_id: int = 1


@dataclass
class RodCreationPlan:
    position: Position
    sku_id: int


@dataclass
class RodModification:
    rod_id: int
    new_sku_id: int
    direction: Vertical
    span: float
    # Absolute Y of the new end attachment point.
    reach_y: float


@dataclass
class GhostPlate:
    position: Position
    legal: bool
    sku_id: int | None = None
    connections: list[int] | None = None
    gap_rod_ids: list[int] | None = None
    width: float = 0.0
    direction: Direction | None = None
    action: str | None = None
    existing_plate_id: int | None = None
    rod_creation_plan: RodCreationPlan | None = None
    rod_modifications: list[RodModification] = field(default_factory=list)


@dataclass
class GhostRod:
    sku_id: int
    bottom_rod_id: int
    top_rod_id: int
    position: Position
    attachment_points: list[float] = field(default_factory=list)


@dataclass
class Shelf:
    rods: dict[int, Rod] = field(default_factory=dict)
    plates: dict[int, Plate] = field(default_factory=dict)
    metadata: ShelfMetadata = field(default_factory=ShelfMetadata)
    ghost_plates: list[GhostPlate] = field(default_factory=list)
    ghost_rods: list[GhostRod] = field(default_factory=list)

    def issue_id(self) -> int:
        new_id = self.metadata.next_id
        self.metadata.next_id += 1
        return new_id


def create_empty_shelf() -> Shelf:
    return Shelf()


def build_attachment_points(sku_id: int, catalog: Catalog = DEFAULT_CATALOG) -> list[AttachmentPoint]:
    sku = catalog.get_rod(sku_id)
    if sku is None:
        return []
    return [AttachmentPoint(y=off) for off in attachment_offsets(sku)]


def add_rod(
    shelf: Shelf,
    position: Position,
    sku_id: int,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
) -> int | None:
    if catalog.get_rod(sku_id) is None:
        logger.debug("add_rod rejected: unknown rod sku %s", sku_id)
        return None
    rod_id = shelf.issue_id()
    shelf.rods[rod_id] = Rod(
        sku_id=int(sku_id),
        position=Position(position.x, position.y),
        attachment_points=build_attachment_points(sku_id, catalog),
    )
    return rod_id


def relink_plates(shelf: Shelf, rod_id: int) -> None:
    """Re-point every plate connected to `rod_id` at the attachment with matching absolute Y."""
    rod = shelf.rods[rod_id]
    for plate_id, plate in shelf.plates.items():
        if rod_id not in plate.connections:
            continue
        ap = rod.attachment_at(plate.y)
        if ap is not None:
            ap.plate_id = plate_id


def rods_at_x(shelf: Shelf, x: float) -> list[int]:
    return [rid for rid, rod in shelf.rods.items() if rod.position.x == x]


def column_blocked(shelf: Shelf, column: list[int], exclude: set[int], lo: float, hi: float) -> bool:
    """True when a rod of the column outside `exclude` overlaps the vertical range [lo, hi]."""
    for rid in column:
        if rid in exclude:
            continue
        other = shelf.rods[rid]
        if other.bottom <= hi and other.top >= lo:
            return True
    return False


def nearest_x(shelf: Shelf, x: float, direction: Direction) -> float | None:
    """X of the closest rod column strictly beyond `x` in `direction`."""
    if direction is Direction.RIGHT:
        xs = [rod.position.x for rod in shelf.rods.values() if rod.position.x > x]
        return min(xs) if xs else None
    xs = [rod.position.x for rod in shelf.rods.values() if rod.position.x < x]
    return max(xs) if xs else None


def rod_with_attachment_at(shelf: Shelf, rod_ids: list[int], height: float) -> int | None:
    for rid in sorted(rod_ids):
        if shelf.rods[rid].attachment_at(height) is not None:
            return rid
    return None


def has_rod_between(shelf: Shelf, left_x: float, right_x: float) -> bool:
    return any(left_x < rod.position.x < right_x for rod in shelf.rods.values())


def shelf_to_dict(shelf: Shelf) -> dict[str, Any]:
    """Plain JSON-friendly view of the whole shelf, ghosts included."""
    return {
        "rods": {str(rid): asdict(rod) for rid, rod in shelf.rods.items()},
        "plates": {str(pid): asdict(plate) for pid, plate in shelf.plates.items()},
        "metadata": asdict(shelf.metadata),
        "ghost_plates": [asdict(g) for g in shelf.ghost_plates],
        "ghost_rods": [asdict(g) for g in shelf.ghost_rods],
    }
