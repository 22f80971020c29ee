from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from observability.decision_trace import add_trace_event, new_decision_id, record_rejection
from shelving.catalog import DEFAULT_CATALOG, PLATE_PADDING_MM, Catalog
from shelving.model import Direction, Shelf, nearest_x, rod_with_attachment_at, rods_at_x

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtensionPlan:
    plate_id: int
    sku_id: int
    connections: list[int]
    target_rod_id: int
    distance: float


def extended_spans(spans: tuple[int, ...] | list[float], direction: Direction, distance: float) -> list[float]:
    """Replace the end padding on `direction` with `distance` and add fresh padding."""
    if direction is Direction.RIGHT:
        return [*spans[:-1], distance, PLATE_PADDING_MM]
    return [PLATE_PADDING_MM, distance, *spans[1:]]


def can_extend_plate(
    shelf: Shelf,
    plate_id: int,
    direction: Direction,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> ExtensionPlan | None:
    """Pure planning half of `try_extend_plate`; never writes to the shelf."""
    decision_id = new_decision_id("extend_plate")
    direction = Direction(direction)

    plate = shelf.plates.get(plate_id)
    if plate is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.exists",
                         reason=f"unknown plate {plate_id}")
        return None
    sku = catalog.get_plate(plate.sku_id)
    if sku is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.sku_known",
                         reason=f"unknown plate sku {plate.sku_id}", element_id=plate_id)
        return None

    end_rod_id = plate.connections[-1] if direction is Direction.RIGHT else plate.connections[0]
    end_rod = shelf.rods[end_rod_id]
    column_x = nearest_x(shelf, end_rod.position.x, direction)
    if column_x is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="extend.neighbor_exists",
                         reason=f"no rod {direction.value} of rod {end_rod_id}", element_id=plate_id)
        return None

    # Several rods may be stacked in the neighbouring column; only one can carry the plate.
    target_id = rod_with_attachment_at(shelf, rods_at_x(shelf, column_x), plate.y)
    if target_id is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="extend.attachment_exists",
                         reason=f"no rod at x={column_x} has an attachment at y={plate.y}", element_id=plate_id)
        return None
    target_ap = shelf.rods[target_id].attachment_at(plate.y)
    if target_ap.plate_id is not None:
        record_rejection(trace, decision_id=decision_id, constraint_id="extend.attachment_free",
                         reason=f"attachment on rod {target_id} holds plate {target_ap.plate_id}",
                         element_id=plate_id)
        return None

    distance = abs(column_x - end_rod.position.x)
    new_spans = extended_spans(sku.spans, direction, distance)
    new_sku = catalog.find_plate_by_spans(new_spans)
    if new_sku is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="extend.sku_match",
                         reason="no plate sku for extended spans",
                         metrics={"spans": new_spans}, element_id=plate_id)
        return None

    if direction is Direction.RIGHT:
        connections = [*plate.connections, target_id]
    else:
        connections = [target_id, *plate.connections]
    return ExtensionPlan(plate_id, new_sku.sku_id, connections, target_id, distance)


def try_extend_plate(
    shelf: Shelf,
    plate_id: int,
    direction: Direction,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> bool:
    plan = can_extend_plate(shelf, plate_id, direction, catalog=catalog, trace=trace)
    if plan is None:
        return False

    plate = shelf.plates[plate_id]
    plate.sku_id = plan.sku_id
    plate.connections = list(plan.connections)
    shelf.rods[plan.target_rod_id].attachment_at(plate.y).plate_id = plate_id

    if trace is not None:
        add_trace_event(trace, "extend_plate_committed",
                        {"plate_id": plate_id, "sku_id": plan.sku_id, "target_rod_id": plan.target_rod_id})
    return True
