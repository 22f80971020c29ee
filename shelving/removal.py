from __future__ import annotations

import logging
from typing import Any

from observability.decision_trace import add_trace_event, new_decision_id, record_rejection
from shelving.catalog import DEFAULT_CATALOG, Catalog, attachment_offsets
from shelving.model import Position, Rod, Shelf, build_attachment_points, relink_plates
from shelving.placement import add_plate, plate_spans_for_rods

logger = logging.getLogger(__name__)


def remove_plate(
    shelf: Shelf,
    plate_id: int,
    *,
    trace: list[dict[str, Any]] | None = None,
) -> bool:
    plate = shelf.plates.get(plate_id)
    if plate is None:
        record_rejection(trace, decision_id=new_decision_id("remove_plate"),
                         constraint_id="plate.exists", reason=f"unknown plate {plate_id}")
        return False

    for rid in plate.connections:
        rod = shelf.rods.get(rid)
        if rod is None:
            continue
        ap = rod.attachment_at(plate.y)
        if ap is not None and ap.plate_id == plate_id:
            ap.plate_id = None

    del shelf.plates[plate_id]
    if trace is not None:
        add_trace_event(trace, "remove_plate_committed", {"plate_id": plate_id})
    return True


def remove_rod(
    shelf: Shelf,
    rod_id: int,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> bool:
    """
    Remove a rod and repair every plate that used it.

    A plate left with one rod is deleted. Otherwise it is re-matched against the catalog
    over its surviving rods and deleted when no SKU fits.
    """
    rod = shelf.rods.get(rod_id)
    if rod is None:
        record_rejection(trace, decision_id=new_decision_id("remove_rod"),
                         constraint_id="rod.exists", reason=f"unknown rod {rod_id}")
        return False

    affected = sorted(pid for pid, plate in shelf.plates.items() if rod_id in plate.connections)
    for pid in affected:
        plate = shelf.plates[pid]
        remaining = [rid for rid in plate.connections if rid != rod_id]
        if len(remaining) < 2:
            logger.info("plate %s removed with rod %s: fewer than two rods left", pid, rod_id)
            remove_plate(shelf, pid)
            continue

        spans = plate_spans_for_rods(shelf, remaining)
        sku = catalog.find_plate_by_spans(spans) if spans is not None else None
        if sku is None:
            logger.info("plate %s removed with rod %s: no sku for spans %s", pid, rod_id, spans)
            remove_plate(shelf, pid)
            continue

        ap = rod.attachment_at(plate.y)
        if ap is not None and ap.plate_id == pid:
            ap.plate_id = None
        plate.sku_id = sku.sku_id
        plate.connections = remaining
        if trace is not None:
            add_trace_event(trace, "plate_resized", {"plate_id": pid, "sku": sku.name, "rods": remaining})

    del shelf.rods[rod_id]
    if trace is not None:
        add_trace_event(trace, "remove_rod_committed", {"rod_id": rod_id, "plates_touched": affected})
    return True


def remove_plate_segment(
    shelf: Shelf,
    plate_id: int,
    segment_index: int,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> bool:
    """
    Cut one rod-to-rod segment out of a plate.

    Edge segments trim the plate, a middle segment splits it in two. A piece that no
    catalog SKU fits is dropped together with the plate.
    """
    decision_id = new_decision_id("remove_plate_segment")
    plate = shelf.plates.get(plate_id)
    if plate is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.exists",
                         reason=f"unknown plate {plate_id}")
        return False

    segments = len(plate.connections) - 1
    if segments == 1:
        return remove_plate(shelf, plate_id, trace=trace)
    if not 0 <= segment_index < segments:
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.segment_index",
                         reason=f"segment {segment_index} outside 0..{segments - 1}", element_id=plate_id)
        return False

    y = plate.y
    pieces = [plate.connections[: segment_index + 1], plate.connections[segment_index + 1:]]
    pieces = [p for p in pieces if len(p) >= 2]
    planned = []
    for rods in pieces:
        spans = plate_spans_for_rods(shelf, rods)
        sku = catalog.find_plate_by_spans(spans) if spans is not None else None
        planned.append((sku, rods))

    remove_plate(shelf, plate_id)
    if any(sku is None for sku, _ in planned):
        logger.info("plate %s dropped: no sku for a remaining piece", plate_id)
        return True

    for sku, rods in planned:
        new_id = add_plate(shelf, y, sku.sku_id, rods, catalog=catalog, trace=trace)
        if new_id is None:
            raise RuntimeError(f"re-adding plate piece {rods} at y={y} failed after validation")
    return True


def _replace_rod_sku(shelf: Shelf, rod_id: int, sku_id: int, base_y: float, catalog: Catalog) -> None:
    rod = shelf.rods[rod_id]
    rod.sku_id = sku_id
    rod.position.y = base_y
    rod.attachment_points = build_attachment_points(sku_id, catalog)
    relink_plates(shelf, rod_id)


def remove_rod_segment(
    shelf: Shelf,
    rod_id: int,
    segment_index: int,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> bool:
    """
    Cut one span out of a rod.

    Below the lowest plate every empty bottom span is trimmed, above the highest plate
    every empty top span. A span between plates splits the rod into two stacked rods.
    """
    decision_id = new_decision_id("remove_rod_segment")
    rod = shelf.rods.get(rod_id)
    if rod is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="rod.exists",
                         reason=f"unknown rod {rod_id}")
        return False
    sku = catalog.get_rod(rod.sku_id)
    if sku is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="rod.sku_known",
                         reason=f"unknown rod sku {rod.sku_id}", element_id=rod_id)
        return False

    segments = len(sku.spans)
    if segments == 0:
        return remove_rod(shelf, rod_id, catalog=catalog, trace=trace)
    if not 0 <= segment_index < segments:
        record_rejection(trace, decision_id=decision_id, constraint_id="rod.segment_index",
                         reason=f"segment {segment_index} outside 0..{segments - 1}", element_id=rod_id)
        return False

    occupied = [i for i, ap in enumerate(rod.attachment_points) if ap.plate_id is not None]
    if not occupied:
        return remove_rod(shelf, rod_id, catalog=catalog, trace=trace)
    first, last = occupied[0], occupied[-1]
    offsets = attachment_offsets(sku)

    if segment_index + 1 <= first:
        new_sku = catalog.find_rod_by_spans(sku.spans[first:])
        if new_sku is None:
            record_rejection(trace, decision_id=decision_id, constraint_id="rod.trim_sku",
                             reason=f"no rod sku for spans {list(sku.spans[first:])}", element_id=rod_id)
            return False
        _replace_rod_sku(shelf, rod_id, new_sku.sku_id, rod.position.y + offsets[first], catalog)
        return True

    if segment_index >= last:
        new_sku = catalog.find_rod_by_spans(sku.spans[:last])
        if new_sku is None:
            record_rejection(trace, decision_id=decision_id, constraint_id="rod.trim_sku",
                             reason=f"no rod sku for spans {list(sku.spans[:last])}", element_id=rod_id)
            return False
        _replace_rod_sku(shelf, rod_id, new_sku.sku_id, rod.position.y, catalog)
        return True

    bottom_sku = catalog.find_rod_by_spans(sku.spans[:segment_index])
    top_sku = catalog.find_rod_by_spans(sku.spans[segment_index + 1:])
    if bottom_sku is None or top_sku is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="rod.split_sku",
                         reason="no rod sku for one of the split parts", element_id=rod_id)
        return False

    split_y = rod.position.y + offsets[segment_index + 1]
    top_id = shelf.issue_id()
    shelf.rods[top_id] = Rod(
        sku_id=top_sku.sku_id,
        position=Position(rod.position.x, split_y),
        attachment_points=build_attachment_points(top_sku.sku_id, catalog),
    )
    for plate in shelf.plates.values():
        if plate.y >= split_y and rod_id in plate.connections:
            plate.connections = [top_id if rid == rod_id else rid for rid in plate.connections]
    _replace_rod_sku(shelf, rod_id, bottom_sku.sku_id, rod.position.y, catalog)
    relink_plates(shelf, top_id)
    if trace is not None:
        add_trace_event(trace, "rod_split", {"rod_id": rod_id, "top_rod_id": top_id, "split_y": split_y})
    return True
