from __future__ import annotations

import logging
from typing import Any

from observability.decision_trace import add_trace_event, new_decision_id, record_rejection
from shelving.catalog import DEFAULT_CATALOG, Catalog, plate_spans_for_distances, spans_between
from shelving.model import Plate, Shelf

logger = logging.getLogger(__name__)


def plate_spans_for_rods(shelf: Shelf, rod_ids: list[int]) -> list[float] | None:
    """[padding, x-distances..., padding] over existing rods, None if any rod is unknown."""
    rods = [shelf.rods.get(rid) for rid in rod_ids]
    if any(r is None for r in rods):
        return None
    return plate_spans_for_distances(spans_between([r.position.x for r in rods]))


def add_plate(
    shelf: Shelf,
    height: float,
    sku_id: int,
    rod_ids: list[int],
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> int | None:
    """
    Validate and commit a new plate across `rod_ids` at absolute `height`.

    `rod_ids` must already be in ascending X order; an unsorted list fails because the
    distances no longer match the SKU. Nothing is written unless every check passes.
    Returns the new plate id, or None.
    """
    decision_id = new_decision_id("add_plate")

    sku = catalog.get_plate(sku_id)
    if sku is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.sku_known",
                         reason=f"unknown plate sku {sku_id}")
        return None

    if len(rod_ids) < 2:
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.min_rods",
                         reason="a plate needs at least two rods", metrics={"rods": len(rod_ids)})
        return None

    if len(set(rod_ids)) != len(rod_ids):
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.distinct_rods",
                         reason="rod ids repeat")
        return None

    missing = [rid for rid in rod_ids if rid not in shelf.rods]
    if missing:
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.rods_exist",
                         reason=f"unknown rod ids {missing}")
        return None

    if len(rod_ids) != sku.rod_count:
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.rod_count",
                         reason=f"{sku.name} connects exactly {sku.rod_count} rods",
                         metrics={"rods": len(rod_ids)})
        return None

    distances = spans_between([shelf.rods[rid].position.x for rid in rod_ids])
    if distances != list(sku.interior_spans):
        record_rejection(trace, decision_id=decision_id, constraint_id="plate.spans_match",
                         reason=f"rod distances do not match {sku.name}",
                         metrics={"distances": distances, "expected": list(sku.interior_spans)})
        return None

    attachments = []
    for rid in rod_ids:
        ap = shelf.rods[rid].attachment_at(height)
        if ap is None:
            record_rejection(trace, decision_id=decision_id, constraint_id="plate.attachment_exists",
                             reason=f"no attachment point at y={height}", element_id=rid)
            return None
        if ap.plate_id is not None:
            record_rejection(trace, decision_id=decision_id, constraint_id="plate.attachment_free",
                             reason=f"attachment at y={height} holds plate {ap.plate_id}", element_id=rid)
            return None
        attachments.append(ap)

    plate_id = shelf.issue_id()
    shelf.plates[plate_id] = Plate(sku_id=int(sku_id), connections=list(rod_ids), y=height)
    for ap in attachments:
        ap.plate_id = plate_id

    if trace is not None:
        add_trace_event(trace, "add_plate_committed",
                        {"decision_id": decision_id, "plate_id": plate_id, "sku": sku.name, "y": height})
    return plate_id
