from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from observability.decision_trace import add_trace_event, new_decision_id, record_rejection
from shelving.catalog import DEFAULT_CATALOG, Catalog, attachment_offsets, spans_between
from shelving.model import (
    Position,
    Rod,
    Shelf,
    build_attachment_points,
    column_blocked,
    has_rod_between,
    rods_at_x,
)
from shelving.placement import add_plate, plate_spans_for_rods
from shelving.removal import remove_plate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlateMergePlan:
    y: float
    sku_id: int
    rod_ids: list[int]


@dataclass(frozen=True)
class RodMergePlan:
    sku_id: int
    base: Position
    absolute_ys: list[float]


def can_merge_plates(
    shelf: Shelf,
    left_plate_id: int,
    right_plate_id: int,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> PlateMergePlan | None:
    decision_id = new_decision_id("merge_plates")
    left = shelf.plates.get(left_plate_id)
    right = shelf.plates.get(right_plate_id)
    if left is None or right is None or left_plate_id == right_plate_id:
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.plates_exist",
                         reason=f"need two distinct existing plates, got {left_plate_id}, {right_plate_id}")
        return None
    if left.y != right.y:
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.same_height",
                         reason=f"plates at y={left.y} and y={right.y}")
        return None

    left_x = shelf.rods[left.connections[-1]].position.x
    right_x = shelf.rods[right.connections[0]].position.x
    if right_x <= left_x or has_rod_between(shelf, left_x, right_x):
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.adjacent",
                         reason="right plate does not start at the next rod column after the left plate",
                         metrics={"left_end_x": left_x, "right_start_x": right_x})
        return None

    rod_ids = [*left.connections, *right.connections]
    spans = plate_spans_for_rods(shelf, rod_ids)
    sku = catalog.find_plate_by_spans(spans)
    if sku is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.sku_match",
                         reason="no plate sku for merged spans", metrics={"spans": spans})
        return None
    return PlateMergePlan(left.y, sku.sku_id, rod_ids)


def try_merge_plates(
    shelf: Shelf,
    left_plate_id: int,
    right_plate_id: int,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> int | None:
    """
    Fuse two adjacent plates at the same height into one catalog plate.

    The merged SKU is found before either original is touched; the merged plate gets a
    new id.
    """
    plan = can_merge_plates(shelf, left_plate_id, right_plate_id, catalog=catalog, trace=trace)
    if plan is None:
        return None

    remove_plate(shelf, left_plate_id)
    remove_plate(shelf, right_plate_id)
    merged_id = add_plate(shelf, plan.y, plan.sku_id, plan.rod_ids, catalog=catalog)
    if merged_id is None:
        raise RuntimeError(f"merged plate across {plan.rod_ids} rejected after validation")

    if trace is not None:
        add_trace_event(trace, "merge_plates_committed",
                        {"merged_from": [left_plate_id, right_plate_id], "plate_id": merged_id})
    return merged_id


def can_merge_rods(
    shelf: Shelf,
    bottom_rod_id: int,
    top_rod_id: int,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> RodMergePlan | None:
    decision_id = new_decision_id("merge_rods")
    bottom = shelf.rods.get(bottom_rod_id)
    top = shelf.rods.get(top_rod_id)
    if bottom is None or top is None or bottom_rod_id == top_rod_id:
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.rods_exist",
                         reason=f"need two distinct existing rods, got {bottom_rod_id}, {top_rod_id}")
        return None
    if bottom.position.x != top.position.x:
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.same_column",
                         reason=f"rods at x={bottom.position.x} and x={top.position.x}")
        return None
    if not bottom.top < top.bottom:
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.vertical_gap",
                         reason="rods overlap or are not stacked bottom-to-top",
                         metrics={"bottom_top": bottom.top, "top_bottom": top.bottom})
        return None
    column = rods_at_x(shelf, bottom.position.x)
    if column_blocked(shelf, column, {bottom_rod_id, top_rod_id}, bottom.top, top.bottom):
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.rods_consecutive",
                         reason="another rod sits between the two rods",
                         metrics={"bottom_top": bottom.top, "top_bottom": top.bottom})
        return None

    ys = sorted([*bottom.absolute_ys(), *top.absolute_ys()])
    spans = spans_between(ys)
    sku = catalog.find_rod_by_spans(spans)
    if sku is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="merge.rod_sku_match",
                         reason="no rod sku for combined attachment spans", metrics={"spans": spans})
        return None
    return RodMergePlan(sku.sku_id, Position(bottom.position.x, ys[0]), ys)


def try_merge_rods(
    shelf: Shelf,
    bottom_rod_id: int,
    top_rod_id: int,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> int | None:
    """Replace two stacked rods with one rod of the SKU covering both, keeping plate links."""
    plan = can_merge_rods(shelf, bottom_rod_id, top_rod_id, catalog=catalog, trace=trace)
    if plan is None:
        return None

    old_ids = {bottom_rod_id, top_rod_id}
    merged_id = shelf.issue_id()
    merged = Rod(
        sku_id=plan.sku_id,
        position=plan.base,
        attachment_points=build_attachment_points(plan.sku_id, catalog),
    )
    for plate_id, plate in shelf.plates.items():
        if not old_ids.intersection(plate.connections):
            continue
        plate.connections = [merged_id if rid in old_ids else rid for rid in plate.connections]
        ap = merged.attachment_at(plate.y)
        if ap is not None:
            ap.plate_id = plate_id

    for rid in old_ids:
        del shelf.rods[rid]
    shelf.rods[merged_id] = merged

    if trace is not None:
        add_trace_event(trace, "merge_rods_committed",
                        {"merged_from": sorted(old_ids), "rod_id": merged_id,
                         "offsets": attachment_offsets(catalog.get_rod(plan.sku_id))})
    return merged_id
