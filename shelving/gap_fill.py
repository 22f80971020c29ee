from __future__ import annotations

import logging
from typing import Any

from observability.decision_trace import new_decision_id, record_rejection
from shelving.catalog import DEFAULT_CATALOG, Catalog
from shelving.extension import can_extend_plate, try_extend_plate
from shelving.merge import try_merge_plates
from shelving.model import Direction, Shelf, has_rod_between
from shelving.placement import add_plate

logger = logging.getLogger(__name__)


def try_fill_gap_with_plate(
    shelf: Shelf,
    left_rod_id: int,
    right_rod_id: int,
    height: float,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> int | None:
    """
    Cover the gap between two neighbouring rods at `height`.

    Depending on which side already carries a plate this creates a two-rod plate,
    extends the plate on one side, or merges the plates on both sides. Returns the id of
    the plate covering the gap afterwards, or None.
    """
    decision_id = new_decision_id("fill_gap")
    left = shelf.rods.get(left_rod_id)
    right = shelf.rods.get(right_rod_id)
    if left is None or right is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="gap.rods_exist",
                         reason=f"unknown rod among {left_rod_id}, {right_rod_id}")
        return None
    if right.position.x <= left.position.x or has_rod_between(shelf, left.position.x, right.position.x):
        record_rejection(trace, decision_id=decision_id, constraint_id="gap.adjacent",
                         reason="rods are not neighbouring columns in left-to-right order")
        return None

    left_ap = left.attachment_at(height)
    right_ap = right.attachment_at(height)
    if left_ap is None or right_ap is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="gap.attachments_exist",
                         reason=f"both rods need an attachment point at y={height}")
        return None

    left_pid, right_pid = left_ap.plate_id, right_ap.plate_id

    if left_pid is None and right_pid is None:
        gap = right.position.x - left.position.x
        sku = catalog.find_plate_for_gap(gap)
        if sku is None:
            record_rejection(trace, decision_id=decision_id, constraint_id="gap.sku_for_gap",
                             reason=f"no two-rod plate for a {gap}mm gap")
            return None
        return add_plate(shelf, height, sku.sku_id, [left_rod_id, right_rod_id], catalog=catalog, trace=trace)

    if left_pid is not None and right_pid is None:
        return _extend_into_gap(shelf, left_pid, Direction.RIGHT, right_rod_id, catalog, trace)

    if left_pid is None and right_pid is not None:
        return _extend_into_gap(shelf, right_pid, Direction.LEFT, left_rod_id, catalog, trace)

    if left_pid == right_pid:
        return left_pid

    return try_merge_plates(shelf, left_pid, right_pid, catalog=catalog, trace=trace)


def _extend_into_gap(
    shelf: Shelf,
    plate_id: int,
    direction: Direction,
    expected_rod_id: int,
    catalog: Catalog,
    trace: list[dict[str, Any]] | None,
) -> int | None:
    plan = can_extend_plate(shelf, plate_id, direction, catalog=catalog, trace=trace)
    if plan is None:
        return None
    if plan.target_rod_id != expected_rod_id:
        record_rejection(trace, decision_id=new_decision_id("fill_gap"), constraint_id="gap.extension_target",
                         reason=f"plate {plate_id} would extend to rod {plan.target_rod_id}",
                         element_id=expected_rod_id)
        return None
    if not try_extend_plate(shelf, plate_id, direction, catalog=catalog, trace=trace):
        return None
    return plate_id
