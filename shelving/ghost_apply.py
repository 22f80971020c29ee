from __future__ import annotations

import copy
import logging
from typing import Any

from observability.decision_trace import add_trace_event, new_decision_id, record_rejection
from shelving.catalog import DEFAULT_CATALOG, Catalog
from shelving.gap_fill import try_fill_gap_with_plate
from shelving.merge import try_merge_rods
from shelving.model import NEW_ROD_ID, GhostPlate, GhostRod, Shelf, add_rod
from shelving.rods import extend_rod

logger = logging.getLogger(__name__)


def _restore(shelf: Shelf, snapshot: tuple) -> None:
    shelf.rods, shelf.plates, shelf.metadata = snapshot


def apply_ghost_plate(
    shelf: Shelf,
    ghost: GhostPlate,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> int | None:
    """
    Commit a legal ghost plate: create its planned rod, apply its rod modifications,
    then fill the gap. Any failing step restores the shelf exactly as it was.
    """
    decision_id = new_decision_id("apply_ghost_plate")
    if not ghost.legal or not ghost.gap_rod_ids or len(ghost.gap_rod_ids) != 2:
        record_rejection(trace, decision_id=decision_id, constraint_id="ghost.legal",
                         reason="only legal ghosts with a gap can be applied")
        return None

    snapshot = copy.deepcopy((shelf.rods, shelf.plates, shelf.metadata))
    gap_ids = list(ghost.gap_rod_ids)

    if ghost.rod_creation_plan is not None:
        plan = ghost.rod_creation_plan
        new_id = add_rod(shelf, plan.position, plan.sku_id, catalog=catalog)
        if new_id is None:
            _restore(shelf, snapshot)
            record_rejection(trace, decision_id=decision_id, constraint_id="ghost.rod_created",
                             reason=f"rod sku {plan.sku_id} rejected")
            return None
        gap_ids = [new_id if rid == NEW_ROD_ID else rid for rid in gap_ids]

    for mod in ghost.rod_modifications:
        if not extend_rod(shelf, mod.rod_id, mod.new_sku_id, mod.direction, catalog=catalog, trace=trace):
            _restore(shelf, snapshot)
            return None

    plate_id = try_fill_gap_with_plate(shelf, gap_ids[0], gap_ids[1], ghost.position.y,
                                       catalog=catalog, trace=trace)
    if plate_id is None:
        _restore(shelf, snapshot)
        logger.debug("ghost %s at y=%s no longer applies; shelf restored", ghost.action, ghost.position.y)
        return None

    if trace is not None:
        add_trace_event(trace, "ghost_plate_applied",
                        {"decision_id": decision_id, "action": ghost.action, "plate_id": plate_id})
    return plate_id


def apply_ghost_rod(
    shelf: Shelf,
    ghost: GhostRod,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> int | None:
    rod_id = try_merge_rods(shelf, ghost.bottom_rod_id, ghost.top_rod_id, catalog=catalog, trace=trace)
    if rod_id is not None and shelf.rods[rod_id].sku_id != ghost.sku_id:
        logger.warning("ghost rod suggested sku %s, merge produced sku %s", ghost.sku_id, shelf.rods[rod_id].sku_id)
    return rod_id
