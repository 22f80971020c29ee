from __future__ import annotations

import logging
from typing import Any, Iterable

from observability.decision_trace import add_trace_event, new_decision_id, record_rejection
from shelving.catalog import DEFAULT_CATALOG, Catalog
from shelving.model import AttachmentPoint, Shelf, Vertical, build_attachment_points, relink_plates

logger = logging.getLogger(__name__)


def find_next_extension(
    shelf: Shelf,
    rod_id: int,
    span: float,
    vertical: Vertical,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
) -> int | None:
    """SKU id of the rod one `span` longer at the top ("up") or the bottom ("down")."""
    rod = shelf.rods.get(rod_id)
    if rod is None:
        return None
    sku = catalog.get_rod(rod.sku_id)
    if sku is None:
        return None
    new_sku = catalog.find_rod_extension(sku, span, Vertical(vertical).value)
    return new_sku.sku_id if new_sku is not None else None


def find_common_extension(
    shelf: Shelf,
    rod_ids: list[int],
    vertical: Vertical,
    spans: Iterable[float] = (200, 300),
    *,
    catalog: Catalog = DEFAULT_CATALOG,
) -> dict[int, tuple[int, float]] | None:
    """First span (in order) every rod can be extended by, as {rod_id: (new_sku_id, span)}."""
    for span in spans:
        plan: dict[int, tuple[int, float]] = {}
        for rid in rod_ids:
            new_sku_id = find_next_extension(shelf, rid, span, vertical, catalog=catalog)
            if new_sku_id is None:
                break
            plan[rid] = (new_sku_id, span)
        else:
            return plan
    return None


def extend_rod(
    shelf: Shelf,
    rod_id: int,
    new_sku_id: int,
    vertical: Vertical,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> bool:
    """
    Swap a rod for the SKU with one extra span on top or bottom.

    Extending down lowers the rod base by the added span so every existing attachment
    keeps its absolute height; plates are re-linked by absolute Y.
    """
    decision_id = new_decision_id("extend_rod")
    vertical = Vertical(vertical)
    rod = shelf.rods.get(rod_id)
    if rod is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="rod.exists",
                         reason=f"unknown rod {rod_id}")
        return False
    old_sku = catalog.get_rod(rod.sku_id)
    new_sku = catalog.get_rod(new_sku_id)
    if old_sku is None or new_sku is None:
        record_rejection(trace, decision_id=decision_id, constraint_id="rod.sku_known",
                         reason=f"unknown rod sku among {rod.sku_id}, {new_sku_id}", element_id=rod_id)
        return False

    if len(new_sku.spans) != len(old_sku.spans) + 1:
        record_rejection(trace, decision_id=decision_id, constraint_id="rod.extension_shape",
                         reason=f"{new_sku.name} is not one span longer than {old_sku.name}", element_id=rod_id)
        return False

    if vertical is Vertical.UP:
        if tuple(new_sku.spans[:-1]) != tuple(old_sku.spans):
            record_rejection(trace, decision_id=decision_id, constraint_id="rod.extension_shape",
                             reason=f"{new_sku.name} does not extend {old_sku.name} upward", element_id=rod_id)
            return False
        added = new_sku.spans[-1]
        rod.sku_id = new_sku.sku_id
        rod.attachment_points.append(AttachmentPoint(y=rod.attachment_points[-1].y + added))
    else:
        if tuple(new_sku.spans[1:]) != tuple(old_sku.spans):
            record_rejection(trace, decision_id=decision_id, constraint_id="rod.extension_shape",
                             reason=f"{new_sku.name} does not extend {old_sku.name} downward", element_id=rod_id)
            return False
        added = new_sku.spans[0]
        rod.position.y -= added
        rod.sku_id = new_sku.sku_id
        rod.attachment_points = build_attachment_points(new_sku.sku_id, catalog)
        relink_plates(shelf, rod_id)

    if trace is not None:
        add_trace_event(trace, "extend_rod_committed",
                        {"rod_id": rod_id, "sku": new_sku.name, "direction": vertical.value, "span": added})
    return True


def extend_rod_to_height(
    shelf: Shelf,
    rod_id: int,
    target_y: float,
    spans: Iterable[float] = (200, 300),
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> bool:
    """Make sure `rod_id` has an attachment point at absolute `target_y`, extending by one span if needed."""
    rod = shelf.rods.get(rod_id)
    if rod is None:
        return False
    if rod.covers(target_y):
        return rod.attachment_at(target_y) is not None

    if target_y > rod.top:
        vertical, gap = Vertical.UP, target_y - rod.top
    else:
        vertical, gap = Vertical.DOWN, rod.bottom - target_y
    if gap not in list(spans):
        record_rejection(trace, decision_id=new_decision_id("extend_rod"), constraint_id="rod.extension_span",
                         reason=f"{gap}mm is not a standard rod span", element_id=rod_id)
        return False

    new_sku_id = find_next_extension(shelf, rod_id, gap, vertical, catalog=catalog)
    if new_sku_id is None:
        record_rejection(trace, decision_id=new_decision_id("extend_rod"), constraint_id="rod.extension_sku",
                         reason=f"no rod sku extends this rod {vertical.value} by {gap}mm", element_id=rod_id)
        return False
    return extend_rod(shelf, rod_id, new_sku_id, vertical, catalog=catalog, trace=trace)
