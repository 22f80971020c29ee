"""
Speculative edit suggestions ("ghosts").

Ghosts are re-derived from scratch on every call and only ever written to
`shelf.ghost_plates` / `shelf.ghost_rods`; rods, plates and ids are never touched.

A legal ghost plate is one that `ghost_apply.apply_ghost_plate` can commit:
  * every existing rod it connects has an attachment point at the ghost height, or is
    extended by one of its rod modifications to reach exactly that height;
  * all rod modifications reach the same absolute Y;
  * no modified or created rod passes through another rod in its column;
  * the resulting plate matches a catalog SKU exactly.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterator

from observability.decision_trace import add_trace_event
from policy.policy_config import PolicyConfig
from shelving.catalog import DEFAULT_CATALOG, Catalog, PlateSKU, attachment_offsets
from shelving.extension import can_extend_plate, extended_spans
from shelving.merge import can_merge_plates, can_merge_rods
from shelving.model import (
    NEW_ROD_ID,
    Direction,
    GhostPlate,
    GhostRod,
    Position,
    RodCreationPlan,
    RodModification,
    Shelf,
    Vertical,
    column_blocked,
    has_rod_between,
    nearest_x,
    rod_with_attachment_at,
    rods_at_x,
)
from shelving.rods import find_next_extension

logger = logging.getLogger(__name__)


def regenerate_ghost_plates(
    shelf: Shelf,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    policy: PolicyConfig | None = None,
    trace: list[dict[str, Any]] | None = None,
) -> list[GhostPlate]:
    policy = policy or PolicyConfig()
    ghosts: list[GhostPlate] = []

    for rod_id in sorted(shelf.rods):
        rod = shelf.rods[rod_id]
        for ap in rod.attachment_points:
            y = rod.position.y + ap.y
            covered = _covered_sides(shelf, rod_id, ap.plate_id)
            for direction in (Direction.LEFT, Direction.RIGHT):
                if direction in covered:
                    continue
                candidate = _suggest_from_attachment(shelf, rod_id, y, direction, catalog, policy)
                _append_unique(ghosts, candidate, policy)

    if policy.suggest_rod_extensions:
        for candidate in _paired_extension_suggestions(shelf, catalog, policy):
            _append_unique(ghosts, candidate, policy)

    shelf.ghost_plates = ghosts
    if trace is not None:
        legal = sum(1 for g in ghosts if g.legal)
        add_trace_event(trace, "ghost_plates_regenerated", {"legal": legal, "illegal": len(ghosts) - legal})
    return ghosts


def regenerate_ghost_rods(
    shelf: Shelf,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    trace: list[dict[str, Any]] | None = None,
) -> list[GhostRod]:
    """Propose merging each pair of consecutive stacked rods whose combined points form a catalog rod."""
    columns: dict[float, list[int]] = defaultdict(list)
    for rod_id, rod in shelf.rods.items():
        columns[rod.position.x].append(rod_id)

    ghosts: list[GhostRod] = []
    for x in sorted(columns):
        stacked = sorted(columns[x], key=lambda rid: (shelf.rods[rid].bottom, rid))
        for lower, upper in zip(stacked, stacked[1:]):
            plan = can_merge_rods(shelf, lower, upper, catalog=catalog)
            if plan is None:
                continue
            ghosts.append(
                GhostRod(
                    sku_id=plan.sku_id,
                    bottom_rod_id=lower,
                    top_rod_id=upper,
                    position=Position(x, plan.base.y),
                    attachment_points=attachment_offsets(catalog.get_rod(plan.sku_id)),
                )
            )

    shelf.ghost_rods = ghosts
    if trace is not None:
        add_trace_event(trace, "ghost_rods_regenerated", {"count": len(ghosts)})
    return ghosts


def _covered_sides(shelf: Shelf, rod_id: int, plate_id: int | None) -> set[Direction]:
    if plate_id is None or plate_id not in shelf.plates:
        return set()
    x = shelf.rods[rod_id].position.x
    sides: set[Direction] = set()
    for rid in shelf.plates[plate_id].connections:
        other = shelf.rods.get(rid)
        if other is None:
            continue
        if other.position.x < x:
            sides.add(Direction.LEFT)
        elif other.position.x > x:
            sides.add(Direction.RIGHT)
    return sides


def _ordered(direction: Direction, source: int, target: int) -> list[int]:
    return [target, source] if direction is Direction.LEFT else [source, target]


def _suggest_from_attachment(
    shelf: Shelf,
    rod_id: int,
    y: float,
    direction: Direction,
    catalog: Catalog,
    policy: PolicyConfig,
) -> GhostPlate:
    rod = shelf.rods[rod_id]
    column_x = nearest_x(shelf, rod.position.x, direction)
    if column_x is None:
        return _new_rod_suggestion(shelf, rod_id, y, direction, catalog, policy) or _illegal(
            rod_id, shelf, y, direction, policy
        )

    column = rods_at_x(shelf, column_x)
    target = rod_with_attachment_at(shelf, column, y)
    candidate = None
    if target is not None:
        candidate = _attachment_suggestion(shelf, rod_id, target, y, direction, catalog)
    elif not any(shelf.rods[rid].bottom < y < shelf.rods[rid].top for rid in column):
        candidate = _single_rod_extension(shelf, rod_id, column, y, direction, catalog, policy)
    # Otherwise y runs through a neighbouring rod body between two attachment points.

    if candidate is None and abs(column_x - rod.position.x) > policy.standard_gap_mm:
        candidate = _new_rod_suggestion(shelf, rod_id, y, direction, catalog, policy)
    if candidate is None or not _is_supported(shelf, candidate):
        return _illegal(rod_id, shelf, y, direction, policy)
    return candidate


def _attachment_suggestion(
    shelf: Shelf,
    rod_id: int,
    target_id: int,
    y: float,
    direction: Direction,
    catalog: Catalog,
) -> GhostPlate | None:
    """Both sides have an attachment at y: create, extend or merge, like the gap-fill dispatcher."""
    src_pid = shelf.rods[rod_id].attachment_at(y).plate_id
    tgt_pid = shelf.rods[target_id].attachment_at(y).plate_id
    pair = _ordered(direction, rod_id, target_id)

    if src_pid is None and tgt_pid is None:
        sku = catalog.find_plate_for_gap(abs(shelf.rods[target_id].position.x - shelf.rods[rod_id].position.x))
        if sku is None:
            return None
        return _ghost(shelf, sku, pair, pair, y, direction, "create")

    if tgt_pid is None or src_pid is None:
        plate_id, extend_dir, reach_id = (
            (src_pid, direction, target_id) if tgt_pid is None else (tgt_pid, direction.opposite, rod_id)
        )
        plan = can_extend_plate(shelf, plate_id, extend_dir, catalog=catalog)
        if plan is None or plan.target_rod_id != reach_id:
            return None
        return _ghost(shelf, catalog.get_plate(plan.sku_id), plan.connections, pair, y, direction, "extend",
                      existing_plate_id=plate_id)

    if src_pid == tgt_pid:
        return None
    left_pid, right_pid = (tgt_pid, src_pid) if direction is Direction.LEFT else (src_pid, tgt_pid)
    plan = can_merge_plates(shelf, left_pid, right_pid, catalog=catalog)
    if plan is None:
        return None
    return _ghost(shelf, catalog.get_plate(plan.sku_id), plan.rod_ids, pair, y, direction, "merge",
                  existing_plate_id=left_pid)


def _single_rod_extension(
    shelf: Shelf,
    rod_id: int,
    column: list[int],
    y: float,
    direction: Direction,
    catalog: Catalog,
    policy: PolicyConfig,
) -> GhostPlate | None:
    """y lies above or below every rod in the neighbouring column: grow one of them to reach it."""
    rod = shelf.rods[rod_id]
    src_pid = rod.attachment_at(y).plate_id
    for target_id in sorted(column):
        target = shelf.rods[target_id]
        if y > target.top:
            vertical, span, lo, hi = Vertical.UP, y - target.top, target.top, y
        else:
            vertical, span, lo, hi = Vertical.DOWN, target.bottom - y, y, target.bottom
        if span not in policy.rod_extension_spans_mm:
            continue
        new_sku_id = find_next_extension(shelf, target_id, span, vertical, catalog=catalog)
        if new_sku_id is None or column_blocked(shelf, column, {target_id}, lo, hi):
            continue

        gap = abs(target.position.x - rod.position.x)
        pair = _ordered(direction, rod_id, target_id)
        if src_pid is None:
            sku = catalog.find_plate_for_gap(gap)
            connections = pair
        else:
            plate = shelf.plates[src_pid]
            sku = _extended_plate_sku(plate.sku_id, direction, gap, catalog)
            connections = _extended_connections(plate.connections, direction, target_id)
        if sku is None:
            continue
        mod = RodModification(target_id, new_sku_id, vertical, span, reach_y=y)
        return _ghost(shelf, sku, connections, pair, y, direction, "extend_rod",
                      existing_plate_id=src_pid, rod_modifications=[mod])
    return None


def _new_rod_suggestion(
    shelf: Shelf,
    rod_id: int,
    y: float,
    direction: Direction,
    catalog: Catalog,
    policy: PolicyConfig,
) -> GhostPlate | None:
    """Place a minimal rod one standard gap away and bridge to it."""
    minimal = catalog.rod_by_name(policy.minimal_rod_sku)
    if minimal is None:
        return None
    rod = shelf.rods[rod_id]
    gap = policy.standard_gap_mm
    new_x = rod.position.x - gap if direction is Direction.LEFT else rod.position.x + gap
    lo, hi = sorted((rod.position.x, new_x))
    if has_rod_between(shelf, lo, hi):
        return None
    if any(r.position.x == new_x and r.covers(y) for r in shelf.rods.values()):
        return None

    src_pid = rod.attachment_at(y).plate_id
    if src_pid is None:
        sku = catalog.find_plate_for_gap(gap)
        connections = _ordered(direction, rod_id, NEW_ROD_ID)
        action = "create"
    else:
        plate = shelf.plates[src_pid]
        sku = _extended_plate_sku(plate.sku_id, direction, gap, catalog)
        connections = _extended_connections(plate.connections, direction, NEW_ROD_ID)
        action = "extend"
    if sku is None:
        return None
    return _ghost(shelf, sku, connections, _ordered(direction, rod_id, NEW_ROD_ID), y, direction, action,
                  existing_plate_id=src_pid,
                  rod_creation_plan=RodCreationPlan(Position(new_x, y), minimal.sku_id))


def _paired_extension_suggestions(
    shelf: Shelf,
    catalog: Catalog,
    policy: PolicyConfig,
) -> Iterator[GhostPlate]:
    """Extend two neighbouring rods by the same span so a new plate fits above or below both."""
    columns = sorted({rod.position.x for rod in shelf.rods.values()})
    for left_x, right_x in zip(columns, columns[1:]):
        sku = catalog.find_plate_for_gap(right_x - left_x)
        if sku is None:
            continue
        for left_id in sorted(rods_at_x(shelf, left_x)):
            for right_id in sorted(rods_at_x(shelf, right_x)):
                for vertical in (Vertical.UP, Vertical.DOWN):
                    candidate = _paired_extension(shelf, left_id, right_id, vertical, sku, catalog, policy)
                    if candidate is not None:
                        yield candidate


def _paired_extension(
    shelf: Shelf,
    left_id: int,
    right_id: int,
    vertical: Vertical,
    sku: PlateSKU,
    catalog: Catalog,
    policy: PolicyConfig,
) -> GhostPlate | None:
    for span in policy.rod_extension_spans_mm:
        mods: list[RodModification] = []
        for rid in (left_id, right_id):
            new_sku_id = find_next_extension(shelf, rid, span, vertical, catalog=catalog)
            if new_sku_id is None:
                break
            rod = shelf.rods[rid]
            reach = rod.top + span if vertical is Vertical.UP else rod.bottom - span
            mods.append(RodModification(rid, new_sku_id, vertical, span, reach_y=reach))
        if len(mods) != 2:
            continue
        # Rods of different reach would need the plate at two heights at once.
        if mods[0].reach_y != mods[1].reach_y:
            continue
        y = mods[0].reach_y
        if any(_modification_blocked(shelf, m) for m in mods):
            continue
        pair = [left_id, right_id]
        return _ghost(shelf, sku, pair, pair, y, None, "extend_rod", rod_modifications=mods)
    return None


def _modification_blocked(shelf: Shelf, mod: RodModification) -> bool:
    rod = shelf.rods[mod.rod_id]
    if mod.direction is Vertical.UP:
        lo, hi = rod.top, mod.reach_y
    else:
        lo, hi = mod.reach_y, rod.bottom
    return column_blocked(shelf, rods_at_x(shelf, rod.position.x), {mod.rod_id}, lo, hi)


def _extended_plate_sku(sku_id: int, direction: Direction, gap: float, catalog: Catalog) -> PlateSKU | None:
    sku = catalog.get_plate(sku_id)
    if sku is None:
        return None
    return catalog.find_plate_by_spans(extended_spans(sku.spans, direction, gap))


def _extended_connections(connections: list[int], direction: Direction, rod_id: int) -> list[int]:
    return [rod_id, *connections] if direction is Direction.LEFT else [*connections, rod_id]


def _is_supported(shelf: Shelf, ghost: GhostPlate) -> bool:
    """Every existing rod in the ghost must end up with an attachment exactly at the ghost height."""
    y = ghost.position.y
    reached = {m.rod_id for m in ghost.rod_modifications if m.reach_y == y}
    if len(reached) != len(ghost.rod_modifications):
        return False
    for rid in ghost.connections or []:
        if rid == NEW_ROD_ID or rid in reached:
            continue
        rod = shelf.rods.get(rid)
        if rod is None or rod.attachment_at(y) is None:
            return False
    return True


def _ghost(
    shelf: Shelf,
    sku: PlateSKU,
    connections: list[int],
    gap_rod_ids: list[int],
    y: float,
    direction: Direction | None,
    action: str,
    *,
    existing_plate_id: int | None = None,
    rod_creation_plan: RodCreationPlan | None = None,
    rod_modifications: list[RodModification] | None = None,
) -> GhostPlate:
    def x_of(rid: int) -> float:
        if rid == NEW_ROD_ID:
            return rod_creation_plan.position.x
        return shelf.rods[rid].position.x

    xs = [x_of(rid) for rid in gap_rod_ids]
    return GhostPlate(
        position=Position((xs[0] + xs[-1]) / 2, y),
        legal=True,
        sku_id=sku.sku_id,
        connections=list(connections),
        gap_rod_ids=list(gap_rod_ids),
        width=float(sku.length),
        direction=direction,
        action=action,
        existing_plate_id=existing_plate_id,
        rod_creation_plan=rod_creation_plan,
        rod_modifications=list(rod_modifications or []),
    )


def _illegal(rod_id: int, shelf: Shelf, y: float, direction: Direction, policy: PolicyConfig) -> GhostPlate:
    x = shelf.rods[rod_id].position.x
    offset = policy.ghost_preview_offset_mm
    return GhostPlate(
        position=Position(x - offset if direction is Direction.LEFT else x + offset, y),
        legal=False,
        width=float(policy.standard_gap_mm),
        direction=direction,
    )


def _legal_key(ghost: GhostPlate) -> tuple:
    new_x = ghost.rod_creation_plan.position.x if ghost.rod_creation_plan is not None else None
    return ghost.position.y, tuple(sorted(ghost.connections or [])), new_x


def _append_unique(ghosts: list[GhostPlate], candidate: GhostPlate, policy: PolicyConfig) -> None:
    if candidate.legal:
        key = _legal_key(candidate)
        if any(g.legal and _legal_key(g) == key for g in ghosts):
            return
    else:
        tol = policy.ghost_dedupe_tolerance_mm
        for g in ghosts:
            if g.legal:
                continue
            if abs(g.position.x - candidate.position.x) <= tol and abs(g.position.y - candidate.position.y) <= tol:
                return
    ghosts.append(candidate)
