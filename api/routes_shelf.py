from __future__ import annotations

from typing import Any, Callable

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from observability.metrics import record_operation
from shelving.extension import try_extend_plate
from shelving.gap_fill import try_fill_gap_with_plate
from shelving.ghost_apply import apply_ghost_plate, apply_ghost_rod
from shelving.merge import try_merge_plates, try_merge_rods
from shelving.model import Direction, Position, add_rod, shelf_to_dict
from shelving.placement import add_plate
from shelving.removal import remove_plate, remove_plate_segment, remove_rod, remove_rod_segment

router = APIRouter(tags=["shelf"])


class RodPayload(BaseModel):
    x: float
    y: float = 0.0
    sku_id: int


class PlatePayload(BaseModel):
    y: float
    sku_id: int
    rod_ids: list[int]


class ExtendPayload(BaseModel):
    direction: Direction


class MergePlatesPayload(BaseModel):
    left_plate_id: int
    right_plate_id: int


class MergeRodsPayload(BaseModel):
    bottom_rod_id: int
    top_rod_id: int


class GapFillPayload(BaseModel):
    left_rod_id: int
    right_rod_id: int
    y: float


def _edit(request: Request, session_id: str, operation: str, edit: Callable[..., Any]) -> dict:
    """
    Run one engine call against the session shelf.

    `edit(shelf, catalog, trace)` returns an id, True, or a falsy sentinel on rejection.
    Only committed edits reach the undo history.
    """
    state = request.app.state.runtime
    session = state.get_session(session_id)
    call_trace: list[dict[str, Any]] = []

    result = edit(session.shelf, session.catalog, call_trace)
    session.trace.extend(call_trace)
    ok = result is not None and result is not False
    record_operation(operation, ok)
    if not ok:
        raise HTTPException(
            status_code=409,
            detail={"status": "REJECTED", "operation": operation, "trace": call_trace},
        )

    session.commit(operation)
    state.autosave(session, operation)

    out: dict[str, Any] = {"status": "ok", "revision": session.revision, "shelf": shelf_to_dict(session.shelf)}
    if result is not True:
        out["id"] = result
    return out


@router.post("/session/{session_id}/rods")
def post_rod(request: Request, session_id: str, payload: RodPayload) -> dict:
    return _edit(
        request, session_id, "add_rod",
        lambda shelf, catalog, trace: add_rod(shelf, Position(payload.x, payload.y), payload.sku_id, catalog=catalog),
    )


@router.post("/session/{session_id}/plates")
def post_plate(request: Request, session_id: str, payload: PlatePayload) -> dict:
    return _edit(
        request, session_id, "add_plate",
        lambda shelf, catalog, trace: add_plate(
            shelf, payload.y, payload.sku_id, payload.rod_ids, catalog=catalog, trace=trace
        ),
    )


@router.post("/session/{session_id}/plates/merge")
def merge_plates(request: Request, session_id: str, payload: MergePlatesPayload) -> dict:
    return _edit(
        request, session_id, "merge_plates",
        lambda shelf, catalog, trace: try_merge_plates(
            shelf, payload.left_plate_id, payload.right_plate_id, catalog=catalog, trace=trace
        ),
    )


@router.post("/session/{session_id}/plates/{plate_id}/extend")
def extend_plate(request: Request, session_id: str, plate_id: int, payload: ExtendPayload) -> dict:
    return _edit(
        request, session_id, "extend_plate",
        lambda shelf, catalog, trace: try_extend_plate(shelf, plate_id, payload.direction, catalog=catalog, trace=trace),
    )


@router.post("/session/{session_id}/gap_fill")
def gap_fill(request: Request, session_id: str, payload: GapFillPayload) -> dict:
    return _edit(
        request, session_id, "fill_gap",
        lambda shelf, catalog, trace: try_fill_gap_with_plate(
            shelf, payload.left_rod_id, payload.right_rod_id, payload.y, catalog=catalog, trace=trace
        ),
    )


@router.delete("/session/{session_id}/plates/{plate_id}")
def delete_plate(request: Request, session_id: str, plate_id: int) -> dict:
    return _edit(
        request, session_id, "remove_plate",
        lambda shelf, catalog, trace: remove_plate(shelf, plate_id, trace=trace),
    )


@router.delete("/session/{session_id}/rods/{rod_id}")
def delete_rod(request: Request, session_id: str, rod_id: int) -> dict:
    return _edit(
        request, session_id, "remove_rod",
        lambda shelf, catalog, trace: remove_rod(shelf, rod_id, catalog=catalog, trace=trace),
    )


@router.post("/session/{session_id}/rods/merge")
def merge_rods(request: Request, session_id: str, payload: MergeRodsPayload) -> dict:
    return _edit(
        request, session_id, "merge_rods",
        lambda shelf, catalog, trace: try_merge_rods(
            shelf, payload.bottom_rod_id, payload.top_rod_id, catalog=catalog, trace=trace
        ),
    )


@router.delete("/session/{session_id}/plates/{plate_id}/segments/{segment_index}")
def delete_plate_segment(request: Request, session_id: str, plate_id: int, segment_index: int) -> dict:
    return _edit(
        request, session_id, "remove_plate_segment",
        lambda shelf, catalog, trace: remove_plate_segment(shelf, plate_id, segment_index, catalog=catalog, trace=trace),
    )


@router.delete("/session/{session_id}/rods/{rod_id}/segments/{segment_index}")
def delete_rod_segment(request: Request, session_id: str, rod_id: int, segment_index: int) -> dict:
    return _edit(
        request, session_id, "remove_rod_segment",
        lambda shelf, catalog, trace: remove_rod_segment(shelf, rod_id, segment_index, catalog=catalog, trace=trace),
    )


@router.get("/session/{session_id}/ghosts")
def get_ghosts(request: Request, session_id: str) -> dict:
    shelf = request.app.state.runtime.get_session(session_id).shelf
    view = shelf_to_dict(shelf)
    return {"ghost_plates": view["ghost_plates"], "ghost_rods": view["ghost_rods"]}


def _ghost_at(ghosts: list, index: int, kind: str) -> Any:
    if not 0 <= index < len(ghosts):
        raise HTTPException(status_code=404, detail={"status": "NOT_FOUND", "ghost": kind, "index": index})
    return ghosts[index]


@router.post("/session/{session_id}/ghosts/plates/{index}/apply")
def apply_plate_ghost(request: Request, session_id: str, index: int) -> dict:
    shelf = request.app.state.runtime.get_session(session_id).shelf
    ghost = _ghost_at(shelf.ghost_plates, index, "plate")
    return _edit(
        request, session_id, "apply_ghost_plate",
        lambda shelf, catalog, trace: apply_ghost_plate(shelf, ghost, catalog=catalog, trace=trace),
    )


@router.post("/session/{session_id}/ghosts/rods/{index}/apply")
def apply_rod_ghost(request: Request, session_id: str, index: int) -> dict:
    shelf = request.app.state.runtime.get_session(session_id).shelf
    ghost = _ghost_at(shelf.ghost_rods, index, "rod")
    return _edit(
        request, session_id, "apply_ghost_rod",
        lambda shelf, catalog, trace: apply_ghost_rod(shelf, ghost, catalog=catalog, trace=trace),
    )
