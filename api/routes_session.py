from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel

from observability.decision_trace import summarize_trace, trace_to_ndjson_bytes
from observability.metrics import record_operation
from session.shelf_encoding import CURRENT_ENCODING_VERSION, encode_shelf, validate_encoding
from shelving.bom import bom_from_shelf, format_price
from shelving.model import shelf_to_dict

router = APIRouter(tags=["session"])


class LoadPayload(BaseModel):
    encoded: str


@router.post("/session/create")
def create_session(request: Request) -> dict:
    state = request.app.state.runtime
    session = state.create_session()
    return {"session_id": session.session_id, "revision": session.revision}


@router.get("/config/status")
def config_status(request: Request) -> dict:
    state = request.app.state.runtime
    return state.policy_status()


@router.get("/session/{session_id}/shelf")
def get_shelf(request: Request, session_id: str) -> dict:
    session = request.app.state.runtime.get_session(session_id)
    return {
        "session_id": session_id,
        "revision": session.revision,
        "shelf": shelf_to_dict(session.shelf),
        "history": session.undo.debug_info(),
        "trace_summary": summarize_trace(session.trace),
    }


@router.post("/session/{session_id}/undo")
def undo(request: Request, session_id: str) -> dict:
    state = request.app.state.runtime
    session = state.get_session(session_id)
    ok = session.undo_last()
    record_operation("undo", ok)
    if not ok:
        raise HTTPException(status_code=409, detail={"status": "NOTHING_TO_UNDO", "history": session.undo.debug_info()})
    state.autosave(session, "undo")
    return {"status": "ok", "revision": session.revision, "shelf": shelf_to_dict(session.shelf)}


@router.post("/session/{session_id}/redo")
def redo(request: Request, session_id: str) -> dict:
    state = request.app.state.runtime
    session = state.get_session(session_id)
    ok = session.redo_last()
    record_operation("redo", ok)
    if not ok:
        raise HTTPException(status_code=409, detail={"status": "NOTHING_TO_REDO", "history": session.undo.debug_info()})
    state.autosave(session, "redo")
    return {"status": "ok", "revision": session.revision, "shelf": shelf_to_dict(session.shelf)}


@router.get("/session/{session_id}/encoded")
def get_encoded(request: Request, session_id: str) -> dict:
    session = request.app.state.runtime.get_session(session_id)
    return {"version": CURRENT_ENCODING_VERSION, "encoded": encode_shelf(session.shelf)}


@router.post("/session/{session_id}/load")
def load_encoded(request: Request, session_id: str, payload: LoadPayload) -> dict:
    state = request.app.state.runtime
    session = state.get_session(session_id)
    if not validate_encoding(payload.encoded):
        record_operation("load", False)
        raise HTTPException(
            status_code=400,
            detail={"status": "INVALID_ENCODING", "msg": "not a supported shelf encoding"},
        )
    ok = session.load_encoded(payload.encoded)
    record_operation("load", ok)
    if not ok:
        raise HTTPException(status_code=400, detail={"status": "INVALID_ENCODING", "msg": "shelf could not be rebuilt"})
    state.autosave(session, "load")
    return {"status": "ok", "revision": session.revision, "shelf": shelf_to_dict(session.shelf)}


@router.get("/session/{session_id}/bom")
def get_bom(request: Request, session_id: str) -> dict:
    state = request.app.state.runtime
    session = state.get_session(session_id)
    bom = bom_from_shelf(session.shelf, state.prices(), catalog=state.catalog)
    totals = bom["totals"]
    totals["formatted"] = format_price(totals["total_price"], totals["currency"])
    return bom


@router.post("/session/{session_id}/snapshot")
def save_snapshot(request: Request, session_id: str) -> dict:
    state = request.app.state.runtime
    session = state.get_session(session_id)
    state.save_snapshot(session, action_type="manual")
    return {
        "status": "ok",
        "revision": session.revision,
        "snapshots": state.store.list_snapshots(session_id),
    }


@router.get("/session/{session_id}/trace.ndjson")
def get_trace(request: Request, session_id: str) -> Response:
    session = request.app.state.runtime.get_session(session_id)
    return Response(content=trace_to_ndjson_bytes(session.trace), media_type="application/x-ndjson")
