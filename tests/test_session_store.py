import json
import os
import shutil
import time

from api.state import RuntimeState
from session.session_store import SessionStore
from session.shelf_session import ShelfSession
from shelving.model import Position, add_rod


def test_snapshots_and_latest(tmp_path):
    store = SessionStore(str(tmp_path / "sessions"))
    sid = store.create_session()
    assert store.has_session(sid)

    store.save_snapshot(sid, 1, "abc", {"rods": {}}, action_type="add_rod")
    store.save_snapshot(sid, 2, "def", {"rods": {}})
    store.save_snapshot(sid, 10, "ghi", {"rods": {}})
    assert store.list_snapshots(sid) == ["1", "2", "10"]
    assert store.load_latest(sid) == {"revision": 10, "encoded": "ghi"}
    assert store.load_snapshot(sid, 1)["action_type"] == "add_rod"
    assert store.load_snapshot(sid, 3) is None
    assert store.load_latest("missing") is None


def test_trace_written_as_ndjson(tmp_path):
    store = SessionStore(str(tmp_path))
    sid = store.create_session()
    session = ShelfSession(sid)
    add_rod(session.shelf, Position(0, 0), 1)
    session.commit("add_rod")
    path = store.save_trace(sid, session.trace)
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines
    assert all(json.loads(ln)["event"] for ln in lines)


def test_prune_sessions_by_age(tmp_path):
    store = SessionStore(str(tmp_path))
    old = store.create_session()
    fresh = store.create_session()
    (tmp_path / "_shared").mkdir()
    stale = time.time() - 30 * 86400
    os.utime(tmp_path / old, (stale, stale))

    out = store.prune_sessions(max_age_days=14)
    assert out == {"deleted": 1, "kept": 1}
    assert not (tmp_path / old).exists()
    assert (tmp_path / fresh).exists()
    assert (tmp_path / "_shared").exists()
    assert store.prune_sessions(max_age_days=0) == {"deleted": 0, "kept": 0}


def test_prune_traces_keeps_tail(tmp_path):
    store = SessionStore(str(tmp_path))
    sid = store.create_session()
    store.trace_path(sid).write_text("\n".join(f'{{"n":{i}}}' for i in range(10)) + "\n", encoding="utf-8")
    out = store.prune_traces(max_lines=3)
    assert out == {"kept_lines": 3, "dropped_lines": 7}
    assert store.trace_path(sid).read_text(encoding="utf-8").splitlines()[0] == '{"n":7}'


def test_session_commit_and_undo():
    session = ShelfSession("s")
    add_rod(session.shelf, Position(0, 0), 1)
    session.commit("add_rod")
    assert session.revision == 1
    assert len([g for g in session.shelf.ghost_plates if g.legal]) == 2
    assert session.undo_last()
    assert session.shelf.rods == {}
    assert session.shelf.ghost_plates == []
    assert session.redo_last()
    assert len(session.shelf.rods) == 1
    assert not session.redo_last()


def test_session_trace_is_capped_in_memory():
    session = ShelfSession("s", max_trace_events=3)
    for i in range(3):
        add_rod(session.shelf, Position(i * 600, 0), 1)
        session.commit("add_rod")
    assert len(session.trace) == 3
    assert session.trace[-1]["event"].startswith("ghost")


def test_pruned_sessions_are_dropped_from_memory(tmp_path):
    state = RuntimeState(store=SessionStore(str(tmp_path)))
    kept = state.create_session()
    pruned = state.create_session()
    shutil.rmtree(tmp_path / pruned.session_id)

    assert state.forget_pruned_sessions() == 1
    assert list(state.sessions) == [kept.session_id]
