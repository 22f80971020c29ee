import copy

from session.shelf_encoding import encode_shelf_to_json
from shelving.model import Position, add_rod, create_empty_shelf
from shelving.placement import add_plate


def _two_rods(gap=600):
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 2)
    add_rod(shelf, Position(gap, 0), 2)
    return shelf


def _rejections(trace):
    return [ev["data"]["constraint_id"] for ev in trace if ev["event"] == "constraint_eval"]


def test_add_plate_commits_and_links_attachments():
    shelf = _two_rods()
    trace = []
    plate_id = add_plate(shelf, 200, 1, [1, 2], trace=trace)
    assert plate_id == 3
    assert shelf.metadata.next_id == 4
    assert shelf.plates[3].connections == [1, 2]
    assert shelf.rods[1].attachment_at(200).plate_id == 3
    assert shelf.rods[2].attachment_at(200).plate_id == 3
    assert shelf.rods[1].attachment_at(0).plate_id is None
    assert trace[-1]["event"] == "add_plate_committed"


def test_add_rod_ids_share_the_counter():
    shelf = _two_rods()
    add_plate(shelf, 0, 1, [1, 2])
    assert add_rod(shelf, Position(1200, 0), 1) == 4


def test_add_rod_unknown_sku_consumes_no_id():
    shelf = create_empty_shelf()
    assert add_rod(shelf, Position(0, 0), 99) is None
    assert shelf.metadata.next_id == 1
    assert shelf.rods == {}


def test_one_millimetre_off_fails_and_changes_nothing():
    shelf = _two_rods(gap=601)
    before = encode_shelf_to_json(shelf)
    trace = []
    assert add_plate(shelf, 0, 1, [1, 2], trace=trace) is None
    assert encode_shelf_to_json(shelf) == before
    assert shelf.metadata.next_id == 3
    assert _rejections(trace) == ["plate.spans_match"]


def test_unsorted_rods_fail():
    shelf = _two_rods()
    before = copy.deepcopy(shelf)
    assert add_plate(shelf, 0, 1, [2, 1]) is None
    assert shelf == before


def test_height_without_attachment_fails():
    shelf = _two_rods()
    trace = []
    assert add_plate(shelf, 100, 1, [1, 2], trace=trace) is None
    assert _rejections(trace) == ["plate.attachment_exists"]


def test_occupied_attachment_fails():
    shelf = _two_rods()
    assert add_plate(shelf, 0, 1, [1, 2]) == 3
    before = copy.deepcopy(shelf)
    trace = []
    assert add_plate(shelf, 0, 1, [1, 2], trace=trace) is None
    assert shelf == before
    assert _rejections(trace) == ["plate.attachment_free"]


def test_unknown_inputs_fail():
    shelf = _two_rods()
    assert add_plate(shelf, 0, 99, [1, 2]) is None
    assert add_plate(shelf, 0, 1, [1, 7]) is None
    assert add_plate(shelf, 0, 1, [1]) is None
    assert add_plate(shelf, 0, 1, [1, 1]) is None
    assert shelf.plates == {}
    assert shelf.metadata.next_id == 3


def test_rod_count_must_match_sku():
    shelf = _two_rods()
    trace = []
    assert add_plate(shelf, 0, 3, [1, 2], trace=trace) is None
    assert _rejections(trace) == ["plate.rod_count"]


def test_rod_with_raised_base():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 300), 2)
    add_rod(shelf, Position(600, 100), 3)
    # Absolute heights: rod 1 at 300/500, rod 2 at 100/400.
    assert add_plate(shelf, 300, 1, [1, 2]) is None
    assert add_plate(shelf, 500, 1, [1, 2]) is None
    shelf.rods[2].position.y = 200
    assert add_plate(shelf, 500, 1, [1, 2]) == 3
