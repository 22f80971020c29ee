import copy

from shelving.extension import can_extend_plate, extended_spans, try_extend_plate
from shelving.model import Direction, Position, add_rod, create_empty_shelf
from shelving.placement import add_plate


def _row(xs, sku_id=2):
    shelf = create_empty_shelf()
    for x in xs:
        add_rod(shelf, Position(x, 0), sku_id)
    return shelf


def test_extended_spans_replace_end_padding():
    assert extended_spans((35, 600, 35), Direction.RIGHT, 600) == [35, 600, 600, 35]
    assert extended_spans((35, 600, 35), Direction.LEFT, 1200) == [35, 1200, 600, 35]


def test_extend_right_upgrades_sku_and_links_rod():
    shelf = _row([0, 600, 1200])
    pid = add_plate(shelf, 0, 1, [1, 2])
    trace = []
    assert try_extend_plate(shelf, pid, Direction.RIGHT, trace=trace)
    plate = shelf.plates[pid]
    assert plate.sku_id == 3
    assert plate.connections == [1, 2, 3]
    assert shelf.rods[3].attachment_at(0).plate_id == pid
    assert trace[-1]["event"] == "extend_plate_committed"


def test_extend_left_prepends_rod():
    shelf = _row([0, 600, 1200])
    pid = add_plate(shelf, 200, 1, [2, 3])
    assert try_extend_plate(shelf, pid, "left")
    assert shelf.plates[pid].connections == [1, 2, 3]
    assert shelf.rods[1].attachment_at(200).plate_id == pid


def test_no_neighbour_fails():
    shelf = _row([0, 600])
    pid = add_plate(shelf, 0, 1, [1, 2])
    before = copy.deepcopy(shelf)
    assert not try_extend_plate(shelf, pid, Direction.LEFT)
    assert shelf == before


def test_no_matching_sku_fails_without_partial_write():
    shelf = _row([0, 600, 1800])
    pid = add_plate(shelf, 0, 1, [1, 2])
    before = copy.deepcopy(shelf)
    trace = []
    assert not try_extend_plate(shelf, pid, Direction.RIGHT, trace=trace)
    assert shelf == before
    assert trace[-1]["data"]["constraint_id"] == "extend.sku_match"


def test_occupied_target_fails_instead_of_merging():
    shelf = _row([0, 600, 1200, 1800])
    left = add_plate(shelf, 0, 1, [1, 2])
    right = add_plate(shelf, 0, 1, [3, 4])
    before = copy.deepcopy(shelf)
    trace = []
    assert not try_extend_plate(shelf, left, Direction.RIGHT, trace=trace)
    assert shelf == before
    assert set(shelf.plates) == {left, right}
    assert trace[-1]["data"]["constraint_id"] == "extend.attachment_free"


def test_stacked_column_picks_rod_with_attachment_at_height():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 4)
    add_rod(shelf, Position(600, 0), 4)
    add_rod(shelf, Position(1200, 0), 2)
    upper = add_rod(shelf, Position(1200, 400), 2)
    pid = add_plate(shelf, 400, 1, [1, 2])

    plan = can_extend_plate(shelf, pid, Direction.RIGHT)
    assert plan is not None
    assert plan.target_rod_id == upper
    assert try_extend_plate(shelf, pid, Direction.RIGHT)
    assert shelf.plates[pid].connections == [1, 2, upper]


def test_can_extend_plate_is_pure():
    shelf = _row([0, 600, 1200])
    pid = add_plate(shelf, 0, 1, [1, 2])
    before = copy.deepcopy(shelf)
    plan = can_extend_plate(shelf, pid, Direction.RIGHT)
    assert plan.sku_id == 3
    assert plan.distance == 600
    assert shelf == before
