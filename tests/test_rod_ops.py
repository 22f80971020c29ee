from shelving.model import Position, Vertical, add_rod, create_empty_shelf
from shelving.placement import add_plate
from shelving.rods import extend_rod, extend_rod_to_height, find_common_extension, find_next_extension


def _pair():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 2)
    add_rod(shelf, Position(600, 0), 2)
    return shelf


def test_find_next_extension():
    shelf = create_empty_shelf()
    rid = add_rod(shelf, Position(0, 0), 1)
    assert find_next_extension(shelf, rid, 200, Vertical.UP) == 2
    assert find_next_extension(shelf, rid, 300, "down") == 3
    assert find_next_extension(shelf, rid, 250, Vertical.UP) is None
    assert find_next_extension(shelf, 99, 200, Vertical.UP) is None


def test_find_common_extension_tries_spans_in_order():
    shelf = _pair()
    assert find_common_extension(shelf, [1, 2], Vertical.UP) == {1: (4, 200), 2: (4, 200)}

    tall = add_rod(shelf, Position(1200, 0), 9)
    # 4P_322 has no 200 mm upward extension, only 300 mm.
    assert find_common_extension(shelf, [1, tall], Vertical.UP) == {1: (5, 300), tall: (12, 300)}
    assert find_common_extension(shelf, [1, tall], Vertical.UP, spans=[200]) is None


def test_extend_rod_up_appends_point():
    shelf = _pair()
    trace = []
    assert extend_rod(shelf, 1, 5, Vertical.UP, trace=trace)
    assert shelf.rods[1].absolute_ys() == [0, 200, 500]
    assert trace[-1]["event"] == "extend_rod_committed"


def test_extend_rod_down_keeps_plate_links():
    shelf = _pair()
    pid = add_plate(shelf, 200, 1, [1, 2])
    assert extend_rod(shelf, 1, 6, Vertical.DOWN)
    rod = shelf.rods[1]
    assert rod.position.y == -300
    assert rod.absolute_ys() == [-300, 0, 200]
    assert rod.attachment_at(200).plate_id == pid


def test_extend_rod_rejects_wrong_shape():
    shelf = _pair()
    assert not extend_rod(shelf, 1, 6, Vertical.UP)
    assert not extend_rod(shelf, 1, 7, Vertical.UP)
    assert shelf.rods[1].sku_id == 2


def test_extend_rod_to_height():
    shelf = _pair()
    assert extend_rod_to_height(shelf, 1, 200)
    assert shelf.rods[1].sku_id == 2
    assert not extend_rod_to_height(shelf, 1, 350)
    assert not extend_rod_to_height(shelf, 1, 100)
    assert extend_rod_to_height(shelf, 1, 500)
    assert shelf.rods[1].absolute_ys() == [0, 200, 500]
