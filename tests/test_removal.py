from shelving.catalog import DEFAULT_CATALOG
from shelving.model import Position, add_rod, create_empty_shelf
from shelving.placement import add_plate
from shelving.removal import remove_plate, remove_plate_segment, remove_rod, remove_rod_segment


def _plate_id(name):
    return DEFAULT_CATALOG.plate_by_name(name).sku_id


def _row(xs, sku_id=1):
    shelf = create_empty_shelf()
    for x in xs:
        add_rod(shelf, Position(x, 0), sku_id)
    return shelf


def _four_rod_plate():
    shelf = _row([0, 600, 1200, 1800])
    pid = add_plate(shelf, 0, _plate_id("1870mm"), [1, 2, 3, 4])
    assert pid == 5
    return shelf, pid


def test_remove_plate_frees_attachments():
    shelf, pid = _four_rod_plate()
    assert remove_plate(shelf, pid)
    assert shelf.plates == {}
    assert all(shelf.rods[rid].attachment_points[0].plate_id is None for rid in (1, 2, 3, 4))
    assert not remove_plate(shelf, pid)


def test_removing_end_rod_demotes_plate():
    shelf, pid = _four_rod_plate()
    assert remove_rod(shelf, 1)
    plate = shelf.plates[pid]
    assert plate.sku_id == _plate_id("1270mm-double")
    assert plate.connections == [2, 3, 4]
    assert 1 not in shelf.rods


def test_removing_middle_rod_without_matching_sku_deletes_plate():
    shelf, pid = _four_rod_plate()
    assert remove_rod(shelf, 2)
    assert pid not in shelf.plates
    assert all(shelf.rods[rid].attachment_points[0].plate_id is None for rid in (1, 3, 4))


def test_removing_rod_of_two_rod_plate_deletes_plate():
    shelf = _row([0, 600])
    pid = add_plate(shelf, 0, 1, [1, 2])
    assert remove_rod(shelf, 2)
    assert pid not in shelf.plates
    assert shelf.rods[1].attachment_points[0].plate_id is None


def test_removing_middle_of_three_becomes_single_span_plate():
    shelf = _row([0, 600, 1200])
    pid = add_plate(shelf, 0, _plate_id("1270mm-double"), [1, 2, 3])
    assert remove_rod(shelf, 2)
    assert shelf.plates[pid].sku_id == _plate_id("1270mm-single")
    assert shelf.plates[pid].connections == [1, 3]


def test_rod_shared_by_several_plates():
    shelf = create_empty_shelf()
    for x in (0, 600, 1200):
        add_rod(shelf, Position(x, 0), 2)
    low = add_plate(shelf, 0, _plate_id("1270mm-double"), [1, 2, 3])
    high = add_plate(shelf, 200, 1, [2, 3])
    assert remove_rod(shelf, 3)
    assert shelf.plates[low].connections == [1, 2]
    assert high not in shelf.plates
    assert shelf.rods[2].attachment_at(200).plate_id is None


def test_remove_unknown_rod_fails():
    shelf = _row([0])
    assert not remove_rod(shelf, 42)
    assert set(shelf.rods) == {1}


def test_plate_segment_at_edge_trims():
    shelf, pid = _four_rod_plate()
    assert remove_plate_segment(shelf, pid, 0)
    assert pid not in shelf.plates
    (new_id,) = shelf.plates
    assert shelf.plates[new_id].connections == [2, 3, 4]
    assert shelf.rods[1].attachment_points[0].plate_id is None


def test_plate_segment_in_middle_splits():
    shelf, pid = _four_rod_plate()
    assert remove_plate_segment(shelf, pid, 1)
    plates = sorted(shelf.plates.values(), key=lambda p: p.connections[0])
    assert [p.connections for p in plates] == [[1, 2], [3, 4]]
    assert all(p.sku_id == _plate_id("670mm") for p in plates)


def test_plate_segment_out_of_range_fails():
    shelf, pid = _four_rod_plate()
    assert not remove_plate_segment(shelf, pid, 3)
    assert pid in shelf.plates


def test_single_segment_plate_is_removed():
    shelf = _row([0, 600])
    pid = add_plate(shelf, 0, 1, [1, 2])
    assert remove_plate_segment(shelf, pid, 0)
    assert shelf.plates == {}


def _three_point_pair():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 4)
    add_rod(shelf, Position(600, 0), 4)
    return shelf


def test_rod_segment_below_plates_trims_bottom():
    shelf = _three_point_pair()
    pid = add_plate(shelf, 200, 1, [1, 2])
    assert remove_rod_segment(shelf, 1, 0)
    rod = shelf.rods[1]
    assert rod.sku_id == 2
    assert rod.position.y == 200
    assert rod.absolute_ys() == [200, 400]
    assert rod.attachment_at(200).plate_id == pid


def test_rod_segment_above_plates_trims_top():
    shelf = _three_point_pair()
    pid = add_plate(shelf, 200, 1, [1, 2])
    assert remove_rod_segment(shelf, 1, 1)
    rod = shelf.rods[1]
    assert rod.sku_id == 2
    assert rod.absolute_ys() == [0, 200]
    assert rod.attachment_at(200).plate_id == pid


def test_rod_segment_between_plates_splits_rod():
    shelf = _three_point_pair()
    low = add_plate(shelf, 0, 1, [1, 2])
    high = add_plate(shelf, 400, 1, [1, 2])
    assert remove_rod_segment(shelf, 1, 0)

    top_id = max(shelf.rods)
    assert top_id == 5
    bottom, top = shelf.rods[1], shelf.rods[top_id]
    assert bottom.sku_id == 1 and bottom.absolute_ys() == [0]
    assert top.sku_id == 2 and top.absolute_ys() == [200, 400]
    assert shelf.plates[low].connections == [1, 2]
    assert shelf.plates[high].connections == [top_id, 2]
    assert top.attachment_at(400).plate_id == high
    assert bottom.attachment_at(0).plate_id == low


def test_rod_segment_without_plates_removes_rod():
    shelf = _three_point_pair()
    assert remove_rod_segment(shelf, 1, 1)
    assert 1 not in shelf.rods
