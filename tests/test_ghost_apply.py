from session.shelf_encoding import encode_shelf_to_json
from shelving.ghost_apply import apply_ghost_plate, apply_ghost_rod
from shelving.ghosts import regenerate_ghost_plates, regenerate_ghost_rods
from shelving.model import Direction, GhostPlate, Position, add_rod, create_empty_shelf
from shelving.removal import remove_rod


def test_apply_create_ghost():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 2)
    add_rod(shelf, Position(600, 0), 2)
    ghosts = regenerate_ghost_plates(shelf)
    ghost = next(g for g in ghosts if g.legal and g.action == "create" and g.connections == [1, 2] and g.position.y == 0)
    pid = apply_ghost_plate(shelf, ghost)
    assert pid == 3
    assert shelf.plates[pid].sku_id == ghost.sku_id


def test_apply_ghost_with_new_rod():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 1)
    ghosts = regenerate_ghost_plates(shelf)
    ghost = next(g for g in ghosts if g.direction is Direction.RIGHT)
    trace = []
    pid = apply_ghost_plate(shelf, ghost, trace=trace)
    assert pid == 3
    assert shelf.rods[2].position == Position(600, 0)
    assert shelf.plates[pid].connections == [1, 2]
    assert trace[-1]["event"] == "ghost_plate_applied"


def test_apply_ghost_with_rod_extension():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 4)
    add_rod(shelf, Position(600, 0), 2)
    ghosts = regenerate_ghost_plates(shelf)
    ghost = next(g for g in ghosts if g.legal and g.action == "extend_rod" and g.position.y == 400)
    pid = apply_ghost_plate(shelf, ghost)
    assert pid == 3
    assert shelf.rods[2].sku_id == 4
    assert shelf.rods[2].attachment_at(400).plate_id == pid


def test_stale_ghost_rolls_back_every_step():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 4)
    add_rod(shelf, Position(600, 0), 2)
    ghosts = regenerate_ghost_plates(shelf)
    ghost = next(g for g in ghosts if g.legal and g.action == "extend_rod" and g.position.y == 400)

    remove_rod(shelf, 1)
    before = encode_shelf_to_json(shelf)
    next_id = shelf.metadata.next_id
    assert apply_ghost_plate(shelf, ghost) is None
    assert encode_shelf_to_json(shelf) == before
    assert shelf.rods[2].sku_id == 2
    assert shelf.metadata.next_id == next_id


def test_illegal_ghost_is_refused():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 1)
    marker = GhostPlate(position=Position(300, 0), legal=False, direction=Direction.RIGHT)
    assert apply_ghost_plate(shelf, marker) is None
    assert shelf.plates == {}


def test_apply_ghost_rod():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 2)
    add_rod(shelf, Position(0, 500), 2)
    (ghost,) = regenerate_ghost_rods(shelf)
    rid = apply_ghost_rod(shelf, ghost)
    assert rid == 3
    assert list(shelf.rods) == [3]
    assert shelf.rods[3].sku_id == ghost.sku_id
