from shelving.ghosts import regenerate_ghost_rods
from shelving.model import Position, add_rod, create_empty_shelf


def test_stacked_rods_with_catalog_match_give_ghost_rod():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 2)
    add_rod(shelf, Position(0, 500), 2)
    trace = []
    ghosts = regenerate_ghost_rods(shelf, trace=trace)
    assert len(ghosts) == 1
    ghost = ghosts[0]
    assert ghost.sku_id == 8
    assert (ghost.bottom_rod_id, ghost.top_rod_id) == (1, 2)
    assert ghost.position == Position(0, 0)
    assert ghost.attachment_points == [0, 200, 500, 700]
    assert shelf.ghost_rods == ghosts
    assert trace[-1]["data"]["count"] == 1


def test_no_ghost_rod_without_exact_sku():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 2)
    add_rod(shelf, Position(0, 600), 2)
    add_rod(shelf, Position(600, 0), 2)
    assert regenerate_ghost_rods(shelf) == []


def test_only_consecutive_rods_in_a_column_are_paired():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 1)
    add_rod(shelf, Position(0, 200), 1)
    add_rod(shelf, Position(0, 400), 1)
    ghosts = regenerate_ghost_rods(shelf)
    assert [(g.bottom_rod_id, g.top_rod_id) for g in ghosts] == [(1, 2), (2, 3)]
    assert all(g.sku_id == 2 for g in ghosts)
