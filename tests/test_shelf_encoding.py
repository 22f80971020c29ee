import base64
import copy
import json

from session.shelf_encoding import (
    CURRENT_ENCODING_VERSION,
    apply_encoded_state,
    decode_shelf,
    decode_shelf_from_json,
    encode_shelf,
    encode_shelf_to_dict,
    encode_shelf_to_json,
    validate_encoding,
)
from shelving.model import Position, add_rod, create_empty_shelf
from shelving.placement import add_plate


def _encode_json(data):
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _sample_shelf():
    shelf = create_empty_shelf()
    # Added right to left so ids and X order disagree.
    add_rod(shelf, Position(600, 0), 2)
    add_rod(shelf, Position(0, 0), 2)
    add_rod(shelf, Position(1200, 200), 1)
    add_plate(shelf, 200, 1, [2, 1])
    return shelf


def test_v2_layout_uses_x_order_indices():
    data = encode_shelf_to_dict(_sample_shelf())
    assert data["v"] == CURRENT_ENCODING_VERSION
    assert data["r"] == [[0, 2], [600, 2], [1200, 200, 1]]
    assert data["p"] == [[200, 1, [0, 1]]]


def test_encoded_string_is_url_safe_without_padding():
    encoded = encode_shelf(_sample_shelf())
    assert "=" not in encoded
    assert "+" not in encoded and "/" not in encoded
    assert validate_encoding(encoded)


def test_decode_rebuilds_through_public_operations():
    shelf = decode_shelf(encode_shelf(_sample_shelf()))
    assert [r.position.x for r in shelf.rods.values()] == [0, 600, 1200]
    assert list(shelf.plates) == [4]
    assert shelf.plates[4].connections == [1, 2]
    assert shelf.rods[1].attachment_at(200).plate_id == 4
    assert shelf.metadata.next_id == 5
    assert shelf.ghost_plates


def test_v1_and_v0_are_still_readable():
    v1 = {
        "version": 1,
        "rods": [{"pos": {"x": 0, "y": 0}, "sku": "2P_2"}, {"pos": {"x": 600, "y": 0}, "sku": "2P_2"}],
        "plates": [{"y": 0, "sku": "670mm", "rods": [0, 1]}],
    }
    shelf = decode_shelf_from_json(json.dumps(v1))
    assert len(shelf.rods) == 2
    assert len(shelf.plates) == 1

    v0 = {k: v for k, v in v1.items() if k != "version"}
    shelf = decode_shelf(_encode_json(v0))
    assert len(shelf.plates) == 1


def test_v1_plate_with_unknown_rod_index_is_skipped():
    v1 = {
        "version": 1,
        "rods": [{"pos": {"x": 0, "y": 0}, "sku": "2P_2"}, {"pos": {"x": 600, "y": 0}, "sku": "nope"}],
        "plates": [{"y": 0, "sku": "670mm", "rods": [0, 1]}],
    }
    shelf = decode_shelf_from_json(json.dumps(v1))
    assert len(shelf.rods) == 1
    assert shelf.plates == {}


def test_invalid_plate_is_dropped_not_forced():
    data = {"v": 2, "r": [[0, 2], [500, 2]], "p": [[0, 1, [0, 1]]]}
    shelf = decode_shelf(_encode_json(data))
    assert len(shelf.rods) == 2
    assert shelf.plates == {}


def test_newer_version_decodes_to_empty_shelf():
    encoded = _encode_json({"v": CURRENT_ENCODING_VERSION + 1, "r": [[0, 1]], "p": []})
    assert not validate_encoding(encoded)
    shelf = decode_shelf(encoded)
    assert shelf.rods == {} and shelf.plates == {}


def test_garbage_decodes_to_empty_shelf():
    for bad in ("!!!", _encode_json([1, 2]), _encode_json({"v": 2, "r": "x", "p": []}), ""):
        assert not validate_encoding(bad)
        assert decode_shelf(bad).rods == {}


def test_apply_encoded_state_in_place():
    target = create_empty_shelf()
    add_rod(target, Position(5000, 0), 1)
    assert apply_encoded_state(encode_shelf(_sample_shelf()), target)
    assert len(target.rods) == 3
    assert len(target.plates) == 1


def test_apply_bad_state_leaves_shelf_untouched():
    shelf = _sample_shelf()
    before = copy.deepcopy(shelf)
    assert not apply_encoded_state("not-a-shelf", shelf)
    assert shelf == before
    assert encode_shelf_to_json(shelf) == encode_shelf_to_json(before)
