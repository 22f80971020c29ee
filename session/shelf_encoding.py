"""
Compact, URL-safe shelf encodings.

Version history:
  2  {"v": 2, "r": [[x, sku] | [x, y, sku]], "p": [[y, sku, [rod indices]]]} (numeric ids)
  1  {"version": 1, "rods": [{"pos": {x, y}, "sku": name}], "plates": [{"y", "sku", "rods"}]}
  0  version 1 without the version field

Rods are referenced by their index in X order, never by id. Decoding always rebuilds
through `add_rod` / `add_plate`, so an encoding can never smuggle in an invalid plate.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from policy.policy_config import PolicyConfig
from shelving.catalog import DEFAULT_CATALOG, Catalog
from shelving.ghosts import regenerate_ghost_plates, regenerate_ghost_rods
from shelving.model import Position, Shelf, add_rod, create_empty_shelf
from shelving.placement import add_plate

logger = logging.getLogger(__name__)

CURRENT_ENCODING_VERSION = 2


class EncodingError(ValueError):
    pass


def _sorted_rods(shelf: Shelf) -> list[int]:
    # sorted() is stable, so rods sharing an X keep insertion order.
    return sorted(shelf.rods, key=lambda rid: shelf.rods[rid].position.x)


def encode_shelf_to_dict(shelf: Shelf) -> dict[str, Any]:
    order = _sorted_rods(shelf)
    index = {rid: i for i, rid in enumerate(order)}

    rods: list[list[float]] = []
    for rid in order:
        rod = shelf.rods[rid]
        if rod.position.y == 0:
            rods.append([rod.position.x, rod.sku_id])
        else:
            rods.append([rod.position.x, rod.position.y, rod.sku_id])

    plates = [
        [plate.y, plate.sku_id, [index.get(rid, -1) for rid in plate.connections]]
        for plate in shelf.plates.values()
    ]
    return {"v": CURRENT_ENCODING_VERSION, "r": rods, "p": plates}


def encode_shelf_to_json(shelf: Shelf) -> str:
    return json.dumps(encode_shelf_to_dict(shelf), separators=(",", ":"))


def encode_shelf(shelf: Shelf) -> str:
    raw = encode_shelf_to_json(shelf).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _from_url_safe_base64(encoded: str) -> str:
    padded = encoded.strip() + "=" * (-len(encoded.strip()) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise EncodingError(f"not url-safe base64: {exc}") from exc


def _parse(json_text: str) -> dict[str, Any]:
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise EncodingError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise EncodingError("encoded shelf must be a JSON object")
    return data


def _version(data: dict[str, Any]) -> int:
    version = data.get("version", data.get("v", 0))
    if not isinstance(version, int):
        raise EncodingError(f"invalid version {version!r}")
    if version > CURRENT_ENCODING_VERSION:
        raise EncodingError(
            f"encoding version {version} is newer than supported version {CURRENT_ENCODING_VERSION}"
        )
    return version


def _check_shape(data: dict[str, Any], version: int) -> None:
    rods_key, plates_key = ("r", "p") if version == 2 else ("rods", "plates")
    if not isinstance(data.get(rods_key), list):
        raise EncodingError(f"missing or invalid `{rods_key}` array")
    if not isinstance(data.get(plates_key), list):
        raise EncodingError(f"missing or invalid `{plates_key}` array")


def _decode_v2(data: dict[str, Any], catalog: Catalog) -> Shelf:
    shelf = create_empty_shelf()
    rod_ids: list[int | None] = []
    for entry in data["r"]:
        if not isinstance(entry, list) or len(entry) not in (2, 3):
            raise EncodingError(f"invalid rod entry {entry!r}")
        if len(entry) == 2:
            x, sku_id = entry
            y = 0
        else:
            x, y, sku_id = entry
        rod_id = add_rod(shelf, Position(x, y), int(sku_id), catalog=catalog)
        if rod_id is None:
            logger.warning("unknown rod sku %s at x=%s, skipping", sku_id, x)
        rod_ids.append(rod_id)

    for entry in data["p"]:
        if not isinstance(entry, list) or len(entry) != 3 or not isinstance(entry[2], list):
            raise EncodingError(f"invalid plate entry {entry!r}")
        y, sku_id, indices = entry
        connections = [rod_ids[i] for i in indices if isinstance(i, int) and 0 <= i < len(rod_ids)]
        connections = [rid for rid in connections if rid is not None]
        if len(connections) < 2:
            logger.warning("plate at y=%s references fewer than two known rods, skipping", y)
            continue
        if add_plate(shelf, y, int(sku_id), connections, catalog=catalog) is None:
            logger.warning("plate sku %s at y=%s failed validation, skipping", sku_id, y)
    return shelf


def _decode_v1(data: dict[str, Any], catalog: Catalog) -> Shelf:
    shelf = create_empty_shelf()
    rod_ids: dict[int, int] = {}
    for index, entry in enumerate(data["rods"]):
        sku = catalog.rod_by_name(str(entry.get("sku", "")))
        if sku is None:
            logger.warning("unknown rod sku %r, skipping", entry.get("sku"))
            continue
        pos = entry.get("pos") or {}
        rod_id = add_rod(shelf, Position(pos.get("x", 0), pos.get("y", 0)), sku.sku_id, catalog=catalog)
        if rod_id is not None:
            rod_ids[index] = rod_id

    for entry in data["plates"]:
        sku = catalog.plate_by_name(str(entry.get("sku", "")))
        if sku is None:
            logger.warning("unknown plate sku %r, skipping", entry.get("sku"))
            continue
        indices = entry.get("rods") or []
        connections = [rod_ids[i] for i in indices if i in rod_ids]
        if len(connections) != len(indices):
            logger.warning("plate at y=%s references unknown rods, skipping", entry.get("y"))
            continue
        if add_plate(shelf, entry.get("y"), sku.sku_id, connections, catalog=catalog) is None:
            logger.warning("plate %s at y=%s failed validation, skipping", sku.name, entry.get("y"))
    return shelf


def _decode_data(data: dict[str, Any], catalog: Catalog, policy: PolicyConfig | None) -> Shelf:
    version = _version(data)
    _check_shape(data, version)
    if version == 0:
        logger.info("loading legacy shelf encoding (no version field)")
    try:
        shelf = _decode_v2(data, catalog) if version == 2 else _decode_v1(data, catalog)
    except (AttributeError, TypeError, ValueError, IndexError) as exc:
        raise EncodingError(f"malformed version {version} encoding: {exc}") from exc
    regenerate_ghost_plates(shelf, catalog=catalog, policy=policy)
    regenerate_ghost_rods(shelf, catalog=catalog)
    return shelf


def decode_shelf_strict(encoded: str, *, catalog: Catalog = DEFAULT_CATALOG, policy: PolicyConfig | None = None) -> Shelf:
    """Like `decode_shelf` but raises `EncodingError` instead of returning an empty shelf."""
    return _decode_data(_parse(_from_url_safe_base64(encoded)), catalog, policy)


def decode_shelf(encoded: str, *, catalog: Catalog = DEFAULT_CATALOG, policy: PolicyConfig | None = None) -> Shelf:
    """Decode any supported version; an unreadable or too-new encoding yields an empty shelf."""
    try:
        return decode_shelf_strict(encoded, catalog=catalog, policy=policy)
    except EncodingError as exc:
        logger.warning("could not decode shelf: %s", exc)
        return create_empty_shelf()


def decode_shelf_from_json(json_text: str, *, catalog: Catalog = DEFAULT_CATALOG, policy: PolicyConfig | None = None) -> Shelf:
    try:
        return _decode_data(_parse(json_text), catalog, policy)
    except EncodingError as exc:
        logger.warning("could not decode shelf JSON: %s", exc)
        return create_empty_shelf()


def validate_encoding(encoded: str) -> bool:
    """Cheap shape/version check; does not rebuild the shelf."""
    try:
        data = _parse(_from_url_safe_base64(encoded))
        _check_shape(data, _version(data))
    except EncodingError:
        return False
    return True


def apply_encoded_state(
    encoded: str,
    shelf: Shelf,
    *,
    catalog: Catalog = DEFAULT_CATALOG,
    policy: PolicyConfig | None = None,
) -> bool:
    """Replace the contents of `shelf` in place. An undecodable string leaves it untouched."""
    try:
        decoded = decode_shelf_strict(encoded, catalog=catalog, policy=policy)
    except EncodingError as exc:
        logger.warning("refusing to apply encoded state: %s", exc)
        return False

    shelf.rods = decoded.rods
    shelf.plates = decoded.plates
    shelf.metadata = decoded.metadata
    shelf.ghost_plates = decoded.ghost_plates
    shelf.ghost_rods = decoded.ghost_rods
    return True
