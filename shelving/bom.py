from __future__ import annotations

from typing import Any

from shelving.catalog import DEFAULT_CATALOG, Catalog
from shelving.model import Shelf

# Every model rod is built from two physical rods (wall side and front side).
PHYSICAL_RODS_PER_ROD = 2


def bom_from_shelf(
    shelf: Shelf,
    prices: dict[str, Any] | None = None,
    catalog: Catalog = DEFAULT_CATALOG,
) -> dict[str, Any]:
    """
    Bill of materials with prices.

    `prices` has the shape {"rods": {name: unit}, "plates": {name: unit},
    "support_rod": unit, "currency": str}; unknown names are priced at 0.
    """
    prices = prices or {}
    rod_prices = prices.get("rods") or {}
    plate_prices = prices.get("plates") or {}

    rod_counts: dict[str, int] = {}
    support_rods = 0
    for rod in shelf.rods.values():
        sku = catalog.get_rod(rod.sku_id)
        support_rods += len(rod.attachment_points)
        if sku is None:
            continue
        rod_counts[sku.name] = int(rod_counts.get(sku.name, 0) + PHYSICAL_RODS_PER_ROD)

    plate_counts: dict[str, int] = {}
    for plate in shelf.plates.values():
        sku = catalog.get_plate(plate.sku_id)
        if sku is None:
            continue
        plate_counts[sku.name] = int(plate_counts.get(sku.name, 0) + 1)

    lines: list[dict[str, Any]] = []
    total = 0.0
    for kind, counts, table in (("rod", rod_counts, rod_prices), ("plate", plate_counts, plate_prices)):
        for name, qty in sorted(counts.items(), key=lambda x: x[0]):
            unit = float(table.get(name, 0.0))
            line_total = unit * float(qty)
            total += line_total
            lines.append({
                "kind": kind,
                "name": name,
                "qty": int(qty),
                "unit_price": unit,
                "line_price": float(line_total),
            })

    support_unit = float(prices.get("support_rod", 0.0))
    support_line = {
        "kind": "accessory",
        "name": "Support Rod",
        "qty": int(support_rods),
        "unit_price": support_unit,
        "line_price": float(support_unit * support_rods),
    }
    total += support_line["line_price"]

    return {
        "lines": lines,
        "support_rods": support_line,
        "totals": {
            "total_price": float(total),
            "unique_parts": int(len(lines)),
            "currency": str(prices.get("currency", "NOK")),
        },
    }


def format_price(value: float, currency: str = "NOK") -> str:
    suffix = "kr" if currency == "NOK" else currency
    return f"{value:.2f} {suffix}"
