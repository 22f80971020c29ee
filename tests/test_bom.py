from shelving.bom import bom_from_shelf, format_price
from shelving.model import Position, add_rod, create_empty_shelf
from shelving.placement import add_plate


def test_bom_counts_physical_rods_and_support_rods():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 2)
    add_rod(shelf, Position(600, 0), 2)
    add_plate(shelf, 0, 1, [1, 2])
    prices = {"rods": {"2P_2": 100.0}, "plates": {"670mm": 400.0}, "support_rod": 10.0, "currency": "NOK"}

    bom = bom_from_shelf(shelf, prices)
    lines = {(ln["kind"], ln["name"]): ln for ln in bom["lines"]}
    assert lines[("rod", "2P_2")]["qty"] == 4
    assert lines[("rod", "2P_2")]["line_price"] == 400.0
    assert lines[("plate", "670mm")]["qty"] == 1
    assert bom["support_rods"]["qty"] == 4
    assert bom["totals"]["total_price"] == 840.0
    assert bom["totals"]["unique_parts"] == 2
    assert bom["totals"]["currency"] == "NOK"


def test_bom_without_prices_is_zero():
    shelf = create_empty_shelf()
    add_rod(shelf, Position(0, 0), 1)
    bom = bom_from_shelf(shelf)
    assert bom["totals"]["total_price"] == 0.0
    assert bom["lines"][0]["name"] == "1P"


def test_format_price():
    assert format_price(840) == "840.00 kr"
    assert format_price(1.5, "EUR") == "1.50 EUR"
