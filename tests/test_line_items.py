from decimal import Decimal

import pytest

from app.services.errors import ValidationError
from app.services.line_items import (
    CatalogEntry,
    CustomLineItem,
    ItemType,
    MaterialLineItem,
    ServiceLineItem,
    build_line_item,
    parse_line_item,
    parse_line_items,
    same_items,
)


def _catalog(item_type, ref):
    if item_type is ItemType.MATERIAL and ref == 7:
        return CatalogEntry(name="12/2 Romex (ft)", unit="ft", price=Decimal("0.85"))
    if item_type is ItemType.SERVICE and ref == 3:
        return CatalogEntry(name="Journeyman labor", unit="hour", price=Decimal("95"))
    return None


@pytest.mark.parametrize(
    "qty,price,markup,expected",
    [
        ("10", "2.5", "10", Decimal("27.5")),
        ("1", "100", "0", Decimal("100")),
        ("0", "99.99", "25", Decimal("0")),
        ("3", "0", "50", Decimal("0")),
        ("2.5", "1.333", "0", Decimal("3.3325")),
    ],
)
def test_line_total_formula(qty, price, markup, expected):
    li = build_line_item("custom", description="x", quantity=qty, unit_price=price, markup_percentage=markup)
    assert li.line_total == expected
    assert li.line_total >= 0


def test_line_total_keeps_full_precision():
    li = build_line_item("custom", description="x", quantity="3", unit_price="0.3333", markup_percentage="7.5")
    assert li.line_total == Decimal("3") * Decimal("0.3333") * (1 + Decimal("7.5") / 100)


@pytest.mark.parametrize("field", ["quantity", "unit_price", "markup_percentage"])
def test_negative_values_rejected(field):
    raw = {"description": "x", "quantity": 1, "unit_price": 1, field: -1}
    with pytest.raises(ValidationError) as exc:
        parse_line_item(raw)
    assert field in str(exc.value)


@pytest.mark.parametrize("bad", ["abc", "NaN", True, [1]])
def test_non_numeric_quantity_rejected(bad):
    with pytest.raises(ValidationError):
        parse_line_item({"description": "x", "quantity": bad, "unit_price": 1})


def test_missing_description_rejected():
    with pytest.raises(ValidationError):
        parse_line_item({"quantity": 1, "unit_price": 1})


def test_item_type_defaults_to_custom():
    li = parse_line_item({"description": "Trip charge", "quantity": 1, "unit_price": 65})
    assert isinstance(li, CustomLineItem)
    assert li.item_type is ItemType.CUSTOM
    assert li.catalog_ref is None
    assert li.unit == "each"


def test_unknown_item_type_rejected():
    with pytest.raises(ValidationError):
        parse_line_item({"item_type": "rental", "description": "x", "quantity": 1, "unit_price": 1})


def test_catalog_item_requires_ref():
    with pytest.raises(ValidationError) as exc:
        parse_line_item({"item_type": "material", "description": "wire", "quantity": 1, "unit_price": 1})
    assert "catalog_ref" in str(exc.value)


def test_catalog_fills_missing_fields():
    li = parse_line_item({"item_type": "material", "catalog_ref": 7, "quantity": 250}, catalog_lookup=_catalog)
    assert isinstance(li, MaterialLineItem)
    assert li.description == "12/2 Romex (ft)"
    assert li.unit == "ft"
    assert li.unit_price == Decimal("0.85")
    assert li.catalog_ref == 7


def test_supplied_snapshot_wins_over_catalog():
    li = parse_line_item(
        {"item_type": "service", "catalog_id": 3, "description": "Labor (old rate)", "unit": "hour",
         "quantity": 2, "unit_price": 80},
        catalog_lookup=_catalog,
    )
    assert isinstance(li, ServiceLineItem)
    assert li.unit_price == Decimal("80")
    assert li.description == "Labor (old rate)"


def test_unknown_catalog_entry_rejected():
    with pytest.raises(ValidationError) as exc:
        parse_line_item({"item_type": "material", "catalog_ref": 999, "quantity": 1}, catalog_lookup=_catalog)
    assert "unknown material 999" in str(exc.value)


def test_parse_line_items_is_all_or_nothing():
    raw = [
        {"description": "ok", "quantity": 1, "unit_price": 1},
        {"description": "bad", "quantity": -2, "unit_price": 1},
    ]
    with pytest.raises(ValidationError) as exc:
        parse_line_items(raw)
    assert "items[1]" in str(exc.value)


def test_parse_line_items_requires_list():
    assert parse_line_items(None) == []
    with pytest.raises(ValidationError):
        parse_line_items({"description": "x"})


def test_same_items_is_order_sensitive():
    a = build_line_item("custom", description="a", quantity=1, unit_price=1)
    b = build_line_item("custom", description="b", quantity="1.0000", unit_price="2")
    b2 = build_line_item("custom", description="b", quantity=1, unit_price="2.00")
    assert same_items([a, b], [a, b2])
    assert not same_items([a, b], [b, a])
    assert not same_items([a], [a, b])


def test_values_held_at_storage_scale():
    li = build_line_item("custom", description="Wire", quantity="1000", unit_price="1.00005", markup_percentage="2.0005")
    assert li.unit_price == Decimal("1.0001")
    assert li.markup_percentage == Decimal("2.001")
    assert li.quantity.as_tuple().exponent == -4
