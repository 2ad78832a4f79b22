from decimal import Decimal

import pytest

from app.services.calculations import (
    calculate,
    manual_totals,
    parse_rate,
    percentage_of,
    resolve_totals,
    service_call_amount,
)
from app.services.errors import ValidationError
from app.services.line_items import build_line_item


def _li(qty, price, markup=0):
    return build_line_item("custom", description="x", quantity=qty, unit_price=price, markup_percentage=markup)


def test_change_order_example_totals():
    items = [_li("10", "2.5", "10"), _li("1", "100")]
    t = calculate(items, "8")
    assert t.subtotal == Decimal("127.50")
    assert t.tax_amount == Decimal("10.20")
    assert t.total_amount == Decimal("137.70")
    assert t.manual is False


def test_empty_items_total_zero():
    t = calculate([], "8.25")
    assert (t.subtotal, t.tax_amount, t.total_amount) == (Decimal("0.00"), Decimal("0.00"), Decimal("0.00"))


def test_rounding_happens_at_subtotal_not_per_line():
    # three lines of 0.333 each: per-line rounding would give 0.99
    items = [_li("1", "0.333")] * 3
    assert calculate(items, 0).subtotal == Decimal("1.00")


def test_half_up_rounding_on_tax():
    # 10.05 * 5% = 0.5025 -> 0.50 ; 10.10 * 5% = 0.505 -> 0.51
    assert calculate([_li("1", "10.05")], 5).tax_amount == Decimal("0.50")
    assert calculate([_li("1", "10.10")], 5).tax_amount == Decimal("0.51")


def test_total_is_subtotal_plus_tax():
    items = [_li("3", "19.99", "12.5"), _li("7", "4.49"), _li("0.5", "120", "3")]
    t = calculate(items, "7.375")
    assert t.total_amount == t.subtotal + t.tax_amount


def test_negative_tax_rate_rejected():
    with pytest.raises(ValidationError):
        calculate([_li(1, 1)], "-1")


def test_parse_rate_defaults_blank():
    assert parse_rate("", default=Decimal("6")) == Decimal("6")
    assert parse_rate(None) is None
    with pytest.raises(ValidationError):
        parse_rate("eight")


def test_manual_total_used_only_without_items():
    t = resolve_totals([], 8, manual_total="1500")
    assert t.manual is True
    assert t.total_amount == Decimal("1500.00")
    assert t.subtotal == Decimal("1500.00")
    assert t.tax_amount == Decimal("0")

    t2 = resolve_totals([_li(1, 10)], 0, manual_total="1500")
    assert t2.manual is False
    assert t2.total_amount == Decimal("10.00")


def test_manual_totals_requires_amount():
    with pytest.raises(ValidationError):
        manual_totals(None)


def test_percentage_of_rounds_half_up():
    assert percentage_of(Decimal("137.70"), 50) == Decimal("68.85")
    assert percentage_of(Decimal("137.70"), 40) == Decimal("55.08")
    assert percentage_of(Decimal("100.01"), 50) == Decimal("50.01")


def test_service_call_amount_time_and_material():
    assert service_call_amount(actual_hours=3, hourly_rate=75, materials_cost=40) == Decimal("265.00")


def test_service_call_amount_prefers_actual_hours():
    amt = service_call_amount(estimated_hours=5, actual_hours=2, hourly_rate=100)
    assert amt == Decimal("200.00")
    assert service_call_amount(estimated_hours=5, hourly_rate=100) == Decimal("500.00")


def test_service_call_total_cost_override_wins():
    amt = service_call_amount(actual_hours=3, hourly_rate=75, materials_cost=40, total_cost="199.5")
    assert amt == Decimal("199.50")


def test_zero_actual_hours_falls_back_to_estimate():
    assert service_call_amount(estimated_hours=4, actual_hours=0, hourly_rate=75) == Decimal("300.00")
    assert service_call_amount(estimated_hours=None, actual_hours=0, hourly_rate=75) == Decimal("0.00")


@pytest.mark.parametrize("raw, expected", [
    ("8.25", Decimal("8.250")),
    ("8.2505", Decimal("8.251")),
    ("7.0004", Decimal("7.000")),
])
def test_parse_rate_holds_three_places(raw, expected):
    rate = parse_rate(raw)
    assert rate == expected
    assert rate.as_tuple().exponent == -3


def test_parse_rate_rejects_tiny_negative():
    with pytest.raises(ValidationError):
        parse_rate("-0.0001")


def test_manual_total_rounds_once_to_cents():
    assert manual_totals("1.0045").total_amount == Decimal("1.00")
