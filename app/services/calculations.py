"""
Document totals.

Rounding policy: line totals keep full Decimal precision; rounding (2 places,
ROUND_HALF_UP) happens exactly twice per document, once at the subtotal and
once at the tax amount. total = subtotal + tax_amount is then exact.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from app.services.errors import ValidationError
from app.services.line_items import HUNDRED, ZERO, LineItem
from app.utils.helpers import CENT, Q3, quantize_to, round_currency, to_decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    # True when the total was typed in by hand for an item-less document
    manual: bool = False

    def to_dict(self) -> dict:
        return dict(
            subtotal=float(self.subtotal),
            tax_amount=float(self.tax_amount),
            total_amount=float(self.total_amount),
            manual_total=self.manual,
        )


def parse_rate(value, field: str = "tax_rate", default: Optional[Decimal] = None,
               *, quantum: Decimal = Q3) -> Optional[Decimal]:
    """Non-negative Decimal held at the storing column's scale (3 places for rates)."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    d = to_decimal(value)
    if d is None or d < ZERO:
        raise ValidationError(f"{field}: must be a number >= 0")
    d = quantize_to(d, quantum)
    if d is None:
        raise ValidationError(f"{field}: too large")
    return d


def calculate(items: Iterable[LineItem], tax_rate) -> DocumentTotals:
    rate = parse_rate(tax_rate, default=ZERO)
    subtotal = round_currency(sum((i.line_total for i in items), ZERO))
    tax_amount = round_currency(subtotal * rate / HUNDRED)
    return DocumentTotals(subtotal=subtotal, tax_amount=tax_amount, total_amount=subtotal + tax_amount)


def manual_totals(total_amount) -> DocumentTotals:
    """
    Degraded mode for documents without line items: the typed total is taken
    as-is and there is no subtotal/tax decomposition behind it.
    """
    total = parse_rate(total_amount, field="total_amount", quantum=CENT)
    if total is None:
        raise ValidationError("total_amount: required when a document has no items")
    return DocumentTotals(subtotal=total, tax_amount=ZERO, total_amount=total, manual=True)


def resolve_totals(items, tax_rate, manual_total=None) -> DocumentTotals:
    items = list(items)
    if not items and manual_total is not None:
        return manual_totals(manual_total)
    return calculate(items, tax_rate)


def percentage_of(amount, percentage) -> Decimal:
    return round_currency(to_decimal(amount, ZERO) * to_decimal(percentage, ZERO) / HUNDRED)


def service_call_amount(*, estimated_hours=None, actual_hours=None, hourly_rate=None,
                        materials_cost=None, total_cost=None) -> Decimal:
    """
    Billable amount of a service call:
      total_cost, when explicitly set, wins;
      otherwise hours * hourly_rate + materials_cost, where hours are the
      actual hours, or the estimate when none (or zero) were recorded.
    """
    if total_cost is not None:
        return round_currency(total_cost)
    hours = billable_hours(actual_hours, estimated_hours)
    labor = hours * to_decimal(hourly_rate, ZERO)
    return round_currency(labor + to_decimal(materials_cost, ZERO))


def billable_hours(actual_hours, estimated_hours) -> Decimal:
    return to_decimal(actual_hours, ZERO) or to_decimal(estimated_hours, ZERO)
