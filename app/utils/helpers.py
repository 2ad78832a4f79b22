from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")
Q3 = Decimal("0.001")
Q4 = Decimal("0.0001")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Decimal from str/int/float/Decimal; `default` for blanks and junk."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    s = str(value).strip()
    if not s:
        return default
    try:
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return default
    if not d.is_finite():
        return default
    return d


def round_currency(value: Any) -> Decimal:
    d = to_decimal(value, Decimal("0"))
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def round_q4(value: Any) -> Decimal:
    d = to_decimal(value, Decimal("0"))
    return d.quantize(Q4, rounding=ROUND_HALF_UP)


def money(value: Any) -> Optional[float]:
    """JSON-friendly currency value (None stays None)."""
    if value is None:
        return None
    return float(round_currency(value))


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def quantize_to(value: Optional[Decimal], quantum: Decimal) -> Optional[Decimal]:
    """
    Round to a column's scale (HALF_UP) so what is stored is what was computed.
    None for values too large to carry that many places.
    """
    if value is None:
        return None
    try:
        return value.quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
