"""
Line item model shared by estimates, change orders, invoices and service calls.

A line item is one of three variants sharing the same billable interface:

  material  -> copied from the materials catalog (catalog_ref required)
  service   -> copied from the services catalog  (catalog_ref required)
  custom    -> free text, no catalog binding

line_total = quantity * unit_price * (1 + markup_percentage / 100)

quantity and unit_price are held at 4 places, markup_percentage at 3 (the
column scales), so a reloaded document recomputes to the totals it stored.
line_total itself is never stored and never rounded here; rounding happens
once, at subtotal/tax level (see app.services.calculations).
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, ClassVar, Iterable, List, Mapping, Optional

from app.services.errors import ValidationError
from app.utils.helpers import Q3, Q4, quantize_to, to_decimal
from app.utils.validators import clean_str, clean_text

HUNDRED = Decimal("100")
ZERO = Decimal("0")


class ItemType(str, Enum):
    MATERIAL = "material"
    SERVICE = "service"
    CUSTOM = "custom"


@dataclass(frozen=True)
class CatalogEntry:
    """What a catalog lookup hands back at add-time (no live binding is kept)."""

    name: str
    unit: str
    price: Decimal


CatalogLookup = Callable[[ItemType, int], Optional[CatalogEntry]]


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    markup_percentage: Decimal = ZERO
    notes: Optional[str] = None

    item_type: ClassVar[ItemType] = ItemType.CUSTOM

    def __post_init__(self):
        if not self.description:
            raise ValidationError("description: required")
        _require_non_negative("quantity", self.quantity)
        _require_non_negative("unit_price", self.unit_price)
        _require_non_negative("markup_percentage", self.markup_percentage)

    @property
    def catalog_ref(self) -> Optional[int]:
        return None

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price * (1 + self.markup_percentage / HUNDRED)

    def to_dict(self) -> dict:
        return dict(
            item_type=self.item_type.value,
            catalog_ref=self.catalog_ref,
            description=self.description,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=self.unit_price,
            markup_percentage=self.markup_percentage,
            notes=self.notes,
        )


@dataclass(frozen=True)
class CustomLineItem(LineItem):
    item_type: ClassVar[ItemType] = ItemType.CUSTOM


@dataclass(frozen=True)
class _CatalogLineItem(LineItem):
    ref: Optional[int] = None

    def __post_init__(self):
        super().__post_init__()
        if self.ref is None:
            raise ValidationError(f"catalog_ref: required for {self.item_type.value} items")

    @property
    def catalog_ref(self) -> Optional[int]:
        return self.ref


@dataclass(frozen=True)
class MaterialLineItem(_CatalogLineItem):
    item_type: ClassVar[ItemType] = ItemType.MATERIAL


@dataclass(frozen=True)
class ServiceLineItem(_CatalogLineItem):
    item_type: ClassVar[ItemType] = ItemType.SERVICE


_VARIANTS = {
    ItemType.MATERIAL: MaterialLineItem,
    ItemType.SERVICE: ServiceLineItem,
    ItemType.CUSTOM: CustomLineItem,
}


def _require_non_negative(field: str, value: Decimal) -> None:
    if value is None or value < ZERO:
        raise ValidationError(f"{field}: must be a number >= 0")


def _decimal_field(raw: Mapping, field: str, default: Optional[Decimal] = None, *, where: str = "") -> Optional[Decimal]:
    value = raw.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    d = to_decimal(value)
    if d is None:
        raise ValidationError(f"{where}{field}: must be a number >= 0")
    if d < ZERO:
        raise ValidationError(f"{where}{field}: must be a number >= 0")
    return d


def parse_item_type(value) -> ItemType:
    raw = (str(value or "") or ItemType.CUSTOM.value).strip().lower()
    try:
        return ItemType(raw)
    except ValueError:
        raise ValidationError(
            f"item_type: must be one of {', '.join(t.value for t in ItemType)}"
        ) from None


def build_line_item(
    item_type: ItemType | str,
    *,
    description: str,
    quantity,
    unit_price,
    unit: str = "each",
    markup_percentage=ZERO,
    notes: Optional[str] = None,
    catalog_ref: Optional[int] = None,
) -> LineItem:
    """Construct the right variant from already-typed values."""
    t = item_type if isinstance(item_type, ItemType) else parse_item_type(item_type)
    kwargs = dict(
        description=description,
        quantity=quantize_to(to_decimal(quantity), Q4),
        unit=unit or "each",
        unit_price=quantize_to(to_decimal(unit_price), Q4),
        markup_percentage=quantize_to(to_decimal(markup_percentage, ZERO), Q3),
        notes=notes,
    )
    if t is ItemType.CUSTOM:
        return CustomLineItem(**kwargs)
    return _VARIANTS[t](ref=catalog_ref, **kwargs)


def parse_line_item(raw: Mapping, *, catalog_lookup: Optional[CatalogLookup] = None, index: int = 0) -> LineItem:
    """
    Validate one payload item and return its variant.

    Catalog items copy name -> description, unit and standard price -> unit_price
    for whichever of those the payload leaves out. Values already present are
    the snapshot taken when the item was first added and win over the catalog.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError(f"items[{index}]: must be an object")
    where = f"items[{index}]."

    item_type = parse_item_type(raw.get("item_type"))
    description = clean_str(raw.get("description"), 500)
    unit = clean_str(raw.get("unit"), 32)
    unit_price = _decimal_field(raw, "unit_price", where=where)
    quantity = _decimal_field(raw, "quantity", where=where)
    markup = _decimal_field(raw, "markup_percentage", ZERO, where=where)
    notes = clean_text(raw.get("notes"), 2000)

    catalog_ref = None
    if item_type is not ItemType.CUSTOM:
        ref_raw = raw.get("catalog_ref", raw.get("catalog_id"))
        try:
            catalog_ref = int(ref_raw)
        except (TypeError, ValueError):
            raise ValidationError(f"{where}catalog_ref: required for {item_type.value} items") from None
        needs_catalog = description is None or unit is None or unit_price is None
        if needs_catalog:
            entry = catalog_lookup(item_type, catalog_ref) if catalog_lookup else None
            if entry is None:
                raise ValidationError(f"{where}catalog_ref: unknown {item_type.value} {catalog_ref}")
            description = description or entry.name
            unit = unit or entry.unit
            unit_price = entry.price if unit_price is None else unit_price

    if description is None:
        raise ValidationError(f"{where}description: required")
    if quantity is None:
        raise ValidationError(f"{where}quantity: required")
    if unit_price is None:
        raise ValidationError(f"{where}unit_price: required")

    return build_line_item(
        item_type,
        description=description,
        quantity=quantity,
        unit=unit or "each",
        unit_price=unit_price,
        markup_percentage=markup,
        notes=notes,
        catalog_ref=catalog_ref,
    )


def parse_line_items(raw_items, *, catalog_lookup: Optional[CatalogLookup] = None) -> List[LineItem]:
    """All-or-nothing: any invalid item rejects the whole list."""
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError("items: must be a list")
    return [parse_line_item(r, catalog_lookup=catalog_lookup, index=i) for i, r in enumerate(raw_items)]


def same_items(a: Iterable[LineItem], b: Iterable[LineItem]) -> bool:
    """True when both lists bill the same things in the same order."""
    return [x.to_dict() for x in a] == [y.to_dict() for y in b]
