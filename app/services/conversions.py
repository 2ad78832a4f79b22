"""
Conversion pipeline: approved estimates / change orders and completed
service calls become invoices.

Each conversion runs inside the caller's transaction and reads its source row
with SELECT ... FOR UPDATE, so two concurrent conversions of the same source
serialize and the second one sees the first one's converted share.
"""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from flask import current_app
from sqlalchemy.orm import Session

from app.models import Invoice
from app.observability import log_event
from app.services.calculations import billable_hours, percentage_of
from app.services.documents import get_document, parse_fields, set_items
from app.services.errors import (
    AlreadyConvertedError,
    ConversionNotAllowedError,
    ValidationError,
)
from app.services.lifecycle import (
    ChangeOrderStatus,
    DocumentKind,
    EstimateStatus,
    ServiceCallStatus,
)
from app.services.line_items import HUNDRED, ZERO, ItemType, LineItem, build_line_item
from app.utils.helpers import Q3, quantize_to, to_decimal

# Status that unlocks conversion, per source type
CONVERTIBLE_STATUS = {
    DocumentKind.ESTIMATE: EstimateStatus.APPROVED,
    DocumentKind.CHANGE_ORDER: ChangeOrderStatus.APPROVED,
    DocumentKind.SERVICE_CALL: ServiceCallStatus.COMPLETED,
}

SNAPSHOT_FIELDS = ("customer_name", "customer_email", "customer_phone", "customer_address")


def parse_percentage(raw) -> Optional[Decimal]:
    """None (absent) means a full conversion; otherwise 0 < p <= 100, held at 3 places."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    pct = quantize_to(to_decimal(raw), Q3)
    if pct is None or pct <= ZERO or pct > HUNDRED:
        raise ValidationError("percentage: must be greater than 0 and at most 100")
    return pct


def _fmt_pct(pct: Decimal) -> str:
    return format(pct.normalize(), "f")


def _ensure_convertible(source) -> None:
    required = CONVERTIBLE_STATUS[source.kind]
    current = source.lifecycle.parse(source.status)
    if current != required:
        raise ConversionNotAllowedError(
            f"{source.kind.label} {source.human_number} is {current.value}; "
            f"only {required.value} documents can be invoiced"
        )


def _new_invoice(source, *, title: str, user_id: Optional[int], extra: dict) -> Invoice:
    invoice = Invoice(
        title=title,
        description=source.description,
        customer_id=source.customer_id,
        project_id=source.project_id,
        created_by=user_id,
        source_type=source.kind.value,
        source_id=source.id,
        **{f: getattr(source, f) for f in SNAPSHOT_FIELDS},
    )
    for k, v in extra.items():
        setattr(invoice, k, v)
    return invoice


def _finish(session: Session, invoice: Invoice, items: List[LineItem], tax_rate, manual_total=None) -> Invoice:
    set_items(invoice, items, tax_rate, manual_total)
    if invoice.due_date is None:
        terms = int(current_app.config.get("DEFAULT_PAYMENT_TERMS_DAYS", 30))
        invoice.due_date = date.today() + timedelta(days=terms)
    session.add(invoice)
    session.flush()
    invoice.assign_number()
    return invoice


def convert_to_invoice(
    session: Session,
    kind,
    source_id: int,
    payload: Optional[dict] = None,
    *,
    user_id: Optional[int] = None,
) -> Invoice:
    """
    Invoice an approved estimate or change order, in full or by percentage.

    Full: the invoice gets a copy of the source's items and tax rate.
    Partial: one custom line "<p>% of <number>: <title>" priced at
    round(total * p / 100), untaxed, since the source total already carries tax.
    The cumulative share invoiced from one source never exceeds 100%.
    """
    kind = DocumentKind(kind)
    if kind not in (DocumentKind.ESTIMATE, DocumentKind.CHANGE_ORDER):
        raise ValidationError(f"{kind.label} cannot be converted with a percentage")
    payload = payload or {}
    pct = parse_percentage(payload.get("percentage"))
    extra = parse_fields(DocumentKind.INVOICE, {k: v for k, v in payload.items() if k in ("title", "notes", "due_date")})

    source = get_document(session, kind, source_id, for_update=True)
    _ensure_convertible(source)

    share = pct if pct is not None else HUNDRED
    already = to_decimal(source.converted_percentage, ZERO)
    if already + share > HUNDRED:
        raise AlreadyConvertedError(
            f"{kind.label} {source.human_number} is {_fmt_pct(already)}% invoiced; "
            f"only {_fmt_pct(HUNDRED - already)}% remains"
        )

    if pct is None:
        items = source.line_items()
        tax_rate = source.tax_rate
        manual_total = source.total_amount if not items else None
        default_title = f"Invoice for {source.human_number}: {source.title}"
    else:
        seed = percentage_of(source.total_amount, pct)
        items = [build_line_item(
            ItemType.CUSTOM,
            description=f"{_fmt_pct(pct)}% of {source.human_number}: {source.title}",
            quantity=1,
            unit="each",
            unit_price=seed,
        )]
        tax_rate = ZERO
        manual_total = None
        default_title = f"{_fmt_pct(pct)}% of {source.title}"

    title = extra.pop("title", None) or default_title
    invoice = _new_invoice(source, title=title, user_id=user_id, extra=extra)
    invoice.source_percentage = pct
    _finish(session, invoice, items, tax_rate, manual_total)

    source.converted_percentage = already + share
    session.flush()

    log_event(
        "document_converted",
        source_type=kind.value,
        source_id=source.id,
        source_number=source.human_number,
        invoice_id=invoice.id,
        invoice_number=invoice.human_number,
        percentage=pct,
        converted_percentage=source.converted_percentage,
        total_amount=invoice.total_amount,
    )
    return invoice


def convert_change_order_to_invoice(session: Session, change_order_id: int, payload=None, *, user_id=None) -> Invoice:
    return convert_to_invoice(session, DocumentKind.CHANGE_ORDER, change_order_id, payload, user_id=user_id)


def convert_estimate_to_invoice(session: Session, estimate_id: int, payload=None, *, user_id=None) -> Invoice:
    return convert_to_invoice(session, DocumentKind.ESTIMATE, estimate_id, payload, user_id=user_id)


def _service_call_lines(call) -> tuple:
    """(items, tax_rate) billing a completed service call."""
    if call.total_cost is not None:
        return [build_line_item(
            ItemType.CUSTOM,
            description=f"Service call {call.human_number}: {call.title}",
            quantity=1,
            unit="each",
            unit_price=call.total_cost,
        )], ZERO

    if call.billing_type == "estimate":
        items = call.line_items()
        if not items:
            raise ValidationError(
                f"service call {call.human_number} is billed by estimate but has no line items or total_cost"
            )
        return items, call.tax_rate

    items = []
    hours = billable_hours(call.actual_hours, call.estimated_hours)
    if hours and call.hourly_rate:
        items.append(build_line_item(
            ItemType.CUSTOM,
            description=f"Labor: {call.title}",
            quantity=hours,
            unit="hour",
            unit_price=call.hourly_rate,
        ))
    if call.materials_cost:
        items.append(build_line_item(
            ItemType.CUSTOM,
            description="Materials",
            quantity=1,
            unit="each",
            unit_price=call.materials_cost,
        ))
    if not items:
        raise ValidationError(
            f"service call {call.human_number} has no hours, rate, materials or total_cost to bill"
        )
    return items, ZERO


def generate_service_call_invoice(session: Session, call_id: int, payload=None, *, user_id=None) -> Invoice:
    """
    Bill a completed service call: total_cost when set, otherwise
    (actual or estimated hours) x hourly_rate + materials_cost.
    A call is billed once; deleting the draft invoice frees it again.
    """
    payload = payload or {}
    extra = parse_fields(DocumentKind.INVOICE, {k: v for k, v in payload.items() if k in ("title", "notes", "due_date")})

    call = get_document(session, DocumentKind.SERVICE_CALL, call_id, for_update=True)
    _ensure_convertible(call)
    if call.converted_invoice_id is not None:
        raise AlreadyConvertedError(
            f"service call {call.human_number} was already invoiced (invoice {call.converted_invoice_id})"
        )

    items, tax_rate = _service_call_lines(call)
    title = extra.pop("title", None) or f"Service call {call.human_number}: {call.title}"
    invoice = _new_invoice(call, title=title, user_id=user_id, extra=extra)
    _finish(session, invoice, items, tax_rate)

    call.converted_invoice_id = invoice.id
    session.flush()

    log_event(
        "service_call_invoiced",
        service_call_id=call.id,
        ticket_number=call.human_number,
        invoice_id=invoice.id,
        invoice_number=invoice.human_number,
        total_amount=invoice.total_amount,
    )
    return invoice
