from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from app.models import DOCUMENT_MODELS, ITEM_MODELS, ChangeOrder, Customer, Invoice, ServiceCall
from app.models.service_call import BILLING_TYPES, PRIORITIES
from app.observability import log_event
from app.services.calculations import DocumentTotals, parse_rate, resolve_totals
from app.services.catalog import lookup_catalog_entry
from app.services.errors import ConflictError, DocumentLockedError, NotFoundError, ValidationError
from app.services.lifecycle import (
    ChangeOrderStatus,
    DocumentKind,
    InvoiceStatus,
    ServiceCallStatus,
    lifecycle_for,
)
from app.services.line_items import HUNDRED, ZERO, LineItem, parse_line_items, same_items
from app.utils.helpers import CENT, parse_date, to_decimal
from app.utils.validators import clean_str, clean_text, is_valid_email, normalize_phone

MAX_PER_PAGE = 100


@dataclass(frozen=True)
class Page:
    items: List
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.per_page)) if self.per_page else 1

    def pagination(self) -> dict:
        return dict(
            current_page=self.page,
            total_pages=self.pages,
            total=self.total,
            per_page=self.per_page,
            has_next=self.page < self.pages,
            has_prev=self.page > 1,
        )


# ---- payload field parsers -------------------------------------------------

def _text(max_len: int) -> Callable[[str, Any], Optional[str]]:
    return lambda field, v: clean_str(v, max_len)


def _long_text(field: str, v) -> Optional[str]:
    return clean_text(v)


def _date(field: str, v) -> Optional[date]:
    if v is None or v == "":
        return None
    d = parse_date(v)
    if d is None:
        raise ValidationError(f"{field}: expected YYYY-MM-DD")
    return d


def _amount(field: str, v) -> Optional[Decimal]:
    # service-call hours and money columns keep 2 places
    return parse_rate(v, field=field, quantum=CENT)


def _ref(field: str, v) -> Optional[int]:
    if v is None or v == "":
        return None
    try:
        ref = int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{field}: must be an integer id") from None
    if ref <= 0:
        raise ValidationError(f"{field}: must be an integer id")
    return ref


def _choice(choices) -> Callable[[str, Any], Optional[str]]:
    def parse(field, v):
        if v is None or v == "":
            return None
        s = str(v).strip().lower()
        if s not in choices:
            raise ValidationError(f"{field}: must be one of {', '.join(choices)}")
        return s
    return parse


COMMON_FIELDS = {
    "title": _text(255),
    "description": _long_text,
    "notes": _long_text,
    "project_id": _ref,
}

KIND_FIELDS = {
    DocumentKind.ESTIMATE: {},
    DocumentKind.CHANGE_ORDER: {
        "reason": _long_text,
        "justification": _long_text,
        "requested_date": _date,
        "approved_date": _date,
    },
    DocumentKind.INVOICE: {
        "due_date": _date,
        "paid_date": _date,
    },
    DocumentKind.SERVICE_CALL: {
        "priority": _choice(PRIORITIES),
        "service_type": _text(100),
        "billing_type": _choice(BILLING_TYPES),
        "scheduled_date": _date,
        "technician_id": _ref,
        "estimated_hours": _amount,
        "actual_hours": _amount,
        "hourly_rate": _amount,
        "materials_cost": _amount,
        "total_cost": _amount,
    },
}

# Fields that move money; frozen together with items once a document is locked
BILLING_FIELDS = {
    DocumentKind.SERVICE_CALL: (
        "billing_type", "estimated_hours", "actual_hours", "hourly_rate", "materials_cost", "total_cost",
    ),
}

SNAPSHOT_FIELDS = ("customer_name", "customer_email", "customer_phone", "customer_address")


def parse_fields(kind: DocumentKind, payload: Mapping) -> Dict[str, Any]:
    specs = {**COMMON_FIELDS, **KIND_FIELDS[kind]}
    out = {}
    for field, parse in specs.items():
        if field in payload:
            out[field] = parse(field, payload.get(field))
    return out


def _parse_snapshot(payload: Mapping) -> Dict[str, Optional[str]]:
    """Accepts flat customer_* keys or a nested customer_snapshot object."""
    nested = payload.get("customer_snapshot") if isinstance(payload.get("customer_snapshot"), Mapping) else {}
    raw = {}
    for field in SNAPSHOT_FIELDS:
        short = field.replace("customer_", "")
        if field in payload:
            raw[field] = payload.get(field)
        elif short in nested:
            raw[field] = nested.get(short)

    out = {}
    if "customer_name" in raw:
        out["customer_name"] = clean_str(raw["customer_name"], 255)
    if "customer_email" in raw:
        email = clean_str(raw["customer_email"], 320)
        if email and not is_valid_email(email):
            raise ValidationError("customer_email: invalid email address")
        out["customer_email"] = email.lower() if email else None
    if "customer_phone" in raw:
        out["customer_phone"] = normalize_phone(clean_str(raw["customer_phone"], 32))
    if "customer_address" in raw:
        out["customer_address"] = clean_str(raw["customer_address"], 500)
    return out


def _customer_snapshot(session: Session, customer_id: Optional[int], explicit: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    """Explicit snapshot values win; blanks are captured from the customer record."""
    if not customer_id:
        return explicit
    customer = session.get(Customer, customer_id)
    if customer is None:
        raise ValidationError(f"customer_id: unknown customer {customer_id}")
    captured = customer.snapshot()
    merged = dict(explicit)
    for field in SNAPSHOT_FIELDS:
        if not merged.get(field):
            merged[field] = captured.get(field)
    merged["customer_phone"] = normalize_phone(merged.get("customer_phone"))
    if merged.get("customer_email"):
        merged["customer_email"] = merged["customer_email"].strip().lower()
    return merged


def _catalog_lookup(session: Session):
    return partial(lookup_catalog_entry, session)


def _default_tax_rate() -> Decimal:
    return to_decimal(current_app.config.get("DEFAULT_TAX_RATE"), ZERO)


# ---- items & totals --------------------------------------------------------

def set_items(doc, items: List[LineItem], tax_rate, manual_total=None) -> DocumentTotals:
    """
    Replace a document's items and recompute its stored totals.
    Callers have validated everything; nothing here can fail half-way.
    """
    item_model = ITEM_MODELS[doc.kind]
    totals = resolve_totals(items, tax_rate, manual_total)
    doc.items = [item_model.from_line_item(li, position) for position, li in enumerate(items)]
    doc.tax_rate = parse_rate(tax_rate, default=ZERO)
    doc.subtotal = totals.subtotal
    doc.tax_amount = totals.tax_amount
    doc.total_amount = totals.total_amount
    doc.manual_total = totals.manual
    return totals


# ---- status ----------------------------------------------------------------

def apply_status(doc, requested, *, today: Optional[date] = None) -> bool:
    """
    Move `doc` to `requested` through its lifecycle. Requesting the current
    status is a no-op (returns False). Stamps the date that goes with the
    new status when it is not already set.
    """
    lc = doc.lifecycle
    current = lc.parse(doc.status)
    target = lc.parse(requested)
    if target == current:
        return False
    lc.transition(current, target)
    today = today or date.today()

    doc.status = target.value
    if isinstance(doc, ChangeOrder) and target == ChangeOrderStatus.APPROVED and not doc.approved_date:
        doc.approved_date = today
    elif isinstance(doc, Invoice) and target == InvoiceStatus.PAID and not doc.paid_date:
        doc.paid_date = today
    elif isinstance(doc, ServiceCall) and target == ServiceCallStatus.COMPLETED and not doc.completed_date:
        doc.completed_date = today

    log_event(
        "document_status",
        document_type=doc.kind.value,
        document_id=doc.id,
        number=doc.human_number,
        from_status=current.value,
        to_status=target.value,
    )
    return True


# ---- repository --------------------------------------------------------------

def get_document(session: Session, kind, doc_id: int, *, for_update: bool = False):
    kind = DocumentKind(kind)
    model = DOCUMENT_MODELS[kind]
    q = session.query(model).filter(model.id == doc_id)
    if for_update:
        q = q.with_for_update()
    doc = q.one_or_none()
    if doc is None:
        raise NotFoundError(f"{kind.label} {doc_id} not found")
    return doc


def list_documents(
    session: Session,
    kind,
    *,
    status: Optional[str] = None,
    q: Optional[str] = None,
    customer_id: Optional[int] = None,
    project_id: Optional[int] = None,
    page: int = 1,
    per_page: int = 20,
) -> Page:
    kind = DocumentKind(kind)
    model = DOCUMENT_MODELS[kind]
    query = session.query(model)
    if status:
        query = query.filter(model.status == lifecycle_for(kind).parse(status).value)
    if q:
        like = f"%{q.strip().lower()}%"
        query = query.filter(or_(
            func.lower(model.title).like(like),
            func.lower(model.human_number).like(like),
            func.lower(model.customer_name).like(like),
        ))
    if customer_id:
        query = query.filter(model.customer_id == customer_id)
    if project_id:
        query = query.filter(model.project_id == project_id)

    page = max(1, int(page or 1))
    per_page = min(MAX_PER_PAGE, max(1, int(per_page or 20)))
    total = query.count()
    rows = (
        query.order_by(model.created_at.desc(), model.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
        .all()
    )
    return Page(items=rows, total=total, page=page, per_page=per_page)


def create_document(session: Session, kind, payload: Mapping, *, user_id: Optional[int] = None):
    kind = DocumentKind(kind)
    if not isinstance(payload, Mapping):
        raise ValidationError("payload: must be a JSON object")

    fields = parse_fields(kind, payload)
    if not fields.get("title"):
        raise ValidationError("title: required")
    customer_id = _ref("customer_id", payload.get("customer_id"))
    snapshot = _customer_snapshot(session, customer_id, _parse_snapshot(payload))

    items = parse_line_items(payload.get("items"), catalog_lookup=_catalog_lookup(session))
    tax_rate = parse_rate(payload.get("tax_rate"), default=_default_tax_rate())
    manual_total = payload.get("total_amount") if not items else None

    doc = DOCUMENT_MODELS[kind](customer_id=customer_id, created_by=user_id, **fields, **snapshot)
    set_items(doc, items, tax_rate, manual_total)

    if kind is DocumentKind.INVOICE and doc.due_date is None:
        terms = int(current_app.config.get("DEFAULT_PAYMENT_TERMS_DAYS", 30))
        doc.due_date = date.today() + timedelta(days=terms)

    session.add(doc)
    session.flush()
    doc.assign_number()

    requested = payload.get("status")
    if requested:
        apply_status(doc, requested)
    session.flush()

    log_event(
        "document_created",
        document_type=kind.value,
        document_id=doc.id,
        number=doc.human_number,
        items=len(items),
        total_amount=doc.total_amount,
        manual_total=doc.manual_total,
    )
    return doc


def update_document(session: Session, doc, payload: Mapping):
    """
    Apply a PUT payload. Everything is validated before the first attribute is
    touched, so a rejected update leaves the persisted totals authoritative.
    Item-level changes are refused once the document has left its editable
    status; re-posting identical items is accepted.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("payload: must be a JSON object")
    expected_version = payload.get("version")
    if expected_version is not None and str(expected_version) != str(doc.version):
        raise ConflictError(
            f"{doc.kind.label} {doc.human_number} was changed by someone else (version {doc.version})"
        )

    kind = doc.kind
    fields = parse_fields(kind, payload)
    if "title" in fields and not fields["title"]:
        raise ValidationError("title: cannot be blank")

    snapshot = _parse_snapshot(payload)
    customer_id = doc.customer_id
    if "customer_id" in payload:
        customer_id = _ref("customer_id", payload.get("customer_id"))
        snapshot = _customer_snapshot(session, customer_id, snapshot)

    current_items = doc.line_items()
    items = current_items
    if "items" in payload:
        items = parse_line_items(payload.get("items"), catalog_lookup=_catalog_lookup(session))
    tax_rate = parse_rate(payload.get("tax_rate"), default=doc.tax_rate) if "tax_rate" in payload else doc.tax_rate
    manual_total = None
    if not items:
        if "total_amount" in payload:
            manual_total = payload.get("total_amount")
        elif doc.manual_total:
            manual_total = doc.total_amount

    # validates a typed total before anything is touched
    new_totals = resolve_totals(items, tax_rate, manual_total)

    # only what the payload itself changes counts; stored totals are not recomputed
    billing_changed = (
        ("items" in payload and not same_items(items, current_items))
        or ("tax_rate" in payload and to_decimal(tax_rate, ZERO) != to_decimal(doc.tax_rate, ZERO))
        or (
            new_totals.manual
            and "total_amount" in payload
            and new_totals.total_amount != to_decimal(doc.total_amount, ZERO)
        )
        or any(
            f in fields and fields[f] != getattr(doc, f)
            for f in BILLING_FIELDS.get(kind, ())
        )
    )
    if billing_changed and not doc.is_editable:
        raise DocumentLockedError(
            f"{kind.label} {doc.human_number} is {doc.status}; items and tax rate can no longer change"
        )

    requested = payload.get("status")
    if requested:
        # fail before mutating anything
        lc = doc.lifecycle
        if lc.parse(requested) != lc.parse(doc.status):
            lc.transition(doc.status, requested)

    for field, value in fields.items():
        setattr(doc, field, value)
    for field, value in snapshot.items():
        setattr(doc, field, value)
    doc.customer_id = customer_id
    if billing_changed:
        set_items(doc, items, tax_rate, manual_total)

    if requested:
        apply_status(doc, requested)

    session.flush()
    log_event(
        "document_updated",
        document_type=kind.value,
        document_id=doc.id,
        number=doc.human_number,
        billing_changed=billing_changed,
        total_amount=doc.total_amount,
    )
    return doc


def delete_document(session: Session, doc) -> None:
    """Only editable documents can be deleted; converted invoices give back their share."""
    if not doc.is_editable:
        raise DocumentLockedError(f"{doc.kind.label} {doc.human_number} is {doc.status} and cannot be deleted")

    if isinstance(doc, Invoice) and doc.source_type:
        _release_invoice_source(session, doc)

    session.delete(doc)
    session.flush()
    log_event("document_deleted", document_type=doc.kind.value, document_id=doc.id, number=doc.human_number)


def _release_invoice_source(session: Session, invoice: Invoice) -> None:
    try:
        source_kind = DocumentKind(invoice.source_type)
    except ValueError:
        return
    model = DOCUMENT_MODELS[source_kind]
    source = session.query(model).filter(model.id == invoice.source_id).with_for_update().one_or_none()
    if source is None:
        return
    if source_kind is DocumentKind.SERVICE_CALL:
        if source.converted_invoice_id == invoice.id:
            source.converted_invoice_id = None
        return
    share = to_decimal(invoice.source_percentage, HUNDRED)
    remaining = to_decimal(source.converted_percentage, ZERO) - share
    source.converted_percentage = max(remaining, ZERO)
