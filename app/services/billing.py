from typing import Dict, Any, Optional
from decimal import Decimal
from urllib.parse import urljoin
import hashlib, json

from flask import current_app
from sqlalchemy.orm import Session
from stripe import StripeClient

from app.models import Invoice, PaymentEventLog
from app.observability import log_event
from app.services.documents import apply_status
from app.services.errors import ConversionNotAllowedError, ValidationError
from app.services.lifecycle import InvoiceStatus
from app.utils.helpers import utcnow

# Invoices a customer can pay online
PAYABLE_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.OVERDUE)


def _client() -> StripeClient:
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        raise RuntimeError("STRIPE_SECRET_KEY is not configured")
    return StripeClient(key)


def _absolute_url(path: str) -> str:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/") + "/"
    return urljoin(base, path.lstrip("/"))


def make_idempotency_key(*parts: Any) -> str:
    raw = "|".join(str(p) for p in parts)
    return "checkout:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def _params_hash(d: Dict[str, Any]) -> str:
    # Stable across runs if params identical; changes when any field changes
    return hashlib.sha256(json.dumps(d, sort_keys=True, separators=(",", ":")).encode("utf-8")).hexdigest()[:16]


def to_cents(amount) -> int:
    return int((Decimal(str(amount or 0)) * 100).quantize(Decimal("1")))


def create_invoice_checkout_session(invoice: Invoice) -> Dict[str, Any]:
    """
    Create a Stripe Checkout Session paying the invoice's stored total.
    Returns: {"id": <session_id>, "url": <redirect_url or None>}
    """
    if invoice.lifecycle.parse(invoice.status) not in PAYABLE_STATUSES:
        raise ConversionNotAllowedError(f"invoice {invoice.human_number} is {invoice.status} and cannot be paid online")
    amount = to_cents(invoice.total_amount)
    if amount <= 0:
        raise ValidationError(f"invoice {invoice.human_number} has nothing to pay")

    client = _client()
    params: Dict[str, Any] = {
        "mode": "payment",
        "line_items": [{
            "quantity": 1,
            "price_data": {
                "currency": current_app.config.get("STRIPE_CURRENCY", "usd"),
                "unit_amount": amount,
                "product_data": {"name": f"Invoice {invoice.human_number}: {invoice.title}"},
            },
        }],
        "success_url": _absolute_url(f"invoices/{invoice.id}/payment/success?session_id={{CHECKOUT_SESSION_ID}}"),
        "cancel_url": _absolute_url(f"invoices/{invoice.id}/payment/cancelled"),
        "metadata": {"invoice_id": str(invoice.id), "invoice_number": invoice.human_number or ""},
        "payment_intent_data": {"metadata": {"invoice_id": str(invoice.id)}},
    }
    if invoice.customer_email:
        params["customer_email"] = invoice.customer_email

    # Param-aware idempotency: a new key whenever the amount or any param changes
    idem = make_idempotency_key("invoice", "v1", invoice.id, invoice.version, _params_hash(params))
    session = client.checkout.sessions.create(params=params, options={"idempotency_key": idem})

    invoice.stripe_session_id = session.id
    invoice.payment_status = "pending"
    log_event("checkout_created", invoice_id=invoice.id, number=invoice.human_number,
              session_id=session.id, amount_cents=amount)
    return {"id": session.id, "url": getattr(session, "url", None)}


def record_payment_event(session: Session, event: dict) -> Optional[PaymentEventLog]:
    """
    Apply a verified Stripe event. Idempotent on event id: returns None for a
    replay. checkout.session.completed marks the referenced invoice paid.
    """
    ev_id = event.get("id")
    ev_type = event.get("type")
    if session.query(PaymentEventLog).filter_by(stripe_event_id=ev_id).first():
        return None

    log = PaymentEventLog(stripe_event_id=ev_id, type=ev_type, signature_valid=True, payload=dict(event))
    session.add(log)
    log.processed_at = utcnow()

    if ev_type != "checkout.session.completed":
        log.notes = "ignored"
        session.flush()
        return log

    obj = (event.get("data") or {}).get("object") or {}
    meta = obj.get("metadata") or {}
    invoice = None
    if meta.get("invoice_id") and str(meta["invoice_id"]).isdigit():
        invoice = session.get(Invoice, int(meta["invoice_id"]))
    if invoice is None and obj.get("id"):
        invoice = session.query(Invoice).filter_by(stripe_session_id=obj["id"]).first()
    if invoice is None:
        log.notes = "invoice_not_found"
        session.flush()
        log_event("payment_unmatched", level="warning", stripe_event_id=ev_id, session_id=obj.get("id"))
        return log

    log.invoice_id = invoice.id
    invoice.payment_intent_id = obj.get("payment_intent")
    invoice.payment_method = "stripe"
    invoice.payment_status = obj.get("payment_status")

    current = invoice.lifecycle.parse(invoice.status)
    if obj.get("payment_status") != "paid":
        # async payment methods settle later; status stays until they do
        log.notes = f"payment_status:{obj.get('payment_status')}"
    elif current == InvoiceStatus.PAID:
        log.notes = "already_paid"
    elif current in PAYABLE_STATUSES:
        apply_status(invoice, InvoiceStatus.PAID)
    else:
        # money arrived for a draft/cancelled invoice; keep status, flag for follow-up
        log.notes = f"not_payable:{current.value}"
        log_event("payment_unexpected_status", level="warning", invoice_id=invoice.id, status=current.value)
    session.flush()
    return log
