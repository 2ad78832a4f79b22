import hashlib
import json

import stripe
from flask import abort, current_app, jsonify, request

from app.extensions import csrf, db
from app.models import PaymentEventLog
from app.observability import log_event
from app.services.billing import record_payment_event

from . import bp


@csrf.exempt
@bp.post("/stripe")
def stripe_webhook():
    """
    Stripe → /webhooks/stripe
    Verifies signature, logs event, idempotently marks paid invoices.
    """
    # 1) Verify signature
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        abort(500, description="Stripe webhook secret not configured")

    raw_bytes = request.get_data(cache=False, as_text=False)
    sig_header = request.headers.get("Stripe-Signature", "")

    try:
        stripe.Webhook.construct_event(
            payload=raw_bytes.decode("utf-8"),
            sig_header=sig_header,
            secret=secret,
        )
    except (ValueError, stripe.SignatureVerificationError):
        # Log invalid attempts with a deterministic synthetic id (no payload trust)
        digest = hashlib.sha256(raw_bytes).hexdigest()[:32]
        synthetic_id = f"invalid:{digest}"
        if not PaymentEventLog.query.filter_by(stripe_event_id=synthetic_id).first():
            db.session.add(PaymentEventLog(
                stripe_event_id=synthetic_id,
                type="signature_invalid",
                signature_valid=False,
                payload={},
            ))
            db.session.commit()
        log_event("stripe_webhook", level="warning", outcome="invalid_signature")
        return jsonify({"error": "invalid_signature"}), 400

    # 2) Signature checked against the raw body; work from the same bytes
    event = json.loads(raw_bytes.decode("utf-8"))
    if not event.get("id") or not event.get("type"):
        return jsonify({"error": "malformed_event"}), 400

    # 3) Idempotent apply (duplicate deliveries return None)
    log = record_payment_event(db.session, event)
    db.session.commit()
    if log is None:
        return jsonify({"ok": True, "duplicate": True}), 200

    log_event(
        "stripe_webhook",
        stripe_event_id=event["id"],
        type=event["type"],
        invoice_id=log.invoice_id,
        notes=log.notes,
    )
    return jsonify({"ok": True}), 200
