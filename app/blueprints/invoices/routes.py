from flask import jsonify, request

from app.blueprints import documents as views
from app.extensions import db, limiter
from app.services import billing
from app.services.conversions import convert_change_order_to_invoice, convert_estimate_to_invoice
from app.services.documents import get_document
from app.services.lifecycle import DocumentKind
from app.services.policy import role_required

from . import bp

KIND = DocumentKind.INVOICE


@bp.get("/", strict_slashes=False)
def index():
    return views.list_response(KIND)


@bp.post("/", strict_slashes=False)
def create():
    return views.create_response(KIND)


@bp.get("/<int:invoice_id>")
def get_invoice(invoice_id: int):
    return views.get_response(KIND, invoice_id)


@bp.put("/<int:invoice_id>")
def update(invoice_id: int):
    return views.update_response(KIND, invoice_id)


@bp.delete("/<int:invoice_id>")
@role_required("admin")
def delete_invoice(invoice_id: int):
    return views.delete_response(KIND, invoice_id)


@bp.get("/<int:invoice_id>/pdf")
def export_pdf(invoice_id: int):
    return views.pdf_response(KIND, invoice_id)


@bp.post("/<int:invoice_id>/send-email")
def send_email(invoice_id: int):
    return views.send_email_response(KIND, invoice_id)


# ---- conversions ----

@bp.post("/from-change-order/<int:change_order_id>")
def from_change_order(change_order_id: int):
    data = request.get_json(silent=True) or {}
    invoice = convert_change_order_to_invoice(
        db.session, change_order_id, data, user_id=views.current_user_id()
    )
    return views.invoice_created(invoice, source="change_order")


@bp.post("/from-estimate/<int:estimate_id>")
def from_estimate(estimate_id: int):
    data = request.get_json(silent=True) or {}
    invoice = convert_estimate_to_invoice(db.session, estimate_id, data, user_id=views.current_user_id())
    return views.invoice_created(invoice, source="estimate")


# ---- online payment ----

@bp.post("/<int:invoice_id>/checkout-session")
@limiter.limit("10 per minute")
def checkout_session(invoice_id: int):
    invoice = get_document(db.session, KIND, invoice_id)
    result = billing.create_invoice_checkout_session(invoice)
    db.session.commit()
    return jsonify(result), 200
