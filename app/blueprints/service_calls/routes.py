from flask import request

from app.blueprints import documents as views
from app.extensions import db
from app.services.conversions import generate_service_call_invoice
from app.services.lifecycle import DocumentKind
from app.services.policy import role_required

from . import bp

KIND = DocumentKind.SERVICE_CALL


@bp.get("/", strict_slashes=False)
def index():
    return views.list_response(KIND)


@bp.post("/", strict_slashes=False)
def create():
    return views.create_response(KIND)


@bp.get("/<int:service_call_id>")
def get_service_call(service_call_id: int):
    return views.get_response(KIND, service_call_id)


@bp.put("/<int:service_call_id>")
def update(service_call_id: int):
    return views.update_response(KIND, service_call_id)


@bp.delete("/<int:service_call_id>")
@role_required("admin")
def delete_service_call(service_call_id: int):
    return views.delete_response(KIND, service_call_id)


@bp.get("/<int:service_call_id>/pdf")
def export_pdf(service_call_id: int):
    return views.pdf_response(KIND, service_call_id)


@bp.post("/<int:service_call_id>/generate-invoice")
def generate_invoice(service_call_id: int):
    data = request.get_json(silent=True) or {}
    invoice = generate_service_call_invoice(db.session, service_call_id, data, user_id=views.current_user_id())
    return views.invoice_created(invoice, source="service_call")
