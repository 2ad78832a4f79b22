"""
Request/response plumbing shared by the four document blueprints.
Each helper runs one service call, commits, and returns a JSON response;
ServiceError subclasses propagate to the app-level error handler.
"""
from flask import current_app, jsonify, make_response, request
from flask_login import current_user

from app.extensions import db
from app.observability import log_event
from app.services import documents as svc
from app.services import pdf
from app.services.email import send_document_email


def current_user_id():
    if getattr(current_user, "is_authenticated", False):
        return current_user.id
    return None


def _arg_int(name: str):
    raw = (request.args.get(name) or "").strip()
    return int(raw) if raw.isdigit() else None


def list_response(kind):
    per_page = _arg_int("per_page") or current_app.config.get("DOCUMENTS_PER_PAGE", 20)
    page = svc.list_documents(
        db.session,
        kind,
        status=(request.args.get("status") or "").strip() or None,
        q=(request.args.get("q") or "").strip() or None,
        customer_id=_arg_int("customer_id"),
        project_id=_arg_int("project_id"),
        page=_arg_int("page") or 1,
        per_page=per_page,
    )
    return jsonify(items=[d.to_dict() for d in page.items], pagination=page.pagination())


def create_response(kind):
    data = request.get_json(silent=True) or {}
    doc = svc.create_document(db.session, kind, data, user_id=current_user_id())
    db.session.commit()
    return jsonify(doc.to_dict()), 201


def get_response(kind, doc_id: int):
    return jsonify(svc.get_document(db.session, kind, doc_id).to_dict())


def update_response(kind, doc_id: int):
    data = request.get_json(silent=True) or {}
    doc = svc.get_document(db.session, kind, doc_id)
    svc.update_document(db.session, doc, data)
    db.session.commit()
    return jsonify(doc.to_dict())


def delete_response(kind, doc_id: int):
    doc = svc.get_document(db.session, kind, doc_id)
    svc.delete_document(db.session, doc)
    db.session.commit()
    return ("", 204)


def pdf_response(kind, doc_id: int):
    doc = svc.get_document(db.session, kind, doc_id)
    pdf_bytes = pdf.render_document_pdf(doc)
    resp = make_response(pdf_bytes)
    resp.headers["Content-Type"] = "application/pdf"
    resp.headers["Content-Disposition"] = f'inline; filename="{pdf.document_filename(doc)}"'
    return resp


def send_email_response(kind, doc_id: int):
    data = request.get_json(silent=True) or {}
    doc = svc.get_document(db.session, kind, doc_id)
    elog = send_document_email(
        doc,
        to_email=data.get("to"),
        subject=data.get("subject"),
        message=data.get("message"),
        user_id=current_user_id(),
    )
    return jsonify(ok=True, email_log_id=elog.id, to=elog.to_email, document=doc.to_dict())


def invoice_created(invoice, source: str):
    db.session.commit()
    log_event(
        "invoice_generated",
        source=source,
        invoice_id=invoice.id,
        invoice_number=invoice.human_number,
        total_amount=invoice.total_amount,
    )
    return jsonify(invoice.to_dict()), 201
