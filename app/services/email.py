from typing import Optional
from datetime import datetime, timedelta
import time

from flask import current_app, render_template
from flask_mail import Message

from app.extensions import db, mail
from app.models import EmailLog
from app.observability import log_event
from app.services import pdf
from app.services.documents import apply_status
from app.services.errors import DeliveryError, ValidationError
from app.utils.validators import clean_str, clean_text, is_valid_email

# suppression lookback window
SUPPRESSION_WINDOW_DAYS = 90

TEMPLATE = "document"


def is_suppressed(to_email: str) -> bool:
    """
    Return True if the address should be suppressed due to a recent bounce/complaint.
    """
    cutoff = datetime.utcnow() - timedelta(days=SUPPRESSION_WINDOW_DAYS)
    q = EmailLog.query.filter(
        EmailLog.to_email == to_email,
        EmailLog.created_at >= cutoff,
        EmailLog.status.in_(("bounced", "complaint")),
    )
    return db.session.query(q.exists()).scalar()


def _log_email(doc, *, user_id, to_email, subject, status, meta=None) -> EmailLog:
    entry = EmailLog(
        user_id=user_id,
        to_email=to_email,
        template=TEMPLATE,
        subject=subject,
        document_type=doc.kind.value,
        document_id=doc.id,
        status=status,
        meta=meta or {},
    )
    db.session.add(entry)
    return entry


def default_subject(doc) -> str:
    company = current_app.config.get("COMPANY_NAME") or ""
    return f"{doc.kind.label.title()} {doc.human_number} from {company}".strip()


def send_document_email(
    doc,
    *,
    to_email: Optional[str] = None,
    subject: Optional[str] = None,
    message: Optional[str] = None,
    attach_pdf: bool = True,
    user_id: Optional[int] = None,
) -> EmailLog:
    """
    Email a document (PDF attached) to its customer or an explicit recipient.

    On success a draft estimate / change order / invoice moves to sent.
    On any failure a failed EmailLog row is kept, DeliveryError is raised and
    the document status is left untouched.
    """
    to_email = (clean_str(to_email, 320) or doc.customer_email or "").lower()
    if not to_email:
        raise ValidationError("to: no recipient given and the document has no customer email")
    if not is_valid_email(to_email):
        raise ValidationError("to: invalid email address")
    subject = clean_str(subject, 200) or default_subject(doc)

    # Do-not-send suppression gate (derived from recent EmailLog events)
    if is_suppressed(to_email):
        _log_email(doc, user_id=user_id, to_email=to_email, subject=subject, status="failed",
                   meta={"reason": "suppressed"})
        db.session.commit()
        log_event("mail_send", level="warning", template=TEMPLATE, to=to_email, outcome="suppressed",
                  document_type=doc.kind.value, document_id=doc.id)
        raise DeliveryError(f"{to_email} is suppressed after a recent bounce or complaint")

    ctx = dict(
        doc=doc,
        data=doc.to_dict(),
        message=clean_text(message),
        company_name=current_app.config.get("COMPANY_NAME"),
        company_email=current_app.config.get("COMPANY_EMAIL"),
    )
    msg = Message(recipients=[to_email], subject=subject)
    msg.body = render_template(f"email/{TEMPLATE}.txt", **ctx)
    msg.html = render_template(f"email/{TEMPLATE}.html", **ctx)

    elog = _log_email(doc, user_id=user_id, to_email=to_email, subject=subject, status="queued")
    db.session.commit()

    start = time.perf_counter()
    try:
        if attach_pdf:
            msg.attach(pdf.document_filename(doc), "application/pdf", pdf.render_document_pdf(doc))
        mail.send(msg)
    except Exception as ex:
        latency_ms = int((time.perf_counter() - start) * 1000)
        elog.status = "failed"
        elog.meta = {"error": str(ex)}
        db.session.commit()
        log_event("mail_send", level="warning", template=TEMPLATE, to=to_email, subject=subject,
                  outcome="error", latency_ms=latency_ms, error=str(ex),
                  document_type=doc.kind.value, document_id=doc.id)
        raise DeliveryError(f"could not email {doc.human_number} to {to_email}: {ex}") from ex

    latency_ms = int((time.perf_counter() - start) * 1000)
    elog.status = "sent"

    # service calls have no sent status; emailing them is informational only
    lc = doc.lifecycle
    sendable = "sent" in {s.value for s in lc.statuses}
    if sendable and lc.parse(doc.status) == lc.initial and lc.can_transition(lc.initial, "sent"):
        apply_status(doc, "sent")

    db.session.commit()
    log_event("mail_send", template=TEMPLATE, to=to_email, subject=subject, outcome="sent",
              latency_ms=latency_ms, document_type=doc.kind.value, document_id=doc.id,
              status=doc.status)
    return elog
