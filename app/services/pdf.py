from __future__ import annotations

from flask import current_app, render_template

from app.observability import log_event
from app.services.errors import DeliveryError


def document_filename(doc) -> str:
    return f"{doc.human_number or f'{doc.kind.value}-{doc.id}'}.pdf"


def render_document_html(doc) -> str:
    cfg = current_app.config
    company = dict(
        name=cfg.get("COMPANY_NAME"),
        email=cfg.get("COMPANY_EMAIL"),
        phone=cfg.get("COMPANY_PHONE"),
        address=cfg.get("COMPANY_ADDRESS"),
    )
    return render_template("pdf/document.html", doc=doc, data=doc.to_dict(), company=company)


def render_document_pdf(doc) -> bytes:
    """
    Render a document to PDF bytes from its stored totals (never recomputed here).
    Raises DeliveryError when rendering fails.
    """
    html = render_document_html(doc)
    try:
        # Imported lazily: WeasyPrint pulls in native pango/cairo libs at import time
        from weasyprint import HTML
        pdf_bytes = HTML(string=html, base_url=current_app.config.get("APP_BASE_URL")).write_pdf()
    except Exception as exc:
        current_app.logger.exception("PDF render failed for %s %s", doc.kind.value, doc.id)
        raise DeliveryError(f"could not render PDF for {doc.human_number}: {exc}") from exc

    log_event("pdf_rendered", document_type=doc.kind.value, document_id=doc.id, bytes=len(pdf_bytes))
    return pdf_bytes
