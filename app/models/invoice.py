from __future__ import annotations

from sqlalchemy import Index

from app.extensions import db
from app.models.mixins import FinancialDocumentMixin, LineItemMixin, date_fields
from app.services.lifecycle import DocumentKind, InvoiceStatus
from app.utils.helpers import money


class Invoice(FinancialDocumentMixin, db.Model):
    __tablename__ = "invoices"

    kind = DocumentKind.INVOICE
    number_prefix = "INV"

    due_date = db.Column(db.Date, nullable=True)
    paid_date = db.Column(db.Date, nullable=True)  # stamped on -> paid

    # Provenance: which document (and share of it) this invoice bills
    source_type = db.Column(db.String(32), nullable=True)  # estimate|change_order|service_call
    source_id = db.Column(db.Integer, nullable=True)
    source_percentage = db.Column(db.Numeric(7, 3), nullable=True)

    # Online payment (Stripe Checkout)
    stripe_session_id = db.Column(db.String(255), nullable=True, index=True)
    payment_intent_id = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(64), nullable=True)
    payment_status = db.Column(db.String(32), nullable=True)

    items = db.relationship(
        "InvoiceItem",
        order_by="InvoiceItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": FinancialDocumentMixin.version}

    __table_args__ = (
        Index("ix_invoices_source", "source_type", "source_id"),
        Index("ix_invoices_created_at", "created_at"),
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("status", InvoiceStatus.DRAFT.value)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.human_number!r} status={self.status!r}>"

    @property
    def provenance(self) -> dict | None:
        if not self.source_type:
            return None
        return dict(
            source_type=self.source_type,
            source_id=self.source_id,
            percentage=float(self.source_percentage) if self.source_percentage is not None else None,
        )

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update(
            invoice_number=self.human_number,
            provenance=self.provenance,
            # amount seeded from the source document by a conversion
            total_seed=money(self.total_amount) if self.source_type else None,
            payment_method=self.payment_method,
            payment_status=self.payment_status,
            **date_fields(self, "due_date", "paid_date"),
        )
        return d


class InvoiceItem(LineItemMixin, db.Model):
    __tablename__ = "invoice_items"

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
