from __future__ import annotations

from sqlalchemy import Index, text

from app.extensions import db
from app.models.mixins import FinancialDocumentMixin, LineItemMixin, date_fields
from app.services.lifecycle import ChangeOrderStatus, DocumentKind


class ChangeOrder(FinancialDocumentMixin, db.Model):
    __tablename__ = "change_orders"

    kind = DocumentKind.CHANGE_ORDER
    number_prefix = "CO"

    reason = db.Column(db.Text, nullable=True)
    justification = db.Column(db.Text, nullable=True)
    requested_date = db.Column(db.Date, nullable=True)
    approved_date = db.Column(db.Date, nullable=True)  # stamped on -> approved

    # Cumulative share already billed through invoices (0..100)
    converted_percentage = db.Column(db.Numeric(7, 3), nullable=False, server_default=text("0"), default=0)

    items = db.relationship(
        "ChangeOrderItem",
        order_by="ChangeOrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": FinancialDocumentMixin.version}

    __table_args__ = (
        Index("ix_change_orders_created_at", "created_at"),
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("status", ChangeOrderStatus.DRAFT.value)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<ChangeOrder id={self.id} number={self.human_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update(
            change_order_number=self.human_number,
            reason=self.reason,
            justification=self.justification,
            converted_percentage=float(self.converted_percentage or 0),
            **date_fields(self, "requested_date", "approved_date"),
        )
        return d


class ChangeOrderItem(LineItemMixin, db.Model):
    __tablename__ = "change_order_items"

    change_order_id = db.Column(
        db.Integer, db.ForeignKey("change_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
