from __future__ import annotations

from sqlalchemy import Index, text

from app.extensions import db
from app.models.mixins import FinancialDocumentMixin, LineItemMixin
from app.services.lifecycle import DocumentKind, EstimateStatus


class Estimate(FinancialDocumentMixin, db.Model):
    __tablename__ = "estimates"

    kind = DocumentKind.ESTIMATE
    number_prefix = "EST"

    # Cumulative share already billed through percentage invoices (0..100)
    converted_percentage = db.Column(db.Numeric(7, 3), nullable=False, server_default=text("0"), default=0)

    items = db.relationship(
        "EstimateItem",
        order_by="EstimateItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": FinancialDocumentMixin.version}

    __table_args__ = (
        Index("ix_estimates_created_at", "created_at"),
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("status", EstimateStatus.DRAFT.value)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Estimate id={self.id} number={self.human_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        d = self._base_dict()
        d["converted_percentage"] = float(self.converted_percentage or 0)
        return d


class EstimateItem(LineItemMixin, db.Model):
    __tablename__ = "estimate_items"

    estimate_id = db.Column(db.Integer, db.ForeignKey("estimates.id", ondelete="CASCADE"), nullable=False, index=True)
