from __future__ import annotations

from sqlalchemy import Index, text

from app.extensions import db
from app.models.mixins import FinancialDocumentMixin, LineItemMixin, date_fields
from app.services.calculations import service_call_amount
from app.services.lifecycle import DocumentKind, ServiceCallStatus
from app.utils.helpers import money

PRIORITIES = ("low", "medium", "high", "urgent")
BILLING_TYPES = ("time_material", "estimate")


class ServiceCall(FinancialDocumentMixin, db.Model):
    __tablename__ = "service_calls"

    kind = DocumentKind.SERVICE_CALL
    number_prefix = "SC"

    priority = db.Column(db.String(16), nullable=False, server_default=text("'medium'"), default="medium")
    service_type = db.Column(db.String(100), nullable=True)
    billing_type = db.Column(db.String(32), nullable=False, server_default=text("'time_material'"), default="time_material")
    scheduled_date = db.Column(db.Date, nullable=True)
    completed_date = db.Column(db.Date, nullable=True)  # stamped on -> completed
    technician_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Cost fields (time & material billing)
    estimated_hours = db.Column(db.Numeric(8, 2), nullable=True)
    actual_hours = db.Column(db.Numeric(8, 2), nullable=True)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=True)
    materials_cost = db.Column(db.Numeric(12, 2), nullable=True)
    total_cost = db.Column(db.Numeric(12, 2), nullable=True)  # explicit override

    # Re-billing guard
    converted_invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)

    items = db.relationship(
        "ServiceCallItem",
        order_by="ServiceCallItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": FinancialDocumentMixin.version}

    __table_args__ = (
        Index("ix_service_calls_scheduled_date", "scheduled_date"),
        Index("ix_service_calls_created_at", "created_at"),
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("status", ServiceCallStatus.OPEN.value)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<ServiceCall id={self.id} ticket={self.human_number!r} status={self.status!r}>"

    @property
    def billable_amount(self):
        return service_call_amount(
            estimated_hours=self.estimated_hours,
            actual_hours=self.actual_hours,
            hourly_rate=self.hourly_rate,
            materials_cost=self.materials_cost,
            total_cost=self.total_cost,
        )

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update(
            ticket_number=self.human_number,
            priority=self.priority,
            service_type=self.service_type,
            billing_type=self.billing_type,
            technician_id=self.technician_id,
            estimated_hours=money(self.estimated_hours),
            actual_hours=money(self.actual_hours),
            hourly_rate=money(self.hourly_rate),
            materials_cost=money(self.materials_cost),
            total_cost=money(self.total_cost),
            billable_amount=money(self.billable_amount),
            converted_invoice_id=self.converted_invoice_id,
            **date_fields(self, "scheduled_date", "completed_date"),
        )
        return d


class ServiceCallItem(LineItemMixin, db.Model):
    __tablename__ = "service_call_items"

    service_call_id = db.Column(
        db.Integer, db.ForeignKey("service_calls.id", ondelete="CASCADE"), nullable=False, index=True
    )
