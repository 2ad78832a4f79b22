"""
Shared shape of the financial documents (estimates, change orders, invoices,
service calls) and their line-item tables.

• Totals (subtotal / tax_amount / total_amount) are stored, not recomputed on
  read, so historical documents stay stable if calculation rules evolve.
• version is SQLAlchemy's version_id_col on every document table: a write
  against a stale row raises StaleDataError (optimistic concurrency).
• Each document type has its own item table (<prefix>_items) with an
  explicit position column; position order is display order.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from sqlalchemy import text
from sqlalchemy.orm import declared_attr

from app.extensions import db
from app.services.line_items import LineItem, build_line_item
from app.services.lifecycle import Lifecycle, lifecycle_for
from app.utils.helpers import iso, money, round_q4

def _utcnow():
    return datetime.now(timezone.utc)

class FinancialDocumentMixin:
    __allow_unmapped__ = True

    # Set on each concrete model
    kind = None
    number_prefix = None

    id = db.Column(db.Integer, primary_key=True)
    human_number = db.Column(db.String(32), nullable=True, unique=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(32), nullable=False, index=True)

    # Money
    tax_rate = db.Column(db.Numeric(7, 3), nullable=False, server_default=text("0"), default=0)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, server_default=text("0"), default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, server_default=text("0"), default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, server_default=text("0"), default=0)
    manual_total = db.Column(db.Boolean, nullable=False, server_default=text("false"), default=False)

    # Customer snapshot (denormalized at create/edit time)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(320), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_address = db.Column(db.String(500), nullable=True)

    # Project lives in another system; plain reference only
    project_id = db.Column(db.Integer, nullable=True, index=True)

    @declared_attr
    def customer_id(cls):
        return db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)

    @declared_attr
    def created_by(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def lifecycle(self) -> Lifecycle:
        return lifecycle_for(self.kind)

    @property
    def is_editable(self) -> bool:
        return self.lifecycle.is_editable(self.status)

    def line_items(self) -> List[LineItem]:
        return [row.to_line_item() for row in self.items]

    def assign_number(self) -> None:
        """EST-2026-00042; requires a flushed id."""
        year = (self.created_at or _utcnow()).year
        self.human_number = f"{self.number_prefix}-{year}-{self.id:05d}"

    def _base_dict(self) -> dict:
        return dict(
            id=self.id,
            document_type=self.kind.value,
            human_number=self.human_number,
            title=self.title,
            description=self.description,
            notes=self.notes,
            status=self.status,
            items=[row.to_dict() for row in self.items],
            tax_rate=float(self.tax_rate or 0),
            subtotal=money(self.subtotal),
            tax_amount=money(self.tax_amount),
            total_amount=money(self.total_amount),
            manual_total=bool(self.manual_total),
            customer_id=self.customer_id,
            customer_snapshot=dict(
                name=self.customer_name,
                email=self.customer_email,
                phone=self.customer_phone,
                address=self.customer_address,
            ),
            project_id=self.project_id,
            created_by=self.created_by,
            version=self.version,
            created_at=self.created_at.isoformat() if self.created_at else None,
            updated_at=self.updated_at.isoformat() if self.updated_at else None,
        )

    def to_dict(self) -> dict:
        return self._base_dict()

class LineItemMixin:
    __allow_unmapped__ = True

    id = db.Column(db.Integer, primary_key=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    item_type = db.Column(db.String(16), nullable=False, server_default=text("'custom'"))
    catalog_ref = db.Column(db.Integer, nullable=True)
    description = db.Column(db.String(500), nullable=False)
    quantity = db.Column(db.Numeric(12, 4), nullable=False)
    unit = db.Column(db.String(32), nullable=False, server_default=text("'each'"))
    unit_price = db.Column(db.Numeric(12, 4), nullable=False)
    markup_percentage = db.Column(db.Numeric(7, 3), nullable=False, server_default=text("0"), default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_line_item(self) -> LineItem:
        return build_line_item(
            self.item_type,
            description=self.description,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=self.unit_price,
            markup_percentage=self.markup_percentage or 0,
            notes=self.notes,
            catalog_ref=self.catalog_ref,
        )

    @classmethod
    def from_line_item(cls, item: LineItem, position: int):
        return cls(
            position=position,
            item_type=item.item_type.value,
            catalog_ref=item.catalog_ref,
            description=item.description,
            quantity=item.quantity,
            unit=item.unit,
            unit_price=item.unit_price,
            markup_percentage=item.markup_percentage,
            notes=item.notes,
        )

    def to_dict(self) -> dict:
        return dict(
            id=self.id,
            position=self.position,
            item_type=self.item_type,
            catalog_ref=self.catalog_ref,
            description=self.description,
            quantity=float(self.quantity),
            unit=self.unit,
            unit_price=float(self.unit_price),
            markup_percentage=float(self.markup_percentage or 0),
            notes=self.notes,
            # presentation only; totals are rounded at subtotal level
            line_total=float(round_q4(self.to_line_item().line_total)),
        )

def date_fields(obj, *names) -> dict:
    return {n: iso(getattr(obj, n)) for n in names}
