from __future__ import annotations

from sqlalchemy import Index, text
from sqlalchemy.sql import func

from app.extensions import db
from app.utils.validators import format_address


class Customer(db.Model):
    """Read-only here: customer CRUD belongs to the customers screens."""

    __tablename__ = "customers"
    __allow_unmapped__ = True

    id = db.Column(db.Integer, primary_key=True)

    company_name = db.Column(db.String, nullable=True)
    contact_name = db.Column(db.String, nullable=True)
    email        = db.Column(db.String, nullable=True)
    phone        = db.Column(db.String, nullable=True)
    address1     = db.Column(db.String, nullable=True)
    address2     = db.Column(db.String, nullable=True)
    city         = db.Column(db.String, nullable=True)
    state        = db.Column(db.String(2), nullable=True)
    zip          = db.Column(db.String(10), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    # Lifecycle
    is_active  = db.Column(db.Boolean, nullable=False, server_default=text("true"), default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_customers_company_name", company_name),
        Index("ix_customers_lower_email", func.lower(email)),
    )

    def __repr__(self) -> str:
        return f"<Customer id={self.id} company={self.company_name!r} active={self.is_active}>"

    @property
    def display_name(self) -> str | None:
        return self.company_name or self.contact_name

    def snapshot(self) -> dict:
        """Fields copied onto a document at create/edit time."""
        return dict(
            customer_name=self.display_name,
            customer_email=self.email,
            customer_phone=self.phone,
            customer_address=format_address(self.address1, self.address2, self.city, self.state, self.zip),
        )
