from __future__ import annotations

from sqlalchemy import Index, text
from sqlalchemy.sql import func

from app.extensions import db

"""
Catalog models (read side for document line items).

• Prices here are standard prices only: adding a catalog line to a document
  copies name/unit/price into the line, so later catalog edits never reach
  existing documents.
• ux_*_lower_name: case-insensitive uniqueness used by the importer upsert.
"""


class MaterialCatalogItem(db.Model):
    __tablename__ = "catalog_materials"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True, index=True)
    unit = db.Column(db.String(32), nullable=False, server_default=text("'each'"), default="each")
    standard_cost = db.Column(db.Numeric(12, 4), nullable=False, server_default=text("0"), default=0)
    supplier = db.Column(db.String(255), nullable=True)
    part_number = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, server_default=text("true"), default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ux_catalog_materials_lower_name", func.lower(name), unique=True),
    )

    def __repr__(self) -> str:
        return f"<MaterialCatalogItem id={self.id} name={self.name!r}>"

    @property
    def standard_price(self):
        return self.standard_cost

    def to_dict(self) -> dict:
        return dict(
            id=self.id,
            name=self.name,
            description=self.description,
            category=self.category,
            unit=self.unit,
            standard_cost=float(self.standard_cost or 0),
            supplier=self.supplier,
            part_number=self.part_number,
            is_active=self.is_active,
        )


class ServiceCatalogItem(db.Model):
    __tablename__ = "catalog_services"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True, index=True)
    unit = db.Column(db.String(32), nullable=False, server_default=text("'hour'"), default="hour")
    standard_rate = db.Column(db.Numeric(12, 4), nullable=False, server_default=text("0"), default=0)
    cost = db.Column(db.Numeric(12, 4), nullable=True)  # internal cost, never billed
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, server_default=text("true"), default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ux_catalog_services_lower_name", func.lower(name), unique=True),
    )

    def __repr__(self) -> str:
        return f"<ServiceCatalogItem id={self.id} name={self.name!r}>"

    @property
    def standard_price(self):
        return self.standard_rate

    def to_dict(self) -> dict:
        return dict(
            id=self.id,
            name=self.name,
            description=self.description,
            category=self.category,
            unit=self.unit,
            standard_rate=float(self.standard_rate or 0),
            is_active=self.is_active,
        )
