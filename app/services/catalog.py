from __future__ import annotations

import re
from decimal import Decimal
from pathlib import Path
from typing import Optional, Tuple

import pandas as pd
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from app.models import MaterialCatalogItem, ServiceCatalogItem
from app.observability import log_event
from app.services.errors import ValidationError
from app.services.line_items import CatalogEntry, ItemType
from app.utils.helpers import to_decimal


def _norm(val: object) -> str:
    """Lower/trim and collapse inner whitespace; None -> ''."""
    s = "" if val is None else str(val)
    return re.sub(r"\s+", " ", s.strip().lower())


def _model_for(item_type: ItemType):
    if item_type is ItemType.MATERIAL:
        return MaterialCatalogItem
    if item_type is ItemType.SERVICE:
        return ServiceCatalogItem
    return None


def lookup_catalog_entry(session: Session, item_type: ItemType, ref: int) -> Optional[CatalogEntry]:
    """Resolve a material/service line's catalog reference; inactive rows are not offered."""
    model = _model_for(item_type)
    if model is None:
        return None
    row = session.get(model, ref)
    if row is None or not row.is_active:
        return None
    return CatalogEntry(name=row.name, unit=row.unit, price=row.standard_price)


def list_catalog(session: Session, item_type: ItemType, *, q: Optional[str] = None, category: Optional[str] = None):
    model = _model_for(item_type)
    query = session.query(model).filter(model.is_active.is_(True))
    if q:
        query = query.filter(func.lower(model.name).like(f"%{_norm(q)}%"))
    if category:
        query = query.filter(func.lower(model.category) == _norm(category))
    return query.order_by(model.category, model.name).all()


# ---- spreadsheet import ----------------------------------------------------

MATERIAL_COLUMNS = {
    "Name": "name",
    "Item Description": "name",
    "Description": "description",
    "Category": "category",
    "Unit": "unit",
    "Cost": "standard_cost",
    "Standard Cost": "standard_cost",
    "Supplier": "supplier",
    "Vendor": "supplier",
    "Part Number": "part_number",
    "SKU #": "part_number",
    "Notes": "notes",
}

SERVICE_COLUMNS = {
    "Name": "name",
    "Service": "name",
    "Description": "description",
    "Category": "category",
    "Unit": "unit",
    "Rate": "standard_rate",
    "Standard Rate": "standard_rate",
    "Cost": "cost",
    "Notes": "notes",
}


NUMERIC_COLUMNS = ("standard_cost", "standard_rate", "cost")


def _read_frame(path: str) -> pd.DataFrame:
    suffix = Path(path).suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix in (".xlsx", ".xls"):
        return pd.read_excel(path)
    raise ValidationError(f"unsupported catalog file type {suffix!r} (expected .csv or .xlsx)")


def _clean(val) -> Optional[str]:
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return None
    s = str(val).strip()
    return s or None


def _upsert(session: Session, model, df: pd.DataFrame, price_col: str, default_unit: str) -> Tuple[int, int]:
    if "name" not in df.columns:
        raise ValidationError("catalog file needs a Name column")
    df = df[df["name"].map(lambda v: bool(_clean(v)))].copy()
    if price_col not in df.columns:
        raise ValidationError(f"catalog file needs a price column ({price_col})")
    df[price_col] = pd.to_numeric(df[price_col], errors="coerce").fillna(0).round(4)
    if (df[price_col] < 0).any():
        bad = df[df[price_col] < 0].iloc[0]
        raise ValidationError(f"negative price for catalog row {bad['name']!r}")

    # Preload existing names to classify inserted vs updated
    existing = {_norm(row.name): row for row in session.query(model).all()}

    inserted = 0
    updated = 0
    fields = [c for c in df.columns if hasattr(model, c) and c != "name"]
    for _, r in df.iterrows():
        name = _clean(r["name"])
        values = {}
        for c in fields:
            if c in NUMERIC_COLUMNS:
                values[c] = to_decimal(_clean(r[c]))
            else:
                values[c] = _clean(r[c])
        values[price_col] = values.get(price_col) or Decimal("0")
        if not values.get("unit"):
            # blank unit keeps the stored one on update
            values.pop("unit", None)

        row = existing.get(_norm(name))
        if row is None:
            row = model(name=name, is_active=True, **{"unit": default_unit, **values})
            session.add(row)
            existing[_norm(name)] = row
            inserted += 1
        else:
            for k, v in values.items():
                setattr(row, k, v)
            row.is_active = True
            updated += 1

    session.flush()
    return inserted, updated


def import_materials(session: Session, path: str) -> Tuple[int, int]:
    """
    Import/refresh the material catalog from a .csv or .xlsx sheet.
    Rows match existing entries by case-insensitive name.
    Returns: (inserted_count, updated_count)
    """
    df = _read_frame(path).rename(columns=MATERIAL_COLUMNS)
    df = df.loc[:, ~df.columns.duplicated()]
    inserted, updated = _upsert(session, MaterialCatalogItem, df, "standard_cost", "each")
    log_event("catalog_import", catalog="materials", path=str(path), inserted=inserted, updated=updated)
    return inserted, updated


def import_services(session: Session, path: str) -> Tuple[int, int]:
    """Same as import_materials for the service catalog (rates default to per-hour)."""
    df = _read_frame(path).rename(columns=SERVICE_COLUMNS)
    df = df.loc[:, ~df.columns.duplicated()]
    inserted, updated = _upsert(session, ServiceCatalogItem, df, "standard_rate", "hour")
    log_event("catalog_import", catalog="services", path=str(path), inserted=inserted, updated=updated)
    return inserted, updated
