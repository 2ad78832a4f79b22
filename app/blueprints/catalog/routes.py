from flask import jsonify, request

from app.extensions import db
from app.services.catalog import list_catalog
from app.services.line_items import ItemType

from . import bp


def _catalog_json(item_type: ItemType):
    rows = list_catalog(
        db.session,
        item_type,
        q=(request.args.get("q") or "").strip() or None,
        category=(request.args.get("category") or "").strip() or None,
    )
    return jsonify(items=[r.to_dict() for r in rows])


@bp.get("/materials.json")
def materials_json():
    """Active materials for the line-item picker."""
    return _catalog_json(ItemType.MATERIAL)


@bp.get("/services.json")
def services_json():
    return _catalog_json(ItemType.SERVICE)
