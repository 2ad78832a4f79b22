from decimal import Decimal

import pytest

from app.extensions import db
from app.models import MaterialCatalogItem, ServiceCatalogItem
from app.services.catalog import import_materials, import_services, lookup_catalog_entry
from app.services.errors import ValidationError
from app.services.line_items import ItemType


MATERIALS_CSV = """Name,Category,Unit,Cost,Supplier
#12 THHN,Wire,ft,0.42,City Electric
20A breaker,Breakers,,11.50,
GFCI receptacle,Devices,each,18,City Electric
"""


def _seed(ctx_rows):
    db.session.add_all(ctx_rows)
    db.session.flush()
    return ctx_rows


def test_lookup_returns_active_entry(ctx):
    mat, svc = _seed([
        MaterialCatalogItem(name="EMT 3/4", unit="ft", standard_cost=Decimal("1.10")),
        ServiceCatalogItem(name="Troubleshooting", standard_rate=Decimal("95")),
    ])
    entry = lookup_catalog_entry(db.session, ItemType.MATERIAL, mat.id)
    assert (entry.name, entry.unit, entry.price) == ("EMT 3/4", "ft", Decimal("1.10"))
    assert lookup_catalog_entry(db.session, ItemType.SERVICE, svc.id).unit == "hour"


def test_lookup_skips_inactive_and_missing(ctx):
    (old,) = _seed([MaterialCatalogItem(name="Knob and tube", is_active=False)])
    assert lookup_catalog_entry(db.session, ItemType.MATERIAL, old.id) is None
    assert lookup_catalog_entry(db.session, ItemType.MATERIAL, 9999) is None
    assert lookup_catalog_entry(db.session, ItemType.CUSTOM, old.id) is None


def test_import_materials_inserts_then_updates(ctx, tmp_path):
    path = tmp_path / "materials.csv"
    path.write_text(MATERIALS_CSV)
    assert import_materials(db.session, str(path)) == (3, 0)

    breaker = db.session.query(MaterialCatalogItem).filter_by(name="20A breaker").one()
    assert breaker.unit == "each"
    assert breaker.standard_cost == Decimal("11.50")
    assert breaker.supplier is None

    path.write_text("Name,Cost\n#12 thhn,0.45\nWire nuts,0.08\n")
    assert import_materials(db.session, str(path)) == (1, 1)
    wire = db.session.query(MaterialCatalogItem).filter_by(name="#12 THHN").one()
    assert wire.standard_cost == Decimal("0.45")


def test_import_services_defaults_to_hourly(ctx, tmp_path):
    path = tmp_path / "services.csv"
    path.write_text("Service,Rate,Category\nPanel swap,850,Service\nTroubleshooting,95,Labor\n")
    assert import_services(db.session, str(path)) == (2, 0)
    row = db.session.query(ServiceCatalogItem).filter_by(name="Troubleshooting").one()
    assert row.unit == "hour"
    assert row.standard_rate == Decimal("95")


@pytest.mark.parametrize("name, body", [
    ("catalog.txt", "Name,Cost\nx,1\n"),
    ("catalog.csv", "Item,Cost\nx,1\n"),
    ("catalog.csv", "Name,Cost\nx,-1\n"),
])
def test_import_rejects_bad_files(ctx, tmp_path, name, body):
    path = tmp_path / name
    path.write_text(body)
    with pytest.raises(ValidationError):
        import_materials(db.session, str(path))


def test_catalog_json_filters(app, client):
    with app.app_context():
        db.session.add_all([
            MaterialCatalogItem(name="#12 THHN", category="Wire", unit="ft", standard_cost=Decimal("0.42")),
            MaterialCatalogItem(name="#10 THHN", category="Wire", unit="ft", standard_cost=Decimal("0.65")),
            MaterialCatalogItem(name="20A breaker", category="Breakers", standard_cost=Decimal("11.50")),
            MaterialCatalogItem(name="Fuse block", category="Breakers", is_active=False),
        ])
        db.session.commit()

    names = [r["name"] for r in client.get("/catalog/materials.json").get_json()["items"]]
    assert names == ["20A breaker", "#10 THHN", "#12 THHN"]

    wire = client.get("/catalog/materials.json", query_string={"category": "wire"}).get_json()["items"]
    assert {r["name"] for r in wire} == {"#10 THHN", "#12 THHN"}

    hits = client.get("/catalog/materials.json", query_string={"q": "breaker"}).get_json()["items"]
    assert [r["standard_cost"] for r in hits] == [11.5]


def test_cli_import_materials(app, tmp_path):
    path = tmp_path / "materials.csv"
    path.write_text(MATERIALS_CSV)
    result = app.test_cli_runner().invoke(args=["catalog", "import-materials", str(path)])
    assert result.exit_code == 0, result.output
    assert "inserted=3 updated=0" in result.output
    with app.app_context():
        assert MaterialCatalogItem.query.count() == 3


def test_cli_import_reports_validation_error(app, tmp_path):
    path = tmp_path / "materials.csv"
    path.write_text("Item,Cost\nx,1\n")
    result = app.test_cli_runner().invoke(args=["catalog", "import-services", str(path)])
    assert result.exit_code != 0
    assert "Name column" in result.output
