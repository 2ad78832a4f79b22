import json
from decimal import Decimal

import pytest

from app.extensions import db
from app.models import ChangeOrder, Estimate, Invoice, MaterialCatalogItem
from app.services import conversions
from app.services.documents import apply_status, create_document, delete_document, get_document, update_document
from app.services.errors import AlreadyConvertedError, ConversionNotAllowedError, ValidationError
from app.services.lifecycle import DocumentKind
from app.utils.helpers import round_currency

from conftest import item


def _approved(kind, payload):
    doc = create_document(db.session, kind, payload)
    apply_status(doc, "sent")
    apply_status(doc, "approved")
    db.session.flush()
    return doc


def _change_order(**extra):
    payload = {
        "title": "Add subpanel",
        "tax_rate": 8,
        "customer_snapshot": {"name": "Acme Builders", "email": "ap@acme.test"},
        "project_id": 12,
        "items": [item("60A subpanel", 1, 310), item("Labor", 4, 85, markup_percentage=10)],
    }
    payload.update(extra)
    return _approved(DocumentKind.CHANGE_ORDER, payload)


def test_partial_conversion_at_40_percent(ctx):
    co = _change_order()
    inv = conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 40})

    assert inv.total_amount == (co.total_amount * Decimal("0.4")).quantize(Decimal("0.01"))
    assert inv.provenance["source_id"] == co.id
    assert inv.provenance["source_type"] == "change_order"
    assert inv.provenance["percentage"] == 40.0
    assert inv.status == "draft"
    assert inv.tax_rate == 0
    assert len(inv.items) == 1
    assert inv.items[0].description == f"40% of {co.human_number}: Add subpanel"
    assert inv.title == "40% of Add subpanel"
    assert co.converted_percentage == Decimal("40")


def test_change_order_end_to_end_example(ctx):
    mat = MaterialCatalogItem(name="#12 THHN (ft)", unit="ft", standard_cost=Decimal("2.5"))
    db.session.add(mat)
    db.session.flush()

    co = create_document(db.session, DocumentKind.CHANGE_ORDER, {
        "title": "Extra kitchen circuits",
        "tax_rate": 8,
        "items": [
            {"item_type": "material", "catalog_ref": mat.id, "quantity": 10, "unit_price": 2.5,
             "markup_percentage": 10},
            {"item_type": "custom", "description": "Labor", "quantity": 1, "unit_price": 100,
             "markup_percentage": 0},
        ],
    })
    assert co.subtotal == Decimal("127.50")
    assert co.tax_amount == Decimal("10.20")
    assert co.total_amount == Decimal("137.70")

    apply_status(co, "sent")
    apply_status(co, "approved")
    inv = conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 50})
    assert inv.to_dict()["total_seed"] == pytest.approx(68.85)
    assert inv.total_amount == Decimal("68.85")


def test_full_conversion_copies_items_and_tax(ctx):
    co = _change_order()
    inv = conversions.convert_change_order_to_invoice(db.session, co.id)

    assert [i.description for i in inv.items] == ["60A subpanel", "Labor"]
    assert inv.tax_rate == co.tax_rate
    assert (inv.subtotal, inv.tax_amount, inv.total_amount) == (co.subtotal, co.tax_amount, co.total_amount)
    assert inv.provenance["percentage"] is None
    assert inv.title == f"Invoice for {co.human_number}: Add subpanel"
    assert co.converted_percentage == Decimal("100")


def test_conversion_copies_customer_snapshot_and_project(ctx):
    co = _change_order()
    inv = conversions.convert_change_order_to_invoice(
        db.session, co.id, {"percentage": 25, "title": "Progress bill #1", "due_date": "2026-12-01"}
    )
    assert inv.customer_name == "Acme Builders"
    assert inv.customer_email == "ap@acme.test"
    assert inv.project_id == 12
    assert inv.title == "Progress bill #1"
    assert inv.due_date.isoformat() == "2026-12-01"
    assert inv.human_number.startswith("INV-")


@pytest.mark.parametrize("steps", [[], ["sent"], ["sent", "rejected"], ["cancelled"]])
def test_only_approved_change_orders_convert(ctx, steps):
    co = create_document(db.session, DocumentKind.CHANGE_ORDER, {"title": "x", "items": [item("a", 1, 10)]})
    for s in steps:
        apply_status(co, s)
    with pytest.raises(ConversionNotAllowedError):
        conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 50})
    assert db.session.query(Invoice).count() == 0


@pytest.mark.parametrize("pct", [0, -5, 100.01, "abc"])
def test_percentage_bounds(ctx, pct):
    co = _change_order()
    with pytest.raises(ValidationError):
        conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": pct})


def test_cumulative_percentage_capped_at_100(ctx):
    co = _change_order()
    conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 60})
    conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 40})
    assert co.converted_percentage == Decimal("100")

    with pytest.raises(AlreadyConvertedError):
        conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 1})
    assert db.session.query(Invoice).count() == 2


def test_full_conversion_after_partial_rejected(ctx):
    co = _change_order()
    conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 30})
    with pytest.raises(AlreadyConvertedError) as exc:
        conversions.convert_change_order_to_invoice(db.session, co.id)
    assert "70% remains" in str(exc.value)


def test_deleting_draft_invoice_releases_share(ctx):
    co = _change_order()
    inv = conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 70})
    delete_document(db.session, inv)
    assert co.converted_percentage == Decimal("0")
    # the share can be billed again
    conversions.convert_change_order_to_invoice(db.session, co.id, {"percentage": 100})


def test_estimate_percentage_conversion(ctx):
    est = _approved(DocumentKind.ESTIMATE, {"title": "Rewire", "tax_rate": 0, "items": [item("Rewire", 1, 10000)]})
    deposit = conversions.convert_estimate_to_invoice(db.session, est.id, {"percentage": "33.33"})
    assert deposit.total_amount == Decimal("3333.00")
    assert deposit.provenance["source_type"] == "estimate"
    assert deposit.items[0].description == f"33.33% of {est.human_number}: Rewire"
    assert est.converted_percentage == Decimal("33.33")


def test_estimate_must_be_approved(ctx):
    est = create_document(db.session, DocumentKind.ESTIMATE, {"title": "Draft only"})
    with pytest.raises(ConversionNotAllowedError):
        conversions.convert_estimate_to_invoice(db.session, est.id)


def test_manual_total_source_converts_in_full(ctx):
    co = _approved(DocumentKind.CHANGE_ORDER, {"title": "Lump sum", "items": [], "total_amount": 950})
    inv = conversions.convert_change_order_to_invoice(db.session, co.id)
    assert inv.manual_total is True
    assert inv.total_amount == Decimal("950.00")


def test_conversion_of_missing_source_is_not_found(ctx):
    from app.services.errors import NotFoundError
    with pytest.raises(NotFoundError):
        conversions.convert_change_order_to_invoice(db.session, 4040, {"percentage": 10})


# ---- HTTP surface ----

def test_from_change_order_endpoint(app, client):
    with app.app_context():
        co = _change_order()
        db.session.commit()
        coid, total = co.id, float(co.total_amount)

    resp = client.post(f"/invoices/from-change-order/{coid}", json={"percentage": 40})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["total_amount"] == pytest.approx(round(total * 0.4, 2))
    assert body["provenance"] == {"source_type": "change_order", "source_id": coid, "percentage": 40.0}

    source = client.get(f"/change-orders/{coid}").get_json()
    assert source["converted_percentage"] == 40.0

    resp = client.post(f"/invoices/from-change-order/{coid}", json={"percentage": 70})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_converted"


def test_from_estimate_endpoint_requires_approval(app, client):
    with app.app_context():
        est = create_document(db.session, DocumentKind.ESTIMATE, {"title": "Pending"})
        db.session.commit()
        eid = est.id
    resp = client.post(f"/invoices/from-estimate/{eid}", json={})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "conversion_not_allowed"


def test_converted_invoice_is_independent_of_source(app, client):
    with app.app_context():
        co = _change_order()
        db.session.commit()
        coid = co.id
    inv = client.post(f"/invoices/from-change-order/{coid}", json={}).get_json()
    out = client.put(f"/invoices/{inv['id']}", json={"items": [item("Adjusted", 1, 1)]}).get_json()
    assert out["total_amount"] == 1.08

    with app.app_context():
        source = get_document(db.session, DocumentKind.CHANGE_ORDER, coid)
        assert len(source.items) == 2
        assert db.session.query(ChangeOrder).count() == 1
        assert db.session.query(Estimate).count() == 0


def _reloaded(kind, doc_id):
    db.session.commit()
    db.session.expire_all()
    return get_document(db.session, kind, doc_id)


def test_stored_subtotal_matches_reloaded_items(ctx):
    co = create_document(db.session, DocumentKind.CHANGE_ORDER, {
        "title": "Wire pull", "items": [item("THHN", 1000, "1.00005")],
    })
    co = _reloaded(DocumentKind.CHANGE_ORDER, co.id)

    assert co.items[0].unit_price == Decimal("1.0001")
    assert co.subtotal == round_currency(sum(i.line_total for i in co.line_items()))
    assert co.total_amount == Decimal("1000.10")


def test_status_only_update_on_reloaded_sent_document(ctx):
    co = create_document(db.session, DocumentKind.CHANGE_ORDER, {
        "title": "Wire pull", "tax_rate": "8.2505",
        "items": [item("THHN", 1000, "1.00005", markup_percentage="2.0005")],
    })
    apply_status(co, "sent")
    total = co.total_amount
    co = _reloaded(DocumentKind.CHANGE_ORDER, co.id)

    update_document(db.session, co, {"status": "approved"})
    assert co.status == "approved"
    assert co.total_amount == total


def test_full_conversion_of_precise_source_keeps_totals(ctx):
    co = _approved(DocumentKind.CHANGE_ORDER, {
        "title": "Service upgrade", "tax_rate": "8.25",
        "items": [
            item("Meter base", "2.3333", "12.34567", markup_percentage="7.5"),
            item("Labor", "3.125", "87.655", markup_percentage="12.345"),
        ],
    })
    co = _reloaded(DocumentKind.CHANGE_ORDER, co.id)
    inv = conversions.convert_change_order_to_invoice(db.session, co.id)

    assert (inv.subtotal, inv.tax_amount, inv.total_amount) == (co.subtotal, co.tax_amount, co.total_amount)
    inv = _reloaded(DocumentKind.INVOICE, inv.id)
    assert inv.total_amount == co.total_amount


def test_percentage_held_at_three_places():
    assert conversions.parse_percentage("33.33333") == Decimal("33.333")


def test_invoice_generated_is_logged_as_one_json_line(app, client, caplog):
    with app.app_context():
        co = _change_order()
        db.session.commit()
        coid = co.id

    caplog.set_level("INFO", logger=app.logger.name)
    body = client.post(f"/invoices/from-change-order/{coid}", json={}).get_json()

    events = [json.loads(r.getMessage()) for r in caplog.records if '"invoice_generated"' in r.getMessage()]
    assert len(events) == 1
    assert events[0]["source"] == "change_order"
    assert events[0]["invoice_id"] == body["id"]
    assert events[0]["invoice_number"] == body["human_number"]
