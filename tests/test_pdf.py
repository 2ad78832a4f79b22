import sys
import types

import pytest

from app.extensions import db
from app.services import pdf
from app.services.documents import get_document
from app.services.lifecycle import DocumentKind

from conftest import item


class _FakeHTML:
    rendered = []

    def __init__(self, string, base_url=None):
        self.string = string

    def write_pdf(self):
        _FakeHTML.rendered.append(self.string)
        return b"%PDF-1.4 fake"


@pytest.fixture()
def fake_weasyprint(monkeypatch):
    _FakeHTML.rendered = []
    monkeypatch.setitem(sys.modules, "weasyprint", types.SimpleNamespace(HTML=_FakeHTML))
    return _FakeHTML


def _invoice(client):
    return client.post("/invoices", json={
        "title": "Service upgrade",
        "customer_name": "Dana Ortiz",
        "tax_rate": 8,
        "items": [item("Meter base", 1, 450), item("Labor", 4, 85, unit="hour")],
    }).get_json()


def test_html_uses_stored_totals(app, client):
    inv = _invoice(client)
    with app.app_context():
        doc = get_document(db.session, DocumentKind.INVOICE, inv["id"])
        html = pdf.render_document_html(doc)
    assert inv["human_number"] in html
    assert "Volt Electric" in html
    assert "Dana Ortiz" in html
    assert "Meter base" in html
    assert "853.20" in html


def test_pdf_route_returns_pdf(client, fake_weasyprint):
    inv = _invoice(client)
    resp = client.get(f"/invoices/{inv['id']}/pdf")
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "application/pdf"
    assert resp.headers["Content-Disposition"] == f'inline; filename="{inv["human_number"]}.pdf"'
    assert resp.data == b"%PDF-1.4 fake"
    assert len(fake_weasyprint.rendered) == 1


@pytest.mark.parametrize("prefix", ["/estimates", "/change-orders", "/service-calls"])
def test_pdf_route_per_document_type(client, fake_weasyprint, prefix):
    doc = client.post(prefix, json={"title": "Lighting retrofit"}).get_json()
    resp = client.get(f"{prefix}/{doc['id']}/pdf")
    assert resp.status_code == 200
    assert resp.data.startswith(b"%PDF")


def test_render_failure_is_delivery_error(client, monkeypatch):
    class _Broken:
        def __init__(self, **kwargs):
            raise OSError("cairo missing")

    monkeypatch.setitem(sys.modules, "weasyprint", types.SimpleNamespace(HTML=_Broken))
    inv = _invoice(client)
    resp = client.get(f"/invoices/{inv['id']}/pdf")
    assert resp.status_code == 502
    assert resp.get_json()["error"] == "delivery_failed"


def test_pdf_for_missing_document_404(client, fake_weasyprint):
    assert client.get("/estimates/999/pdf").status_code == 404
