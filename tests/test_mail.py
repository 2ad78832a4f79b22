import pytest

from app.extensions import db, mail
from app.models import EmailLog, Estimate
from app.services import pdf
from app.services.email import is_suppressed

from conftest import item


@pytest.fixture()
def fake_pdf(monkeypatch):
    monkeypatch.setattr(pdf, "render_document_pdf", lambda doc: b"%PDF-1.4 test")


def _estimate(client, **extra):
    payload = {
        "title": "Panel upgrade",
        "customer_name": "Dana Ortiz",
        "customer_email": "Dana@Example.com",
        "tax_rate": 8,
        "items": [item("200A panel", 1, 1200)],
        **extra,
    }
    resp = client.post("/estimates", json=payload)
    assert resp.status_code == 201
    return resp.get_json()


def test_document_template_renders_totals(app):
    with app.app_context():
        est = Estimate(title="Panel upgrade", human_number="EST-2026-0001", customer_name="Dana",
                       subtotal=100, tax_rate=8, tax_amount=8, total_amount=108)
        ctx = dict(doc=est, data=est.to_dict(), message="See attached.",
                   company_name="Volt Electric", company_email="office@volt.example")
        text = app.jinja_env.get_template("email/document.txt").render(**ctx)
        html = app.jinja_env.get_template("email/document.html").render(**ctx)
        for body in (text, html):
            assert "EST-2026-0001" in body
            assert "108.00" in body
            assert "See attached." in body


def test_send_email_marks_draft_sent(app, client, fake_pdf):
    est = _estimate(client)
    with mail.record_messages() as outbox:
        resp = client.post(f"/estimates/{est['id']}/send-email", json={"message": "Thanks for the walkthrough."})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["to"] == "dana@example.com"
    assert body["document"]["status"] == "sent"

    assert len(outbox) == 1
    msg = outbox[0]
    assert msg.recipients == ["dana@example.com"]
    assert msg.subject == f"Estimate {est['human_number']} from Volt Electric"
    assert "Thanks for the walkthrough." in msg.body
    assert msg.attachments[0].filename == f"{est['human_number']}.pdf"
    assert msg.attachments[0].data == b"%PDF-1.4 test"

    with app.app_context():
        row = db.session.get(EmailLog, body["email_log_id"])
        assert row.status == "sent"
        assert (row.document_type, row.document_id) == ("estimate", est["id"])


def test_send_email_explicit_recipient_and_subject(client, fake_pdf):
    est = _estimate(client)
    with mail.record_messages() as outbox:
        resp = client.post(f"/estimates/{est['id']}/send-email",
                           json={"to": "pm@builder.example", "subject": "Panel quote"})
    assert resp.status_code == 200
    assert outbox[0].recipients == ["pm@builder.example"]
    assert outbox[0].subject == "Panel quote"


def test_resending_sent_document_keeps_status(client, fake_pdf):
    est = _estimate(client)
    client.post(f"/estimates/{est['id']}/send-email")
    client.put(f"/estimates/{est['id']}", json={"status": "approved"})
    resp = client.post(f"/estimates/{est['id']}/send-email")
    assert resp.status_code == 200
    assert resp.get_json()["document"]["status"] == "approved"


def test_missing_recipient_is_400(client, fake_pdf):
    est = _estimate(client, customer_email=None)
    resp = client.post(f"/estimates/{est['id']}/send-email")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"


def test_suppressed_recipient_fails_without_status_change(app, client, fake_pdf):
    est = _estimate(client)
    with app.app_context():
        db.session.add(EmailLog(to_email="dana@example.com", template="document", subject="", status="bounced", meta={}))
        db.session.commit()

    with mail.record_messages() as outbox:
        resp = client.post(f"/estimates/{est['id']}/send-email")
    assert resp.status_code == 502
    assert resp.get_json()["error"] == "delivery_failed"
    assert outbox == []
    assert client.get(f"/estimates/{est['id']}").get_json()["status"] == "draft"

    with app.app_context():
        failed = EmailLog.query.filter_by(to_email="dana@example.com", status="failed").one()
        assert failed.meta["reason"] == "suppressed"


def test_transport_failure_is_502_and_logged(app, client, fake_pdf, monkeypatch):
    est = _estimate(client)

    def boom(msg):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr(mail, "send", boom)
    resp = client.post(f"/estimates/{est['id']}/send-email")
    assert resp.status_code == 502
    assert client.get(f"/estimates/{est['id']}").get_json()["status"] == "draft"

    with app.app_context():
        row = EmailLog.query.filter_by(document_id=est["id"]).one()
        assert row.status == "failed"
        assert "smtp down" in row.meta["error"]


def test_is_suppressed_true_for_recent_bounce(app):
    with app.app_context():
        db.session.add(EmailLog(
            user_id=None,
            to_email="toxic@example.com",
            template="unknown",
            subject="",
            status="bounced",
            meta={},
        ))
        db.session.commit()

        assert is_suppressed("toxic@example.com") is True
        assert is_suppressed("new@example.com") is False
