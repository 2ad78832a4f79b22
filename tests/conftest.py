import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

import pytest
from app import create_app
from app.extensions import db


@pytest.fixture(scope="session")
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "MAIL_SUPPRESS_SEND": True,
        "MAIL_DEFAULT_SENDER": "Billing <billing@example.test>",
        "APP_BASE_URL": "http://example.test",
        "WTF_CSRF_ENABLED": False,
        "LOGIN_DISABLED": True,
        "RATELIMIT_ENABLED": False,
        "COMPANY_NAME": "Volt Electric",
        "COMPANY_EMAIL": "office@volt.example",
        "DEFAULT_TAX_RATE": "0",
        "DEFAULT_PAYMENT_TERMS_DAYS": 30,
    })
    with app.app_context():
        db.create_all()
        db.session.expire_on_commit = False
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()


@pytest.fixture()
def ctx(app):
    """App context for service-level tests that talk to db.session directly."""
    with app.app_context():
        yield
        db.session.rollback()


def item(description="Item", quantity=1, unit_price=0, **extra):
    return {"description": description, "quantity": quantity, "unit_price": unit_price, **extra}
