from __future__ import annotations

import pytest

from salesdocs import create_app
from salesdocs.extensions import db

PASSWORD = "secret123"


@pytest.fixture()
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "WTF_CSRF_ENABLED": False,
        }
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def register(client, account_type: str, email: str, **extra):
    payload = {"account_type": account_type, "email": email, "password": PASSWORD}
    if account_type == "organization":
        payload.setdefault("company_name", extra.pop("company_name", "Acme Trading"))
    payload.update(extra)
    return client.post("/auth/register", json=payload)


@pytest.fixture()
def org_client(app):
    client = app.test_client()
    resp = register(client, "organization", "owner@acme.test")
    assert resp.status_code == 201
    return client


@pytest.fixture()
def individual_client(app):
    client = app.test_client()
    resp = register(client, "individual", "solo@example.test", first_name="Sam")
    assert resp.status_code == 201
    return client


@pytest.fixture()
def anon_client(app):
    return app.test_client()
