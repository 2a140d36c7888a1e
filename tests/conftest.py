"""Shared fixtures: a Flask app on a temporary SQLite file per test."""

from __future__ import annotations

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from tripgate.app import create_app
from tripgate.database import db
from tripgate.models import ROLE_CUSTOMER, STATUS_ACTIVE, Account, hash_password

ADMIN_NAME = "Admin Park"
ADMIN_PHONE = "010-1234-5678"
ADMIN_PASSWORD = "harbour-lights-42"


@pytest.fixture
def app(monkeypatch, tmp_path):
    """Create test Flask app with a temporary SQLite database file."""
    monkeypatch.setenv("SECRET_KEY", "test_secret_key_for_testing_only")
    monkeypatch.setenv("TRIPGATE_DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("SESSION_COOKIE_SECURE", "false")
    monkeypatch.setenv("LOGIN_RATE_LIMIT", "1000 per minute")
    monkeypatch.setenv("DEBUG_ERRORS", "false")
    monkeypatch.setenv(
        "ADMIN_ALLOWLIST",
        json.dumps([{
            "name": ADMIN_NAME,
            "phone": ADMIN_PHONE,
            "password_hash": hash_password(ADMIN_PASSWORD),
        }]),
    )

    app = create_app()
    app.config["TESTING"] = True
    # init_db() sets SQLALCHEMY_DATABASE_URI from TRIPGATE_DB_PATH and seeds the catalog.

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """POST a credential payload to the login endpoint."""
    def _login(**payload):
        return client.post("/api/auth/login", json=payload)
    return _login


def make_account(**fields) -> Account:
    fields.setdefault("role", ROLE_CUSTOMER)
    fields.setdefault("status", STATUS_ACTIVE)
    password = fields.pop("password", None)
    account = Account(**fields)
    if password is not None:
        account.set_password(password)
    db.session.add(account)
    db.session.commit()
    return account


def reload(model, pk):
    """Fetch a fresh copy after requests committed in their own session."""
    db.session.expire_all()
    return db.session.get(model, pk)
