"""
Shared pytest fixtures.

Every test gets a fresh application on TestConfig (in-memory SQLite, CSRF off)
with all tables created inside an active application context.
"""

from datetime import date

import pytest

from bizdash import create_app
from bizdash.api import get_storage
from bizdash.extensions import db


@pytest.fixture
def app():
    app = create_app("config.TestConfig")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def storage(app):
    return get_storage()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    """Test client with a registered, logged-in user."""
    response = client.post("/api/register", json={"username": "admin", "password": "secret123"})
    assert response.status_code == 201
    return client


@pytest.fixture
def vat_rate(storage):
    return storage.vat_rates.create(
        {"name": "ÁFA 27%", "rate": "27", "description": None, "valid_from": date(2012, 1, 1), "valid_to": None}
    )


@pytest.fixture
def product_values(vat_rate):
    """Factory for valid product column values."""

    def _make(sku: str, **overrides) -> dict:
        values = {
            "name": f"Product {sku}",
            "sku": sku,
            "description": None,
            "price": "100.00",
            "vat_rate_id": vat_rate.id,
            "stock_level": 10,
            "min_stock_level": 0,
            "unit": "db",
        }
        values.update(overrides)
        return values

    return _make


@pytest.fixture
def customer(storage):
    return storage.contacts.create({"name": "Kovács Kft.", "type": "customer"})


@pytest.fixture
def supplier(storage):
    return storage.contacts.create({"name": "Nagy Beszállító Zrt.", "type": "supplier"})
