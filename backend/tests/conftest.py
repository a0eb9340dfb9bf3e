"""
Pytest fixtures for shopledger backend tests.

Provides an in-memory database, a tenant-bound document store, factories for
products/customers/suppliers, and a test client.
"""

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.services import catalog_service
from shopledger.services.document_store import DocumentStore, clear_listeners


TENANT = "shop-a"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_TENANT': TENANT,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        clear_listeners()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        clear_listeners()


@pytest.fixture(scope='function')
def store(db_session):
    """Document store for the test tenant, one transaction per lifecycle call."""
    return DocumentStore(TENANT)


@pytest.fixture(scope='function')
def policy(app, monkeypatch):
    """Switch a ledger policy for one test: policy("STOCK_NEGATIVE_POLICY", "reject")."""
    def _set(key, value):
        monkeypatch.setitem(app.config, key, value)
    return _set


@pytest.fixture(scope='function')
def make_product(store):
    def _make(name="Exide N70", stock=0, **fields):
        data = {"code": name.upper().replace(" ", "-"), "name": name, "salePrice": 100, "tradePrice": 80, **fields}
        data["currentStock"] = stock
        return catalog_service.create_product(store, data)
    return _make


@pytest.fixture(scope='function')
def make_customer(store):
    def _make(name="Ali Traders"):
        return catalog_service.create_customer(store, {"name": name})
    return _make


@pytest.fixture(scope='function')
def make_supplier(store):
    def _make(name="Battery House"):
        return catalog_service.create_supplier(store, {"name": name})
    return _make


def stock_of(store, product_id) -> int:
    """Cached currentStock of a product."""
    return int(store.get(f"products/{product_id}")["currentStock"])


def tenant_headers(tenant: str = TENANT) -> dict:
    return {"X-Tenant-ID": tenant}
