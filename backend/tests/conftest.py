"""
Pytest fixtures for the resale backend tests.

Provides an in-memory application, a clean database per test, a test
client, and small factories that insert rows directly (without running
the allocation recompute) so tests control exactly when it runs.
"""

import pytest

from resale import create_app
from resale.extensions import db
from resale.models import PurchaseSession, StorePurchase, Item, Store


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PLATFORM_FEE_BPS': 1000,
        'DEFAULT_MARKUP_PERCENT': 250,
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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def make_session(db_session):
    """Insert a purchase session row."""
    def _make(title="Saturday run", **costs):
        session = PurchaseSession(title=title, status="active", **costs)
        db_session.add(session)
        db_session.commit()
        return session
    return _make


@pytest.fixture(scope='function')
def make_store_purchase(db_session):
    """Insert a store purchase row."""
    def _make(session, *, item_count=0, price_input_mode="individual", **amounts):
        sp = StorePurchase(
            session_id=session.id,
            item_count=item_count,
            price_input_mode=price_input_mode,
            **amounts,
        )
        db_session.add(sp)
        db_session.commit()
        return sp
    return _make


@pytest.fixture(scope='function')
def make_items(db_session):
    """Insert n item rows against a store purchase."""
    def _make(store_purchase, n, *, purchase_cost=None):
        items = [
            Item(
                store_purchase_id=store_purchase.id,
                name=f"Item {i + 1}",
                status="in_stock",
                purchase_cost=purchase_cost,
            )
            for i in range(n)
        ]
        db_session.add_all(items)
        db_session.commit()
        return items
    return _make


@pytest.fixture(scope='function')
def store(db_session):
    """Create a supplier store."""
    store = Store(name="Second Street Shibuya", store_type="recycle", prefecture="Tokyo")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def read_allocated(db_session):
    """Re-read allocated_cost for the given item ids from the database."""
    def _read(item_ids):
        db_session.expire_all()
        rows = db_session.query(Item).filter(Item.id.in_(list(item_ids))).order_by(Item.id.asc()).all()
        return [row.allocated_cost for row in rows]
    return _read
