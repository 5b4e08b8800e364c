"""
Pytest fixtures for the saree stock ledger tests.

Provides the app on an in-memory database, per-test table cleanup, the test
client and small factories that go through the services (so every fixture
row is backed by stock movements, like production data).
"""

import pytest
from app import create_app
from app.extensions import db
from app.services import inventory_service, ledger_service, reconciliation_service, store_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_ATTEMPTS': 3,
        'LOW_STOCK_THRESHOLD': 10,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_store(db_session):
    """Factory: active store."""
    counter = {"n": 0}

    def _make(name=None, address="12 Usman Road, T Nagar", **extra):
        counter["n"] += 1
        payload = {"name": name or f"Store {counter['n']}", "address": address, **extra}
        return store_service.create_store(payload)

    return _make


@pytest.fixture(scope='function')
def make_category(db_session):
    counter = {"n": 0}

    def _make(name=None):
        counter["n"] += 1
        return inventory_service.create_category(name or f"Category {counter['n']}")

    return _make


@pytest.fixture(scope='function')
def make_saree(db_session):
    """
    Factory: saree with its opening split.

    store_allocations maps store id -> quantity. The opening split covers
    online_stock + the store allocations; any larger total_stock is received
    afterwards as unallocated warehouse stock.
    """
    counter = {"n": 0}

    def _make(
        name=None,
        price_cents=250_000,
        distribution_channel="both",
        online_stock=0,
        store_allocations=None,
        total_stock=None,
        category_id=None,
        sku=None,
    ):
        counter["n"] += 1
        allocations = [
            {"store_id": store_id, "quantity": qty}
            for store_id, qty in (store_allocations or {}).items()
        ]
        if distribution_channel == "online":
            opening = online_stock
        else:
            opening = online_stock + sum(a["quantity"] for a in allocations)
        payload = {
            "name": name or f"Saree {counter['n']}",
            "price_cents": price_cents,
            "distribution_channel": distribution_channel,
            "total_stock": opening,
        }
        if distribution_channel != "online":
            payload["online_stock"] = online_stock
        if category_id is not None:
            payload["category_id"] = category_id
        if sku is not None:
            payload["sku"] = sku
        saree = inventory_service.create_saree(payload, store_allocations=allocations)
        if total_stock is not None and total_stock > opening:
            inventory_service.adjust_warehouse_stock(saree.id, total_stock - opening, notes="unallocated")
            saree = inventory_service.get_saree(saree.id)
        return saree

    return _make


@pytest.fixture(scope='function')
def ledger_snapshot(db_session):
    """Callable returning every counter, for before/after comparisons."""
    from app.models import Saree, StockMovement, StoreInventory

    def _snapshot():
        db.session.expire_all()
        return {
            "sarees": sorted(
                (s.id, s.total_stock, s.online_stock) for s in db.session.query(Saree).all()
            ),
            "store_inventory": sorted(
                (r.store_id, r.saree_id, r.quantity) for r in db.session.query(StoreInventory).all()
            ),
            "movements": db.session.query(StockMovement).count(),
        }

    return _snapshot


@pytest.fixture(scope='function')
def assert_consistent(db_session):
    """Callable asserting the ledger invariants hold for every saree."""
    from app.models import Saree

    def _check():
        db.session.expire_all()
        report = reconciliation_service.reconcile()
        assert report["discrepancies"] == []
        for saree in db.session.query(Saree).all():
            in_stores = ledger_service.get_store_allocated_stock(saree.id)
            unallocated = ledger_service.get_unallocated_stock(saree.id)
            assert unallocated >= 0
            assert saree.online_stock <= saree.total_stock
            assert saree.total_stock == saree.online_stock + in_stores + unallocated

    return _check
