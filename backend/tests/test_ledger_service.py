import pytest

from app.errors import InsufficientStockError, NotFoundError
from app.extensions import db
from app.models import StockMovement, StoreInventory
from app.services import ledger_service
from app.services.concurrency import unit_of_work
from app.validation import ValidationError


def test_adjust_store_inventory_creates_row_lazily(make_store, make_saree):
    store = make_store()
    saree = make_saree(total_stock=5)

    assert db.session.query(StoreInventory).filter_by(store_id=store.id, saree_id=saree.id).first() is None

    with unit_of_work():
        row = ledger_service.adjust_store_inventory(store.id, saree.id, 3)
        again = ledger_service.adjust_store_inventory(store.id, saree.id, 2)

    assert row.id == again.id
    assert ledger_service.get_store_quantity(store.id, saree.id) == 5
    assert db.session.query(StoreInventory).filter_by(store_id=store.id, saree_id=saree.id).count() == 1


def test_adjust_store_inventory_refuses_to_go_negative(make_store, make_saree):
    store = make_store()
    saree = make_saree(store_allocations={store.id: 2})

    with pytest.raises(InsufficientStockError) as excinfo:
        with unit_of_work():
            ledger_service.adjust_store_inventory(store.id, saree.id, -3)

    err = excinfo.value
    assert err.details == {
        "saree_id": saree.id,
        "store_id": store.id,
        "location": "store",
        "requested_quantity": 3,
        "available_quantity": 2,
    }
    assert ledger_service.get_store_quantity(store.id, saree.id) == 2


def test_decrement_of_missing_store_row_is_insufficient_not_created(make_store, make_saree):
    store = make_store()
    saree = make_saree(total_stock=4)

    with pytest.raises(InsufficientStockError):
        with unit_of_work():
            ledger_service.adjust_store_inventory(store.id, saree.id, -1)

    assert db.session.query(StoreInventory).count() == 0


def test_adjust_total_stock_cannot_drop_below_online(make_saree):
    saree = make_saree(online_stock=4, total_stock=6)

    with pytest.raises(InsufficientStockError) as excinfo:
        with unit_of_work():
            ledger_service.adjust_total_stock(saree.id, -3)
    assert excinfo.value.available == 2

    with unit_of_work():
        updated = ledger_service.adjust_total_stock(saree.id, -2)
    assert updated.total_stock == 4


def test_adjust_online_stock_bounds(make_saree):
    saree = make_saree(online_stock=2, total_stock=5)

    with pytest.raises(InsufficientStockError):
        with unit_of_work():
            ledger_service.adjust_online_stock(saree.id, -3)
    with pytest.raises(InsufficientStockError):
        with unit_of_work():
            ledger_service.adjust_online_stock(saree.id, 4)

    with unit_of_work():
        updated = ledger_service.adjust_online_stock(saree.id, 3)
    assert updated.online_stock == 5


def test_adjustments_reject_zero_and_unknown_saree(db_session):
    with pytest.raises(ValidationError):
        ledger_service.adjust_total_stock(1, 0)
    with pytest.raises(NotFoundError):
        with unit_of_work():
            ledger_service.adjust_total_stock(9999, 1)


def test_claim_unallocated_stock(make_store, make_saree):
    store = make_store()
    saree = make_saree(online_stock=2, store_allocations={store.id: 3})
    with unit_of_work():
        ledger_service.adjust_total_stock(saree.id, 4)

    assert ledger_service.get_unallocated_stock(saree.id) == 4
    with unit_of_work():
        ledger_service.claim_unallocated_stock(saree.id, 4)
    with pytest.raises(InsufficientStockError) as excinfo:
        with unit_of_work():
            ledger_service.claim_unallocated_stock(saree.id, 5)
    assert excinfo.value.details["location"] == "warehouse"
    assert excinfo.value.available == 4


def test_record_movement_validation(make_saree):
    saree = make_saree(total_stock=1)

    with pytest.raises(ValidationError):
        ledger_service.record_movement(
            saree_id=saree.id, quantity=0, movement_type="sale", source="store", order_ref_id="x:1"
        )
    with pytest.raises(ValidationError):
        ledger_service.record_movement(
            saree_id=saree.id, quantity=1, movement_type="gift", source="store", order_ref_id="x:1"
        )
    with pytest.raises(ValidationError):
        ledger_service.record_movement(
            saree_id=saree.id, quantity=1, movement_type="sale", source="kiosk", order_ref_id="x:1"
        )
    with pytest.raises(NotFoundError):
        ledger_service.record_movement(
            saree_id=9999, quantity=1, movement_type="sale", source="store", order_ref_id="x:1"
        )
    with pytest.raises(NotFoundError):
        ledger_service.record_movement(
            saree_id=saree.id, quantity=1, movement_type="sale", source="store",
            order_ref_id="x:1", store_id=9999,
        )
    db.session.rollback()


def test_movements_are_append_only(make_saree):
    saree = make_saree(total_stock=3)
    movement = db.session.query(StockMovement).filter_by(saree_id=saree.id).first()

    movement.notes = "rewritten"
    with pytest.raises(ValueError):
        db.session.flush()
    db.session.rollback()

    movement = db.session.query(StockMovement).filter_by(saree_id=saree.id).first()
    db.session.delete(movement)
    with pytest.raises(ValueError):
        db.session.flush()
    db.session.rollback()

    assert db.session.query(StockMovement).filter_by(saree_id=saree.id).count() == 1


def test_list_movements_filters_and_orders(make_store, make_saree):
    store_a = make_store()
    store_b = make_store()
    saree = make_saree(online_stock=1, store_allocations={store_a.id: 2, store_b.id: 3})

    all_moves = ledger_service.list_movements(saree_id=saree.id)
    assert [m.movement_type for m in all_moves] == ["adjustment", "transfer", "transfer", "transfer"]
    assert [m.id for m in all_moves] == sorted(m.id for m in all_moves)

    only_b = ledger_service.list_movements(saree_id=saree.id, store_id=store_b.id)
    assert [(m.quantity, m.source) for m in only_b] == [(3, "store")]

    online = ledger_service.list_movements(saree_id=saree.id, source="online")
    assert [m.quantity for m in online] == [1]

    assert len(ledger_service.list_movements(saree_id=saree.id, limit=2)) == 2
    assert {m.order_ref_id for m in all_moves} == {f"saree:{saree.id}"}


def test_list_movements_limit_keeps_newest_and_offset_pages_back(make_store, make_saree):
    store_a = make_store()
    store_b = make_store()
    saree = make_saree(online_stock=1, store_allocations={store_a.id: 2, store_b.id: 3})
    ids = [m.id for m in ledger_service.list_movements(saree_id=saree.id)]
    assert len(ids) == 4

    newest = ledger_service.list_movements(saree_id=saree.id, limit=2)
    assert [m.id for m in newest] == ids[2:]

    older = ledger_service.list_movements(saree_id=saree.id, limit=2, offset=2)
    assert [m.id for m in older] == ids[:2]

    assert ledger_service.list_movements(saree_id=saree.id, limit=2, offset=4) == []
