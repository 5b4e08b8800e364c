import pytest

from app.errors import AlreadyReceivedError, InsufficientStockError, InvalidStateTransitionError, NotFoundError
from app.extensions import db
from app.services import inventory_service, ledger_service
from app.services import stock_request_service as requests_svc
from app.validation import ValidationError


@pytest.fixture
def warehouse(make_store, make_saree):
    """Store S with 2 units of a saree; 20 more sitting unallocated."""
    store = make_store()
    saree = make_saree(store_allocations={store.id: 2})
    inventory_service.adjust_warehouse_stock(saree.id, 20, notes="festival lot")
    return store, saree


def _dispatched(store, saree, quantity=10):
    req = requests_svc.create_stock_request(store.id, saree.id, quantity, requested_by=7)
    requests_svc.approve_stock_request(req.id, actor_id=8)
    requests_svc.dispatch_stock_request(req.id)
    return req.id


def test_lifecycle_moves_stock_exactly_once(warehouse, assert_consistent):
    store, saree = warehouse
    req = requests_svc.create_stock_request(store.id, saree.id, 10, requested_by=7, notes="festival")
    assert req.status == "pending"

    assert requests_svc.approve_stock_request(req.id, actor_id=8).status == "approved"
    assert ledger_service.get_store_quantity(store.id, saree.id) == 2
    assert requests_svc.dispatch_stock_request(req.id).status == "dispatched"
    assert ledger_service.get_store_quantity(store.id, saree.id) == 2

    received = requests_svc.receive_stock_request(req.id, actor_id=9)
    assert received.status == "received"
    assert received.approved_by == 8
    assert received.received_by == 9
    assert received.received_at is not None

    assert ledger_service.get_store_quantity(store.id, saree.id) == 12
    assert ledger_service.get_unallocated_stock(saree.id) == 10
    db.session.refresh(saree)
    assert saree.total_stock == 22

    moves = ledger_service.list_movements(order_ref_id=f"stock_request:{req.id}")
    assert [(m.quantity, m.movement_type, m.source, m.store_id) for m in moves] == [
        (10, "transfer", "store", store.id)
    ]
    assert_consistent()


def test_second_receive_is_rejected_without_side_effects(warehouse, ledger_snapshot):
    store, saree = warehouse
    request_id = _dispatched(store, saree)
    requests_svc.receive_stock_request(request_id)
    before = ledger_snapshot()

    with pytest.raises(AlreadyReceivedError) as excinfo:
        requests_svc.receive_stock_request(request_id)
    assert excinfo.value.status_code == 409
    assert ledger_snapshot() == before
    assert ledger_service.get_store_quantity(store.id, saree.id) == 12


@pytest.mark.parametrize("target", ["dispatched", "received"])
def test_cannot_skip_approval(warehouse, target):
    store, saree = warehouse
    req = requests_svc.create_stock_request(store.id, saree.id, 3)

    with pytest.raises(InvalidStateTransitionError) as excinfo:
        requests_svc.transition_stock_request(req.id, target)
    assert excinfo.value.current_status == "pending"
    assert excinfo.value.target_status == target
    assert requests_svc.get_stock_request(req.id).status == "pending"


def test_rejected_is_terminal(warehouse):
    store, saree = warehouse
    req = requests_svc.create_stock_request(store.id, saree.id, 3)
    rejected = requests_svc.reject_stock_request(req.id, actor_id=4, reason="no festival demand")
    assert rejected.status == "rejected"
    assert rejected.approved_by == 4
    assert rejected.rejection_reason == "no festival demand"

    for target in ("approved", "dispatched", "received", "rejected"):
        with pytest.raises(InvalidStateTransitionError):
            requests_svc.transition_stock_request(req.id, target)


def test_approve_twice_is_invalid(warehouse):
    store, saree = warehouse
    req = requests_svc.create_stock_request(store.id, saree.id, 3)
    requests_svc.approve_stock_request(req.id)
    with pytest.raises(InvalidStateTransitionError):
        requests_svc.approve_stock_request(req.id)


def test_warehouse_shortfall_leaves_request_dispatched(make_store, make_saree, ledger_snapshot):
    store = make_store()
    other = make_store()
    saree = make_saree(store_allocations={other.id: 8})
    inventory_service.adjust_warehouse_stock(saree.id, 2)
    request_id = _dispatched(store, saree, quantity=5)
    before = ledger_snapshot()

    with pytest.raises(InsufficientStockError) as excinfo:
        requests_svc.receive_stock_request(request_id)
    assert excinfo.value.details["location"] == "warehouse"
    assert excinfo.value.available == 2

    assert ledger_snapshot() == before
    assert requests_svc.get_stock_request(request_id).status == "dispatched"


@pytest.mark.parametrize("quantity", [0, -4, "ten"])
def test_create_rejects_bad_quantity(warehouse, quantity):
    store, saree = warehouse
    with pytest.raises(ValidationError):
        requests_svc.create_stock_request(store.id, saree.id, quantity)


def test_create_requires_known_store_and_saree(warehouse):
    store, saree = warehouse
    with pytest.raises(NotFoundError):
        requests_svc.create_stock_request(9999, saree.id, 1)
    with pytest.raises(NotFoundError):
        requests_svc.create_stock_request(store.id, 9999, 1)
    with pytest.raises(NotFoundError):
        requests_svc.approve_stock_request(9999)


def test_unknown_target_status(warehouse):
    store, saree = warehouse
    req = requests_svc.create_stock_request(store.id, saree.id, 1)
    with pytest.raises(ValidationError):
        requests_svc.transition_stock_request(req.id, "pending")


def test_list_filters(warehouse, make_store):
    store, saree = warehouse
    other = make_store()
    first = requests_svc.create_stock_request(store.id, saree.id, 1)
    second = requests_svc.create_stock_request(store.id, saree.id, 2)
    requests_svc.create_stock_request(other.id, saree.id, 3)
    requests_svc.approve_stock_request(second.id)

    assert len(requests_svc.list_stock_requests()) == 3
    assert {r.id for r in requests_svc.list_stock_requests(store_id=store.id)} == {first.id, second.id}
    assert [r.id for r in requests_svc.list_stock_requests(store_id=store.id, status="approved")] == [second.id]
    with pytest.raises(ValidationError):
        requests_svc.list_stock_requests(status="lost")


def test_request_needs_an_active_shop_saree(make_store, make_saree):
    store = make_store()
    web_only = make_saree(distribution_channel="online", online_stock=6)
    retired = make_saree(total_stock=5)
    inventory_service.update_saree(retired.id, {"is_active": False})

    for saree in (web_only, retired):
        with pytest.raises(ValidationError):
            requests_svc.create_stock_request(store.id, saree.id, 4)
    assert requests_svc.list_stock_requests() == []


def test_receive_rechecks_the_channel(make_store, make_saree, ledger_snapshot):
    store = make_store()
    saree = make_saree(total_stock=10)
    request_id = _dispatched(store, saree, quantity=4)
    inventory_service.update_distribution_channel(saree.id, "online")
    before = ledger_snapshot()

    with pytest.raises(ValidationError):
        requests_svc.receive_stock_request(request_id)

    assert ledger_snapshot() == before
    assert requests_svc.get_stock_request(request_id).status == "dispatched"
    assert ledger_service.get_store_quantity(store.id, saree.id) == 0
