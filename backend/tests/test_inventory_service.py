import pytest

from app.errors import InsufficientStockError, NotFoundError
from app.services import exchange_service, inventory_service, ledger_service, store_sale_service, store_service
from app.validation import ValidationError


def _create(payload, allocations=None):
    base = {"name": "Banarasi", "price_cents": 180_000}
    base.update(payload)
    return inventory_service.create_saree(base, store_allocations=allocations)


def test_create_saree_records_the_opening_split(make_store, assert_consistent):
    store_a = make_store()
    store_b = make_store()
    saree = _create(
        {"total_stock": 10, "online_stock": 3, "distribution_channel": "both", "sku": "BAN-001"},
        [{"store_id": store_a.id, "quantity": 4}, {"store_id": store_b.id, "quantity": 3}],
    )

    assert (saree.total_stock, saree.online_stock) == (10, 3)
    assert ledger_service.get_store_quantity(store_a.id, saree.id) == 4
    assert ledger_service.get_store_quantity(store_b.id, saree.id) == 3

    moves = ledger_service.list_movements(saree_id=saree.id)
    assert [(m.movement_type, m.source, m.quantity) for m in moves] == [
        ("adjustment", "warehouse", 10),
        ("transfer", "online", 3),
        ("transfer", "store", 4),
        ("transfer", "store", 3),
    ]
    assert_consistent()


def test_online_only_saree_is_fully_online(db_session):
    saree = _create({"total_stock": 6, "distribution_channel": "online"})
    assert saree.online_stock == 6
    assert ledger_service.get_unallocated_stock(saree.id) == 0


@pytest.mark.parametrize(
    "payload, allocations",
    [
        ({"total_stock": 5, "distribution_channel": "online"}, "store"),
        ({"total_stock": 5, "online_stock": 2, "distribution_channel": "online"}, None),
        ({"total_stock": 5, "online_stock": 1, "distribution_channel": "shop"}, "store"),
        ({"total_stock": 5, "distribution_channel": "shop"}, None),
        ({"total_stock": 5, "online_stock": 1, "distribution_channel": "both"}, "store"),
        ({"total_stock": -1}, None),
        ({"total_stock": 1, "distribution_channel": "kiosk"}, None),
        ({"price_cents": -10}, None),
    ],
)
def test_create_saree_channel_rules(make_store, payload, allocations):
    store = make_store()
    allocation_list = [{"store_id": store.id, "quantity": 2}] if allocations == "store" else None
    with pytest.raises(ValidationError):
        _create(payload, allocation_list)


def test_create_saree_rejects_duplicate_sku_and_inactive_store(make_store):
    _create({"sku": "KAN-7"})
    with pytest.raises(ValidationError):
        _create({"sku": "KAN-7"})

    store = make_store()
    store_service.deactivate_store(store.id)
    with pytest.raises(ValidationError):
        _create({"total_stock": 1, "distribution_channel": "shop"}, [{"store_id": store.id, "quantity": 1}])
    with pytest.raises(NotFoundError):
        _create({"category_id": 9999})


def test_warehouse_adjustments(make_store, make_saree, assert_consistent):
    store = make_store()
    saree = make_saree(online_stock=2, store_allocations={store.id: 3})

    updated = inventory_service.adjust_warehouse_stock(saree.id, 5, notes="new lot")
    assert updated.total_stock == 10

    # only the 5 unallocated units can be written off
    with pytest.raises(InsufficientStockError) as excinfo:
        inventory_service.adjust_warehouse_stock(saree.id, -6)
    assert excinfo.value.available == 5

    assert inventory_service.adjust_warehouse_stock(saree.id, -5).total_stock == 5
    with pytest.raises(ValidationError):
        inventory_service.adjust_warehouse_stock(saree.id, 0)
    assert_consistent()


def test_allocations_move_units_without_changing_total(make_store, make_saree, assert_consistent):
    store = make_store()
    saree = make_saree(total_stock=10)

    inventory_service.allocate_online_stock(saree.id, 4)
    row = inventory_service.allocate_store_stock(store.id, saree.id, 5)
    assert row.quantity == 5

    with pytest.raises(InsufficientStockError):
        inventory_service.allocate_store_stock(store.id, saree.id, 2)

    inventory_service.allocate_store_stock(store.id, saree.id, -3)
    saree = inventory_service.allocate_online_stock(saree.id, -1)

    assert (saree.total_stock, saree.online_stock) == (10, 3)
    assert ledger_service.get_store_quantity(store.id, saree.id) == 2
    assert ledger_service.get_unallocated_stock(saree.id) == 5
    assert_consistent()


def test_allocations_respect_the_channel(make_store, make_saree):
    store = make_store()
    shop_only = make_saree(distribution_channel="shop", total_stock=3)
    online_only = make_saree(distribution_channel="online", total_stock=3)

    with pytest.raises(ValidationError):
        inventory_service.allocate_online_stock(shop_only.id, 1)
    with pytest.raises(ValidationError):
        inventory_service.allocate_store_stock(store.id, online_only.id, 1)


def test_online_sale_and_return(make_saree, assert_consistent):
    saree = make_saree(online_stock=3, total_stock=5)

    saree = inventory_service.sell_online(saree.id, 2, order_ref="web_order:501")
    assert (saree.total_stock, saree.online_stock) == (3, 1)

    with pytest.raises(InsufficientStockError) as excinfo:
        inventory_service.sell_online(saree.id, 2)
    assert excinfo.value.details["location"] == "online"

    saree = inventory_service.restock_online_return(saree.id, 1, order_ref="web_order:501")
    assert (saree.total_stock, saree.online_stock) == (4, 2)

    refs = ledger_service.list_movements(saree_id=saree.id, order_ref_id="web_order:501")
    assert [(m.movement_type, m.quantity) for m in refs] == [("sale", -2), ("return", 1)]
    assert_consistent()


def test_channel_change_rules(make_store, make_saree):
    store = make_store()
    saree = make_saree(online_stock=1, store_allocations={store.id: 1})

    with pytest.raises(ValidationError):
        inventory_service.update_distribution_channel(saree.id, "shop")
    with pytest.raises(ValidationError):
        inventory_service.update_distribution_channel(saree.id, "online")

    inventory_service.allocate_online_stock(saree.id, -1)
    assert inventory_service.update_distribution_channel(saree.id, "shop").distribution_channel == "shop"


def test_update_saree_cannot_touch_counters(make_saree):
    saree = make_saree(total_stock=2)
    updated = inventory_service.update_saree(saree.id, {"name": "Paithani", "price_cents": 99_000})
    assert (updated.name, updated.price_cents) == ("Paithani", 99_000)

    with pytest.raises(ValidationError):
        inventory_service.update_saree(saree.id, {"total_stock": 50})


def test_stock_distribution(make_store, make_saree):
    store_a = make_store("Anna Nagar")
    store_b = make_store("Besant Nagar")
    saree = make_saree(online_stock=2, store_allocations={store_b.id: 1, store_a.id: 4}, total_stock=9)

    view = inventory_service.get_stock_distribution(saree.id)
    assert view["store_allocations"] == [
        {"store_id": store_a.id, "store_name": "Anna Nagar", "store_active": True, "quantity": 4},
        {"store_id": store_b.id, "store_name": "Besant Nagar", "store_active": True, "quantity": 1},
    ]
    assert (view["store_stock"], view["unallocated"]) == (5, 2)
    assert len(inventory_service.get_stock_distribution()) == 1


def test_low_stock(make_saree):
    low = make_saree(total_stock=2)
    make_saree(total_stock=50)
    assert [s.id for s in inventory_service.list_low_stock()] == [low.id]
    assert len(inventory_service.list_low_stock(threshold=100)) == 2


def _dashboard_activity(make_store, make_saree):
    store = make_store(name="Adyar")
    chanderi = make_saree(name="Chanderi", online_stock=5, store_allocations={store.id: 4})
    mysore = make_saree(name="Mysore Silk", store_allocations={store.id: 3})
    tussar = make_saree(name="Tussar", store_allocations={store.id: 2})
    inventory_service.update_saree(tussar.id, {"is_active": False})

    inventory_service.sell_online(chanderi.id, 2, order_ref="web:1")
    inventory_service.restock_online_return(chanderi.id, 1, order_ref="web:1-return")
    sale = store_sale_service.create_store_sale(store.id, [
        {"saree_id": chanderi.id, "quantity": 3},
        {"saree_id": mysore.id, "quantity": 1},
    ])
    mysore_line = next(item for item in sale.items if item.saree_id == mysore.id)
    exchange = exchange_service.create_store_exchange(
        sale.id,
        [{"sale_item_id": mysore_line.id, "quantity": 1}],
        [{"saree_id": mysore.id, "quantity": 2}],
    )
    return store, chanderi, mysore, exchange


def test_inventory_overview(make_store, make_saree, assert_consistent):
    _, chanderi, mysore, _ = _dashboard_activity(make_store, make_saree)

    overview = inventory_service.get_inventory_overview()

    assert overview["products"] == [
        {"id": chanderi.id, "name": "Chanderi", "total_stock": 5, "online_stock": 4, "store_stock": 1},
        {"id": mysore.id, "name": "Mysore Silk", "total_stock": 1, "online_stock": 0, "store_stock": 1},
    ]
    assert (overview["total_stock"], overview["online_stock"], overview["store_stock"]) == (6, 4, 2)
    # returns are not netted off the cleared counts
    assert overview["total_online_cleared"] == 2
    assert overview["total_store_cleared"] == 6
    assert_consistent()


def test_movement_stats(make_store, make_saree):
    store, chanderi, mysore, exchange = _dashboard_activity(make_store, make_saree)

    stats = inventory_service.get_movement_stats()

    assert stats["total_online_cleared"] == 2
    assert stats["total_store_cleared"] == 6
    assert [(m["saree_id"], m["quantity"], m["order_ref_id"]) for m in stats["online_movements"]] == [
        (chanderi.id, 2, "web:1"),
    ]
    assert sorted(m["quantity"] for m in stats["store_movements"]) == [1, 2, 3]
    newest = stats["store_movements"][0]
    assert newest["saree_id"] == mysore.id
    assert newest["saree_name"] == "Mysore Silk"
    assert newest["quantity"] == 2
    assert newest["order_ref_id"] == f"store_exchange:{exchange.id}"
    assert (newest["store_id"], newest["store_name"]) == (store.id, "Adyar")

    limited = inventory_service.get_movement_stats(limit=1)
    assert len(limited["store_movements"]) == 1
    assert limited["total_store_cleared"] == 6

    with pytest.raises(ValidationError):
        inventory_service.get_movement_stats(limit=0)


def test_dashboard_on_an_empty_ledger(db_session):
    assert inventory_service.get_inventory_overview() == {
        "total_stock": 0,
        "online_stock": 0,
        "store_stock": 0,
        "total_online_cleared": 0,
        "total_store_cleared": 0,
        "products": [],
    }
    stats = inventory_service.get_movement_stats()
    assert stats["online_movements"] == [] and stats["store_movements"] == []
