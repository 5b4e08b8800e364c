import sqlalchemy as sa

from app.extensions import db
from app.models import Saree, StoreInventory
from app.services import exchange_service, inventory_service, reconciliation_service, store_sale_service
from app.services import stock_request_service as requests_svc


def _busy_ledger(make_store, make_saree):
    store = make_store()
    other = make_store()
    saree = make_saree(online_stock=3, store_allocations={store.id: 4, other.id: 1}, total_stock=12)

    sale = store_sale_service.create_store_sale(
        store.id, [{"saree_id": saree.id, "quantity": 2, "unit_price_cents": 100}]
    )
    exchange_service.create_store_exchange(sale.id, [{"sale_item_id": sale.items[0].id, "quantity": 1}], [])
    inventory_service.sell_online(saree.id, 1)
    inventory_service.restock_online_return(saree.id, 1)

    req = requests_svc.create_stock_request(other.id, saree.id, 3)
    requests_svc.approve_stock_request(req.id)
    requests_svc.dispatch_stock_request(req.id)
    requests_svc.receive_stock_request(req.id)

    inventory_service.allocate_store_stock(store.id, saree.id, -1)
    inventory_service.adjust_warehouse_stock(saree.id, -1)
    return store, saree


def test_clean_ledger_reconciles(make_store, make_saree):
    store, saree = _busy_ledger(make_store, make_saree)

    report = reconciliation_service.reconcile()
    assert report == {"checked": 1, "discrepancies": [], "ok": True}
    assert reconciliation_service.reconcile(saree.id)["ok"] is True


def test_tampered_counters_are_reported(make_store, make_saree):
    store, saree = _busy_ledger(make_store, make_saree)
    recorded = db.session.get(Saree, saree.id).total_stock

    db.session.execute(sa.update(Saree).where(Saree.id == saree.id).values(total_stock=recorded + 5))
    db.session.execute(
        sa.update(StoreInventory)
        .where(StoreInventory.store_id == store.id, StoreInventory.saree_id == saree.id)
        .values(quantity=StoreInventory.quantity - 1)
    )
    db.session.commit()

    report = reconciliation_service.reconcile()
    assert report["ok"] is False
    checks = {(d["check"], d.get("store_id")) for d in report["discrepancies"]}
    assert checks == {("total_stock", None), ("store_quantity", store.id)}

    total_issue = next(d for d in report["discrepancies"] if d["check"] == "total_stock")
    assert total_issue["recorded"] - total_issue["from_movements"] == 5


def test_reconcile_cli(app, make_store, make_saree):
    store, saree = _busy_ledger(make_store, make_saree)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["ledger", "reconcile"])
    assert result.exit_code == 0
    assert "PASS 1 sarees reconciled" in result.output

    db.session.execute(sa.update(Saree).where(Saree.id == saree.id).values(online_stock=0))
    db.session.commit()

    result = runner.invoke(args=["ledger", "reconcile", "--saree-id", str(saree.id)])
    assert result.exit_code == 1
    assert "online_stock" in result.output

    result = runner.invoke(args=["ledger", "movements", "--saree-id", str(saree.id), "--limit", "3"])
    assert result.exit_code == 0
    assert f"saree:{saree.id}" in result.output
