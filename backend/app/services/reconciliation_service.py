# Overview: Reconciliation engine; recomputes the ledger caches from the movement log.

from __future__ import annotations

import sqlalchemy as sa

from ..extensions import db
from ..models import Saree, StockMovement, StoreInventory
from ..models.inventory import TOTAL_STOCK_MOVEMENT_TYPES
from .inventory_service import get_saree
"""
Read-only. For each saree the movement log must explain every cache:

- total_stock == sum of sale/return/adjustment movements
- online_stock == sum of movements with source 'online'
- store_inventory(S) == sum of movements with store_id S
- online_stock <= total_stock, unallocated >= 0, no negative store row
"""


def _movement_sums(saree_ids: list[int]):
    total_expr = sa.func.coalesce(
        sa.func.sum(
            sa.case(
                (StockMovement.movement_type.in_(TOTAL_STOCK_MOVEMENT_TYPES), StockMovement.quantity),
                else_=0,
            )
        ),
        0,
    )
    online_expr = sa.func.coalesce(
        sa.func.sum(sa.case((StockMovement.source == "online", StockMovement.quantity), else_=0)),
        0,
    )
    rows = (
        db.session.query(StockMovement.saree_id, total_expr, online_expr)
        .filter(StockMovement.saree_id.in_(saree_ids))
        .group_by(StockMovement.saree_id)
        .all()
    )
    totals = {saree_id: (int(total), int(online)) for saree_id, total, online in rows}

    store_rows = (
        db.session.query(StockMovement.saree_id, StockMovement.store_id, sa.func.sum(StockMovement.quantity))
        .filter(StockMovement.saree_id.in_(saree_ids), StockMovement.store_id.isnot(None))
        .group_by(StockMovement.saree_id, StockMovement.store_id)
        .all()
    )
    per_store: dict[tuple[int, int], int] = {
        (saree_id, store_id): int(qty) for saree_id, store_id, qty in store_rows
    }
    return totals, per_store


def _check_saree(saree: Saree, expected_total: int, expected_online: int, inventory, per_store) -> list[dict]:
    issues = []

    def issue(kind: str, **details):
        issues.append({"saree_id": saree.id, "check": kind, **details})

    if saree.total_stock != expected_total:
        issue("total_stock", recorded=saree.total_stock, from_movements=expected_total)
    if saree.online_stock != expected_online:
        issue("online_stock", recorded=saree.online_stock, from_movements=expected_online)
    if saree.online_stock > saree.total_stock:
        issue("online_exceeds_total", online_stock=saree.online_stock, total_stock=saree.total_stock)

    store_total = 0
    seen_stores = set()
    for row in inventory:
        seen_stores.add(row.store_id)
        store_total += row.quantity
        if row.quantity < 0:
            issue("negative_store_quantity", store_id=row.store_id, recorded=row.quantity)
        expected = per_store.get((saree.id, row.store_id), 0)
        if row.quantity != expected:
            issue("store_quantity", store_id=row.store_id, recorded=row.quantity, from_movements=expected)

    for (saree_id, store_id), expected in per_store.items():
        if saree_id == saree.id and store_id not in seen_stores and expected != 0:
            issue("store_quantity", store_id=store_id, recorded=0, from_movements=expected)

    unallocated = saree.total_stock - saree.online_stock - store_total
    if unallocated < 0:
        issue("negative_unallocated", unallocated=unallocated)
    return issues


def reconcile(saree_id: int | None = None) -> dict:
    """
    Compare every cached counter with the movement log.

    Returns {"checked": n, "discrepancies": [...], "ok": bool}.
    """
    if saree_id is not None:
        sarees = [get_saree(saree_id)]
    else:
        sarees = db.session.query(Saree).order_by(Saree.id.asc()).all()
    if not sarees:
        return {"checked": 0, "discrepancies": [], "ok": True}

    ids = [s.id for s in sarees]
    totals, per_store = _movement_sums(ids)

    inventory_by_saree: dict[int, list[StoreInventory]] = {}
    for row in db.session.query(StoreInventory).filter(StoreInventory.saree_id.in_(ids)):
        inventory_by_saree.setdefault(row.saree_id, []).append(row)

    discrepancies = []
    for saree in sarees:
        expected_total, expected_online = totals.get(saree.id, (0, 0))
        discrepancies.extend(
            _check_saree(saree, expected_total, expected_online, inventory_by_saree.get(saree.id, []), per_store)
        )

    return {"checked": len(sarees), "discrepancies": discrepancies, "ok": not discrepancies}
