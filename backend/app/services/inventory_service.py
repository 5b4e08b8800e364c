# Overview: Service-layer operations for inventory; warehouse, online channel and allocation views.

from __future__ import annotations

import sqlalchemy as sa
from flask import current_app

from ..extensions import db
from ..models import Category, Saree, StockMovement, Store, StoreInventory
from ..models.inventory import DISTRIBUTION_CHANNELS
from app.errors import NotFoundError
from app.time_utils import to_utc_z
from app.validation import (
    AllocationInput,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_saree,
    parse_allocations,
    require_choice,
    require_nonzero_int,
    require_positive_int,
    validate_payload,
)
from . import ledger_service
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .store_service import get_store, require_active_store
"""
Warehouse & Channel Semantics (authoritative)

- The warehouse holds whatever is not allocated: total - online - sum(stores).
- Goods enter or leave the business only through adjust_warehouse_stock
  (adjustment), sales and returns. Allocations are transfers and never change
  total_stock.
- A transfer movement is recorded on the receiving side only: source 'online'
  for the web allocation, source 'store' (with store_id) for a store.
- Online-only sarees carry no store allocations; shop-only sarees carry no
  online allocation.
"""


ONLINE_CHANNELS = ("online", "both")
SHOP_CHANNELS = ("shop", "both")


SAREE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "price_cents", "category_id",
        "total_stock", "online_stock", "distribution_channel", "is_active",
    },
    required_on_create={"name", "price_cents"},
)

SAREE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "price_cents", "category_id", "is_active"},
)


def _saree_ref(saree_id: int) -> str:
    return f"saree:{saree_id}"


def get_saree(saree_id: int) -> Saree:
    saree = db.session.get(Saree, saree_id)
    if saree is None:
        raise NotFoundError("saree", saree_id)
    return saree


def _check_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise NotFoundError("category", category_id)


def _check_sku_free(sku: str | None, saree_id: int | None = None) -> None:
    if not sku:
        return
    query = db.session.query(Saree.id).filter(Saree.sku == sku)
    if saree_id is not None:
        query = query.filter(Saree.id != saree_id)
    if query.first() is not None:
        raise ValidationError(f"SKU {sku} already exists")


def create_category(name: str) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op():
        with unit_of_work():
            if db.session.query(Category.id).filter(Category.name == name).first():
                raise ValidationError(f"Category {name} already exists")
            category = Category(name=name)
            db.session.add(category)
        return category

    return run_with_retry(_op)


def _validate_initial_split(
    channel: str,
    total: int,
    online: int | None,
    allocations: list[AllocationInput],
) -> int:
    """Returns the online allocation implied by the channel rules."""
    store_total = sum(a.quantity for a in allocations)

    if channel == "online":
        if store_total:
            raise ValidationError("Online-only sarees cannot have store allocations")
        if online is not None and online != total:
            raise ValidationError("online_stock must equal total_stock for online-only sarees")
        return total

    if channel == "shop":
        if online:
            raise ValidationError("Shop-only sarees cannot have online stock")
        if store_total != total:
            raise ValidationError(
                f"Store allocations ({store_total}) must equal total_stock ({total}) for shop-only sarees"
            )
        return 0

    online = online or 0
    if online + store_total != total:
        raise ValidationError(
            f"online_stock ({online}) + store allocations ({store_total}) must equal total_stock ({total})"
        )
    return online


def create_saree(payload: dict, store_allocations=None) -> Saree:
    """
    Create a saree with its opening stock already split across channels.

    The opening total is an adjustment into the warehouse; the online and
    store shares are transfers out of it, all under the same order ref.
    """
    patch = validate_payload(model=Saree, payload=payload, policy=SAREE_CREATE_POLICY, partial=False)
    enforce_rules_saree(patch)

    channel = require_choice(
        patch.pop("distribution_channel", None) or "both", DISTRIBUTION_CHANNELS, "distribution_channel"
    )
    total = patch.pop("total_stock", None) or 0
    online_requested = patch.pop("online_stock", None)
    allocations = [a for a in parse_allocations(store_allocations) if a.quantity > 0]
    online = _validate_initial_split(channel, total, online_requested, allocations)

    def _op():
        with unit_of_work():
            _check_category(patch.get("category_id"))
            _check_sku_free(patch.get("sku"))
            for allocation in allocations:
                require_active_store(allocation.store_id)

            saree = Saree(**patch, distribution_channel=channel, total_stock=0, online_stock=0)
            db.session.add(saree)
            db.session.flush()
            ref = _saree_ref(saree.id)

            if total:
                ledger_service.adjust_total_stock(saree.id, total)
                ledger_service.record_movement(
                    saree_id=saree.id, quantity=total, movement_type="adjustment",
                    source="warehouse", order_ref_id=ref, notes="opening stock",
                )
            if online:
                ledger_service.adjust_online_stock(saree.id, online)
                ledger_service.record_movement(
                    saree_id=saree.id, quantity=online, movement_type="transfer",
                    source="online", order_ref_id=ref, notes="initial online allocation",
                )
            for allocation in allocations:
                ledger_service.adjust_store_inventory(allocation.store_id, saree.id, allocation.quantity)
                ledger_service.record_movement(
                    saree_id=saree.id, quantity=allocation.quantity, movement_type="transfer",
                    source="store", order_ref_id=ref, store_id=allocation.store_id,
                    notes="initial store allocation",
                )
            saree_id = saree.id
        current_app.logger.info(
            "Created saree %s (total=%s online=%s stores=%s)",
            saree_id, total, online, len(allocations),
        )
        return get_saree(saree_id)

    return run_with_retry(_op)


def update_saree(saree_id: int, payload: dict) -> Saree:
    """Master-data patch only; stock counters go through the ledger operations."""
    patch = validate_payload(model=Saree, payload=payload, policy=SAREE_UPDATE_POLICY, partial=True)
    enforce_rules_saree(patch)

    def _op():
        with unit_of_work():
            saree = lock_for_update(db.session.query(Saree).filter(Saree.id == saree_id)).first()
            if saree is None:
                raise NotFoundError("saree", saree_id)
            if "category_id" in patch:
                _check_category(patch["category_id"])
            if "sku" in patch:
                _check_sku_free(patch["sku"], saree_id)
            for key, value in patch.items():
                setattr(saree, key, value)
        return saree

    return run_with_retry(_op)


def update_distribution_channel(saree_id: int, channel: str) -> Saree:
    channel = require_choice(channel, DISTRIBUTION_CHANNELS, "distribution_channel")

    def _op():
        with unit_of_work():
            saree = lock_for_update(db.session.query(Saree).filter(Saree.id == saree_id)).first()
            if saree is None:
                raise NotFoundError("saree", saree_id)
            if channel == "shop" and saree.online_stock > 0:
                raise ValidationError(
                    f"Saree {saree_id} still has {saree.online_stock} units allocated online"
                )
            if channel == "online":
                in_stores = ledger_service.get_store_allocated_stock(saree_id)
                if in_stores > 0:
                    raise ValidationError(
                        f"Saree {saree_id} still has {in_stores} units allocated to stores"
                    )
            previous = saree.distribution_channel
            saree.distribution_channel = channel
        current_app.logger.info("Saree %s channel %s -> %s", saree_id, previous, channel)
        return saree

    return run_with_retry(_op)


def adjust_warehouse_stock(saree_id: int, delta, notes: str | None = None) -> Saree:
    """Positive delta receives goods into the warehouse; negative writes off unallocated units."""
    delta = require_nonzero_int(delta, "quantity")

    def _op():
        with unit_of_work():
            if delta < 0:
                ledger_service.claim_unallocated_stock(saree_id, -delta)
            saree = ledger_service.adjust_total_stock(saree_id, delta)
            ledger_service.record_movement(
                saree_id=saree_id, quantity=delta, movement_type="adjustment",
                source="warehouse", order_ref_id=_saree_ref(saree_id), notes=notes,
            )
        current_app.logger.info("Warehouse adjustment saree=%s delta=%s", saree_id, delta)
        return saree

    return run_with_retry(_op)


def allocate_online_stock(saree_id: int, quantity, notes: str | None = None) -> Saree:
    """Positive moves warehouse units to the web channel; negative hands them back."""
    quantity = require_nonzero_int(quantity, "quantity")

    def _op():
        with unit_of_work():
            saree = get_saree(saree_id)
            if quantity > 0:
                if saree.distribution_channel not in ONLINE_CHANNELS:
                    raise ValidationError(f"Saree {saree_id} is not sold online")
                ledger_service.claim_unallocated_stock(saree_id, quantity)
            saree = ledger_service.adjust_online_stock(saree_id, quantity)
            ledger_service.record_movement(
                saree_id=saree_id, quantity=quantity, movement_type="transfer",
                source="online", order_ref_id=_saree_ref(saree_id), notes=notes,
            )
        current_app.logger.info("Online allocation saree=%s delta=%s", saree_id, quantity)
        return saree

    return run_with_retry(_op)


def allocate_store_stock(store_id: int, saree_id: int, quantity, notes: str | None = None) -> StoreInventory:
    """Positive moves warehouse units to a store; negative returns them to the warehouse."""
    quantity = require_nonzero_int(quantity, "quantity")

    def _op():
        with unit_of_work():
            saree = get_saree(saree_id)
            if quantity > 0:
                require_active_store(store_id)
                if saree.distribution_channel not in SHOP_CHANNELS:
                    raise ValidationError(f"Saree {saree_id} is not sold in stores")
                ledger_service.claim_unallocated_stock(saree_id, quantity)
            else:
                get_store(store_id)
            row = ledger_service.adjust_store_inventory(store_id, saree_id, quantity)
            ledger_service.record_movement(
                saree_id=saree_id, quantity=quantity, movement_type="transfer",
                source="store", order_ref_id=_saree_ref(saree_id), store_id=store_id, notes=notes,
            )
        current_app.logger.info(
            "Store allocation store=%s saree=%s delta=%s", store_id, saree_id, quantity
        )
        return row

    return run_with_retry(_op)


def sell_online(saree_id: int, quantity, order_ref: str | None = None) -> Saree:
    """Online order fulfilment: the units leave online stock and the business."""
    quantity = require_positive_int(quantity, "quantity")
    ref = order_ref or _saree_ref(saree_id)

    def _op():
        with unit_of_work():
            ledger_service.adjust_online_stock(saree_id, -quantity)
            saree = ledger_service.adjust_total_stock(saree_id, -quantity)
            ledger_service.record_movement(
                saree_id=saree_id, quantity=-quantity, movement_type="sale",
                source="online", order_ref_id=ref,
            )
        current_app.logger.info("Online sale saree=%s qty=%s ref=%s", saree_id, quantity, ref)
        return saree

    return run_with_retry(_op)


def restock_online_return(saree_id: int, quantity, order_ref: str | None = None) -> Saree:
    """Online return: the units come back into the business and the web channel."""
    quantity = require_positive_int(quantity, "quantity")
    ref = order_ref or _saree_ref(saree_id)

    def _op():
        with unit_of_work():
            ledger_service.adjust_total_stock(saree_id, quantity)
            saree = ledger_service.adjust_online_stock(saree_id, quantity)
            ledger_service.record_movement(
                saree_id=saree_id, quantity=quantity, movement_type="return",
                source="online", order_ref_id=ref,
            )
        current_app.logger.info("Online return saree=%s qty=%s ref=%s", saree_id, quantity, ref)
        return saree

    return run_with_retry(_op)


def _distribution_for(saree: Saree, rows: list[tuple[StoreInventory, Store]]) -> dict:
    allocations = [
        {"store_id": store.id, "store_name": store.name, "store_active": store.is_active, "quantity": inv.quantity}
        for inv, store in rows
    ]
    store_total = sum(a["quantity"] for a in allocations)
    return {
        "saree_id": saree.id,
        "name": saree.name,
        "distribution_channel": saree.distribution_channel,
        "total_stock": saree.total_stock,
        "online_stock": saree.online_stock,
        "store_allocations": allocations,
        "store_stock": store_total,
        "unallocated": saree.total_stock - saree.online_stock - store_total,
    }


def get_stock_distribution(saree_id: int | None = None):
    """
    Where every unit of each saree sits.

    Single saree -> dict; otherwise a list over active sarees. The per-store
    breakdown is what the inventory screens pivot into one column per store.
    """
    if saree_id is not None:
        sarees = [get_saree(saree_id)]
    else:
        sarees = (
            db.session.query(Saree)
            .filter(Saree.is_active.is_(True))
            .order_by(Saree.name.asc(), Saree.id.asc())
            .all()
        )
    if not sarees:
        return []

    rows = (
        db.session.query(StoreInventory, Store)
        .join(Store, Store.id == StoreInventory.store_id)
        .filter(StoreInventory.saree_id.in_([s.id for s in sarees]))
        .order_by(Store.name.asc(), Store.id.asc())
        .all()
    )
    by_saree: dict[int, list] = {}
    for inv, store in rows:
        by_saree.setdefault(inv.saree_id, []).append((inv, store))

    views = [_distribution_for(s, by_saree.get(s.id, [])) for s in sarees]
    return views[0] if saree_id is not None else views


def inventory_row_view(row: StoreInventory) -> dict:
    return {**row.to_dict(), "saree": row.saree.to_dict()}


def list_store_inventory(store_id: int) -> list[StoreInventory]:
    get_store(store_id)
    return (
        db.session.query(StoreInventory)
        .join(Saree, Saree.id == StoreInventory.saree_id)
        .filter(StoreInventory.store_id == store_id)
        .order_by(Saree.name.asc(), Saree.id.asc())
        .all()
    )


def list_low_stock(threshold: int | None = None) -> list[Saree]:
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    return (
        db.session.query(Saree)
        .filter(Saree.is_active.is_(True), Saree.total_stock <= threshold)
        .order_by(Saree.total_stock.asc(), Saree.id.asc())
        .all()
    )


def _cleared_totals() -> dict[str, int]:
    """Units sold per channel: absolute sum of sale movements. Returns are not netted off."""
    sold = sa.func.coalesce(
        sa.func.sum(sa.case((StockMovement.movement_type == "sale", StockMovement.quantity), else_=0)),
        0,
    )
    rows = (
        db.session.query(StockMovement.source, sold)
        .filter(StockMovement.source.in_(("online", "store")))
        .group_by(StockMovement.source)
        .all()
    )
    totals = {source: abs(int(total)) for source, total in rows}
    return {
        "total_online_cleared": totals.get("online", 0),
        "total_store_cleared": totals.get("store", 0),
    }


def _sale_movements(source: str, limit: int | None):
    query = (
        db.session.query(StockMovement, Saree.name, Store.name)
        .join(Saree, Saree.id == StockMovement.saree_id)
        .outerjoin(Store, Store.id == StockMovement.store_id)
        .filter(StockMovement.source == source, StockMovement.movement_type == "sale")
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def get_movement_stats(limit: int | None = None) -> dict:
    """
    Sales activity per channel for the dashboard.

    Each list holds sale movements newest first, quantities shown as positive
    units. Exchange replacements count as store sales.
    """
    if limit is not None:
        limit = require_positive_int(limit, "limit")

    online = [
        {
            "saree_id": movement.saree_id,
            "saree_name": saree_name,
            "quantity": abs(movement.quantity),
            "order_ref_id": movement.order_ref_id,
            "created_at": to_utc_z(movement.created_at),
        }
        for movement, saree_name, _ in _sale_movements("online", limit)
    ]
    store = [
        {
            "saree_id": movement.saree_id,
            "saree_name": saree_name,
            "quantity": abs(movement.quantity),
            "order_ref_id": movement.order_ref_id,
            "store_id": movement.store_id,
            "store_name": store_name,
            "created_at": to_utc_z(movement.created_at),
        }
        for movement, saree_name, store_name in _sale_movements("store", limit)
    ]
    return {**_cleared_totals(), "online_movements": online, "store_movements": store}


def get_inventory_overview() -> dict:
    """Stock totals over active sarees, with units cleared per channel."""
    store_stock = (
        db.session.query(
            StoreInventory.saree_id.label("saree_id"),
            sa.func.sum(StoreInventory.quantity).label("quantity"),
        )
        .group_by(StoreInventory.saree_id)
        .subquery()
    )
    rows = (
        db.session.query(Saree, sa.func.coalesce(store_stock.c.quantity, 0))
        .outerjoin(store_stock, store_stock.c.saree_id == Saree.id)
        .filter(Saree.is_active.is_(True))
        .order_by(Saree.name.asc(), Saree.id.asc())
        .all()
    )
    products = [
        {
            "id": saree.id,
            "name": saree.name,
            "total_stock": saree.total_stock,
            "online_stock": saree.online_stock,
            "store_stock": int(quantity),
        }
        for saree, quantity in rows
    ]
    return {
        "total_stock": sum(p["total_stock"] for p in products),
        "online_stock": sum(p["online_stock"] for p in products),
        "store_stock": sum(p["store_stock"] for p in products),
        **_cleared_totals(),
        "products": products,
    }
