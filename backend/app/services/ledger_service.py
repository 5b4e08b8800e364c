# Overview: Service-layer operations for the stock ledger; counters and the movement log.

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..extensions import db
from ..models import Saree, StockMovement, Store, StoreInventory
from ..models.inventory import MOVEMENT_SOURCES, MOVEMENT_TYPES
from app.errors import InsufficientStockError, NotFoundError
from app.services.concurrency import lock_for_update
from app.time_utils import utcnow
from app.validation import ValidationError, coerce_int, require_choice
"""
Stock Ledger Invariants (authoritative)

- stock_movements is append-only and is the system of record.
- sarees.total_stock, sarees.online_stock and store_inventory.quantity are
  caches of the movement log; they are only written here, always with a
  conditional UPDATE so concurrent writers can never drive one negative.
- unallocated = total_stock - online_stock - sum(store_inventory.quantity) >= 0.
- Nothing in this module commits. Callers pair every counter change with
  its movement inside one unit_of_work().
"""


def _require_delta(delta) -> int:
    delta = coerce_int(delta, "delta")
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    return delta


def _reload_saree(saree_id: int) -> Saree:
    return (
        db.session.query(Saree)
        .populate_existing()
        .filter(Saree.id == saree_id)
        .one()
    )


def _store_allocated_total(saree_id: int):
    return (
        sa.select(sa.func.coalesce(sa.func.sum(StoreInventory.quantity), 0))
        .where(StoreInventory.saree_id == saree_id)
        .scalar_subquery()
    )


def record_movement(
    *,
    saree_id: int,
    quantity: int,
    movement_type: str,
    source: str,
    order_ref_id: str,
    store_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Append one immutable movement row.

    Does not touch any counter; the caller adjusts the caches in the same
    unit of work.
    """
    quantity = coerce_int(quantity, "quantity")
    if quantity == 0:
        raise ValidationError("movement quantity must be non-zero")
    require_choice(movement_type, MOVEMENT_TYPES, "movement_type")
    require_choice(source, MOVEMENT_SOURCES, "source")
    if not order_ref_id:
        raise ValidationError("order_ref_id is required")

    if db.session.get(Saree, saree_id) is None:
        raise NotFoundError("saree", saree_id)
    if store_id is not None and db.session.get(Store, store_id) is None:
        raise NotFoundError("store", store_id)

    movement = StockMovement(
        saree_id=saree_id,
        quantity=quantity,
        movement_type=movement_type,
        source=source,
        order_ref_id=str(order_ref_id),
        store_id=store_id,
        notes=notes,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_total_stock(saree_id: int, delta: int) -> Saree:
    """
    total_stock += delta, refusing to drop below online_stock.

    Compare-and-update: zero affected rows means the bound would be broken.
    """
    delta = _require_delta(delta)
    result = db.session.execute(
        sa.update(Saree)
        .where(Saree.id == saree_id, Saree.total_stock + delta >= Saree.online_stock)
        .values(total_stock=Saree.total_stock + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        saree = db.session.get(Saree, saree_id, populate_existing=True)
        if saree is None:
            raise NotFoundError("saree", saree_id)
        raise InsufficientStockError(
            saree_id, -delta, saree.total_stock - saree.online_stock, location="warehouse"
        )
    return _reload_saree(saree_id)


def adjust_online_stock(saree_id: int, delta: int) -> Saree:
    """online_stock += delta, keeping 0 <= online_stock <= total_stock."""
    delta = _require_delta(delta)
    result = db.session.execute(
        sa.update(Saree)
        .where(
            Saree.id == saree_id,
            Saree.online_stock + delta >= 0,
            Saree.online_stock + delta <= Saree.total_stock,
        )
        .values(online_stock=Saree.online_stock + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        saree = db.session.get(Saree, saree_id, populate_existing=True)
        if saree is None:
            raise NotFoundError("saree", saree_id)
        if delta < 0:
            raise InsufficientStockError(saree_id, -delta, saree.online_stock, location="online")
        raise InsufficientStockError(
            saree_id, delta, saree.total_stock - saree.online_stock, location="warehouse"
        )
    return _reload_saree(saree_id)


def _ensure_store_inventory_row(store_id: int, saree_id: int) -> None:
    """Lazily create the (store, saree) row; concurrent creators collapse to one row."""
    values = {
        "store_id": store_id,
        "saree_id": saree_id,
        "quantity": 0,
        "updated_at": utcnow(),
    }
    dialect = db.session.get_bind().dialect.name
    if dialect == "sqlite":
        stmt = sqlite_insert(StoreInventory).values(**values)
    elif dialect == "postgresql":
        stmt = pg_insert(StoreInventory).values(**values)
    else:
        existing = db.session.query(StoreInventory.id).filter_by(store_id=store_id, saree_id=saree_id).first()
        if existing is None:
            db.session.add(StoreInventory(**values))
            db.session.flush()
        return
    db.session.execute(stmt.on_conflict_do_nothing(index_elements=["store_id", "saree_id"]))


def adjust_store_inventory(store_id: int, saree_id: int, delta: int) -> StoreInventory:
    """
    store_inventory.quantity += delta, never below zero.

    Equivalent to UPDATE ... SET quantity = quantity + :d WHERE quantity + :d >= 0;
    zero affected rows is reported as InsufficientStockError.
    """
    delta = _require_delta(delta)
    if delta > 0:
        if db.session.get(Saree, saree_id) is None:
            raise NotFoundError("saree", saree_id)
        _ensure_store_inventory_row(store_id, saree_id)

    result = db.session.execute(
        sa.update(StoreInventory)
        .where(
            StoreInventory.store_id == store_id,
            StoreInventory.saree_id == saree_id,
            StoreInventory.quantity + delta >= 0,
        )
        .values(quantity=StoreInventory.quantity + delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InsufficientStockError(
            saree_id,
            -delta,
            get_store_quantity(store_id, saree_id),
            location="store",
            store_id=store_id,
        )
    return (
        db.session.query(StoreInventory)
        .populate_existing()
        .filter_by(store_id=store_id, saree_id=saree_id)
        .one()
    )


def claim_unallocated_stock(saree_id: int, quantity: int) -> Saree:
    """
    Lock the saree and verify `quantity` units sit unallocated in the warehouse.

    The check is itself a guarded UPDATE, so it holds the write lock on
    SQLite and re-reads committed allocations after the row lock elsewhere.
    The caller moves the units (to a store, online, or out of the business)
    in the same unit of work.
    """
    saree = lock_for_update(db.session.query(Saree).filter(Saree.id == saree_id)).first()
    if saree is None:
        raise NotFoundError("saree", saree_id)

    result = db.session.execute(
        sa.update(Saree)
        .where(
            Saree.id == saree_id,
            Saree.total_stock - Saree.online_stock - _store_allocated_total(saree_id) >= quantity,
        )
        .values(total_stock=Saree.total_stock)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InsufficientStockError(
            saree_id, quantity, get_unallocated_stock(saree_id), location="warehouse"
        )
    return _reload_saree(saree_id)


def get_store_quantity(store_id: int, saree_id: int) -> int:
    qty = (
        db.session.query(StoreInventory.quantity)
        .filter_by(store_id=store_id, saree_id=saree_id)
        .scalar()
    )
    return int(qty or 0)


def get_store_allocated_stock(saree_id: int) -> int:
    return int(db.session.execute(sa.select(_store_allocated_total(saree_id))).scalar() or 0)


def get_unallocated_stock(saree_id: int) -> int:
    row = (
        db.session.query(Saree.total_stock, Saree.online_stock)
        .filter(Saree.id == saree_id)
        .first()
    )
    if row is None:
        raise NotFoundError("saree", saree_id)
    return row.total_stock - row.online_stock - get_store_allocated_stock(saree_id)


def list_movements(
    *,
    saree_id: int | None = None,
    store_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    movement_type: str | None = None,
    source: str | None = None,
    order_ref_id: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[StockMovement]:
    """
    Movements in the order they happened; date bounds are inclusive.

    limit keeps the newest rows: offset skips that many of the most recent
    movements first, so successive offsets page back through history.
    """
    query = db.session.query(StockMovement)
    if saree_id is not None:
        query = query.filter(StockMovement.saree_id == saree_id)
    if store_id is not None:
        query = query.filter(StockMovement.store_id == store_id)
    if date_from is not None:
        query = query.filter(StockMovement.created_at >= date_from)
    if date_to is not None:
        query = query.filter(StockMovement.created_at <= date_to)
    if movement_type is not None:
        query = query.filter(StockMovement.movement_type == movement_type)
    if source is not None:
        query = query.filter(StockMovement.source == source)
    if order_ref_id is not None:
        query = query.filter(StockMovement.order_ref_id == order_ref_id)
    if limit is None and not offset:
        return query.order_by(StockMovement.created_at.asc(), StockMovement.id.asc()).all()

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    if limit is not None:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)
    newest = query.all()
    newest.reverse()
    return newest
