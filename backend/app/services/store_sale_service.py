"""
Store point-of-sale transactions.

A sale is created whole: header, items, store inventory and total stock
deductions, and one negative sale movement per item commit together or not
at all.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Saree, StoreSale, StoreSaleItem
from ..models.sales import STORE_SALE_TYPES
from app.errors import InsufficientStockError, NotFoundError
from app.time_utils import utcnow
from app.validation import LineInput, ValidationError, parse_line_items, require_choice
from . import ledger_service
from .channel_service import effective_shop_price_cents, require_shop_sellable
from .concurrency import run_with_retry, unit_of_work
from .store_service import require_active_store


def sale_ref(sale_id: int) -> str:
    return f"store_sale:{sale_id}"


def aggregate_quantities(lines: list[LineInput]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.saree_id] = totals.get(line.saree_id, 0) + line.quantity
    return totals


def load_sarees(saree_ids) -> dict[int, Saree]:
    """Sarees leaving a store counter; each must be active and sold in shops."""
    sarees = {}
    for saree_id in saree_ids:
        saree = db.session.get(Saree, saree_id)
        if saree is None:
            raise NotFoundError("saree", saree_id)
        require_shop_sellable(saree)
        sarees[saree_id] = saree
    return sarees


def validate_store_stock(store_id: int, lines: list[LineInput]) -> None:
    """
    Every requested quantity (summed per saree) must be on hand at the store.

    Raises for the first offending saree; nothing has been written yet.
    """
    for saree_id, qty in aggregate_quantities(lines).items():
        on_hand = ledger_service.get_store_quantity(store_id, saree_id)
        if on_hand < qty:
            raise InsufficientStockError(saree_id, qty, on_hand, location="store", store_id=store_id)


def deduct_store_line(store_id: int, saree_id: int, quantity: int, order_ref_id: str) -> None:
    """Store -> customer: store inventory and total stock both drop."""
    ledger_service.adjust_store_inventory(store_id, saree_id, -quantity)
    ledger_service.adjust_total_stock(saree_id, -quantity)
    ledger_service.record_movement(
        saree_id=saree_id,
        quantity=-quantity,
        movement_type="sale",
        source="store",
        order_ref_id=order_ref_id,
        store_id=store_id,
    )


def create_store_sale(
    store_id: int,
    items,
    *,
    sold_by: int | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    sale_type: str = "walk_in",
) -> StoreSale:
    """
    items: [{"saree_id", "quantity", "unit_price_cents"?}, ...]

    A missing unit price is filled from the saree's current effective shop
    price (promotions applied).
    """
    lines = parse_line_items(items)
    if not lines:
        raise ValidationError("At least one item is required")
    sale_type = require_choice(sale_type or "walk_in", STORE_SALE_TYPES, "sale_type")

    def _op():
        with unit_of_work():
            require_active_store(store_id)
            sarees = load_sarees(aggregate_quantities(lines))
            validate_store_stock(store_id, lines)

            sale = StoreSale(
                store_id=store_id,
                sold_by=sold_by,
                customer_name=customer_name,
                customer_phone=customer_phone,
                sale_type=sale_type,
                total_amount_cents=0,
                created_at=utcnow(),
            )
            db.session.add(sale)
            db.session.flush()
            ref = sale_ref(sale.id)

            total = 0
            for line in lines:
                unit_price = line.unit_price_cents
                if unit_price is None:
                    unit_price = effective_shop_price_cents(sarees[line.saree_id])
                db.session.add(StoreSaleItem(
                    sale_id=sale.id,
                    saree_id=line.saree_id,
                    quantity=line.quantity,
                    unit_price_cents=unit_price,
                    returned_quantity=0,
                ))
                deduct_store_line(store_id, line.saree_id, line.quantity, ref)
                total += line.quantity * unit_price

            sale.total_amount_cents = total
            sale_id = sale.id
        current_app.logger.info(
            "Store sale %s posted: store=%s items=%s total_cents=%s",
            sale_id, store_id, len(lines), total,
        )
        return get_store_sale(sale_id)

    return run_with_retry(_op)


def get_store_sale(sale_id: int) -> StoreSale:
    sale = db.session.get(StoreSale, sale_id)
    if sale is None:
        raise NotFoundError("store_sale", sale_id)
    return sale


def get_sale_for_exchange(sale_id: int) -> dict:
    """The sale with, per item, how many units can still come back."""
    sale = get_store_sale(sale_id)
    data = sale.to_dict()
    data["returnable_items"] = [item for item in data["items"] if item["returnable_quantity"] > 0]
    return data


def list_store_sales(
    store_id: int,
    *,
    limit: int = 50,
    offset: int = 0,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> tuple[list[StoreSale], int]:
    query = db.session.query(StoreSale).filter(StoreSale.store_id == store_id)
    if date_from is not None:
        query = query.filter(StoreSale.created_at >= date_from)
    if date_to is not None:
        query = query.filter(StoreSale.created_at <= date_to)
    total = query.count()
    sales = (
        query.order_by(StoreSale.created_at.desc(), StoreSale.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return sales, total
