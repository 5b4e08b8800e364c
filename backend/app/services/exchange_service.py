"""
Store exchanges: units of an earlier store sale come back and, optionally,
replacement units go out, as one event.

Both legs share order_ref_id store_exchange:<id>. Any monetary difference is
only recorded (balance_cents); settling it belongs to the payment side.
"""
from __future__ import annotations

import sqlalchemy as sa
from flask import current_app

from ..extensions import db
from ..models import StoreExchange, StoreExchangeNewItem, StoreExchangeReturnItem, StoreSaleItem
from app.errors import ExchangeQuantityExceededError, NotFoundError
from app.time_utils import utcnow
from app.validation import ReturnLineInput, ValidationError, parse_line_items, parse_return_items
from . import ledger_service
from .channel_service import effective_shop_price_cents
from .concurrency import run_with_retry, unit_of_work
from .store_sale_service import deduct_store_line, get_store_sale, load_sarees, validate_store_stock


def exchange_ref(exchange_id: int) -> str:
    return f"store_exchange:{exchange_id}"


def _validate_returns(sale, returns: list[ReturnLineInput]) -> dict[int, StoreSaleItem]:
    items_by_id = {item.id: item for item in sale.items}

    requested: dict[int, int] = {}
    for line in returns:
        if line.sale_item_id not in items_by_id:
            raise ValidationError(
                f"Sale item {line.sale_item_id} does not belong to sale {sale.id}"
            )
        requested[line.sale_item_id] = requested.get(line.sale_item_id, 0) + line.quantity

    for sale_item_id, qty in requested.items():
        returnable = items_by_id[sale_item_id].returnable_quantity
        if qty > returnable:
            raise ExchangeQuantityExceededError(sale_item_id, qty, returnable)
    return items_by_id


def _mark_returned(sale_item: StoreSaleItem, quantity: int) -> None:
    """returned_quantity += quantity, only while it stays <= quantity."""
    result = db.session.execute(
        sa.update(StoreSaleItem)
        .where(
            StoreSaleItem.id == sale_item.id,
            StoreSaleItem.returned_quantity + quantity <= StoreSaleItem.quantity,
        )
        .values(returned_quantity=StoreSaleItem.returned_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        current = db.session.get(StoreSaleItem, sale_item.id, populate_existing=True)
        raise ExchangeQuantityExceededError(sale_item.id, quantity, current.returnable_quantity)


def create_store_exchange(
    original_sale_id: int,
    return_items,
    new_items,
    *,
    processed_by: int | None = None,
    reason: str | None = None,
) -> StoreExchange:
    """
    return_items: [{"sale_item_id", "quantity"}, ...]
    new_items: [{"saree_id", "quantity", "unit_price_cents"?}, ...]

    New items are checked against the store's stock before the returned
    units are put back.
    """
    returns = parse_return_items(return_items, "return_items")
    replacements = parse_line_items(new_items, "new_items")
    if not returns and not replacements:
        raise ValidationError("An exchange needs at least one return or new item")

    def _op():
        with unit_of_work():
            sale = get_store_sale(original_sale_id)
            store_id = sale.store_id
            items_by_id = _validate_returns(sale, returns)
            sarees = load_sarees({line.saree_id for line in replacements})
            validate_store_stock(store_id, replacements)

            exchange = StoreExchange(
                store_id=store_id,
                original_sale_id=sale.id,
                processed_by=processed_by,
                reason=reason,
                created_at=utcnow(),
            )
            db.session.add(exchange)
            db.session.flush()
            ref = exchange_ref(exchange.id)

            return_amount = 0
            for line in returns:
                sale_item = items_by_id[line.sale_item_id]
                _mark_returned(sale_item, line.quantity)
                db.session.add(StoreExchangeReturnItem(
                    exchange_id=exchange.id,
                    sale_item_id=sale_item.id,
                    saree_id=sale_item.saree_id,
                    quantity=line.quantity,
                    unit_price_cents=sale_item.unit_price_cents,
                ))
                ledger_service.adjust_store_inventory(store_id, sale_item.saree_id, line.quantity)
                ledger_service.adjust_total_stock(sale_item.saree_id, line.quantity)
                ledger_service.record_movement(
                    saree_id=sale_item.saree_id,
                    quantity=line.quantity,
                    movement_type="return",
                    source="store",
                    order_ref_id=ref,
                    store_id=store_id,
                )
                return_amount += line.quantity * sale_item.unit_price_cents

            new_amount = 0
            for line in replacements:
                unit_price = line.unit_price_cents
                if unit_price is None:
                    unit_price = effective_shop_price_cents(sarees[line.saree_id])
                db.session.add(StoreExchangeNewItem(
                    exchange_id=exchange.id,
                    saree_id=line.saree_id,
                    quantity=line.quantity,
                    unit_price_cents=unit_price,
                ))
                deduct_store_line(store_id, line.saree_id, line.quantity, ref)
                new_amount += line.quantity * unit_price

            exchange.return_amount_cents = return_amount
            exchange.new_amount_cents = new_amount
            exchange.balance_cents = new_amount - return_amount
            exchange_id = exchange.id
        current_app.logger.info(
            "Store exchange %s against sale %s: returned=%s new=%s balance_cents=%s",
            exchange_id, original_sale_id, len(returns), len(replacements), new_amount - return_amount,
        )
        return get_store_exchange(exchange_id)

    return run_with_retry(_op)


def get_store_exchange(exchange_id: int) -> StoreExchange:
    exchange = db.session.get(StoreExchange, exchange_id)
    if exchange is None:
        raise NotFoundError("store_exchange", exchange_id)
    return exchange


def list_store_exchanges(store_id: int, *, limit: int = 50, offset: int = 0) -> tuple[list[StoreExchange], int]:
    query = db.session.query(StoreExchange).filter(StoreExchange.store_id == store_id)
    total = query.count()
    exchanges = (
        query.order_by(StoreExchange.created_at.desc(), StoreExchange.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return exchanges, total
