# backend/app/services/stock_request_service.py
"""
Store stock requests: a store asks the warehouse for units of one saree.

LIFECYCLE:
1. pending: created by the store
2. approved: inventory team promises the stock (no ledger change)
   rejected: terminal
3. dispatched: goods in transit, still warehouse-owned in the ledger
4. received: store confirms receipt; unallocated warehouse units become
   store inventory (one transfer movement)

Every transition is a compare-and-set on status, so a concurrent duplicate
loses the race and sees the request's real state.
"""
from __future__ import annotations

import sqlalchemy as sa
from flask import current_app

from app.errors import AlreadyReceivedError, InvalidStateTransitionError, NotFoundError
from app.extensions import db
from app.models import Saree, StockRequest
from app.models.documents import STOCK_REQUEST_STATUSES
from app.services import ledger_service
from app.services.channel_service import is_sellable_through, require_shop_sellable
from app.services.concurrency import run_with_retry, unit_of_work
from app.services.store_service import require_active_store
from app.time_utils import utcnow
from app.validation import ValidationError, require_choice, require_positive_int


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_DISPATCHED = "dispatched"
STATUS_RECEIVED = "received"

# target status -> the only status it may be entered from
TRANSITIONS = {
    STATUS_APPROVED: STATUS_PENDING,
    STATUS_REJECTED: STATUS_PENDING,
    STATUS_DISPATCHED: STATUS_APPROVED,
    STATUS_RECEIVED: STATUS_DISPATCHED,
}


def request_ref(request_id: int) -> str:
    return f"stock_request:{request_id}"


def get_stock_request(request_id: int) -> StockRequest:
    req = db.session.get(StockRequest, request_id)
    if req is None:
        raise NotFoundError("stock_request", request_id)
    return req


def create_stock_request(
    store_id: int,
    saree_id: int,
    quantity,
    *,
    requested_by: int | None = None,
    notes: str | None = None,
) -> StockRequest:
    quantity = require_positive_int(quantity, "quantity")

    def _op():
        with unit_of_work():
            require_active_store(store_id)
            saree = db.session.get(Saree, saree_id)
            if saree is None:
                raise NotFoundError("saree", saree_id)
            require_shop_sellable(saree)
            now = utcnow()
            req = StockRequest(
                store_id=store_id,
                saree_id=saree_id,
                quantity=quantity,
                status=STATUS_PENDING,
                requested_by=requested_by,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            db.session.add(req)
            db.session.flush()
            request_id = req.id
        current_app.logger.info(
            "Stock request %s created: store=%s saree=%s qty=%s",
            request_id, store_id, saree_id, quantity,
        )
        return req

    return run_with_retry(_op)


def _compare_and_set_status(request_id: int, target_status: str, **values) -> None:
    """
    UPDATE stock_requests SET status = :target ... WHERE id = :id AND status = :expected.

    Zero rows means the request is missing or not in the expected state.
    """
    expected = TRANSITIONS[target_status]
    now = utcnow()
    result = db.session.execute(
        sa.update(StockRequest)
        .where(StockRequest.id == request_id, StockRequest.status == expected)
        .values(status=target_status, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    req = db.session.get(StockRequest, request_id, populate_existing=True)
    if req is None:
        raise NotFoundError("stock_request", request_id)
    if target_status == STATUS_RECEIVED and req.status == STATUS_RECEIVED:
        raise AlreadyReceivedError(request_id)
    raise InvalidStateTransitionError(request_id, req.status, target_status)


def _reload(request_id: int) -> StockRequest:
    return db.session.get(StockRequest, request_id, populate_existing=True)


def approve_stock_request(request_id: int, *, actor_id: int | None = None) -> StockRequest:
    def _op():
        with unit_of_work():
            _compare_and_set_status(
                request_id, STATUS_APPROVED, approved_by=actor_id, approved_at=utcnow()
            )
            req = _reload(request_id)
        current_app.logger.info("Stock request %s approved", request_id)
        return req

    return run_with_retry(_op)


def reject_stock_request(
    request_id: int,
    *,
    actor_id: int | None = None,
    reason: str | None = None,
) -> StockRequest:
    """approved_by records whoever decided, for rejections as well."""
    def _op():
        with unit_of_work():
            _compare_and_set_status(
                request_id,
                STATUS_REJECTED,
                approved_by=actor_id,
                rejection_reason=reason,
                rejected_at=utcnow(),
            )
            req = _reload(request_id)
        current_app.logger.info("Stock request %s rejected", request_id)
        return req

    return run_with_retry(_op)


def dispatch_stock_request(request_id: int) -> StockRequest:
    def _op():
        with unit_of_work():
            _compare_and_set_status(request_id, STATUS_DISPATCHED, dispatched_at=utcnow())
            req = _reload(request_id)
        current_app.logger.info("Stock request %s dispatched", request_id)
        return req

    return run_with_retry(_op)


def receive_stock_request(request_id: int, *, actor_id: int | None = None) -> StockRequest:
    """
    The only transition that touches the ledger.

    Status flips first; if the warehouse no longer holds enough unallocated
    units the whole unit of work (status included) rolls back.
    """
    def _op():
        with unit_of_work():
            _compare_and_set_status(
                request_id, STATUS_RECEIVED, received_by=actor_id, received_at=utcnow()
            )
            req = _reload(request_id)
            # the channel may have changed while the request was in transit
            if not is_sellable_through(db.session.get(Saree, req.saree_id), "shop"):
                raise ValidationError(f"Saree {req.saree_id} is no longer sold in stores")
            ledger_service.claim_unallocated_stock(req.saree_id, req.quantity)
            ledger_service.adjust_store_inventory(req.store_id, req.saree_id, req.quantity)
            ledger_service.record_movement(
                saree_id=req.saree_id,
                quantity=req.quantity,
                movement_type="transfer",
                source="store",
                order_ref_id=request_ref(req.id),
                store_id=req.store_id,
                notes="stock request received",
            )
        current_app.logger.info(
            "Stock request %s received: store=%s saree=%s qty=%s",
            request_id, req.store_id, req.saree_id, req.quantity,
        )
        return req

    return run_with_retry(_op)


def transition_stock_request(
    request_id: int,
    target_status,
    *,
    actor_id: int | None = None,
    reason: str | None = None,
) -> StockRequest:
    target_status = require_choice(target_status, tuple(TRANSITIONS), "status")
    if target_status == STATUS_APPROVED:
        return approve_stock_request(request_id, actor_id=actor_id)
    if target_status == STATUS_REJECTED:
        return reject_stock_request(request_id, actor_id=actor_id, reason=reason)
    if target_status == STATUS_DISPATCHED:
        return dispatch_stock_request(request_id)
    return receive_stock_request(request_id, actor_id=actor_id)


def list_stock_requests(
    *,
    store_id: int | None = None,
    status: str | None = None,
) -> list[StockRequest]:
    query = db.session.query(StockRequest)
    if store_id is not None:
        query = query.filter(StockRequest.store_id == store_id)
    if status is not None:
        require_choice(status, STOCK_REQUEST_STATUSES, "status")
        query = query.filter(StockRequest.status == status)
    return query.order_by(StockRequest.created_at.desc(), StockRequest.id.desc()).all()
