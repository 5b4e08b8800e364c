# Overview: Typed ledger failures surfaced to callers; each carries its HTTP status.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every failure the stock ledger reports to its caller."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFoundError(LedgerError):
    """Referenced saree/store/sale/request does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStockError(LedgerError):
    """
    Requested deduction exceeds what is available at the target location.

    Never clamps: the caller retries with a lower quantity or rejects the action.
    """

    status_code = 409

    def __init__(
        self,
        saree_id: int,
        requested: int,
        available: int,
        *,
        location: str = "store",
        store_id: int | None = None,
    ):
        where = f"store {store_id}" if store_id is not None else location
        super().__init__(
            f"Insufficient stock for saree {saree_id} at {where}: "
            f"requested {requested}, available {available}",
            details={
                "saree_id": saree_id,
                "store_id": store_id,
                "location": location,
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )
        self.saree_id = saree_id
        self.store_id = store_id
        self.requested = requested
        self.available = available


class ExchangeQuantityExceededError(LedgerError):
    """Return quantity exceeds the remaining returnable quantity on a sale item."""

    status_code = 409

    def __init__(self, sale_item_id: int, requested: int, returnable: int):
        super().__init__(
            f"Cannot return {requested} units of sale item {sale_item_id}: "
            f"only {returnable} returnable",
            details={
                "sale_item_id": sale_item_id,
                "requested_quantity": requested,
                "returnable_quantity": returnable,
            },
        )
        self.sale_item_id = sale_item_id
        self.requested = requested
        self.returnable = returnable


class InvalidStateTransitionError(LedgerError):
    """Stock-request transition attempted from a state that does not permit it."""

    status_code = 409

    def __init__(self, request_id: int, current_status: str, target_status: str):
        super().__init__(
            f"Cannot move stock request {request_id} from {current_status} to {target_status}",
            details={
                "request_id": request_id,
                "current_status": current_status,
                "target_status": target_status,
            },
        )
        self.request_id = request_id
        self.current_status = current_status
        self.target_status = target_status


class AlreadyReceivedError(LedgerError):
    status_code = 409

    def __init__(self, request_id: int):
        super().__init__(
            f"Stock request {request_id} has already been received",
            details={"request_id": request_id},
        )
        self.request_id = request_id
