from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


STOCK_REQUEST_STATUSES = ("pending", "approved", "rejected", "dispatched", "received")


class StockRequest(db.Model):
    """
    A store's ask for warehouse stock.

    LIFECYCLE:
    1. pending: submitted by the store
    2. approved / rejected: inventory team decision (rejected is terminal)
    3. dispatched: goods in transit, still warehouse-owned in the ledger
    4. received: store confirms receipt; the only transition that moves stock

    Status changes are compare-and-set UPDATEs guarded on the expected
    current status, so a request can be received at most once.
    """
    __tablename__ = "stock_requests"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_requests_quantity_pos"),
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'dispatched', 'received')",
            name="ck_stock_requests_status",
        ),
        db.Index("ix_stock_requests_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    saree_id = db.Column(db.Integer, db.ForeignKey("sarees.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    requested_by = db.Column(db.Integer, nullable=True)
    approved_by = db.Column(db.Integer, nullable=True)
    received_by = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store = db.relationship("Store", backref=db.backref("stock_requests", lazy=True))
    saree = db.relationship("Saree")

    def __repr__(self) -> str:
        return f"<StockRequest id={self.id} store_id={self.store_id} saree_id={self.saree_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "saree_id": self.saree_id,
            "quantity": self.quantity,
            "status": self.status,
            "requested_by": self.requested_by,
            "approved_by": self.approved_by,
            "received_by": self.received_by,
            "notes": self.notes,
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "dispatched_at": to_utc_z(self.dispatched_at) if self.dispatched_at else None,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
        }
