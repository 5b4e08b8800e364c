from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Store(db.Model):
    """
    Physical outlet selling sarees from its own allocation.

    SOFT DELETE: Stores are never hard-deleted. Sales, exchanges, stock
    requests and inventory rows keep foreign keys to the store, so closing a
    store only flips is_active. Inactive stores accept no new transactions.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.Index("ix_stores_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.Text, nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
