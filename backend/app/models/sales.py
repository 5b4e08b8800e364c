from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


STORE_SALE_TYPES = ("walk_in", "reserved")


class StoreSale(db.Model):
    """
    Point-of-sale transaction at a physical store.

    Created atomically with all of its items; creation deducts store
    inventory and total stock and appends one sale movement per item.
    """
    __tablename__ = "store_sales"
    __table_args__ = (
        db.CheckConstraint("sale_type IN ('walk_in', 'reserved')", name="ck_store_sales_sale_type"),
        db.Index("ix_store_sales_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    sold_by = db.Column(db.Integer, nullable=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    sale_type = db.Column(db.String(16), nullable=False, default="walk_in")
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "StoreSaleItem",
        backref="sale",
        lazy=True,
        order_by="StoreSaleItem.id",
    )

    def __repr__(self) -> str:
        return f"<StoreSale id={self.id} store_id={self.store_id} total={self.total_amount_cents}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "sold_by": self.sold_by,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "sale_type": self.sale_type,
            "total_amount_cents": self.total_amount_cents,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class StoreSaleItem(db.Model):
    """
    returned_quantity accumulates units given back through exchanges.
    A fully returned item (returned_quantity == quantity) is terminal.
    """
    __tablename__ = "store_sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_store_sale_items_quantity_pos"),
        db.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_store_sale_items_returned_bounds",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("store_sales.id"), nullable=False, index=True)
    saree_id = db.Column(db.Integer, db.ForeignKey("sarees.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    returned_quantity = db.Column(db.Integer, nullable=False, default=0)

    saree = db.relationship("Saree")

    @property
    def returnable_quantity(self) -> int:
        return self.quantity - (self.returned_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "saree_id": self.saree_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.quantity * self.unit_price_cents,
            "returned_quantity": self.returned_quantity,
            "returnable_quantity": self.returnable_quantity,
        }


class StoreExchange(db.Model):
    """
    Return + replacement against an original store sale, committed as one event.

    balance_cents = new_amount_cents - return_amount_cents. Settling it is the
    payment collaborator's job; the ledger only records it.
    """
    __tablename__ = "store_exchanges"
    __table_args__ = (
        db.Index("ix_store_exchanges_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    original_sale_id = db.Column(db.Integer, db.ForeignKey("store_sales.id"), nullable=False, index=True)
    processed_by = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.Text, nullable=True)

    return_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    new_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    store = db.relationship("Store")
    original_sale = db.relationship("StoreSale", backref=db.backref("exchanges", lazy=True))
    return_items = db.relationship(
        "StoreExchangeReturnItem",
        backref="exchange",
        lazy=True,
        order_by="StoreExchangeReturnItem.id",
    )
    new_items = db.relationship(
        "StoreExchangeNewItem",
        backref="exchange",
        lazy=True,
        order_by="StoreExchangeNewItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "original_sale_id": self.original_sale_id,
            "processed_by": self.processed_by,
            "reason": self.reason,
            "return_amount_cents": self.return_amount_cents,
            "new_amount_cents": self.new_amount_cents,
            "balance_cents": self.balance_cents,
            "created_at": to_utc_z(self.created_at),
            "return_items": [item.to_dict() for item in self.return_items],
            "new_items": [item.to_dict() for item in self.new_items],
        }


class StoreExchangeReturnItem(db.Model):
    __tablename__ = "store_exchange_return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_exchange_return_items_quantity_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    exchange_id = db.Column(db.Integer, db.ForeignKey("store_exchanges.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("store_sale_items.id"), nullable=False, index=True)
    saree_id = db.Column(db.Integer, db.ForeignKey("sarees.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    sale_item = db.relationship("StoreSaleItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "exchange_id": self.exchange_id,
            "sale_item_id": self.sale_item_id,
            "saree_id": self.saree_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }


class StoreExchangeNewItem(db.Model):
    __tablename__ = "store_exchange_new_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_exchange_new_items_quantity_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    exchange_id = db.Column(db.Integer, db.ForeignKey("store_exchanges.id"), nullable=False, index=True)
    saree_id = db.Column(db.Integer, db.ForeignKey("sarees.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "exchange_id": self.exchange_id,
            "saree_id": self.saree_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
