from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from app.time_utils import to_utc_z


DISTRIBUTION_CHANNELS = ("online", "shop", "both")

MOVEMENT_TYPES = ("sale", "return", "transfer", "adjustment")
MOVEMENT_SOURCES = ("online", "store", "warehouse")

# Movement types that change sarees.total_stock; transfers only relocate stock
TOTAL_STOCK_MOVEMENT_TYPES = ("sale", "return", "adjustment")


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class Saree(db.Model):
    """
    Product master data plus the ledger's cached counters.

    COUNTERS (owned by the ledger services, never written by routes):
    - total_stock: everything the business owns, across all locations
    - online_stock: the slice of total_stock reserved for the web channel
    - store allocations live in StoreInventory

    unallocated warehouse stock = total_stock - online_stock - sum(store allocations)

    All three are caches of the StockMovement log and are kept in sync by the
    same unit of work that appends the movement.
    """
    __tablename__ = "sarees"
    __table_args__ = (
        db.CheckConstraint("online_stock >= 0", name="ck_sarees_online_stock_nonneg"),
        db.CheckConstraint("online_stock <= total_stock", name="ck_sarees_online_le_total"),
        db.CheckConstraint(
            "distribution_channel IN ('online', 'shop', 'both')",
            name="ck_sarees_distribution_channel",
        ),
        db.Index("ix_sarees_category", "category_id"),
        db.Index("ix_sarees_active_channel", "is_active", "distribution_channel"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in paise (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)

    total_stock = db.Column(db.Integer, nullable=False, default=0)
    online_stock = db.Column(db.Integer, nullable=False, default=0)
    distribution_channel = db.Column(db.String(8), nullable=False, default="both")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("sarees", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<Saree id={self.id} name={self.name!r} total={self.total_stock} "
            f"online={self.online_stock} channel={self.distribution_channel}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "category_id": self.category_id,
            "total_stock": self.total_stock,
            "online_stock": self.online_stock,
            "distribution_channel": self.distribution_channel,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StoreInventory(db.Model):
    """
    Per-(store, saree) allocation. Created lazily on the first allocation.

    quantity is never negative; every decrement is a conditional UPDATE
    (quantity + delta >= 0) so two concurrent sales cannot both succeed
    against the same units.
    """
    __tablename__ = "store_inventory"
    __table_args__ = (
        db.UniqueConstraint("store_id", "saree_id", name="uq_store_inventory_store_saree"),
        db.CheckConstraint("quantity >= 0", name="ck_store_inventory_quantity_nonneg"),
        db.Index("ix_store_inventory_saree", "saree_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    saree_id = db.Column(db.Integer, db.ForeignKey("sarees.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("inventory", lazy=True))
    saree = db.relationship("Saree", backref=db.backref("store_inventory", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "saree_id": self.saree_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit log of every quantity change. System of record for
    "what happened"; the saree and store counters are derived caches.

    quantity is signed: negative = deduction, positive = addition.
    order_ref_id names the originating document ("store_sale:12",
    "store_exchange:3", "stock_request:7", ...) so both legs of an exchange
    read as one event.

    IMMUTABLE: ORM updates and deletes are rejected.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity <> 0", name="ck_stock_movements_quantity_nonzero"),
        db.Index("ix_stock_movements_saree_created", "saree_id", "created_at"),
        db.Index("ix_stock_movements_store_created", "store_id", "created_at"),
        db.Index("ix_stock_movements_order_ref", "order_ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    saree_id = db.Column(db.Integer, db.ForeignKey("sarees.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    movement_type = db.Column(db.String(16), nullable=False, index=True)
    source = db.Column(db.String(16), nullable=False, index=True)
    order_ref_id = db.Column(db.String(64), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    saree = db.relationship("Saree")
    store = db.relationship("Store")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "saree_id": self.saree_id,
            "quantity": self.quantity,
            "movement_type": self.movement_type,
            "source": self.source,
            "order_ref_id": self.order_ref_id,
            "store_id": self.store_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ValueError(f"stock movement {target.id} is append-only and cannot be updated")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ValueError(f"stock movement {target.id} is append-only and cannot be deleted")
