from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


PERCENTAGE_OFFER_TYPES = ("percentage", "category", "flash_sale")
FLAT_OFFER_TYPES = ("flat", "product")
OFFER_TYPES = PERCENTAGE_OFFER_TYPES + FLAT_OFFER_TYPES


class Promotion(db.Model):
    """
    Time-boxed discount campaign ("sales & offers"). Unrelated to StoreSale.

    discount_value is a percent for percentage/category/flash_sale offers and
    an amount in paise for flat/product offers. max_discount_cents caps
    percentage offers.

    A promotion reaches sarees two ways: an explicit PromotionProduct mapping,
    or category_id as a default for every saree of that category.
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.Index("ix_promotions_active_window", "is_active", "valid_from", "valid_until"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    offer_type = db.Column(db.String(16), nullable=False)
    discount_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    max_discount_cents = db.Column(db.Integer, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    # UTC-naive; the window is inclusive on both ends
    valid_from = db.Column(db.DateTime, nullable=False)
    valid_until = db.Column(db.DateTime, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category")
    products = db.relationship(
        "PromotionProduct",
        backref="promotion",
        lazy=True,
        order_by="PromotionProduct.id",
    )

    def summary(self) -> dict:
        """Discount metadata attached to a priced saree view."""
        return {
            "id": self.id,
            "name": self.name,
            "offer_type": self.offer_type,
            "discount_value": float(self.discount_value),
            "max_discount_cents": self.max_discount_cents,
        }

    def to_dict(self) -> dict:
        return {
            **self.summary(),
            "description": self.description,
            "category_id": self.category_id,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
            "saree_ids": [p.saree_id for p in self.products],
            "created_at": to_utc_z(self.created_at),
        }


class PromotionProduct(db.Model):
    __tablename__ = "promotion_products"
    __table_args__ = (
        db.UniqueConstraint("promotion_id", "saree_id", name="uq_promotion_products_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=False, index=True)
    saree_id = db.Column(db.Integer, db.ForeignKey("sarees.id"), nullable=False, index=True)
