# Overview: Distribution channel resolver; channel eligibility and promotion-adjusted prices.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from ..extensions import db
from ..models import Promotion, PromotionProduct, Saree, StoreInventory
from ..models.promotions import PERCENTAGE_OFFER_TYPES
from app.time_utils import is_within, utcnow
from app.validation import ValidationError, require_choice
from .store_service import get_store
"""
Discount precedence (one promotion per saree at most):

1. ProductOverride: the saree's first explicit mapping (lowest mapping id)
   wins when its promotion is active. Later mappings are not consulted.
2. CategoryDefault: otherwise the first active promotion (lowest id) aimed
   at the saree's category, unless that same promotion maps this saree
   explicitly.
3. NoDiscount.

Consequence worth knowing: a saree whose first mapping points at an
expired campaign does not fall through to a later product mapping; it can
still pick up a category default.
"""


@dataclass(frozen=True)
class ProductOverride:
    promotion: Promotion
    source = "product"


@dataclass(frozen=True)
class CategoryDefault:
    promotion: Promotion
    source = "category"


@dataclass(frozen=True)
class NoDiscount:
    promotion = None
    source = None


NO_DISCOUNT = NoDiscount()

DiscountResolution = Union[ProductOverride, CategoryDefault, NoDiscount]

CHANNELS = ("online", "shop")


def is_sellable_through(saree: Saree, channel: str) -> bool:
    require_choice(channel, CHANNELS, "channel")
    return saree.distribution_channel in (channel, "both")


def require_shop_sellable(saree: Saree) -> None:
    """Store counters and store stock requests only handle active shop-channel sarees."""
    if not saree.is_active:
        raise ValidationError(f"Saree {saree.id} is inactive")
    if not is_sellable_through(saree, "shop"):
        raise ValidationError(f"Saree {saree.id} is not sold in stores")


def is_promotion_active(promotion, now: datetime | None = None) -> bool:
    if not promotion.is_active:
        return False
    return is_within(now or utcnow(), promotion.valid_from, promotion.valid_until)


def resolve_discount(
    saree,
    promotions: Iterable,
    mappings: Iterable,
    now: datetime | None = None,
) -> DiscountResolution:
    """
    Pure precedence rule.

    promotions: candidate campaigns (activity is re-checked here).
    mappings: explicit (promotion_id, saree_id) rows with an id, across all
    campaigns, including inactive ones.
    """
    now = now or utcnow()
    promotions = sorted(promotions, key=lambda p: p.id)
    by_id = {p.id: p for p in promotions}
    own_mappings = sorted((m for m in mappings if m.saree_id == saree.id), key=lambda m: m.id)

    if own_mappings:
        first = by_id.get(own_mappings[0].promotion_id)
        if first is not None and is_promotion_active(first, now):
            return ProductOverride(first)

    if saree.category_id is not None:
        mapped_here = {m.promotion_id for m in own_mappings}
        for promo in promotions:
            if promo.category_id != saree.category_id or promo.id in mapped_here:
                continue
            if is_promotion_active(promo, now):
                return CategoryDefault(promo)

    return NO_DISCOUNT


def discounted_price_cents(price_cents: int, promotion) -> int:
    price = Decimal(price_cents)
    value = Decimal(str(promotion.discount_value))

    if promotion.offer_type in PERCENTAGE_OFFER_TYPES:
        # max_discount_cents of 0 caps the discount at nothing
        cap = Decimal(promotion.max_discount_cents) if promotion.max_discount_cents is not None else price
        discount = min(price * value / Decimal(100), cap, price)
    else:
        discount = min(value, price)

    result = max(price - discount, Decimal(0))
    return int(result.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def effective_price_cents(saree, resolution: DiscountResolution) -> int:
    if resolution.promotion is None:
        return saree.price_cents
    return discounted_price_cents(saree.price_cents, resolution.promotion)


def load_discount_context(saree_ids: list[int] | None = None, now: datetime | None = None):
    """Active promotions plus every explicit mapping of the given sarees."""
    now = now or utcnow()
    promotions = (
        db.session.query(Promotion)
        .filter(
            Promotion.is_active.is_(True),
            Promotion.valid_from <= now,
            Promotion.valid_until >= now,
        )
        .order_by(Promotion.id.asc())
        .all()
    )
    query = db.session.query(PromotionProduct)
    if saree_ids is not None:
        if not saree_ids:
            return promotions, []
        query = query.filter(PromotionProduct.saree_id.in_(saree_ids))
    mappings = query.order_by(PromotionProduct.id.asc()).all()
    return promotions, mappings


def resolve_for_saree(saree: Saree, now: datetime | None = None) -> DiscountResolution:
    promotions, mappings = load_discount_context([saree.id], now)
    return resolve_discount(saree, promotions, mappings, now)


def effective_shop_price_cents(saree: Saree, now: datetime | None = None) -> int:
    return effective_price_cents(saree, resolve_for_saree(saree, now))


def price_view(saree: Saree, resolution: DiscountResolution) -> dict:
    view = saree.to_dict()
    view["effective_price_cents"] = effective_price_cents(saree, resolution)
    if resolution.promotion is None:
        view["active_sale"] = None
        return view
    view["active_sale"] = {**resolution.promotion.summary(), "applies_via": resolution.source}
    view["discounted_price_cents"] = view["effective_price_cents"]
    return view


def list_shop_available_products(store_id: int, now: datetime | None = None) -> list[dict]:
    """Shop-sellable sarees held by the store (zero-quantity rows included), priced."""
    get_store(store_id)
    rows = (
        db.session.query(StoreInventory, Saree)
        .join(Saree, Saree.id == StoreInventory.saree_id)
        .filter(
            StoreInventory.store_id == store_id,
            Saree.is_active.is_(True),
            Saree.distribution_channel.in_(("shop", "both")),
        )
        .order_by(Saree.name.asc(), Saree.id.asc())
        .all()
    )
    promotions, mappings = load_discount_context([saree.id for _, saree in rows], now)

    products = []
    for inv, saree in rows:
        view = price_view(saree, resolve_discount(saree, promotions, mappings, now))
        view["store_stock"] = inv.quantity
        products.append(view)
    return products


def list_online_catalog(now: datetime | None = None) -> list[dict]:
    sarees = (
        db.session.query(Saree)
        .filter(
            Saree.is_active.is_(True),
            Saree.distribution_channel.in_(("online", "both")),
        )
        .order_by(Saree.name.asc(), Saree.id.asc())
        .all()
    )
    promotions, mappings = load_discount_context([s.id for s in sarees], now)
    catalog = []
    for saree in sarees:
        view = price_view(saree, resolve_discount(saree, promotions, mappings, now))
        view["in_stock"] = saree.online_stock > 0
        catalog.append(view)
    return catalog
