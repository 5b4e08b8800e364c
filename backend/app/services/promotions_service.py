from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Category, Promotion, PromotionProduct, Saree
from ..models.promotions import OFFER_TYPES, PERCENTAGE_OFFER_TYPES
from app.errors import NotFoundError
from app.time_utils import utcnow
from app.validation import ModelValidationPolicy, ValidationError, require_choice, require_int, validate_payload
from .concurrency import run_with_retry, unit_of_work


PROMOTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "offer_type", "discount_value", "max_discount_cents",
        "category_id", "valid_from", "valid_until", "is_active",
    },
    required_on_create={"name", "offer_type", "discount_value", "valid_from", "valid_until"},
)


def get_promotion(promotion_id: int) -> Promotion:
    promo = db.session.get(Promotion, promotion_id)
    if promo is None:
        raise NotFoundError("promotion", promotion_id)
    return promo


def list_promotions(active_only: bool = False) -> list[Promotion]:
    q = db.session.query(Promotion)
    if active_only:
        now = utcnow()
        q = q.filter(
            Promotion.is_active.is_(True),
            Promotion.valid_from <= now,
            Promotion.valid_until >= now,
        )
    return q.order_by(Promotion.id.asc()).all()


def _enforce_rules(patch: dict) -> None:
    require_choice(patch["offer_type"], OFFER_TYPES, "offer_type")
    value = patch["discount_value"]
    if value < 0:
        raise ValidationError("discount_value must be >= 0")
    if patch["offer_type"] in PERCENTAGE_OFFER_TYPES and value > 100:
        raise ValidationError("discount_value must be a percentage between 0 and 100")
    if patch.get("max_discount_cents") is not None and patch["max_discount_cents"] < 0:
        raise ValidationError("max_discount_cents must be >= 0")
    if patch["valid_until"] < patch["valid_from"]:
        raise ValidationError("valid_until must not be before valid_from")
    if patch["offer_type"] == "category" and patch.get("category_id") is None:
        raise ValidationError("category offers require category_id")


def _parse_saree_ids(raw) -> list[int]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("saree_ids must be a list")
    ids = []
    for index, value in enumerate(raw):
        saree_id = require_int(value, f"saree_ids[{index}]")
        if saree_id not in ids:
            ids.append(saree_id)
    return ids


def _map_sarees(promotion_id: int, saree_ids: list[int]) -> list[PromotionProduct]:
    existing = {
        row.saree_id
        for row in db.session.query(PromotionProduct.saree_id).filter_by(promotion_id=promotion_id)
    }
    added = []
    for saree_id in saree_ids:
        if db.session.get(Saree, saree_id) is None:
            raise NotFoundError("saree", saree_id)
        if saree_id in existing:
            continue
        mapping = PromotionProduct(promotion_id=promotion_id, saree_id=saree_id)
        db.session.add(mapping)
        added.append(mapping)
    db.session.flush()
    return added


def create_promotion(payload: dict, saree_ids=None) -> Promotion:
    patch = validate_payload(model=Promotion, payload=payload, policy=PROMOTION_POLICY, partial=False)
    _enforce_rules(patch)
    ids = _parse_saree_ids(saree_ids)

    def _op():
        with unit_of_work():
            if patch.get("category_id") is not None and db.session.get(Category, patch["category_id"]) is None:
                raise NotFoundError("category", patch["category_id"])
            promo = Promotion(**patch)
            db.session.add(promo)
            db.session.flush()
            _map_sarees(promo.id, ids)
            promo_id = promo.id
        current_app.logger.info("Created promotion %s (%s)", promo_id, patch["offer_type"])
        return promo

    return run_with_retry(_op)


def add_products_to_promotion(promotion_id: int, saree_ids) -> Promotion:
    ids = _parse_saree_ids(saree_ids)
    if not ids:
        raise ValidationError("saree_ids must not be empty")

    def _op():
        with unit_of_work():
            promo = get_promotion(promotion_id)
            _map_sarees(promotion_id, ids)
        return promo

    return run_with_retry(_op)


def deactivate_promotion(promotion_id: int) -> Promotion:
    def _op():
        with unit_of_work():
            promo = get_promotion(promotion_id)
            promo.is_active = False
        current_app.logger.info("Deactivated promotion %s", promotion_id)
        return promo

    return run_with_retry(_op)
