from datetime import timedelta

import pytest

from app.errors import NotFoundError
from app.services import promotions_service
from app.time_utils import utcnow
from app.validation import ValidationError


def _payload(**overrides):
    now = utcnow()
    payload = {
        "name": "Pongal offer",
        "offer_type": "percentage",
        "discount_value": 15,
        "valid_from": (now - timedelta(hours=1)).isoformat(),
        "valid_until": (now + timedelta(days=3)).isoformat(),
    }
    payload.update(overrides)
    return payload


def test_create_promotion_with_products(make_saree):
    first = make_saree()
    second = make_saree()
    promotion = promotions_service.create_promotion(_payload(), saree_ids=[first.id, second.id, first.id])

    data = promotion.to_dict()
    assert data["saree_ids"] == [first.id, second.id]
    assert data["discount_value"] == 15.0
    assert data["valid_from"].endswith("Z")


def test_add_products_is_idempotent(make_saree):
    saree = make_saree()
    other = make_saree()
    promotion = promotions_service.create_promotion(_payload(), saree_ids=[saree.id])

    promotions_service.add_products_to_promotion(promotion.id, [saree.id, other.id])
    promotions_service.add_products_to_promotion(promotion.id, [other.id])

    assert promotions_service.get_promotion(promotion.id).to_dict()["saree_ids"] == [saree.id, other.id]


@pytest.mark.parametrize(
    "overrides",
    [
        {"discount_value": 120},
        {"discount_value": -1},
        {"offer_type": "bogo"},
        {"offer_type": "category"},
        {"max_discount_cents": -5},
        {"valid_until": "2020-01-01T00:00:00Z"},
    ],
)
def test_create_promotion_rules(overrides):
    with pytest.raises(ValidationError):
        promotions_service.create_promotion(_payload(**overrides))


def test_create_promotion_unknown_references(make_saree):
    with pytest.raises(NotFoundError):
        promotions_service.create_promotion(_payload(offer_type="category", category_id=9999))
    with pytest.raises(NotFoundError):
        promotions_service.create_promotion(_payload(), saree_ids=[9999])
    assert promotions_service.list_promotions() == []


def test_list_active_only(make_saree):
    live = promotions_service.create_promotion(_payload(name="Live"))
    promotions_service.create_promotion(_payload(
        name="Over",
        valid_from=(utcnow() - timedelta(days=10)).isoformat(),
        valid_until=(utcnow() - timedelta(days=5)).isoformat(),
    ))
    paused = promotions_service.create_promotion(_payload(name="Paused"))
    promotions_service.deactivate_promotion(paused.id)

    assert [p.id for p in promotions_service.list_promotions(active_only=True)] == [live.id]
    assert len(promotions_service.list_promotions()) == 3
