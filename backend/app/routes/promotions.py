from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..extensions import db
from ..services import channel_service, promotions_service

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api")


@promotions_bp.route("/promotions", methods=["GET"])
def list_promotions():
    active_only = request.args.get("active_only", "false").lower() == "true"
    result = promotions_service.list_promotions(active_only)
    return jsonify([p.to_dict() for p in result])


@promotions_bp.route("/promotions", methods=["POST"])
def create_promotion():
    data = dict(request.get_json(silent=True) or {})
    saree_ids = data.pop("saree_ids", None)
    try:
        promo = promotions_service.create_promotion(data, saree_ids)
        return jsonify(promo.to_dict()), 201
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create promotion")
        return jsonify({"error": "Failed to create promotion"}), 500


@promotions_bp.route("/promotions/<int:promo_id>/products", methods=["POST"])
def add_promotion_products(promo_id: int):
    data = request.get_json(silent=True) or {}
    try:
        promo = promotions_service.add_products_to_promotion(promo_id, data.get("saree_ids"))
        return jsonify(promo.to_dict()), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@promotions_bp.route("/promotions/<int:promo_id>/deactivate", methods=["POST"])
def deactivate_promotion(promo_id: int):
    try:
        promo = promotions_service.deactivate_promotion(promo_id)
        return jsonify(promo.to_dict()), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@promotions_bp.route("/catalog", methods=["GET"])
def online_catalog():
    """Online-sellable sarees with their effective price."""
    return jsonify(channel_service.list_online_catalog())
