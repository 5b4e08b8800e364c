# Overview: Flask API routes for store exchanges; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from app.errors import LedgerError
from app.extensions import db
from app.services import exchange_service
from app.validation import optional_int, require_int


exchanges_bp = Blueprint("exchanges", __name__, url_prefix="/api")


@exchanges_bp.post("/exchanges")
def create_store_exchange():
    """
    Request body:
    {
        "original_sale_id": int,
        "return_items": [{"sale_item_id": int, "quantity": int}],
        "new_items": [{"saree_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "processed_by": int (optional),
        "reason": str (optional)
    }

    Returns:
        201: Exchange recorded
        400: Invalid request
        404: Sale or saree not found
        409: Return exceeds returnable quantity, or insufficient store stock
    """
    data = request.get_json(silent=True) or {}
    try:
        exchange = exchange_service.create_store_exchange(
            require_int(data.get("original_sale_id"), "original_sale_id"),
            data.get("return_items"),
            data.get("new_items"),
            processed_by=optional_int(data.get("processed_by"), "processed_by"),
            reason=data.get("reason"),
        )
        return jsonify(exchange.to_dict()), 201
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create store exchange")
        return jsonify({"error": "Failed to create store exchange"}), 500


@exchanges_bp.get("/exchanges/<int:exchange_id>")
def get_store_exchange(exchange_id: int):
    try:
        return jsonify(exchange_service.get_store_exchange(exchange_id).to_dict()), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@exchanges_bp.get("/stores/<int:store_id>/exchanges")
def list_store_exchanges(store_id: int):
    limit = max(1, min(request.args.get("limit", default=50, type=int), 200))
    offset = max(0, request.args.get("offset", default=0, type=int))
    exchanges, total = exchange_service.list_store_exchanges(store_id, limit=limit, offset=offset)
    return jsonify({
        "items": [exchange.to_dict() for exchange in exchanges],
        "count": total,
        "limit": limit,
        "offset": offset,
    }), 200
