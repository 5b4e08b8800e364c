# Overview: Flask API routes for store sales; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from app.errors import LedgerError
from app.extensions import db
from app.services import store_sale_service
from app.validation import optional_int, parse_datetime_arg


sales_bp = Blueprint("sales", __name__, url_prefix="/api")


@sales_bp.post("/stores/<int:store_id>/sales")
def create_store_sale(store_id: int):
    """
    Create and post a store sale.

    Request body:
    {
        "items": [{"saree_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "sold_by": int (optional),
        "customer_name": str (optional),
        "customer_phone": str (optional),
        "sale_type": "walk_in" | "reserved" (optional)
    }

    Returns:
        201: Sale created
        400: Invalid request
        404: Store or saree not found
        409: Insufficient store stock (nothing written)
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = store_sale_service.create_store_sale(
            store_id,
            data.get("items"),
            sold_by=optional_int(data.get("sold_by"), "sold_by"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            sale_type=data.get("sale_type") or "walk_in",
        )
        return jsonify(sale.to_dict()), 201
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create store sale")
        return jsonify({"error": "Failed to create store sale"}), 500


@sales_bp.get("/stores/<int:store_id>/sales")
def list_store_sales(store_id: int):
    limit = max(1, min(request.args.get("limit", default=50, type=int), 200))
    offset = max(0, request.args.get("offset", default=0, type=int))
    try:
        date_from = parse_datetime_arg(request.args.get("start_date"), "start_date")
        date_to = parse_datetime_arg(request.args.get("end_date"), "end_date")
        sales, total = store_sale_service.list_store_sales(
            store_id, limit=limit, offset=offset, date_from=date_from, date_to=date_to
        )
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify({
        "items": [sale.to_dict() for sale in sales],
        "count": total,
        "limit": limit,
        "offset": offset,
    }), 200


@sales_bp.get("/store-sales/<int:sale_id>")
def get_store_sale(sale_id: int):
    """Includes per-item returnable quantities for the exchange screen."""
    try:
        return jsonify(store_sale_service.get_sale_for_exchange(sale_id)), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
