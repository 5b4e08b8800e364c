# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from app.errors import LedgerError
from app.extensions import db
from app.services import channel_service, inventory_service, store_service


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
def list_stores():
    include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
    stores = store_service.list_stores(include_inactive=include_inactive)
    return jsonify([store.to_dict() for store in stores]), 200


@stores_bp.post("")
def create_store():
    data = request.get_json(silent=True) or {}
    try:
        store = store_service.create_store(data)
        return jsonify(store.to_dict()), 201
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create store")
        return jsonify({"error": "Failed to create store"}), 500


@stores_bp.get("/<int:store_id>")
def get_store(store_id: int):
    try:
        store = store_service.get_store(store_id)
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify(store.to_dict()), 200


@stores_bp.put("/<int:store_id>")
def update_store(store_id: int):
    data = request.get_json(silent=True) or {}
    try:
        store = store_service.update_store(store_id, data)
        return jsonify(store.to_dict()), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update store")
        return jsonify({"error": "Failed to update store"}), 500


@stores_bp.post("/<int:store_id>/deactivate")
def deactivate_store(store_id: int):
    """Soft delete: the store keeps its history but takes no new transactions."""
    try:
        store = store_service.deactivate_store(store_id)
        return jsonify(store.to_dict()), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate store")
        return jsonify({"error": "Failed to deactivate store"}), 500


@stores_bp.get("/<int:store_id>/inventory")
def list_store_inventory(store_id: int):
    try:
        rows = inventory_service.list_store_inventory(store_id)
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify([inventory_service.inventory_row_view(row) for row in rows]), 200


@stores_bp.get("/<int:store_id>/products")
def list_shop_available_products(store_id: int):
    """Shop-sellable sarees at this store with effective price and store stock."""
    try:
        products = channel_service.list_shop_available_products(store_id)
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify(products), 200
