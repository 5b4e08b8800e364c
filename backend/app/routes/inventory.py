# backend/app/routes/inventory.py
"""
Inventory team routes: saree master data, warehouse receipts and write-offs,
online/store allocations, the online order hooks, and read-side views
(distribution, low stock, reconciliation, dashboard overview and
movement stats).

Quantities in request bodies are signed where the operation allows it:
allocate-online / allocate-store accept negative quantities to hand units
back to the warehouse; receive accepts negative quantities as write-offs.
"""
from flask import Blueprint, current_app, jsonify, request

from app.errors import LedgerError
from app.extensions import db
from app.services import inventory_service, reconciliation_service
from app.validation import require_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _mutation(action: str, fn, status: int = 200):
    try:
        result = fn()
        return jsonify(result.to_dict()), status
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to %s", action)
        return jsonify({"error": f"Failed to {action}"}), 500


@inventory_bp.post("/categories")
def create_category_route():
    data = request.get_json(silent=True) or {}
    return _mutation("create category", lambda: inventory_service.create_category(data.get("name")), 201)


@inventory_bp.post("/sarees")
def create_saree_route():
    """
    Request body: saree fields plus the opening split, e.g.
    {
        "name": str, "price_cents": int, "distribution_channel": "both",
        "total_stock": 10, "online_stock": 4,
        "store_allocations": [{"store_id": 1, "quantity": 6}]
    }
    """
    data = dict(request.get_json(silent=True) or {})
    allocations = data.pop("store_allocations", None)
    return _mutation(
        "create saree",
        lambda: inventory_service.create_saree(data, store_allocations=allocations),
        201,
    )


@inventory_bp.put("/sarees/<int:saree_id>")
def update_saree_route(saree_id: int):
    data = request.get_json(silent=True) or {}
    return _mutation("update saree", lambda: inventory_service.update_saree(saree_id, data))


@inventory_bp.put("/sarees/<int:saree_id>/channel")
def update_channel_route(saree_id: int):
    data = request.get_json(silent=True) or {}
    return _mutation(
        "update distribution channel",
        lambda: inventory_service.update_distribution_channel(saree_id, data.get("distribution_channel")),
    )


@inventory_bp.post("/sarees/<int:saree_id>/receive")
def receive_warehouse_stock_route(saree_id: int):
    data = request.get_json(silent=True) or {}
    return _mutation(
        "adjust warehouse stock",
        lambda: inventory_service.adjust_warehouse_stock(saree_id, data.get("quantity"), notes=data.get("notes")),
    )


@inventory_bp.post("/sarees/<int:saree_id>/allocate-online")
def allocate_online_route(saree_id: int):
    data = request.get_json(silent=True) or {}
    return _mutation(
        "allocate online stock",
        lambda: inventory_service.allocate_online_stock(saree_id, data.get("quantity"), notes=data.get("notes")),
    )


@inventory_bp.post("/sarees/<int:saree_id>/allocate-store")
def allocate_store_route(saree_id: int):
    data = request.get_json(silent=True) or {}
    return _mutation(
        "allocate store stock",
        lambda: inventory_service.allocate_store_stock(
            require_int(data.get("store_id"), "store_id"),
            saree_id,
            data.get("quantity"),
            notes=data.get("notes"),
        ),
    )


@inventory_bp.post("/sarees/<int:saree_id>/online-sale")
def online_sale_route(saree_id: int):
    data = request.get_json(silent=True) or {}
    return _mutation(
        "record online sale",
        lambda: inventory_service.sell_online(saree_id, data.get("quantity"), order_ref=data.get("order_ref")),
    )


@inventory_bp.post("/sarees/<int:saree_id>/online-return")
def online_return_route(saree_id: int):
    data = request.get_json(silent=True) or {}
    return _mutation(
        "record online return",
        lambda: inventory_service.restock_online_return(
            saree_id, data.get("quantity"), order_ref=data.get("order_ref")
        ),
    )


@inventory_bp.get("/distribution")
def stock_distribution_route():
    return jsonify(inventory_service.get_stock_distribution()), 200


@inventory_bp.get("/sarees/<int:saree_id>/distribution")
def saree_distribution_route(saree_id: int):
    try:
        return jsonify(inventory_service.get_stock_distribution(saree_id)), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code


@inventory_bp.get("/low-stock")
def low_stock_route():
    threshold = request.args.get("threshold", type=int)
    sarees = inventory_service.list_low_stock(threshold)
    return jsonify([s.to_dict() for s in sarees]), 200


@inventory_bp.get("/overview")
def overview_route():
    return jsonify(inventory_service.get_inventory_overview()), 200


@inventory_bp.get("/movement-stats")
def movement_stats_route():
    try:
        stats = inventory_service.get_movement_stats(request.args.get("limit", type=int))
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify(stats), 200


@inventory_bp.get("/reconciliation")
def reconciliation_route():
    try:
        report = reconciliation_service.reconcile(request.args.get("saree_id", type=int))
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify(report), 200
