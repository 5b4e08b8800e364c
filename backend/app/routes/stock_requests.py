# backend/app/routes/stock_requests.py
"""
Store stock request API routes.
"""
from flask import Blueprint, current_app, jsonify, request

from app.errors import LedgerError
from app.extensions import db
from app.services import stock_request_service
from app.validation import optional_int, require_int


stock_requests_bp = Blueprint("stock_requests", __name__, url_prefix="/api/stock-requests")


@stock_requests_bp.route("", methods=["POST"])
def create_stock_request():
    """
    Submit a stock request (status: pending).

    Request body:
    {
        "store_id": int,
        "saree_id": int,
        "quantity": int (> 0),
        "requested_by": int (optional),
        "notes": str (optional)
    }

    Returns:
        201: Request created
        400: Invalid request (quantity <= 0, inactive store)
        404: Store or saree not found
    """
    data = request.get_json(silent=True) or {}
    try:
        req = stock_request_service.create_stock_request(
            require_int(data.get("store_id"), "store_id"),
            require_int(data.get("saree_id"), "saree_id"),
            data.get("quantity"),
            requested_by=optional_int(data.get("requested_by"), "requested_by"),
            notes=data.get("notes"),
        )
        return jsonify(req.to_dict()), 201
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create stock request")
        return jsonify({"error": "Failed to create stock request"}), 500


@stock_requests_bp.route("/<int:request_id>/transition", methods=["POST"])
def transition_stock_request(request_id: int):
    """
    Move a request through its lifecycle.

    Request body:
    {
        "status": "approved" | "rejected" | "dispatched" | "received",
        "actor_id": int (optional),
        "reason": str (optional, rejections)
    }

    Returns:
        200: Updated request
        400: Unknown status
        404: Request not found
        409: Invalid transition, already received, or warehouse short of stock
    """
    data = request.get_json(silent=True) or {}
    try:
        req = stock_request_service.transition_stock_request(
            request_id,
            data.get("status"),
            actor_id=optional_int(data.get("actor_id"), "actor_id"),
            reason=data.get("reason"),
        )
        return jsonify(req.to_dict()), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to transition stock request")
        return jsonify({"error": "Failed to transition stock request"}), 500


@stock_requests_bp.route("", methods=["GET"])
def list_stock_requests():
    try:
        requests_ = stock_request_service.list_stock_requests(
            store_id=request.args.get("store_id", type=int),
            status=request.args.get("status") or None,
        )
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify([req.to_dict() for req in requests_]), 200


@stock_requests_bp.route("/<int:request_id>", methods=["GET"])
def get_stock_request(request_id: int):
    try:
        return jsonify(stock_request_service.get_stock_request(request_id).to_dict()), 200
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code
