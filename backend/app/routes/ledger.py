# Overview: Flask API routes for the stock movement log; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from app.errors import LedgerError
from app.models.inventory import MOVEMENT_SOURCES, MOVEMENT_TYPES
from app.services import ledger_service
from app.validation import ValidationError, parse_datetime_arg, require_choice

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start_date / end_date filtering is inclusive on both ends.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/stock-movements")


@ledger_bp.get("")
def list_stock_movements_route():
    saree_id = request.args.get("saree_id", type=int)
    store_id = request.args.get("store_id", type=int)

    limit = request.args.get("limit", default=500, type=int)
    limit = max(1, min(limit, 5000))
    offset = max(0, request.args.get("offset", default=0, type=int))

    try:
        if saree_id is None and store_id is None:
            raise ValidationError("saree_id or store_id is required")
        start_dt = parse_datetime_arg(request.args.get("start_date"), "start_date")
        end_dt = parse_datetime_arg(request.args.get("end_date"), "end_date")
        movement_type = request.args.get("movement_type") or None
        if movement_type is not None:
            require_choice(movement_type, MOVEMENT_TYPES, "movement_type")
        source = request.args.get("source") or None
        if source is not None:
            require_choice(source, MOVEMENT_SOURCES, "source")

        movements = ledger_service.list_movements(
            saree_id=saree_id,
            store_id=store_id,
            date_from=start_dt,
            date_to=end_dt,
            movement_type=movement_type,
            source=source,
            order_ref_id=request.args.get("order_ref_id") or None,
            limit=limit,
            offset=offset,
        )
    except LedgerError as exc:
        return jsonify(exc.to_dict()), exc.status_code

    return jsonify({"items": [m.to_dict() for m in movements], "limit": limit, "offset": offset}), 200
