from __future__ import annotations
from datetime import datetime
from app.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Numeric
from sqlalchemy.orm import DeclarativeMeta

from .errors import LedgerError


# Maximum price: Rs 9,999,999.99 (999,999,999 paise)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""

    status_code = 400


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] | None = None


@dataclass(frozen=True)
class LineInput:
    """One requested line of a sale or of the replacement leg of an exchange."""
    saree_id: int
    quantity: int
    unit_price_cents: int | None = None


@dataclass(frozen=True)
class ReturnLineInput:
    """One line of the return leg of an exchange."""
    sale_item_id: int
    quantity: int


@dataclass(frozen=True)
class AllocationInput:
    store_id: int
    quantity: int


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_int(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    return coerce_int(value, field)


def optional_int(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return coerce_int(value, field)


def require_positive_int(value: Any, field: str) -> int:
    number = require_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0")
    return number


def require_nonzero_int(value: Any, field: str) -> int:
    number = require_int(value, field)
    if number == 0:
        raise ValidationError(f"{field} must be non-zero")
    return number


def validate_price_cents(value: Any, field: str = "price_cents") -> int:
    price = require_int(value, field)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return price


def require_choice(value: Any, choices: Iterable[str], field: str) -> str:
    allowed = tuple(choices)
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return value


def parse_datetime_arg(value: str | None, field: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def _require_list(raw: Any, field: str) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{field} must be a list")
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError(f"each entry of {field} must be an object")
    return raw


def parse_line_items(raw: Any, field: str = "items") -> list[LineInput]:
    lines = []
    for index, entry in enumerate(_require_list(raw, field)):
        price = entry.get("unit_price_cents", entry.get("price_cents"))
        lines.append(LineInput(
            saree_id=require_int(entry.get("saree_id"), f"{field}[{index}].saree_id"),
            quantity=require_positive_int(entry.get("quantity"), f"{field}[{index}].quantity"),
            unit_price_cents=(
                validate_price_cents(price, f"{field}[{index}].unit_price_cents")
                if price is not None else None
            ),
        ))
    return lines


def parse_return_items(raw: Any, field: str = "return_items") -> list[ReturnLineInput]:
    return [
        ReturnLineInput(
            sale_item_id=require_int(entry.get("sale_item_id"), f"{field}[{index}].sale_item_id"),
            quantity=require_positive_int(entry.get("quantity"), f"{field}[{index}].quantity"),
        )
        for index, entry in enumerate(_require_list(raw, field))
    ]


def parse_allocations(raw: Any, field: str = "store_allocations") -> list[AllocationInput]:
    allocations = []
    seen: set[int] = set()
    for index, entry in enumerate(_require_list(raw, field)):
        store_id = require_int(entry.get("store_id"), f"{field}[{index}].store_id")
        if store_id in seen:
            raise ValidationError(f"store {store_id} appears more than once in {field}")
        seen.add(store_id)
        quantity = require_int(entry.get("quantity"), f"{field}[{index}].quantity")
        if quantity < 0:
            raise ValidationError(f"{field}[{index}].quantity must be >= 0")
        allocations.append(AllocationInput(store_id=store_id, quantity=quantity))
    return allocations


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            dt = parse_datetime_arg(value, col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Numeric):
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return float(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a number")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_saree(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch and patch["price_cents"] is not None:
        validate_price_cents(patch["price_cents"])

    for field in ("total_stock", "online_stock"):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")
