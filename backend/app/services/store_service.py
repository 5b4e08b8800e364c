from __future__ import annotations

from flask import current_app

from app.errors import NotFoundError
from app.extensions import db
from app.models import Store
from app.services.concurrency import lock_for_update, run_with_retry, unit_of_work
from app.validation import ModelValidationPolicy, ValidationError, validate_payload


STORE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "phone", "is_active"},
    required_on_create={"name", "address"},
)


def get_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError("store", store_id)
    return store


def require_active_store(store_id: int) -> Store:
    """Stores accept new sales, requests and allocations only while active."""
    store = get_store(store_id)
    if not store.is_active:
        raise ValidationError(f"Store {store_id} is inactive")
    return store


def list_stores(*, include_inactive: bool = False) -> list[Store]:
    query = db.session.query(Store)
    if not include_inactive:
        query = query.filter(Store.is_active.is_(True))
    return query.order_by(Store.name.asc(), Store.id.asc()).all()


def create_store(payload: dict) -> Store:
    patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=False)

    def _op():
        with unit_of_work():
            store = Store(**patch)
            db.session.add(store)
            db.session.flush()
            store_id = store.id
        current_app.logger.info("Created store %s (%s)", store_id, patch["name"])
        return store

    return run_with_retry(_op)


def update_store(store_id: int, payload: dict) -> Store:
    patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=True)

    def _op():
        with unit_of_work():
            store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
            if store is None:
                raise NotFoundError("store", store_id)
            for key, value in patch.items():
                setattr(store, key, value)
        return store

    return run_with_retry(_op)


def deactivate_store(store_id: int) -> Store:
    """Soft delete. History (sales, exchanges, inventory rows) keeps pointing at the store."""
    def _op():
        with unit_of_work():
            store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
            if store is None:
                raise NotFoundError("store", store_id)
            store.is_active = False
        current_app.logger.info("Deactivated store %s", store_id)
        return store

    return run_with_retry(_op)
