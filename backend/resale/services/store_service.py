from __future__ import annotations

from resale.extensions import db
from resale.models import Store
from resale.models.stores import STORE_TYPES
from resale.services.concurrency import lock_for_update, run_with_retry


class StoreError(Exception):
    """Raised when store operations fail."""
    pass


class StoreNotFoundError(Exception):
    """Raised when a store is not found."""
    pass


def _check_store_type(store_type: str) -> None:
    if store_type not in STORE_TYPES:
        raise StoreError(f"Invalid store_type. Must be one of: {', '.join(STORE_TYPES)}")


def create_store(
    name: str,
    store_type: str = "other",
    prefecture: str | None = None,
    notes: str | None = None,
) -> Store:
    def _op():
        if not name:
            raise StoreError("Store name is required")
        _check_store_type(store_type)

        store = Store(name=name, store_type=store_type, prefecture=prefecture, notes=notes)
        db.session.add(store)
        db.session.commit()
        return store

    return run_with_retry(_op)


def update_store(store_id: int, patch: dict) -> Store:
    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise StoreNotFoundError(f"Store {store_id} not found")

        if "name" in patch and not patch["name"]:
            raise StoreError("Store name is required")
        if "store_type" in patch:
            _check_store_type(patch["store_type"])

        for key in ("name", "store_type", "prefecture", "notes"):
            if key in patch:
                setattr(store, key, patch[key])

        db.session.commit()
        return store

    return run_with_retry(_op)


def get_store(store_id: int) -> Store | None:
    return db.session.query(Store).filter_by(id=store_id).first()


def list_stores(store_type: str | None = None) -> list[Store]:
    query = db.session.query(Store)
    if store_type:
        query = query.filter(Store.store_type == store_type)
    return query.order_by(Store.name.asc()).all()
