# Overview: Service-layer operations for store purchases within a session.

"""
Store Purchase Service

Every write here changes the input of the session's allocation
(subtotals, the set of siblings, item_count, price_input_mode), so each
write recomputes the owning session in the same transaction.

Deletion is refused while items are still registered.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Store, StorePurchase, Item
from ..models.purchasing import PRICE_INPUT_MODES
from .allocation_service import (
    lock_session,
    preview_session_allocation,
    recalculate_session_allocations,
    store_purchase_subtotal,
)
from .concurrency import lock_for_update, run_with_retry
from .money import require_amount


AMOUNT_FIELDS = ("product_amount", "shipping_cost", "commission_fee")
ALLOCATION_FIELDS = AMOUNT_FIELDS + ("item_count", "price_input_mode")
UPDATABLE_FIELDS = ALLOCATION_FIELDS + ("store_id", "purchase_date", "payment_notes")


class StorePurchaseError(Exception):
    """Raised when store purchase data fails validation."""
    pass


class StorePurchaseNotFoundError(Exception):
    """Raised when a store purchase (or its session) is not found."""
    pass


class StorePurchaseStateError(Exception):
    """Raised when an operation conflicts with existing items."""
    pass


def _validate(values: dict) -> None:
    for key in AMOUNT_FIELDS:
        if key in values:
            require_amount(values[key], key)
    if "item_count" in values:
        count = values["item_count"]
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise StorePurchaseError("item_count must be a non-negative integer")
    if "price_input_mode" in values and values["price_input_mode"] not in PRICE_INPUT_MODES:
        raise StorePurchaseError(
            f"Invalid price_input_mode. Must be one of: {', '.join(PRICE_INPUT_MODES)}"
        )
    store_id = values.get("store_id")
    if store_id is not None:
        if not db.session.query(Store).filter_by(id=store_id).first():
            raise StorePurchaseError(f"Store {store_id} not found")


def create_store_purchase(
    *,
    session_id: int,
    store_id: int | None = None,
    purchase_date: date | None = None,
    product_amount: int | None = None,
    shipping_cost: int | None = None,
    commission_fee: int | None = None,
    item_count: int = 0,
    price_input_mode: str = "individual",
    payment_notes: str | None = None,
) -> StorePurchase:
    """
    Add a store purchase to a session.

    A new sibling changes the session total, so the session is recomputed.

    Raises:
        StorePurchaseNotFoundError: If the session does not exist
        StorePurchaseError: If validation fails
        InvalidAmount: If an amount is negative
    """
    values = {
        "store_id": store_id,
        "product_amount": product_amount,
        "shipping_cost": shipping_cost,
        "commission_fee": commission_fee,
        "item_count": item_count,
        "price_input_mode": price_input_mode,
    }
    _validate(values)

    def _op():
        session = lock_session(session_id)
        if not session:
            raise StorePurchaseNotFoundError(f"Purchase session {session_id} not found")

        sp = StorePurchase(
            session_id=session_id,
            purchase_date=purchase_date,
            payment_notes=payment_notes,
            **values,
        )
        db.session.add(sp)
        db.session.flush()

        recalculate_session_allocations(session_id, commit=False)
        db.session.commit()
        return sp

    return run_with_retry(_op)


def get_store_purchase(store_purchase_id: int) -> StorePurchase:
    sp = db.session.query(StorePurchase).filter_by(id=store_purchase_id).first()
    if not sp:
        raise StorePurchaseNotFoundError(f"Store purchase {store_purchase_id} not found")
    return sp


def list_store_purchases(session_id: int) -> list[StorePurchase]:
    return (
        db.session.query(StorePurchase)
        .filter(StorePurchase.session_id == session_id)
        .order_by(StorePurchase.id.asc())
        .all()
    )


def _lock_store_purchase(store_purchase_id: int) -> StorePurchase:
    """Lock the owning session, then the store purchase."""
    session_id = (
        db.session.query(StorePurchase.session_id).filter_by(id=store_purchase_id).scalar()
    )
    if session_id is None:
        raise StorePurchaseNotFoundError(f"Store purchase {store_purchase_id} not found")
    lock_session(session_id)

    sp = lock_for_update(
        db.session.query(StorePurchase).filter_by(id=store_purchase_id)
    ).first()
    if not sp:
        raise StorePurchaseNotFoundError(f"Store purchase {store_purchase_id} not found")
    return sp


def update_store_purchase(store_purchase_id: int, patch: dict) -> StorePurchase:
    """
    Apply a partial update to a store purchase.

    Changes to amounts, item_count or price_input_mode recompute the whole
    session: one store's subtotal moves every sibling's share.

    Raises:
        StorePurchaseNotFoundError: If not found
        StorePurchaseError: If validation fails
        InvalidAmount: If an amount is negative
    """
    unknown = set(patch) - set(UPDATABLE_FIELDS)
    if unknown:
        raise StorePurchaseError(f"Field not allowed: {', '.join(sorted(unknown))}")
    _validate(patch)

    def _op():
        sp = _lock_store_purchase(store_purchase_id)

        allocation_changed = False
        for key, value in patch.items():
            if getattr(sp, key) == value:
                continue
            setattr(sp, key, value)
            if key in ALLOCATION_FIELDS:
                allocation_changed = True

        db.session.flush()
        if allocation_changed:
            recalculate_session_allocations(sp.session_id, commit=False)

        db.session.commit()
        return sp

    return run_with_retry(_op)


def delete_store_purchase(store_purchase_id: int) -> None:
    """
    Delete a store purchase that has no items, then recompute its session.

    Raises:
        StorePurchaseNotFoundError: If not found
        StorePurchaseStateError: If items are still registered
    """
    def _op():
        sp = _lock_store_purchase(store_purchase_id)

        registered = db.session.query(Item).filter_by(store_purchase_id=sp.id).count()
        if registered:
            raise StorePurchaseStateError(
                f"Cannot delete store purchase with {registered} item(s). Remove them first."
            )

        session_id = sp.session_id
        db.session.delete(sp)
        db.session.flush()

        recalculate_session_allocations(session_id, commit=False)
        db.session.commit()

    run_with_retry(_op)


def get_store_purchase_summary(store_purchase_id: int) -> dict:
    """
    Registration progress and cost breakdown for one store purchase.

    allocated_total is what the registered items carry; unallocated_remainder
    is total_cost minus that (rounding drift, or the whole total while no
    items are registered).
    """
    sp = get_store_purchase(store_purchase_id)
    allocation = preview_session_allocation(sp.session_id)

    subtotal = store_purchase_subtotal(sp)
    share = allocation.shares.get(sp.id, 0)
    total_cost = subtotal + share
    item_ids = [item.id for item in sp.items]
    allocated_total = sum(allocation.item_costs.get(item_id, 0) for item_id in item_ids)
    per_item = allocation.item_costs.get(item_ids[0]) if item_ids else None

    return {
        "store_purchase": sp.to_dict(),
        "subtotal": subtotal,
        "apportioned_common_cost": share,
        "total_cost": total_cost,
        "item_count": sp.item_count,
        "registered_item_count": len(item_ids),
        "remaining_item_count": max((sp.item_count or 0) - len(item_ids), 0),
        "allocated_cost_per_item": per_item,
        "allocated_total": allocated_total,
        "unallocated_remainder": total_cost - allocated_total,
    }
