# Overview: Service-layer operations for purchase sessions (shopping trips).

"""
Purchase Session Service

A session carries the trip-level common costs. Any change to those costs
changes every item's allocated cost in the session, so cost edits and the
allocation recompute are committed together.

Deletion is refused while the session still owns store purchases.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import PurchaseSession, StorePurchase
from ..models.purchasing import SESSION_STATUSES
from .allocation_service import (
    preview_session_allocation,
    recalculate_session_allocations,
    store_purchase_subtotal,
)
from .concurrency import lock_for_update, run_with_retry
from .money import require_amount


COST_FIELDS = ("transportation_cost", "transfer_fee", "agency_fee")
UPDATABLE_FIELDS = ("title", "session_date", "status", "notes") + COST_FIELDS


class PurchaseSessionError(Exception):
    """Raised when purchase session data fails validation."""
    pass


class PurchaseSessionNotFoundError(Exception):
    """Raised when a purchase session is not found."""
    pass


class PurchaseSessionStateError(Exception):
    """Raised when an operation conflicts with the session's current state."""
    pass


def _validate_costs(values: dict) -> None:
    for key in COST_FIELDS:
        if key in values:
            require_amount(values[key], key)


def create_session(
    *,
    title: str,
    session_date: date | None = None,
    transportation_cost: int | None = None,
    transfer_fee: int | None = None,
    agency_fee: int | None = None,
    notes: str | None = None,
) -> PurchaseSession:
    """
    Create a new purchase session.

    Raises:
        PurchaseSessionError: If title is missing
        InvalidAmount: If a cost is negative
    """
    if not title:
        raise PurchaseSessionError("Session title is required")
    _validate_costs({
        "transportation_cost": transportation_cost,
        "transfer_fee": transfer_fee,
        "agency_fee": agency_fee,
    })

    session = PurchaseSession(
        title=title,
        session_date=session_date,
        status="active",
        transportation_cost=transportation_cost,
        transfer_fee=transfer_fee,
        agency_fee=agency_fee,
        notes=notes,
    )
    db.session.add(session)
    db.session.commit()
    return session


def get_session(session_id: int) -> PurchaseSession:
    session = db.session.query(PurchaseSession).filter_by(id=session_id).first()
    if not session:
        raise PurchaseSessionNotFoundError(f"Purchase session {session_id} not found")
    return session


def list_sessions(
    *,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[PurchaseSession], int]:
    query = db.session.query(PurchaseSession)
    if status:
        query = query.filter(PurchaseSession.status == status)

    total = query.count()
    sessions = (
        query.order_by(PurchaseSession.session_date.desc(), PurchaseSession.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return sessions, total


def update_session(session_id: int, patch: dict) -> PurchaseSession:
    """
    Apply a partial update to a session.

    A change to any common-cost field recomputes the session's allocations
    in the same transaction.

    Raises:
        PurchaseSessionNotFoundError: If not found
        PurchaseSessionError: If a field is invalid
        InvalidAmount: If a cost is negative
    """
    unknown = set(patch) - set(UPDATABLE_FIELDS)
    if unknown:
        raise PurchaseSessionError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if "title" in patch and not patch["title"]:
        raise PurchaseSessionError("Session title is required")
    if "status" in patch and patch["status"] not in SESSION_STATUSES:
        raise PurchaseSessionError(
            f"Invalid status. Must be one of: {', '.join(SESSION_STATUSES)}"
        )
    _validate_costs(patch)

    def _op():
        session = lock_for_update(
            db.session.query(PurchaseSession).filter_by(id=session_id)
        ).first()
        if not session:
            raise PurchaseSessionNotFoundError(f"Purchase session {session_id} not found")

        costs_changed = False
        for key, value in patch.items():
            if getattr(session, key) == value:
                continue
            setattr(session, key, value)
            if key in COST_FIELDS:
                costs_changed = True

        db.session.flush()
        if costs_changed:
            recalculate_session_allocations(session.id, commit=False)

        db.session.commit()
        return session

    return run_with_retry(_op)


def delete_session(session_id: int) -> None:
    """
    Delete a session that owns no store purchases.

    Raises:
        PurchaseSessionNotFoundError: If not found
        PurchaseSessionStateError: If store purchases still reference it
    """
    session = get_session(session_id)
    remaining = db.session.query(StorePurchase).filter_by(session_id=session_id).count()
    if remaining:
        raise PurchaseSessionStateError(
            f"Cannot delete session with {remaining} store purchase(s). Delete them first."
        )
    db.session.delete(session)
    db.session.commit()


def get_session_summary(session_id: int) -> dict:
    """
    Cost overview for a session, computed by the allocation engine.

    Includes each store purchase's apportioned share and how far the
    rounded shares drift from the common cost.
    """
    session = get_session(session_id)
    allocation = preview_session_allocation(session_id)

    rows = []
    expected_items = 0
    registered_items = 0
    for sp in session.store_purchases:
        subtotal = store_purchase_subtotal(sp)
        share = allocation.shares.get(sp.id, 0)
        registered = len(sp.items)
        expected_items += sp.item_count or 0
        registered_items += registered
        rows.append({
            "store_purchase_id": sp.id,
            "store_id": sp.store_id,
            "subtotal": subtotal,
            "apportioned_common_cost": share,
            "total_cost": subtotal + share,
            "item_count": sp.item_count,
            "registered_item_count": registered,
        })

    return {
        "session": session.to_dict(),
        "common_cost": allocation.common_cost,
        "total_subtotal": allocation.total_subtotal,
        "total_cost": allocation.total_subtotal + allocation.common_cost,
        "apportioned_total": sum(allocation.shares.values()),
        "apportionment_drift": allocation.apportionment_drift,
        "expected_item_count": expected_items,
        "registered_item_count": registered_items,
        "store_purchases": rows,
    }
