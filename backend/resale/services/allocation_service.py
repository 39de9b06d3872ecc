# Overview: Hierarchical cost allocation (session -> store purchase -> item); the sole writer of Item.allocated_cost.

"""
Cost Allocation Invariants (authoritative)

Hierarchy:
    PurchaseSession   common cost = transportation_cost + transfer_fee + agency_fee
      StorePurchase   subtotal    = product_amount + shipping_cost + commission_fee
        Item          allocated_cost

Algorithm:
1. Apportion the session's common cost across its store purchases,
   proportional to subtotal:  share = round(common * subtotal / total).
   Each share is rounded independently, so the shares may miss the common
   cost by up to n-1 yen for n store purchases. The remainder is NOT
   redistributed.
2. For each store purchase:  total = subtotal + share.
3. Every item registered against the store purchase gets
   round(total / registered_count). price_input_mode does not change the
   division and purchase_cost is never used as a weight.

Divisor:
- registered_count is the number of Item rows that exist, never the
  expected StorePurchase.item_count.
- Zero registered items -> no allocation (empty mapping).
- Zero session total -> every share is 0.

Ownership:
- recalculate_session_allocations() is the ONLY code path that writes
  Item.allocated_cost. Any change to session costs, store purchase costs,
  item_count, price_input_mode, or the set of items must call it.
- Recompute is a full overwrite for the whole session, computed from a
  single locked read. Nothing is written unless every allocation in the
  session was computed successfully.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import PurchaseSession, StorePurchase, Item
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .money import InvalidAmount, require_amount, round_half_up


class AllocationNotFoundError(Exception):
    """Raised when the session cannot be loaded for a recompute."""
    pass


@dataclass
class SessionAllocation:
    """Result of allocating one session; amounts in yen."""
    session_id: int
    common_cost: int
    total_subtotal: int
    shares: dict[int, int] = field(default_factory=dict)
    item_costs: dict[int, int] = field(default_factory=dict)

    @property
    def apportionment_drift(self) -> int:
        """sum(shares) - common_cost; bounded by n-1 in absolute value."""
        if not self.shares or self.total_subtotal == 0:
            return 0
        return sum(self.shares.values()) - self.common_cost


# =============================================================================
# PURE CALCULATORS
# =============================================================================

def session_common_cost(session) -> int:
    return (
        require_amount(session.transportation_cost, "transportation_cost")
        + require_amount(session.transfer_fee, "transfer_fee")
        + require_amount(session.agency_fee, "agency_fee")
    )


def store_purchase_subtotal(store_purchase) -> int:
    """Goods + shipping + commission for one store visit (absent -> 0)."""
    return (
        require_amount(store_purchase.product_amount, "product_amount")
        + require_amount(store_purchase.shipping_cost, "shipping_cost")
        + require_amount(store_purchase.commission_fee, "commission_fee")
    )


def apportion_common_cost(session, store_purchases) -> dict[int, int]:
    """
    Distribute the session's common cost across its store purchases.

    Returns {store_purchase_id: share}. A session with no store purchases
    or no spend yet gets all-zero shares rather than a division error.
    """
    common = session_common_cost(session)
    subtotals = {sp.id: store_purchase_subtotal(sp) for sp in store_purchases}
    total = sum(subtotals.values())

    if total == 0:
        return {sp_id: 0 for sp_id in subtotals}

    return {
        sp_id: round_half_up(common * subtotal, total)
        for sp_id, subtotal in subtotals.items()
    }


def allocate_item_costs(store_purchase, apportioned_common_cost: int, items) -> dict[int, int]:
    """
    Split a store purchase's total cost evenly over its registered items.

    Returns {item_id: allocated_cost}, or {} when no items are registered.
    """
    share = require_amount(apportioned_common_cost, "apportioned_common_cost")
    total_cost = store_purchase_subtotal(store_purchase) + share

    items = list(items)
    registered_count = len(items)
    if registered_count == 0:
        return {}

    # Same division for "individual" and "batch": purchase_cost is a typed
    # reference value, not an allocation weight.
    per_item = round_half_up(total_cost, registered_count)
    return {item.id: per_item for item in items}


def compute_session_allocation(session, store_purchases, items_by_store_purchase: dict) -> SessionAllocation:
    """
    Run the apportioner and the item allocator for one session snapshot.

    items_by_store_purchase maps store_purchase_id -> list of items; a
    missing key means the store purchase has no items yet.
    """
    store_purchases = list(store_purchases)
    shares = apportion_common_cost(session, store_purchases)

    result = SessionAllocation(
        session_id=session.id,
        common_cost=session_common_cost(session),
        total_subtotal=sum(store_purchase_subtotal(sp) for sp in store_purchases),
        shares=shares,
    )
    for sp in store_purchases:
        result.item_costs.update(
            allocate_item_costs(sp, shares[sp.id], items_by_store_purchase.get(sp.id, []))
        )
    return result


# =============================================================================
# SNAPSHOT LOADING
# =============================================================================

def lock_session(session_id: int) -> PurchaseSession | None:
    """
    Lock a session row ahead of any of its store purchases or items.

    Every write path that ends in a recompute takes this lock first, so
    locks are always acquired top-down: session, store purchases, items.
    """
    return lock_for_update(
        db.session.query(PurchaseSession).filter_by(id=session_id)
    ).first()


def _load_session_snapshot(session_id: int, *, lock: bool):
    """
    Read a session, its store purchases and their items in one transaction.

    With lock=True the rows are read FOR UPDATE so a concurrent cost edit
    cannot change the session total between reading the store purchases
    and writing the items.
    """
    query = db.session.query(PurchaseSession).filter_by(id=session_id)
    if lock:
        query = lock_for_update(query)
    session = query.first()
    if session is None:
        raise AllocationNotFoundError(f"Purchase session {session_id} not found")

    sp_query = db.session.query(StorePurchase).filter(
        StorePurchase.session_id == session_id
    ).order_by(StorePurchase.id.asc())
    if lock:
        sp_query = lock_for_update(sp_query)
    store_purchases = sp_query.all()

    items_by_sp: dict[int, list[Item]] = {sp.id: [] for sp in store_purchases}
    if store_purchases:
        item_query = db.session.query(Item).filter(
            Item.store_purchase_id.in_(list(items_by_sp.keys()))
        ).order_by(Item.id.asc())
        if lock:
            item_query = lock_for_update(item_query)
        for item in item_query.all():
            items_by_sp[item.store_purchase_id].append(item)

    return session, store_purchases, items_by_sp


def preview_session_allocation(session_id: int) -> SessionAllocation:
    """Compute what a recompute would write, without writing anything."""
    session, store_purchases, items_by_sp = _load_session_snapshot(session_id, lock=False)
    return compute_session_allocation(session, store_purchases, items_by_sp)


# =============================================================================
# RECALCULATION TRIGGER
# =============================================================================

def _apply_session_allocation(session_id: int) -> SessionAllocation:
    session, store_purchases, items_by_sp = _load_session_snapshot(session_id, lock=True)

    # Compute everything before touching any row.
    allocation = compute_session_allocation(session, store_purchases, items_by_sp)

    changed = 0
    for items in items_by_sp.values():
        for item in items:
            new_cost = allocation.item_costs[item.id]
            if item.allocated_cost != new_cost:
                item.allocated_cost = new_cost
                changed += 1

    if changed:
        append_ledger_event(
            event_type="allocation.recalculated",
            entity_type="purchase_session",
            entity_id=session.id,
            session_id=session.id,
            note=f"Reallocated {changed} of {len(allocation.item_costs)} items",
            payload={
                "common_cost": allocation.common_cost,
                "shares": {str(k): v for k, v in allocation.shares.items()},
                "drift": allocation.apportionment_drift,
            },
        )

    db.session.flush()
    current_app.logger.info(
        "Recalculated allocations for session %s: %s items, %s changed, drift %s",
        session.id,
        len(allocation.item_costs),
        changed,
        allocation.apportionment_drift,
    )
    return allocation


def recalculate_session_allocations(session_id: int, *, commit: bool = True) -> SessionAllocation:
    """
    Recompute and persist allocated_cost for every item in a session.

    Args:
        session_id: Purchase session to recompute
        commit: Commit the transaction when done. Services that change an
            upstream value pass commit=False so the change and the recompute
            land in one transaction.

    Returns:
        SessionAllocation with the shares and per-item costs written

    Raises:
        AllocationNotFoundError: If the session cannot be loaded
        InvalidAmount: If any stored amount is negative

    On failure the transaction is rolled back, so previously persisted
    allocated_cost values are left untouched.
    """
    def _op():
        try:
            allocation = _apply_session_allocation(session_id)
        except (AllocationNotFoundError, InvalidAmount) as exc:
            db.session.rollback()
            current_app.logger.warning(
                "Allocation recompute aborted for session %s: %s", session_id, exc
            )
            raise
        if commit:
            db.session.commit()
        return allocation

    if not commit:
        return _op()
    return run_with_retry(_op)


@dataclass
class BulkRecalculation:
    """Outcome of recomputing many sessions; failures maps session_id -> error."""
    allocations: list[SessionAllocation] = field(default_factory=list)
    failures: dict[int, str] = field(default_factory=dict)


def _recalculate_each(session_ids: list[int]) -> BulkRecalculation:
    # A bad session is rolled back on its own; the run moves on to the next one.
    outcome = BulkRecalculation()
    for session_id in session_ids:
        try:
            outcome.allocations.append(recalculate_session_allocations(session_id))
        except (AllocationNotFoundError, InvalidAmount) as exc:
            outcome.failures[session_id] = str(exc)
    return outcome


def recalculate_all_sessions() -> BulkRecalculation:
    """Recompute every session, one transaction per session."""
    session_ids = [
        row[0] for row in db.session.query(PurchaseSession.id).order_by(PurchaseSession.id.asc()).all()
    ]
    return _recalculate_each(session_ids)


def backfill_missing_allocations() -> BulkRecalculation:
    """
    Recompute every session that still has an item with allocated_cost NULL.

    Items created before allocation was persisted (or imported directly into
    the database) pick up their cost here. A session that fails is reported
    in the result and the remaining sessions are still processed.
    """
    session_ids = [
        row[0]
        for row in db.session.query(StorePurchase.session_id)
        .join(Item, Item.store_purchase_id == StorePurchase.id)
        .filter(Item.allocated_cost.is_(None))
        .distinct()
        .order_by(StorePurchase.session_id.asc())
        .all()
    ]
    return _recalculate_each(session_ids)
