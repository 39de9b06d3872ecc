# Overview: Service-layer operations for items: registration, lifecycle and sale recording.

"""
Item Service

REGISTRATION:
- Adding or removing an item changes the divisor of its store purchase,
  so every add/remove recomputes the owning session in the same
  transaction. Bulk adds recompute once.
- In batch mode an item registered without a purchase_cost gets a nominal
  one: round(product_amount / item_count). It is a display default only;
  allocated_cost is what profit math uses.
- allocated_cost is never accepted from callers.

LIFECYCLE:
    in_stock -> ready_to_list -> listed -> sold
    on_hold may be entered from any open state and left back to
    ready_to_list or listed. sold and discarded are terminal.

SALE:
- platform_fee = round(sold_price * PLATFORM_FEE_BPS / 10000)
- cost_at_sale = allocated_cost (purchase_cost while still unallocated)
- net_profit   = sold_price - platform_fee - shipping - cost_at_sale
These are frozen at sale time. Later recomputes update allocated_cost but
never revalue a completed sale.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Item, StorePurchase
from ..models.purchasing import ITEM_STATUSES
from .allocation_service import lock_session, recalculate_session_allocations
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .money import apply_bps, apply_percent, require_amount, round_half_up
from resale.time_utils import utcnow


DESCRIPTIVE_FIELDS = (
    "name", "brand", "category", "size", "color", "condition", "notes",
)
PRICE_FIELDS = ("purchase_cost", "initial_price", "current_price")
EDITABLE_FIELDS = DESCRIPTIVE_FIELDS + PRICE_FIELDS

STATUS_IN_STOCK = "in_stock"
STATUS_READY = "ready_to_list"
STATUS_LISTED = "listed"
STATUS_SOLD = "sold"
STATUS_ON_HOLD = "on_hold"
STATUS_DISCARDED = "discarded"

TERMINAL_STATUSES = {STATUS_SOLD, STATUS_DISCARDED}

ALLOWED_TRANSITIONS = {
    STATUS_IN_STOCK: {STATUS_READY, STATUS_LISTED, STATUS_ON_HOLD, STATUS_DISCARDED, STATUS_SOLD},
    STATUS_READY: {STATUS_LISTED, STATUS_ON_HOLD, STATUS_DISCARDED, STATUS_SOLD},
    STATUS_LISTED: {STATUS_LISTED, STATUS_ON_HOLD, STATUS_DISCARDED, STATUS_SOLD},
    STATUS_ON_HOLD: {STATUS_READY, STATUS_LISTED, STATUS_DISCARDED, STATUS_SOLD},
    STATUS_SOLD: set(),
    STATUS_DISCARDED: set(),
}


class ItemError(Exception):
    """Raised when item data fails validation."""
    pass


class ItemNotFoundError(Exception):
    """Raised when an item (or its store purchase) is not found."""
    pass


class ItemStateError(Exception):
    """Raised when a lifecycle operation is invalid for the item's status."""
    pass


# =============================================================================
# REGISTRATION
# =============================================================================

def _clean_fields(fields: dict) -> dict:
    if "allocated_cost" in fields:
        raise ItemError("allocated_cost is computed and cannot be set")
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ItemError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if "name" in fields and not fields["name"]:
        raise ItemError("Item name is required")
    for key in PRICE_FIELDS:
        if key in fields:
            require_amount(fields[key], key)
    return dict(fields)


def _apply_nominal_defaults(sp: StorePurchase, fields: dict) -> dict:
    """Fill batch-mode purchase_cost and default listing prices."""
    if sp.price_input_mode == "batch" and fields.get("purchase_cost") is None:
        fields["purchase_cost"] = round_half_up(
            require_amount(sp.product_amount, "product_amount"),
            max(sp.item_count or 0, 1),
        )

    nominal = fields.get("purchase_cost")
    if nominal is not None:
        markup = current_app.config.get("DEFAULT_MARKUP_PERCENT", 250)
        if fields.get("initial_price") is None:
            fields["initial_price"] = apply_percent(nominal, markup)
        if fields.get("current_price") is None:
            fields["current_price"] = fields["initial_price"]
    return fields


def _lock_store_purchase(store_purchase_id: int) -> StorePurchase:
    """Lock the owning session, then the store purchase."""
    session_id = (
        db.session.query(StorePurchase.session_id).filter_by(id=store_purchase_id).scalar()
    )
    if session_id is None:
        raise ItemNotFoundError(f"Store purchase {store_purchase_id} not found")
    lock_session(session_id)

    sp = lock_for_update(
        db.session.query(StorePurchase).filter_by(id=store_purchase_id)
    ).first()
    if not sp:
        raise ItemNotFoundError(f"Store purchase {store_purchase_id} not found")
    return sp


def add_items(store_purchase_id: int, rows: list[dict]) -> list[Item]:
    """
    Register one or more items against a store purchase.

    All rows are validated before anything is written; the session is
    recomputed once for the whole batch.

    Raises:
        ItemNotFoundError: If the store purchase does not exist
        ItemError: If a row is invalid
        InvalidAmount: If a price is negative
    """
    if not rows:
        raise ItemError("At least one item is required")
    cleaned = []
    for index, row in enumerate(rows):
        try:
            fields = _clean_fields(row)
        except ItemError as exc:
            raise ItemError(f"Row {index + 1}: {exc}") from exc
        if not fields.get("name"):
            raise ItemError(f"Row {index + 1}: Item name is required")
        cleaned.append(fields)

    def _op():
        sp = _lock_store_purchase(store_purchase_id)
        items = []
        for fields in cleaned:
            item = Item(
                store_purchase_id=sp.id,
                status=STATUS_IN_STOCK,
                **_apply_nominal_defaults(sp, dict(fields)),
            )
            db.session.add(item)
            items.append(item)
        db.session.flush()

        recalculate_session_allocations(sp.session_id, commit=False)
        db.session.commit()
        return items

    return run_with_retry(_op)


def add_item(store_purchase_id: int, **fields) -> Item:
    return add_items(store_purchase_id, [fields])[0]


def get_item(item_id: int) -> Item:
    item = db.session.query(Item).filter_by(id=item_id).first()
    if not item:
        raise ItemNotFoundError(f"Item {item_id} not found")
    return item


def list_items(store_purchase_id: int, *, status: str | None = None) -> list[Item]:
    query = db.session.query(Item).filter(Item.store_purchase_id == store_purchase_id)
    if status:
        if status not in ITEM_STATUSES:
            raise ItemError(f"Invalid status. Must be one of: {', '.join(ITEM_STATUSES)}")
        query = query.filter(Item.status == status)
    return query.order_by(Item.id.asc()).all()


def update_item(item_id: int, patch: dict) -> Item:
    """
    Update descriptive fields and reference prices.

    purchase_cost is not an allocation weight, so no recompute is needed.
    """
    fields = _clean_fields(patch)

    def _op():
        item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
        if not item:
            raise ItemNotFoundError(f"Item {item_id} not found")
        for key, value in fields.items():
            setattr(item, key, value)
        db.session.commit()
        return item

    return run_with_retry(_op)


def remove_item(item_id: int) -> None:
    """
    Remove an item and recompute its session.

    Raises:
        ItemNotFoundError: If not found
        ItemStateError: If the item has been sold
    """
    def _op():
        session_id = (
            db.session.query(StorePurchase.session_id)
            .join(Item, Item.store_purchase_id == StorePurchase.id)
            .filter(Item.id == item_id)
            .scalar()
        )
        if session_id is None:
            raise ItemNotFoundError(f"Item {item_id} not found")
        lock_session(session_id)

        item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
        if not item:
            raise ItemNotFoundError(f"Item {item_id} not found")
        if item.status == STATUS_SOLD:
            raise ItemStateError("Cannot remove a sold item")

        db.session.delete(item)
        db.session.flush()

        recalculate_session_allocations(session_id, commit=False)
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# LIFECYCLE
# =============================================================================

def _transition(item_id: int, target: str) -> Item:
    item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
    if not item:
        raise ItemNotFoundError(f"Item {item_id} not found")
    if target not in ALLOWED_TRANSITIONS[item.status]:
        raise ItemStateError(f"Cannot move {item.status} item to {target}")
    item.status = target
    return item


def mark_ready(item_id: int) -> Item:
    def _op():
        item = _transition(item_id, STATUS_READY)
        item.hold_reason = None
        db.session.commit()
        return item

    return run_with_retry(_op)


def list_item(item_id: int, *, price: int | None = None, listed_at: datetime | None = None) -> Item:
    """Mark an item listed; an optional price becomes its current price."""
    if price is not None:
        require_amount(price, "price")

    def _op():
        item = _transition(item_id, STATUS_LISTED)
        if price is not None:
            item.current_price = price
            if item.initial_price is None:
                item.initial_price = price
        if item.listed_at is None or listed_at is not None:
            item.listed_at = listed_at or utcnow()
        item.hold_reason = None
        db.session.commit()
        return item

    return run_with_retry(_op)


def hold_item(item_id: int, *, reason: str | None = None, held_at: datetime | None = None) -> Item:
    def _op():
        item = _transition(item_id, STATUS_ON_HOLD)
        item.hold_reason = reason
        item.held_at = held_at or utcnow()
        db.session.commit()
        return item

    return run_with_retry(_op)


def discard_item(item_id: int, *, reason: str, discarded_at: datetime | None = None) -> Item:
    """
    Write an item off.

    Its allocated cost stays on the row: a discarded item still consumed
    its share of the purchase.
    """
    if not reason:
        raise ItemError("Discard reason is required")

    def _op():
        item = _transition(item_id, STATUS_DISCARDED)
        item.discard_reason = reason
        item.discarded_at = discarded_at or utcnow()
        db.session.flush()

        append_ledger_event(
            event_type="item.discarded",
            entity_type="item",
            entity_id=item.id,
            session_id=item.store_purchase.session_id,
            occurred_at=item.discarded_at,
            note=f"Item {item.id} discarded: {reason}",
            payload={"allocated_cost": item.allocated_cost},
        )
        db.session.commit()
        return item

    return run_with_retry(_op)


def calculate_sale_profit(
    *,
    sold_price: int,
    shipping_cost: int | None,
    cost_basis: int | None,
    fee_bps: int,
) -> dict:
    """Platform fee and net profit for a sale, all in yen."""
    sold_price = require_amount(sold_price, "sold_price")
    shipping = require_amount(shipping_cost, "shipping_cost")
    cost = require_amount(cost_basis, "cost_basis")
    fee = apply_bps(sold_price, fee_bps)
    return {
        "platform_fee": fee,
        "net_profit": sold_price - fee - shipping - cost,
    }


def record_sale(
    item_id: int,
    *,
    sold_price: int,
    shipping_cost: int | None = None,
    sold_at: datetime | None = None,
) -> Item:
    """
    Mark an item sold and freeze its profit figures.

    Raises:
        ItemNotFoundError: If not found
        ItemStateError: If the item is already sold or discarded
        InvalidAmount: If a price is negative
    """
    require_amount(sold_price, "sold_price")
    require_amount(shipping_cost, "shipping_cost")
    fee_bps = current_app.config.get("PLATFORM_FEE_BPS", 1000)

    def _op():
        item = _transition(item_id, STATUS_SOLD)
        cost_basis = item.allocated_cost if item.allocated_cost is not None else item.purchase_cost
        profit = calculate_sale_profit(
            sold_price=sold_price,
            shipping_cost=shipping_cost,
            cost_basis=cost_basis,
            fee_bps=fee_bps,
        )

        item.sold_price = sold_price
        item.sold_at = sold_at or utcnow()
        item.sale_shipping_cost = shipping_cost
        item.cost_at_sale = cost_basis or 0
        item.platform_fee = profit["platform_fee"]
        item.net_profit = profit["net_profit"]
        db.session.flush()

        append_ledger_event(
            event_type="item.sold",
            entity_type="item",
            entity_id=item.id,
            session_id=item.store_purchase.session_id,
            occurred_at=item.sold_at,
            note=f"Item {item.id} sold for {sold_price}",
            payload={
                "sold_price": sold_price,
                "platform_fee": item.platform_fee,
                "shipping_cost": shipping_cost,
                "cost_at_sale": item.cost_at_sale,
                "net_profit": item.net_profit,
            },
        )
        db.session.commit()
        return item

    return run_with_retry(_op)
