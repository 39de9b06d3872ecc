from __future__ import annotations

from ..extensions import db
from resale.time_utils import to_utc_z, to_iso_date


SESSION_STATUSES = ("active", "completed")
PRICE_INPUT_MODES = ("individual", "batch")
ITEM_STATUSES = ("in_stock", "ready_to_list", "listed", "sold", "on_hold", "discarded")


class PurchaseSession(db.Model):
    """
    A purchasing trip.

    COST MODEL:
    - transportation_cost, transfer_fee and agency_fee are shared by every
      store purchase in the session (the session's "common cost").
    - All amounts are integer yen. NULL means "not entered" and counts as 0.
    - The common cost reaches items only through the allocation service,
      which apportions it by store purchase subtotal.
    """
    __tablename__ = "purchase_sessions"
    __table_args__ = (
        db.Index("ix_purchase_sessions_status_date", "status", "session_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    session_date = db.Column(db.Date, nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    transportation_cost = db.Column(db.Integer, nullable=True)
    transfer_fee = db.Column(db.Integer, nullable=True)
    agency_fee = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store_purchases = db.relationship(
        "StorePurchase",
        back_populates="session",
        lazy=True,
        order_by="StorePurchase.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseSession id={self.id} title={self.title!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "session_date": to_iso_date(self.session_date),
            "status": self.status,
            "transportation_cost": self.transportation_cost,
            "transfer_fee": self.transfer_fee,
            "agency_fee": self.agency_fee,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StorePurchase(db.Model):
    """
    One store's worth of goods bought during a session.

    item_count is the number of items the buyer EXPECTS to register. It is
    informational: allocation always divides by the items actually present.
    """
    __tablename__ = "store_purchases"
    __table_args__ = (
        db.Index("ix_store_purchases_session", "session_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("purchase_sessions.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    purchase_date = db.Column(db.Date, nullable=True)

    product_amount = db.Column(db.Integer, nullable=True)
    shipping_cost = db.Column(db.Integer, nullable=True)
    commission_fee = db.Column(db.Integer, nullable=True)

    item_count = db.Column(db.Integer, nullable=False, default=0)
    price_input_mode = db.Column(db.String(16), nullable=False, default="individual")

    payment_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    session = db.relationship("PurchaseSession", back_populates="store_purchases")
    store = db.relationship("Store", backref=db.backref("store_purchases", lazy=True))
    items = db.relationship(
        "Item",
        back_populates="store_purchase",
        lazy=True,
        order_by="Item.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StorePurchase id={self.id} session_id={self.session_id} mode={self.price_input_mode}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "store_id": self.store_id,
            "purchase_date": to_iso_date(self.purchase_date),
            "product_amount": self.product_amount,
            "shipping_cost": self.shipping_cost,
            "commission_fee": self.commission_fee,
            "item_count": self.item_count,
            "price_input_mode": self.price_input_mode,
            "payment_notes": self.payment_notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Item(db.Model):
    """
    One physical unit for resale.

    OWNERSHIP:
    - purchase_cost is what the user typed (a reference value only).
    - allocated_cost is derived. Only allocation_service writes it; it is
      NULL until the first recompute and is overwritten by every recompute.
    - cost_at_sale, platform_fee and net_profit are frozen when the item
      is sold and are never revalued afterwards.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_store_purchase_status", "store_purchase_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_purchase_id = db.Column(
        db.Integer, db.ForeignKey("store_purchases.id"), nullable=False, index=True
    )

    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(120), nullable=True)
    category = db.Column(db.String(120), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    condition = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    purchase_cost = db.Column(db.Integer, nullable=True)
    allocated_cost = db.Column(db.Integer, nullable=True)

    initial_price = db.Column(db.Integer, nullable=True)
    current_price = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="in_stock", index=True)

    listed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sold_price = db.Column(db.Integer, nullable=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sale_shipping_cost = db.Column(db.Integer, nullable=True)
    platform_fee = db.Column(db.Integer, nullable=True)
    cost_at_sale = db.Column(db.Integer, nullable=True)
    net_profit = db.Column(db.Integer, nullable=True)

    hold_reason = db.Column(db.String(255), nullable=True)
    held_at = db.Column(db.DateTime(timezone=True), nullable=True)
    discard_reason = db.Column(db.String(255), nullable=True)
    discarded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store_purchase = db.relationship("StorePurchase", back_populates="items")

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_purchase_id": self.store_purchase_id,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "size": self.size,
            "color": self.color,
            "condition": self.condition,
            "notes": self.notes,
            "purchase_cost": self.purchase_cost,
            "allocated_cost": self.allocated_cost,
            "initial_price": self.initial_price,
            "current_price": self.current_price,
            "status": self.status,
            "listed_at": to_utc_z(self.listed_at),
            "sold_price": self.sold_price,
            "sold_at": to_utc_z(self.sold_at),
            "sale_shipping_cost": self.sale_shipping_cost,
            "platform_fee": self.platform_fee,
            "cost_at_sale": self.cost_at_sale,
            "net_profit": self.net_profit,
            "hold_reason": self.hold_reason,
            "held_at": to_utc_z(self.held_at),
            "discard_reason": self.discard_reason,
            "discarded_at": to_utc_z(self.discarded_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
