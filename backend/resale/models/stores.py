from __future__ import annotations

from ..extensions import db
from resale.time_utils import to_utc_z


STORE_TYPES = ("online", "recycle", "wholesale", "other")


class Store(db.Model):
    """
    A shop goods are bought from (thrift store, wholesaler, online shop).

    Stores are reference data only: nothing about a store takes part in
    cost allocation.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.Index("ix_stores_type_name", "store_type", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    store_type = db.Column(db.String(16), nullable=False, default="other")
    prefecture = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} type={self.store_type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "store_type": self.store_type,
            "prefecture": self.prefecture,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
