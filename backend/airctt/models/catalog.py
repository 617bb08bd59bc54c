from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Menu item sold through table ordering.

    base_price is in KRW (won). Cart lines snapshot it at add time, so later
    price edits never change an order in progress.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(32), nullable=True)
    base_price = db.Column(db.Integer, nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "base_price": self.base_price,
            "display_order": self.display_order,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
