from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow

SESSION_ACTIVE = "active"
SESSION_ORDERING = "ordering"
SESSION_PAID = "paid"
SESSION_CLOSED = "closed"
SESSION_STATUSES = (SESSION_ACTIVE, SESSION_ORDERING, SESSION_PAID, SESSION_CLOSED)
OPEN_SESSION_STATUSES = (SESSION_ACTIVE, SESSION_ORDERING)

LINE_PENDING = "pending"
LINE_CONFIRMED = "confirmed"
LINE_PREPARING = "preparing"
LINE_SERVED = "served"
LINE_CANCELLED = "cancelled"
LINE_STATUSES = (LINE_PENDING, LINE_CONFIRMED, LINE_PREPARING, LINE_SERVED, LINE_CANCELLED)

KITCHEN_NEW = "new"
KITCHEN_PREPARING = "preparing"
KITCHEN_READY = "ready"
KITCHEN_SERVED = "served"
KITCHEN_CANCELLED = "cancelled"
KITCHEN_STATUSES = (KITCHEN_NEW, KITCHEN_PREPARING, KITCHEN_READY, KITCHEN_SERVED, KITCHEN_CANCELLED)

_OPEN_SESSION_WHERE = db.text("status IN ('active', 'ordering')")


class TableSession(db.Model):
    """
    Ordering context for one visit at one table, opened by a QR scan.

    LIFECYCLE: active -> ordering -> paid -> closed.

    INVARIANT: at most one open (active/ordering) session per table,
    enforced by a partial unique index.
    """
    __tablename__ = "table_sessions"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('active', 'ordering', 'paid', 'closed')",
            name="ck_table_sessions_status",
        ),
        db.Index(
            "uq_table_sessions_open_table",
            "table_id",
            unique=True,
            sqlite_where=_OPEN_SESSION_WHERE,
            postgresql_where=_OPEN_SESSION_WHERE,
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    table_id = db.Column(db.Integer, db.ForeignKey("store_tables.id"), nullable=False, index=True)
    session_code = db.Column(db.String(8), nullable=False, unique=True)

    consumer_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    guest_phone = db.Column(db.String(32), nullable=True)
    party_size = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_ACTIVE, index=True)

    total_amount = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    final_amount = db.Column(db.Integer, nullable=False, default=0)
    applied_coupon_issue_id = db.Column(db.Integer, nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    ordered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store = db.relationship("Store")
    table = db.relationship("StoreTable")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "table_id": self.table_id,
            "session_code": self.session_code,
            "consumer_id": self.consumer_id,
            "guest_phone": self.guest_phone,
            "party_size": self.party_size,
            "status": self.status,
            "total_amount": self.total_amount,
            "discount_amount": self.discount_amount,
            "final_amount": self.final_amount,
            "applied_coupon_issue_id": self.applied_coupon_issue_id,
            "started_at": to_utc_z(self.started_at),
            "ordered_at": to_utc_z(self.ordered_at) if self.ordered_at else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
        }


class CartItem(db.Model):
    """
    One cart line within a table session.

    unit_price and product_name are snapshots taken when the line is added.

    LIFECYCLE: pending -> confirmed (order submitted) -> preparing -> served,
    or cancelled. Only pending lines are editable.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        db.CheckConstraint(
            "status IN ('pending', 'confirmed', 'preparing', 'served', 'cancelled')",
            name="ck_cart_items_status",
        ),
        db.Index("ix_cart_items_session_status", "session_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("table_sessions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    kitchen_order_id = db.Column(db.Integer, db.ForeignKey("kitchen_orders.id"), nullable=True, index=True)

    product_name = db.Column(db.String(128), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Integer, nullable=False)
    options = db.Column(db.JSON, nullable=True)
    special_request = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=LINE_PENDING)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "product_id": self.product_id,
            "kitchen_order_id": self.kitchen_order_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
            "options": self.options,
            "special_request": self.special_request,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class KitchenOrder(db.Model):
    """
    Kitchen ticket materialized from one order submission.

    items is a denormalized snapshot; the kitchen screen never joins back
    to products. Each forward transition stamps its own timestamp.
    """
    __tablename__ = "kitchen_orders"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('new', 'preparing', 'ready', 'served', 'cancelled')",
            name="ck_kitchen_orders_status",
        ),
        db.UniqueConstraint("store_id", "business_date", "order_number", name="uq_kitchen_orders_store_day_number"),
        db.Index("ix_kitchen_orders_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("table_sessions.id"), nullable=False, index=True)
    table_id = db.Column(db.Integer, db.ForeignKey("store_tables.id"), nullable=True)

    business_date = db.Column(db.Date, nullable=False)
    order_number = db.Column(db.Integer, nullable=False)
    items = db.Column(db.JSON, nullable=False)

    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    final_amount = db.Column(db.Integer, nullable=False, default=0)
    coupon_issue_id = db.Column(db.Integer, db.ForeignKey("coupon_issues.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=KITCHEN_NEW, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    served_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    session = db.relationship("TableSession", backref=db.backref("kitchen_orders", lazy=True))
    table = db.relationship("StoreTable")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "session_id": self.session_id,
            "table_id": self.table_id,
            "table_number": self.table.table_number if self.table else None,
            "order_number": self.order_number,
            "items": self.items,
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "final_amount": self.final_amount,
            "coupon_issue_id": self.coupon_issue_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "started_at": to_utc_z(self.started_at) if self.started_at else None,
            "ready_at": to_utc_z(self.ready_at) if self.ready_at else None,
            "served_at": to_utc_z(self.served_at) if self.served_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
        }
