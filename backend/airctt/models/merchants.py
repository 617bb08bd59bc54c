from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow

APPROVAL_STATUSES = ("pending", "reviewing", "approved", "rejected", "suspended")


class Merchant(db.Model):
    """
    A business on the platform. Owns stores, coupons and a prepaid wallet.

    approval_status is driven by admin review (see MerchantApproval).
    """
    __tablename__ = "merchants"
    __table_args__ = (
        db.CheckConstraint(
            "approval_status IN ('pending', 'reviewing', 'approved', 'rejected', 'suspended')",
            name="ck_merchants_approval_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_name = db.Column(db.String(128), nullable=False)
    owner_name = db.Column(db.String(64), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    business_number = db.Column(db.String(32), nullable=True)
    category = db.Column(db.String(32), nullable=True)

    approval_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_name": self.business_name,
            "owner_name": self.owner_name,
            "phone": self.phone,
            "email": self.email,
            "business_number": self.business_number,
            "category": self.category,
            "approval_status": self.approval_status,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class Store(db.Model):
    """
    Physical location of a merchant.

    Coordinates are nullable: stores without them are still listed by the
    discovery endpoints (distance unknown). Stores are never hard-deleted;
    deactivate with is_active=False.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.Index("ix_stores_merchant_active", "merchant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    category = db.Column(db.String(32), nullable=True, index=True)

    lat = db.Column(db.Float, nullable=True)
    lng = db.Column(db.Float, nullable=True)
    radius_m = db.Column(db.Integer, nullable=False, default=5000)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("stores", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "category": self.category,
            "lat": self.lat,
            "lng": self.lng,
            "radius_m": self.radius_m,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StoreTable(db.Model):
    """A physical table carrying a QR code that opens a table session."""
    __tablename__ = "store_tables"
    __table_args__ = (
        db.UniqueConstraint("store_id", "table_number", name="uq_store_tables_store_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    table_number = db.Column(db.String(16), nullable=False)
    seats = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    store = db.relationship("Store", backref=db.backref("tables", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "table_number": self.table_number,
            "seats": self.seats,
            "is_active": self.is_active,
        }


class MerchantApproval(db.Model):
    """
    Append-only history of admin review actions on a merchant.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "merchant_approvals"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)  # approve, reject, suspend, review
    from_status = db.Column(db.String(16), nullable=False)
    to_status = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    admin_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "action": self.action,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
            "admin_account_id": self.admin_account_id,
            "created_at": to_utc_z(self.created_at),
        }


class MerchantCustomer(db.Model):
    """
    CRM relationship between a merchant and a consumer.

    Denormalized aggregates, updated by best-effort touchpoints
    (coupon issues, redemptions, table orders).
    """
    __tablename__ = "merchant_customers"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "consumer_id", name="uq_merchant_customers_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    consumer_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    visit_count = db.Column(db.Integer, nullable=False, default=0)
    coupon_issue_count = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Integer, nullable=False, default=0)
    last_touchpoint = db.Column(db.String(32), nullable=True)

    first_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "consumer_id": self.consumer_id,
            "visit_count": self.visit_count,
            "coupon_issue_count": self.coupon_issue_count,
            "total_spent": self.total_spent,
            "last_touchpoint": self.last_touchpoint,
            "first_visit_at": to_utc_z(self.first_visit_at) if self.first_visit_at else None,
            "last_visit_at": to_utc_z(self.last_visit_at) if self.last_visit_at else None,
        }
