from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow, has_elapsed

ISSUE_ISSUED = "ISSUED"
ISSUE_USED = "USED"
ISSUE_EXPIRED = "EXPIRED"
ISSUE_CANCELLED = "CANCELLED"
ISSUE_STATUSES = (ISSUE_ISSUED, ISSUE_USED, ISSUE_EXPIRED, ISSUE_CANCELLED)

ISSUE_CHANNELS = ("event", "merchant", "admin", "table_order")


class Coupon(db.Model):
    """
    Coupon template defined by a merchant.

    store_id NULL means the coupon is honored at every store of the merchant.
    valid_from / valid_to NULL mean an open bound. total_issuable NULL means
    unlimited; issued_count is only ever moved by a guarded atomic UPDATE,
    which also bumps version_id so stale ORM edits fail their version check.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.CheckConstraint("discount_type IN ('percent', 'amount')", name="ck_coupons_discount_type"),
        db.CheckConstraint("issued_count >= 0", name="ck_coupons_issued_count"),
        db.CheckConstraint(
            "total_issuable IS NULL OR issued_count <= total_issuable",
            name="ck_coupons_issued_within_limit",
        ),
        db.Index("ix_coupons_merchant_active", "merchant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    title = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(32), nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)  # percent, amount
    discount_value = db.Column(db.Integer, nullable=False)
    max_discount_amount = db.Column(db.Integer, nullable=True)
    min_order_amount = db.Column(db.Integer, nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_to = db.Column(db.DateTime(timezone=True), nullable=True)

    total_issuable = db.Column(db.Integer, nullable=True)
    issued_count = db.Column(db.Integer, nullable=False, default=0)
    per_user_limit = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    merchant = db.relationship("Merchant", backref=db.backref("coupons", lazy=True))
    store = db.relationship("Store", backref=db.backref("coupons", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "store_id": self.store_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "max_discount_amount": self.max_discount_amount,
            "min_order_amount": self.min_order_amount,
            "valid_from": to_utc_z(self.valid_from) if self.valid_from else None,
            "valid_to": to_utc_z(self.valid_to) if self.valid_to else None,
            "total_issuable": self.total_issuable,
            "issued_count": self.issued_count,
            "per_user_limit": self.per_user_limit,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CouponIssue(db.Model):
    """
    One coupon granted to one consumer.

    LIFECYCLE: ISSUED -> USED | CANCELLED. EXPIRED is derived at read time
    from the coupon's valid_to (see effective_status) and is never written
    by the redemption path.
    """
    __tablename__ = "coupon_issues"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('ISSUED', 'USED', 'EXPIRED', 'CANCELLED')",
            name="ck_coupon_issues_status",
        ),
        db.Index("ix_coupon_issues_consumer_status", "consumer_id", "status"),
        db.Index("ix_coupon_issues_coupon_consumer", "coupon_id", "consumer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    consumer_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    code = db.Column(db.String(16), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default=ISSUE_ISSUED, index=True)
    reason = db.Column(db.String(64), nullable=False, default="MANUAL")
    issued_from = db.Column(db.String(16), nullable=False, default="merchant")

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    used_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)
    used_order_session_id = db.Column(db.Integer, db.ForeignKey("table_sessions.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    coupon = db.relationship("Coupon", backref=db.backref("issues", lazy=True))

    @property
    def effective_status(self) -> str:
        if self.status == ISSUE_ISSUED and self.coupon is not None and has_elapsed(self.coupon.valid_to):
            return ISSUE_EXPIRED
        return self.status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coupon_id": self.coupon_id,
            "consumer_id": self.consumer_id,
            "code": self.code,
            "status": self.effective_status,
            "reason": self.reason,
            "issued_from": self.issued_from,
            "issued_at": to_utc_z(self.issued_at),
            "used_at": to_utc_z(self.used_at) if self.used_at else None,
            "used_store_id": self.used_store_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
        }
