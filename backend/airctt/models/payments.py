from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"


class TopupPackage(db.Model):
    """Preset merchant wallet top-up offers."""
    __tablename__ = "topup_packages"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    bonus_amount = db.Column(db.Integer, nullable=True)
    bonus_percent = db.Column(db.Integer, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "bonus_amount": self.bonus_amount,
            "bonus_percent": self.bonus_percent,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }


class Payment(db.Model):
    """
    Card payment confirmed through the payment gateway.

    LIFECYCLE: pending -> paid | failed. Transitions are conditional on
    status='pending' so a replayed confirmation cannot credit twice.
    pg_order_id is the idempotency key shared with the gateway.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'paid', 'failed')", name="ck_payments_status"),
        db.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    payment_type = db.Column(db.String(16), nullable=False, default="topup")
    package_id = db.Column(db.Integer, db.ForeignKey("topup_packages.id"), nullable=True)

    amount = db.Column(db.Integer, nullable=False)
    bonus_amount = db.Column(db.Integer, nullable=False, default=0)

    pg_order_id = db.Column(db.String(64), nullable=False, unique=True)
    payment_key = db.Column(db.String(200), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)
    method = db.Column(db.String(32), nullable=True)
    card_company = db.Column(db.String(64), nullable=True)
    receipt_url = db.Column(db.String(255), nullable=True)
    failure_code = db.Column(db.String(64), nullable=True)
    failure_message = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "payment_type": self.payment_type,
            "package_id": self.package_id,
            "amount": self.amount,
            "bonus_amount": self.bonus_amount,
            "pg_order_id": self.pg_order_id,
            "status": self.status,
            "method": self.method,
            "card_company": self.card_company,
            "receipt_url": self.receipt_url,
            "failure_code": self.failure_code,
            "failure_message": self.failure_message,
            "created_at": to_utc_z(self.created_at),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
        }
