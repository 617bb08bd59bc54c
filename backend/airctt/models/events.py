from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow


class TransactionEvent(db.Model):
    """
    Analytics trail of business events (qr_scan, coupon_issued,
    coupon_redeemed, order_created, payment_completed, ...).

    Written best-effort; gaps are possible and recorded in
    side_effect_failures.
    """
    __tablename__ = "transaction_events"
    __table_args__ = (
        db.Index("ix_transaction_events_type_created", "event_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(32), nullable=False)
    merchant_id = db.Column(db.Integer, nullable=True, index=True)
    store_id = db.Column(db.Integer, nullable=True)
    consumer_id = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    amount = db.Column(db.Integer, nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "merchant_id": self.merchant_id,
            "store_id": self.store_id,
            "consumer_id": self.consumer_id,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "amount": self.amount,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }


class AuditLog(db.Model):
    """
    Admin action trail.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_account_id": self.actor_account_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }


class SideEffectFailure(db.Model):
    """
    Dead-letter log for best-effort work (CRM touchpoints, analytics events)
    that raised after the primary transaction had committed.
    """
    __tablename__ = "side_effect_failures"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=True)
    error = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "payload": self.payload,
            "error": self.error,
            "created_at": to_utc_z(self.created_at),
        }
