from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow

TICKET_VALID = "valid"
TICKET_USED = "used"
TICKET_CANCELLED = "cancelled"


class TicketedEvent(db.Model):
    """Event hosted by a merchant that sells admission tickets."""
    __tablename__ = "ticketed_events"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    title = db.Column(db.String(128), nullable=False)
    venue = db.Column(db.String(255), nullable=True)
    starts_at = db.Column(db.DateTime(timezone=True), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "title": self.title,
            "venue": self.venue,
            "starts_at": to_utc_z(self.starts_at),
            "is_active": self.is_active,
        }


class TicketType(db.Model):
    """
    Sellable tier of an event.

    available = total_quantity - sold_quantity - reserved_quantity.
    sold_quantity moves only through a guarded UPDATE.
    """
    __tablename__ = "ticket_types"
    __table_args__ = (
        db.CheckConstraint(
            "sold_quantity + reserved_quantity <= total_quantity",
            name="ck_ticket_types_capacity",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("ticketed_events.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    price = db.Column(db.Integer, nullable=False, default=0)
    total_quantity = db.Column(db.Integer, nullable=False)
    sold_quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    max_per_order = db.Column(db.Integer, nullable=False, default=10)

    event = db.relationship("TicketedEvent", backref=db.backref("ticket_types", lazy=True))

    @property
    def available(self) -> int:
        return self.total_quantity - self.sold_quantity - self.reserved_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "name": self.name,
            "price": self.price,
            "total_quantity": self.total_quantity,
            "sold_quantity": self.sold_quantity,
            "reserved_quantity": self.reserved_quantity,
            "available": self.available,
            "max_per_order": self.max_per_order,
        }


class Ticket(db.Model):
    __tablename__ = "tickets"
    __table_args__ = (
        db.CheckConstraint("status IN ('valid', 'used', 'cancelled')", name="ck_tickets_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_type_id = db.Column(db.Integer, db.ForeignKey("ticket_types.id"), nullable=False, index=True)
    event_id = db.Column(db.Integer, db.ForeignKey("ticketed_events.id"), nullable=False, index=True)
    consumer_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    ticket_number = db.Column(db.String(32), nullable=False, unique=True)
    qr_code = db.Column(db.String(32), nullable=False, unique=True)
    price_paid = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=TICKET_VALID)
    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    event = db.relationship("TicketedEvent")
    ticket_type = db.relationship("TicketType")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_type_id": self.ticket_type_id,
            "event_id": self.event_id,
            "consumer_id": self.consumer_id,
            "ticket_number": self.ticket_number,
            "qr_code": self.qr_code,
            "price_paid": self.price_paid,
            "status": self.status,
            "purchased_at": to_utc_z(self.purchased_at),
            "used_at": to_utc_z(self.used_at) if self.used_at else None,
        }
