# Overview: Service-layer operations for event ticket sales and gate verification.

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from sqlalchemy import update

from ..extensions import db
from ..models import Account, Ticket, TicketType, TicketedEvent
from ..models.accounts import ROLE_CONSUMER
from ..models.tickets import TICKET_CANCELLED, TICKET_USED, TICKET_VALID
from ..validation import ConflictError, NotFoundError, ServiceError, ValidationError, parse_int
from airctt.time_utils import as_naive_utc, to_utc_z, utcnow
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .sequence_service import SEQ_TICKET, next_daily_number

# Gate opens one day before the event starts
ENTRY_WINDOW = timedelta(days=1)

VERIFY_VALID = "VALID"
VERIFY_NOT_FOUND = "NOT_FOUND"
VERIFY_WRONG_EVENT = "WRONG_EVENT"
VERIFY_ALREADY_USED = "ALREADY_USED"
VERIFY_CANCELLED = "CANCELLED"
VERIFY_NOT_YET = "NOT_YET"


def purchase_tickets(consumer_id: int, ticket_type_id: int, quantity=1) -> dict:
    """
    Sell quantity tickets of one type.

    Availability (total - sold - reserved) and max_per_order are checked;
    sold_quantity moves by a guarded UPDATE so concurrent buyers cannot
    oversell.
    """
    if not consumer_id or not ticket_type_id:
        raise ValidationError("Missing parameters")
    quantity = parse_int(quantity, "quantity", minimum=1)

    consumer = db.session.get(Account, consumer_id)
    if not consumer or consumer.role != ROLE_CONSUMER:
        raise NotFoundError("Consumer not found")

    def _op():
        begin_immediate()
        try:
            ttype = lock_for_update(
                db.session.query(TicketType).filter_by(id=ticket_type_id).populate_existing()
            ).first()
            if not ttype or not ttype.event.is_active:
                raise NotFoundError("Ticket type not found")
            if quantity > ttype.max_per_order:
                raise ValidationError(
                    f"At most {ttype.max_per_order} tickets per order",
                    {"max_per_order": ttype.max_per_order},
                )
            if quantity > ttype.available:
                raise ConflictError(
                    "Not enough tickets available",
                    {"available": ttype.available},
                    code="SOLD_OUT",
                )

            moved = db.session.execute(
                update(TicketType)
                .where(
                    TicketType.id == ttype.id,
                    TicketType.sold_quantity + TicketType.reserved_quantity + quantity <= TicketType.total_quantity,
                )
                .values(sold_quantity=TicketType.sold_quantity + quantity)
                .execution_options(synchronize_session=False)
            )
            if moved.rowcount == 0:
                raise ConflictError("Not enough tickets available", code="SOLD_OUT")

            now = utcnow()
            tickets = []
            for _ in range(quantity):
                seq = next_daily_number(sequence_type=SEQ_TICKET, business_date=now.date())
                ticket = Ticket(
                    ticket_type_id=ttype.id,
                    event_id=ttype.event_id,
                    consumer_id=consumer_id,
                    ticket_number=f"TKT-{now:%Y%m%d}-{seq:04d}",
                    qr_code=secrets.token_hex(16),
                    price_paid=ttype.price,
                    status=TICKET_VALID,
                    purchased_at=now,
                )
                db.session.add(ticket)
                tickets.append(ticket)
            db.session.flush()

            result = {
                "tickets": [t.to_dict() for t in tickets],
                "total_price": ttype.price * quantity,
            }
            db.session.commit()
            return result
        except ServiceError:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def verify_ticket(qr_code: str, event_id: int, now: datetime | None = None) -> dict:
    """
    Gate check. Result codes in evaluation order: NOT_FOUND, WRONG_EVENT,
    ALREADY_USED, CANCELLED, NOT_YET (more than a day before start), VALID.
    A VALID check marks the ticket used.
    """
    if not qr_code or not event_id:
        raise ValidationError("Missing parameters")
    now = as_naive_utc(now) if now is not None else utcnow()

    ticket = db.session.query(Ticket).filter_by(qr_code=qr_code).populate_existing().first()
    if not ticket:
        return {"valid": False, "result": VERIFY_NOT_FOUND}
    if ticket.event_id != event_id:
        return {"valid": False, "result": VERIFY_WRONG_EVENT}
    if ticket.status == TICKET_USED:
        return {"valid": False, "result": VERIFY_ALREADY_USED, "used_at": to_utc_z(ticket.used_at)}
    if ticket.status == TICKET_CANCELLED:
        return {"valid": False, "result": VERIFY_CANCELLED}

    event = db.session.get(TicketedEvent, ticket.event_id)
    if as_naive_utc(event.starts_at) - now > ENTRY_WINDOW:
        return {"valid": False, "result": VERIFY_NOT_YET, "starts_at": to_utc_z(event.starts_at)}

    moved = db.session.execute(
        update(Ticket)
        .where(Ticket.id == ticket.id, Ticket.status == TICKET_VALID)
        .values(status=TICKET_USED, used_at=now)
        .execution_options(synchronize_session=False)
    )
    if moved.rowcount == 0:
        db.session.rollback()
        return {"valid": False, "result": VERIFY_ALREADY_USED}
    db.session.commit()
    return {
        "valid": True,
        "result": VERIFY_VALID,
        "ticket_number": ticket.ticket_number,
        "used_at": to_utc_z(now),
    }


def list_consumer_tickets(consumer_id: int) -> list[dict]:
    rows = (
        db.session.query(Ticket)
        .filter_by(consumer_id=consumer_id)
        .order_by(Ticket.purchased_at.desc(), Ticket.id.desc())
        .all()
    )
    result = []
    for t in rows:
        row = t.to_dict()
        row["event"] = t.event.to_dict()
        row["ticket_type"] = t.ticket_type.name
        result.append(row)
    return result


def create_event(merchant_id: int, title: str, starts_at: datetime, venue: str | None = None,
                 ticket_types: list[dict] | None = None) -> dict:
    if not merchant_id or not title or starts_at is None:
        raise ValidationError("Missing parameters")
    event = TicketedEvent(merchant_id=merchant_id, title=title, venue=venue, starts_at=starts_at, is_active=True)
    db.session.add(event)
    db.session.flush()
    for type_data in ticket_types or []:
        total = parse_int(type_data.get("total_quantity"), "total_quantity", minimum=1)
        db.session.add(TicketType(
            event_id=event.id,
            name=type_data.get("name") or "General",
            price=parse_int(type_data.get("price", 0), "price", minimum=0),
            total_quantity=total,
            sold_quantity=0,
            reserved_quantity=0,
            max_per_order=parse_int(type_data.get("max_per_order", 10), "max_per_order", minimum=1),
        ))
    db.session.commit()
    return {"event": event.to_dict(), "ticket_types": [t.to_dict() for t in event.ticket_types]}


def get_event(event_id: int, merchant_id: int | None = None) -> TicketedEvent:
    event = db.session.get(TicketedEvent, event_id)
    if event is None or (merchant_id is not None and event.merchant_id != merchant_id):
        raise NotFoundError("Event not found")
    return event


def list_events(merchant_id: int | None = None, active_only: bool = True) -> list[dict]:
    q = db.session.query(TicketedEvent)
    if merchant_id is not None:
        q = q.filter_by(merchant_id=merchant_id)
    if active_only:
        q = q.filter_by(is_active=True)
    result = []
    for event in q.order_by(TicketedEvent.starts_at).all():
        row = event.to_dict()
        row["ticket_types"] = [t.to_dict() for t in event.ticket_types]
        result.append(row)
    return result
