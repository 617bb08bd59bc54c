# Overview: Service-layer operations for the kitchen display (order status transitions).

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import CartItem, KitchenOrder, TableSession, Store
from ..models.orders import (
    KITCHEN_CANCELLED,
    KITCHEN_NEW,
    KITCHEN_PREPARING,
    KITCHEN_READY,
    KITCHEN_SERVED,
    KITCHEN_STATUSES,
    LINE_CANCELLED,
    LINE_CONFIRMED,
    LINE_PREPARING,
    LINE_SERVED,
)
from ..validation import ConflictError, NotFoundError, ServiceError, ValidationError
from airctt.time_utils import end_of_day, start_of_day, utcnow
from .concurrency import begin_immediate, run_with_retry

ALLOWED_TRANSITIONS = {
    KITCHEN_NEW: {KITCHEN_PREPARING, KITCHEN_CANCELLED},
    KITCHEN_PREPARING: {KITCHEN_READY, KITCHEN_CANCELLED},
    KITCHEN_READY: {KITCHEN_SERVED},
    KITCHEN_SERVED: set(),
    KITCHEN_CANCELLED: set(),
}

TIMESTAMP_FIELDS = {
    KITCHEN_PREPARING: "started_at",
    KITCHEN_READY: "ready_at",
    KITCHEN_SERVED: "served_at",
    KITCHEN_CANCELLED: "cancelled_at",
}

# (line statuses that move, target line status) per kitchen status
LINE_CASCADE = {
    KITCHEN_PREPARING: ((LINE_CONFIRMED,), LINE_PREPARING),
    KITCHEN_SERVED: ((LINE_CONFIRMED, LINE_PREPARING), LINE_SERVED),
    KITCHEN_CANCELLED: ((LINE_CONFIRMED, LINE_PREPARING), LINE_CANCELLED),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def list_kitchen_orders(store_id: int, status: str | None = None, today_only: bool = True) -> list[dict]:
    if not store_id:
        raise ValidationError("store_id is required")
    if status and status not in KITCHEN_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(KITCHEN_STATUSES)}")

    q = db.session.query(KitchenOrder).filter_by(store_id=store_id)
    if status:
        q = q.filter_by(status=status)
    if today_only:
        now = utcnow()
        q = q.filter(KitchenOrder.created_at >= start_of_day(now), KitchenOrder.created_at < end_of_day(now))
    return [o.to_dict() for o in q.order_by(KitchenOrder.created_at, KitchenOrder.id).all()]


def update_kitchen_status(order_id: int, status: str, merchant_id: int | None = None) -> dict:
    """
    Move a kitchen order along new -> preparing -> ready -> served
    (or cancel from new/preparing), stamping the matching timestamp and
    cascading the change to that order's cart lines.

    Cancelling also takes the order's amounts back out of the session totals.
    """
    if not order_id or not status:
        raise ValidationError("Missing parameters")
    if status not in KITCHEN_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(KITCHEN_STATUSES)}")

    def _op():
        begin_immediate()
        try:
            order = db.session.query(KitchenOrder).filter_by(id=order_id).populate_existing().first()
            if not order:
                raise NotFoundError("Order not found")
            if merchant_id is not None:
                store = db.session.get(Store, order.store_id)
                if store.merchant_id != merchant_id:
                    raise NotFoundError("Order not found")

            current = order.status
            if not can_transition(current, status):
                raise ConflictError(
                    f"Cannot change order from {current} to {status}",
                    {"status": current},
                    code="INVALID_TRANSITION",
                )

            now = utcnow()
            stamp = TIMESTAMP_FIELDS[status]
            result = db.session.execute(
                update(KitchenOrder)
                .where(KitchenOrder.id == order.id, KitchenOrder.status == current)
                .values(status=status, **{stamp: now})
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                latest = db.session.query(KitchenOrder.status).filter_by(id=order.id).scalar()
                raise ConflictError(
                    f"Cannot change order from {latest} to {status}",
                    {"status": latest},
                    code="INVALID_TRANSITION",
                )

            cascade = LINE_CASCADE.get(status)
            if cascade:
                from_statuses, to_status = cascade
                db.session.execute(
                    update(CartItem)
                    .where(CartItem.kitchen_order_id == order.id, CartItem.status.in_(from_statuses))
                    .values(status=to_status)
                    .execution_options(synchronize_session=False)
                )

            if status == KITCHEN_CANCELLED:
                db.session.execute(
                    update(TableSession)
                    .where(TableSession.id == order.session_id)
                    .values(
                        total_amount=TableSession.total_amount - order.subtotal,
                        discount_amount=TableSession.discount_amount - order.discount_amount,
                        final_amount=TableSession.final_amount - order.final_amount,
                    )
                    .execution_options(synchronize_session=False)
                )

            db.session.commit()
            order = db.session.query(KitchenOrder).filter_by(id=order_id).populate_existing().one()
            return order.to_dict()
        except ServiceError:
            db.session.rollback()
            raise

    return run_with_retry(_op)
