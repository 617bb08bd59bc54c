# Overview: Service-layer operations for table sessions, carts and order submission.

"""
Table ordering.

SESSION LIFECYCLE: active -> ordering -> paid -> closed
CART LINE LIFECYCLE: pending -> confirmed -> preparing -> served | cancelled

One open session per table is guaranteed by a partial unique index; the
open-or-reuse path treats an IntegrityError as "somebody else opened it"
and returns theirs. Submission runs in a single transaction: coupon
redemption, kitchen ticket, cart line confirmation and session totals
commit together or not at all.
"""

from __future__ import annotations

import secrets

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CartItem, KitchenOrder, Product, StoreTable, TableSession, CouponIssue
from ..models.orders import (
    LINE_CANCELLED,
    LINE_CONFIRMED,
    LINE_PENDING,
    KITCHEN_NEW,
    OPEN_SESSION_STATUSES,
    SESSION_ACTIVE,
    SESSION_CLOSED,
    SESSION_ORDERING,
    SESSION_PAID,
)
from ..validation import ConflictError, NotFoundError, ServiceError, ValidationError, parse_int
from airctt.time_utils import to_utc_z, utcnow
from . import coupon_service, crm_service, event_service
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .sequence_service import SEQ_KITCHEN_ORDER, next_daily_number
from .side_effects import run_best_effort

SESSION_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SESSION_CODE_LENGTH = 8

# Cart lines are frozen once the session has been paid or closed
LOCKED_SESSION_STATUSES = (SESSION_PAID, SESSION_CLOSED)


def generate_session_code() -> str:
    return "".join(secrets.choice(SESSION_CODE_ALPHABET) for _ in range(SESSION_CODE_LENGTH))


def _unique_session_code() -> str:
    while True:
        code = generate_session_code()
        if not db.session.query(TableSession.id).filter_by(session_code=code).first():
            return code


def _find_open_session(table_id: int) -> TableSession | None:
    return (
        db.session.query(TableSession)
        .filter(TableSession.table_id == table_id, TableSession.status.in_(OPEN_SESSION_STATUSES))
        .populate_existing()
        .first()
    )


def _get_session(session_id: int, for_update: bool = False) -> TableSession:
    q = db.session.query(TableSession).filter_by(id=session_id).populate_existing()
    if for_update:
        q = lock_for_update(q)
    session = q.first()
    if not session:
        raise NotFoundError("Session not found")
    return session


def _cart_lines(session_id: int) -> list[CartItem]:
    return (
        db.session.query(CartItem)
        .filter(CartItem.session_id == session_id, CartItem.status != LINE_CANCELLED)
        .order_by(CartItem.id)
        .all()
    )


def _cart_summary(session_id: int) -> dict:
    lines = _cart_lines(session_id)
    pending_total = sum(l.line_total for l in lines if l.status == LINE_PENDING)
    return {
        "cart_items": [l.to_dict() for l in lines],
        "total_amount": pending_total,
    }


# =============================================================================
# SESSIONS
# =============================================================================


def open_session(
    store_id: int,
    table_id: int,
    user_id: int | None = None,
    guest_phone: str | None = None,
    party_size: int | None = None,
) -> dict:
    """
    Open a session for a table, or return the one already open.

    Returns {session_id, session_code, is_new}.
    """
    if not store_id or not table_id:
        raise ValidationError("Missing parameters")

    table = db.session.get(StoreTable, table_id)
    if not table or table.store_id != store_id:
        raise NotFoundError("Table not found")
    if not table.is_active or not table.store.is_active:
        raise ConflictError("Table is not accepting orders", code="TABLE_INACTIVE")
    if party_size is not None:
        party_size = parse_int(party_size, "party_size", minimum=1)

    existing = _find_open_session(table_id)
    if existing:
        result = {"session_id": existing.id, "session_code": existing.session_code, "is_new": False}
    else:
        session = TableSession(
            store_id=store_id,
            table_id=table_id,
            session_code=_unique_session_code(),
            consumer_id=user_id,
            guest_phone=guest_phone,
            party_size=party_size,
            status=SESSION_ACTIVE,
            total_amount=0,
            discount_amount=0,
            final_amount=0,
        )
        db.session.add(session)
        try:
            db.session.commit()
            result = {"session_id": session.id, "session_code": session.session_code, "is_new": True}
        except IntegrityError:
            # Lost the race for this table; reuse the winner's session
            db.session.rollback()
            existing = _find_open_session(table_id)
            if not existing:
                raise
            result = {"session_id": existing.id, "session_code": existing.session_code, "is_new": False}

    run_best_effort(
        "event.qr_scan",
        event_service.record_event,
        "qr_scan",
        merchant_id=table.store.merchant_id,
        store_id=store_id,
        consumer_id=user_id,
        reference_type="table_session",
        reference_id=result["session_id"],
        payload={"table_id": table_id, "is_new": result["is_new"]},
    )
    return result


def get_session(session_id: int | None = None, code: str | None = None) -> dict:
    """Session with its store, table and non-cancelled cart lines."""
    if session_id:
        session = db.session.get(TableSession, session_id)
    elif code:
        session = db.session.query(TableSession).filter_by(session_code=code.strip().upper()).first()
    else:
        raise ValidationError("code or session_id is required")
    if not session:
        raise NotFoundError("Session not found")

    data = session.to_dict()
    data["store"] = session.store.to_dict()
    data["table"] = session.table.to_dict()
    summary = _cart_summary(session.id)
    data["cart_items"] = summary["cart_items"]
    data["pending_amount"] = summary["total_amount"]
    return data


def _transition_session(session_id: int, from_status: str, to_status: str, stamp: str) -> dict:
    now = utcnow()
    result = db.session.execute(
        update(TableSession)
        .where(TableSession.id == session_id, TableSession.status == from_status)
        .values(status=to_status, **{stamp: now})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        current = db.session.query(TableSession.status).filter_by(id=session_id).scalar()
        if current is None:
            raise NotFoundError("Session not found")
        raise ConflictError(
            f"Session cannot move from {current} to {to_status}",
            {"status": current},
            code="INVALID_SESSION",
        )
    db.session.commit()
    return {"session_id": session_id, "status": to_status, stamp: to_utc_z(now)}


def mark_session_paid(session_id: int) -> dict:
    return _transition_session(session_id, SESSION_ORDERING, SESSION_PAID, "paid_at")


def close_session(session_id: int) -> dict:
    return _transition_session(session_id, SESSION_PAID, SESSION_CLOSED, "closed_at")


# =============================================================================
# CART
# =============================================================================


def add_to_cart(
    session_id: int,
    product_id: int,
    quantity=1,
    options: dict | list | None = None,
    special_request: str | None = None,
) -> dict:
    """
    Add a pending line with the product's current price as snapshot.

    Raises NotFoundError (session/product), ConflictError INVALID_SESSION
    (paid/closed) or PRODUCT_UNAVAILABLE (inactive product).
    """
    if not session_id or not product_id:
        raise ValidationError("Missing parameters")
    quantity = parse_int(1 if quantity is None else quantity, "quantity", minimum=1)

    session = _get_session(session_id)
    if session.status in LOCKED_SESSION_STATUSES:
        raise ConflictError(
            f"Session is {session.status}; no more items can be added",
            {"status": session.status},
            code="INVALID_SESSION",
        )

    product = db.session.get(Product, product_id)
    if not product or product.store_id != session.store_id:
        raise NotFoundError("Product not found")
    if not product.is_active:
        raise ConflictError("Product is not available", {"product_id": product.id}, code="PRODUCT_UNAVAILABLE")

    item = CartItem(
        session_id=session.id,
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit_price=product.base_price,
        options=options,
        special_request=special_request,
        status=LINE_PENDING,
    )
    db.session.add(item)
    db.session.commit()

    summary = _cart_summary(session.id)
    return {"added_item": item.to_dict(), **summary}


def _get_pending_line(cart_item_id: int) -> CartItem:
    item = db.session.get(CartItem, cart_item_id)
    if not item:
        raise NotFoundError("Cart item not found")
    if item.status != LINE_PENDING:
        raise ConflictError(
            f"Cart item is {item.status} and can no longer be changed",
            {"status": item.status},
            code="LINE_LOCKED",
        )
    return item


def update_cart_item(cart_item_id: int, quantity) -> dict:
    """Set a pending line's quantity; zero or less removes the line."""
    if not cart_item_id or quantity is None:
        raise ValidationError("Missing parameters")
    quantity = parse_int(quantity, "quantity")
    item = _get_pending_line(cart_item_id)
    session_id = item.session_id
    if quantity <= 0:
        db.session.delete(item)
        removed = True
    else:
        item.quantity = quantity
        removed = False
    db.session.commit()
    return {"removed": removed, **_cart_summary(session_id)}


def remove_cart_item(cart_item_id: int) -> dict:
    if not cart_item_id:
        raise ValidationError("Missing parameters")
    item = _get_pending_line(cart_item_id)
    session_id = item.session_id
    db.session.delete(item)
    db.session.commit()
    return {"removed": True, **_cart_summary(session_id)}


# =============================================================================
# SUBMIT
# =============================================================================


def submit_order(session_id: int, coupon_issue_id: int | None = None, consumer_id: int | None = None) -> dict:
    """
    Turn pending cart lines into a kitchen order.

    Coupon rules: percent is floor(total * value / 100), amount is the face
    value, the discount never exceeds the total, and an unmet minimum order
    leaves the coupon unused (discount 0). The coupon is redeemed in the
    same transaction as the order. The coupon must belong to the session's
    consumer (or, for a guest session, to the signed-in consumer_id).
    """
    if not session_id:
        raise ValidationError("Missing parameters")

    def _op():
        begin_immediate()
        try:
            session = _get_session(session_id, for_update=True)
            if session.status in LOCKED_SESSION_STATUSES:
                raise ConflictError(
                    f"Session is {session.status}; orders are closed",
                    {"status": session.status},
                    code="INVALID_SESSION",
                )

            lines = (
                db.session.query(CartItem)
                .filter_by(session_id=session.id, status=LINE_PENDING)
                .order_by(CartItem.id)
                .all()
            )
            if not lines:
                raise ConflictError("Cart is empty", code="EMPTY_CART")

            subtotal = sum(l.line_total for l in lines)
            discount = 0
            redeemed = None

            if coupon_issue_id:
                issue = db.session.get(CouponIssue, coupon_issue_id)
                if not issue:
                    raise NotFoundError("Coupon not found")
                owner_id = session.consumer_id or consumer_id
                if owner_id is None:
                    raise ConflictError("Sign in to use a coupon", code="COUPON_REQUIRES_CONSUMER")
                if coupon_service.discount_applies(issue.coupon, subtotal):
                    redeemed = coupon_service.redeem_coupon(
                        coupon_issue_id,
                        session.store_id,
                        order_session_id=session.id,
                        consumer_id=owner_id,
                        commit=False,
                    )
                    discount = coupon_service.compute_discount(issue.coupon, subtotal)

            final_amount = subtotal - discount
            now = utcnow()
            order_number = next_daily_number(
                sequence_type=SEQ_KITCHEN_ORDER,
                scope_id=session.store_id,
                business_date=now.date(),
            )

            items = [
                {
                    "product_id": l.product_id,
                    "product_name": l.product_name,
                    "quantity": l.quantity,
                    "unit_price": l.unit_price,
                    "options": l.options,
                    "special_request": l.special_request,
                }
                for l in lines
            ]
            order = KitchenOrder(
                store_id=session.store_id,
                session_id=session.id,
                table_id=session.table_id,
                business_date=now.date(),
                order_number=order_number,
                items=items,
                subtotal=subtotal,
                discount_amount=discount,
                final_amount=final_amount,
                coupon_issue_id=coupon_issue_id if redeemed else None,
                status=KITCHEN_NEW,
                created_at=now,
            )
            db.session.add(order)
            db.session.flush()

            for line in lines:
                line.status = LINE_CONFIRMED
                line.kitchen_order_id = order.id

            session.total_amount += subtotal
            session.discount_amount += discount
            session.final_amount += final_amount
            if redeemed:
                session.applied_coupon_issue_id = coupon_issue_id
            session.status = SESSION_ORDERING
            session.ordered_at = now

            result = {
                "order_number": order_number,
                "kitchen_order_id": order.id,
                "session_id": session.id,
                "total_amount": subtotal,
                "discount_amount": discount,
                "final_amount": final_amount,
                "coupon_applied": redeemed is not None,
                "items": items,
            }
            context = {
                "merchant_id": session.store.merchant_id,
                "store_id": session.store_id,
                "consumer_id": session.consumer_id or consumer_id,
            }
            db.session.commit()
            return result, context, redeemed
        except ServiceError:
            db.session.rollback()
            raise

    result, context, redeemed = run_with_retry(_op)

    if redeemed:
        coupon_service.after_redeem(redeemed, crm_visit=False)
    run_best_effort(
        "event.order_created",
        event_service.record_event,
        "order_created",
        merchant_id=context["merchant_id"],
        store_id=context["store_id"],
        consumer_id=context["consumer_id"],
        reference_type="kitchen_order",
        reference_id=result["kitchen_order_id"],
        amount=result["final_amount"],
        payload={"order_number": result["order_number"], "discount_amount": result["discount_amount"]},
    )
    run_best_effort(
        "crm.table_order",
        crm_service.register_interaction,
        context["merchant_id"], context["consumer_id"], crm_service.TOUCHPOINT_TABLE_ORDER,
        result["final_amount"],
    )
    return result
