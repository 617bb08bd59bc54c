# Overview: Service-layer operations for merchant wallet top-ups and payment confirmation.

"""
Top-up payments.

LIFECYCLE: pending -> paid | failed, each transition conditional on
status='pending'. A successful confirmation marks the payment paid and
credits the merchant wallet (charge row, plus a bonus row when the
package grants one) in one transaction. Replaying a confirmation with the
same paymentKey returns the recorded result without crediting again.
"""

from __future__ import annotations

import secrets
import string

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Merchant, Payment, TopupPackage
from ..models.payments import PAYMENT_FAILED, PAYMENT_PAID, PAYMENT_PENDING
from ..models.wallets import OWNER_MERCHANT
from ..validation import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ServiceError,
    ValidationError,
    parse_int,
)
from airctt.time_utils import utcnow
from . import event_service, payment_gateway, wallet_service
from .concurrency import begin_immediate, run_with_retry
from .side_effects import run_best_effort

ORDER_ID_ALPHABET = string.ascii_uppercase + string.digits


def list_packages() -> list[dict]:
    rows = (
        db.session.query(TopupPackage)
        .filter_by(is_active=True)
        .order_by(TopupPackage.display_order, TopupPackage.id)
        .all()
    )
    return [p.to_dict() for p in rows]


def compute_bonus(package: TopupPackage) -> int:
    if package.bonus_amount:
        return package.bonus_amount
    if package.bonus_percent:
        return (package.amount * package.bonus_percent) // 100
    return 0


def generate_order_id(now=None) -> str:
    now = now or utcnow()
    suffix = "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(6))
    return f"CTT_{now:%Y%m%d%H%M%S}_{suffix}"


def create_topup(merchant_id: int, package_id: int | None = None, custom_amount=None) -> dict:
    """Create a pending top-up payment and the client-side checkout config."""
    if not merchant_id:
        raise ValidationError("Missing parameters")
    merchant = db.session.get(Merchant, merchant_id)
    if not merchant:
        raise NotFoundError("Merchant not found")

    if package_id:
        package = db.session.get(TopupPackage, package_id)
        if not package or not package.is_active:
            raise NotFoundError("Package not found")
        amount = package.amount
        bonus = compute_bonus(package)
        order_name = package.name
    elif custom_amount is not None:
        amount = parse_int(custom_amount, "custom_amount")
        minimum = current_app.config.get("TOPUP_MIN_AMOUNT", 10000)
        if amount < minimum:
            raise ValidationError(f"custom_amount must be at least {minimum}", {"minimum": minimum})
        package = None
        bonus = 0
        order_name = f"Wallet top-up {amount:,}"
    else:
        raise ValidationError("package_id or custom_amount is required")

    payment = Payment(
        merchant_id=merchant.id,
        payment_type="topup",
        package_id=package.id if package else None,
        amount=amount,
        bonus_amount=bonus,
        pg_order_id=generate_order_id(),
        status=PAYMENT_PENDING,
    )
    db.session.add(payment)
    db.session.commit()

    return {
        "payment": payment.to_dict(),
        "toss_config": {
            "client_key": current_app.config["TOSS_CLIENT_KEY"],
            "order_id": payment.pg_order_id,
            "order_name": order_name,
            "amount": amount,
            "customer_name": merchant.business_name,
        },
    }


def _confirmed_result(payment: Payment, already_confirmed: bool) -> dict:
    return {
        "status": PAYMENT_PAID,
        "already_confirmed": already_confirmed,
        "payment": payment.to_dict(),
        "credited_amount": payment.amount + payment.bonus_amount,
    }


def _mark_failed(payment_id: int, code: str | None, message: str | None) -> None:
    db.session.execute(
        update(Payment)
        .where(Payment.id == payment_id, Payment.status == PAYMENT_PENDING)
        .values(status=PAYMENT_FAILED, failure_code=code, failure_message=(message or "")[:255] or None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def confirm_payment(payment_key: str, order_id: str, amount, merchant_id: int | None = None) -> dict:
    """
    Confirm a pending payment with the gateway and credit the wallet.

    Raises NotFoundError (unknown order), ValidationError (amount mismatch),
    ConflictError (declined or already failed), DependencyError (gateway
    unreachable after retries; the payment stays pending and can be retried).
    """
    if not payment_key or not order_id or amount is None:
        raise ValidationError("Missing parameters")
    amount = parse_int(amount, "amount")

    payment = db.session.query(Payment).filter_by(pg_order_id=order_id).first()
    if not payment or (merchant_id is not None and payment.merchant_id != merchant_id):
        raise NotFoundError("Payment not found")
    if payment.amount != amount:
        raise ValidationError("Amount mismatch", {"expected": payment.amount, "received": amount})
    if payment.status == PAYMENT_PAID:
        if payment.payment_key == payment_key:
            return _confirmed_result(payment, already_confirmed=True)
        raise ConflictError("Payment already confirmed", code="ALREADY_CONFIRMED")
    if payment.status == PAYMENT_FAILED:
        raise ConflictError(
            "Payment has already failed",
            {"failure_code": payment.failure_code},
            code="PAYMENT_FAILED",
        )

    payment_id = payment.id
    try:
        result = payment_gateway.get_client().confirm(payment_key, order_id, amount)
    except payment_gateway.GatewayUnavailable as exc:
        raise DependencyError("Payment gateway unavailable", {"reason": str(exc)}) from exc

    if not result.ok:
        _mark_failed(payment_id, result.error_code, result.error_message)
        raise ConflictError(
            result.error_message or "Payment was declined",
            {"gateway_code": result.error_code, "gateway_status": result.status_code},
            code="PAYMENT_DECLINED",
        )

    data = result.data
    card = data.get("card") or {}
    receipt = data.get("receipt") or {}

    def _op():
        begin_immediate()
        try:
            now = utcnow()
            moved = db.session.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == PAYMENT_PENDING)
                .values(
                    status=PAYMENT_PAID,
                    payment_key=payment_key,
                    method=data.get("method"),
                    card_company=card.get("company") or card.get("issuerCode"),
                    receipt_url=receipt.get("url"),
                    paid_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            current = db.session.query(Payment).filter_by(id=payment_id).populate_existing().one()
            if moved.rowcount == 0:
                # A concurrent confirmation won; same key means same payment
                if current.status == PAYMENT_PAID and current.payment_key == payment_key:
                    db.session.rollback()
                    return _confirmed_result(current, already_confirmed=True), False
                raise ConflictError(
                    f"Payment is {current.status}",
                    {"status": current.status},
                    code="PAYMENT_NOT_PENDING",
                )

            wallet_service.apply_delta(
                OWNER_MERCHANT, current.merchant_id, "charge", current.amount,
                description=f"Top-up {current.pg_order_id}",
                reference_type="payment", reference_id=current.id,
                commit=False,
            )
            if current.bonus_amount > 0:
                wallet_service.apply_delta(
                    OWNER_MERCHANT, current.merchant_id, "bonus", current.bonus_amount,
                    description=f"Top-up bonus {current.pg_order_id}",
                    reference_type="payment", reference_id=current.id,
                    commit=False,
                )
            out = _confirmed_result(current, already_confirmed=False)
            db.session.commit()
            return out, True
        except ServiceError:
            db.session.rollback()
            raise

    out, credited = run_with_retry(_op)

    if credited:
        current_app.logger.info(
            "Payment %s confirmed: merchant %s credited %s", order_id, out["payment"]["merchant_id"], out["credited_amount"]
        )
        run_best_effort(
            "event.payment_completed",
            event_service.record_event,
            "payment_completed",
            merchant_id=out["payment"]["merchant_id"],
            reference_type="payment",
            reference_id=out["payment"]["id"],
            amount=out["payment"]["amount"],
            payload={"order_id": order_id, "bonus_amount": out["payment"]["bonus_amount"]},
        )
    return out
