# Overview: Service-layer operations for coupon templates, issuance and redemption.

"""
Coupon issuance and redemption.

LIFECYCLE (CouponIssue): ISSUED -> USED | CANCELLED. EXPIRED is derived at
read time from the coupon's valid_to.

CONCURRENCY:
- Issuance bumps coupons.issued_count with a single guarded UPDATE
  (issued_count < total_issuable), so the limit holds under races.
- Redemption is an UPDATE ... WHERE status='ISSUED'; of N concurrent
  attempts exactly one sees rowcount 1.

CRM and analytics writes run after commit through side_effects and never
undo the primary change.
"""

from __future__ import annotations

import secrets

from sqlalchemy import func, or_, update

from ..extensions import db
from ..models import Account, Coupon, CouponIssue, Store
from ..models.accounts import ROLE_CONSUMER
from ..models.coupons import (
    ISSUE_CANCELLED,
    ISSUE_CHANNELS,
    ISSUE_ISSUED,
    ISSUE_STATUSES,
    ISSUE_USED,
)
from ..validation import (
    ConflictError,
    ExpiredError,
    ModelValidationPolicy,
    NotFoundError,
    ServiceError,
    ValidationError,
    enforce_rules_coupon,
    validate_payload,
)
from airctt.time_utils import has_elapsed, to_utc_z, utcnow
from . import crm_service, event_service
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .side_effects import run_best_effort

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8

COUPON_POLICY = ModelValidationPolicy(
    writable_fields={
        "title", "description", "category", "store_id",
        "discount_type", "discount_value", "max_discount_amount", "min_order_amount",
        "valid_from", "valid_to", "total_issuable", "per_user_limit", "is_active",
    },
    required_on_create={"title", "discount_type", "discount_value"},
)


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _unique_issue_code() -> str:
    while True:
        code = generate_code()
        exists = db.session.query(CouponIssue.id).filter_by(code=code).first()
        if not exists:
            return code


# =============================================================================
# DISCOUNT MATH
# =============================================================================


def discount_applies(coupon: Coupon, subtotal: int) -> bool:
    """Minimum-order gate. An unmet minimum means the coupon is not applied at all."""
    if subtotal <= 0:
        return False
    if coupon.min_order_amount is not None and subtotal < coupon.min_order_amount:
        return False
    return True


def compute_discount(coupon: Coupon, subtotal: int) -> int:
    """
    Discount for subtotal, always within [0, subtotal].

    percent: floor(subtotal * value / 100), capped by max_discount_amount
    amount:  value
    """
    if not discount_applies(coupon, subtotal):
        return 0
    if coupon.discount_type == "percent":
        discount = (subtotal * coupon.discount_value) // 100
        if coupon.max_discount_amount is not None:
            discount = min(discount, coupon.max_discount_amount)
    else:
        discount = coupon.discount_value
    return max(0, min(discount, subtotal))


# =============================================================================
# ISSUANCE
# =============================================================================


def issue_coupon(
    coupon_id: int,
    consumer_id: int,
    reason: str | None = None,
    issued_from: str = "merchant",
    merchant_id: int | None = None,
) -> dict:
    """
    Grant one coupon to one consumer.

    merchant_id, when given, restricts issuance to that merchant's coupons.
    Raises ValidationError, NotFoundError, ConflictError (inactive, not yet
    valid, sold out, per-user limit) or ExpiredError.
    """
    if not coupon_id or not consumer_id:
        raise ValidationError("Missing parameters")
    if issued_from not in ISSUE_CHANNELS:
        raise ValidationError(f"issued_from must be one of {', '.join(ISSUE_CHANNELS)}")

    def _op():
        begin_immediate()
        try:
            coupon = lock_for_update(db.session.query(Coupon).filter_by(id=coupon_id)).first()
            if not coupon or (merchant_id is not None and coupon.merchant_id != merchant_id):
                raise NotFoundError("Coupon not found")

            consumer = db.session.get(Account, consumer_id)
            if not consumer or consumer.role != ROLE_CONSUMER or not consumer.is_active:
                raise NotFoundError("Consumer not found")

            if not coupon.is_active:
                raise ConflictError("Coupon is not active", code="COUPON_INACTIVE")

            now = utcnow()
            if has_elapsed(coupon.valid_to, now):
                raise ExpiredError("Coupon has expired", {"status": "EXPIRED"})
            if coupon.valid_from is not None and now < coupon.valid_from:
                raise ConflictError("Coupon is not yet valid", code="NOT_YET_VALID")

            if coupon.per_user_limit is not None:
                held = (
                    db.session.query(func.count(CouponIssue.id))
                    .filter(
                        CouponIssue.coupon_id == coupon.id,
                        CouponIssue.consumer_id == consumer_id,
                        CouponIssue.status != ISSUE_CANCELLED,
                    )
                    .scalar()
                )
                if held >= coupon.per_user_limit:
                    raise ConflictError(
                        "Per-user limit reached for this coupon",
                        {"per_user_limit": coupon.per_user_limit},
                        code="PER_USER_LIMIT",
                    )

            bumped = db.session.execute(
                update(Coupon)
                .where(
                    Coupon.id == coupon.id,
                    or_(Coupon.total_issuable.is_(None), Coupon.issued_count < Coupon.total_issuable),
                )
                .values(issued_count=Coupon.issued_count + 1, version_id=Coupon.version_id + 1)
                .execution_options(synchronize_session=False)
            )
            if bumped.rowcount == 0:
                raise ConflictError("Coupon is sold out", code="SOLD_OUT")

            issue = CouponIssue(
                coupon_id=coupon.id,
                consumer_id=consumer_id,
                code=_unique_issue_code(),
                status=ISSUE_ISSUED,
                reason=reason or "MANUAL",
                issued_from=issued_from,
                issued_at=now,
            )
            db.session.add(issue)
            db.session.flush()
            result = {
                "coupon_issue_id": issue.id,
                "status": ISSUE_ISSUED,
                "code": issue.code,
                "coupon_id": coupon.id,
                "coupon_title": coupon.title,
                "merchant_id": coupon.merchant_id,
            }
            db.session.commit()
            return result
        except ServiceError:
            db.session.rollback()
            raise

    result = run_with_retry(_op)

    touchpoint = crm_service.TOUCHPOINT_COUPON_GAME if issued_from == "event" else crm_service.TOUCHPOINT_COUPON_ISSUE
    run_best_effort(
        "crm.coupon_issue",
        crm_service.register_interaction,
        result["merchant_id"], consumer_id, touchpoint,
    )
    run_best_effort(
        "event.coupon_issued",
        event_service.record_event,
        "coupon_issued",
        merchant_id=result["merchant_id"],
        consumer_id=consumer_id,
        reference_type="coupon_issue",
        reference_id=result["coupon_issue_id"],
        payload={"coupon_id": result["coupon_id"], "issued_from": issued_from},
    )
    return result


# =============================================================================
# REDEMPTION
# =============================================================================


def _load_issue(coupon_issue_id: int) -> CouponIssue | None:
    return (
        db.session.query(CouponIssue)
        .filter_by(id=coupon_issue_id)
        .populate_existing()
        .first()
    )


def _redeem_in_transaction(
    coupon_issue_id: int,
    store_id: int | None,
    order_session_id: int | None,
    consumer_id: int | None,
) -> dict:
    issue = _load_issue(coupon_issue_id)
    if not issue:
        raise NotFoundError("Coupon not found")
    if issue.status != ISSUE_ISSUED:
        raise ConflictError(
            f"Coupon cannot be used: {issue.status}",
            {"status": issue.status},
            code="COUPON_NOT_USABLE",
        )

    coupon = issue.coupon
    if has_elapsed(coupon.valid_to):
        raise ExpiredError("Coupon cannot be used: EXPIRED", {"status": "EXPIRED"})

    if consumer_id is not None and issue.consumer_id != consumer_id:
        raise ConflictError("Coupon belongs to another consumer", code="NOT_OWNER")

    if store_id is not None:
        store = db.session.get(Store, store_id)
        if not store:
            raise NotFoundError("Store not found")
        if store.merchant_id != coupon.merchant_id or (coupon.store_id and coupon.store_id != store.id):
            raise ConflictError("Coupon is not valid at this store", code="WRONG_STORE")

    now = utcnow()
    result = db.session.execute(
        update(CouponIssue)
        .where(CouponIssue.id == issue.id, CouponIssue.status == ISSUE_ISSUED)
        .values(
            status=ISSUE_USED,
            used_at=now,
            used_store_id=store_id,
            used_order_session_id=order_session_id,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        current = db.session.query(CouponIssue.status).filter_by(id=issue.id).scalar()
        raise ConflictError(
            f"Coupon cannot be used: {current}",
            {"status": current},
            code="COUPON_NOT_USABLE",
        )

    return {
        "id": issue.id,
        "status": ISSUE_USED,
        "used_at": to_utc_z(now),
        "coupon_id": coupon.id,
        "merchant_id": coupon.merchant_id,
        "consumer_id": issue.consumer_id,
        "store_id": store_id,
    }


def redeem_coupon(
    coupon_issue_id: int,
    store_id: int | None = None,
    *,
    order_session_id: int | None = None,
    consumer_id: int | None = None,
    commit: bool = True,
) -> dict:
    """
    Mark an issued coupon as used, at most once.

    Check order: not found (404), status not ISSUED (conflict naming the
    status), validity window elapsed (expired), owner/store mismatch.

    commit=False joins the caller's transaction and skips side effects;
    the caller commits, rolls back on error, and calls after_redeem().
    """
    if not coupon_issue_id:
        raise ValidationError("Missing parameters")

    if not commit:
        return _redeem_in_transaction(coupon_issue_id, store_id, order_session_id, consumer_id)

    def _op():
        begin_immediate()
        try:
            result = _redeem_in_transaction(coupon_issue_id, store_id, order_session_id, consumer_id)
            db.session.commit()
            return result
        except ServiceError:
            db.session.rollback()
            raise

    result = run_with_retry(_op)
    after_redeem(result, crm_visit=True)
    return result


def after_redeem(result: dict, crm_visit: bool = True) -> None:
    """Best-effort follow-ups for a committed redemption."""
    if crm_visit:
        run_best_effort(
            "crm.coupon_redeemed",
            crm_service.register_interaction,
            result["merchant_id"], result["consumer_id"], crm_service.TOUCHPOINT_VISIT,
        )
    run_best_effort(
        "event.coupon_redeemed",
        event_service.record_event,
        "coupon_redeemed",
        merchant_id=result["merchant_id"],
        store_id=result.get("store_id"),
        consumer_id=result["consumer_id"],
        reference_type="coupon_issue",
        reference_id=result["id"],
    )


def cancel_issue(coupon_issue_id: int, merchant_id: int | None = None) -> dict:
    """ISSUED -> CANCELLED (conditional). Cancelled issues do not count toward per-user limits."""
    issue = _load_issue(coupon_issue_id)
    if not issue or (merchant_id is not None and issue.coupon.merchant_id != merchant_id):
        raise NotFoundError("Coupon not found")

    now = utcnow()
    result = db.session.execute(
        update(CouponIssue)
        .where(CouponIssue.id == issue.id, CouponIssue.status == ISSUE_ISSUED)
        .values(status=ISSUE_CANCELLED, cancelled_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        current = db.session.query(CouponIssue.status).filter_by(id=coupon_issue_id).scalar()
        raise ConflictError(f"Coupon cannot be cancelled: {current}", {"status": current}, code="COUPON_NOT_CANCELLABLE")
    db.session.commit()
    return {"id": coupon_issue_id, "status": ISSUE_CANCELLED, "cancelled_at": to_utc_z(now)}


# =============================================================================
# LOOKUPS
# =============================================================================


def check_coupon(code_or_id, *, consumer_id: int | None = None, merchant_id: int | None = None) -> dict:
    """
    Look an issue up by numeric id or by code; report its effective status.

    consumer_id limits the lookup to that consumer's issues, merchant_id to
    issues of that merchant's coupons; anything else reads as not found.
    """
    if code_or_id is None or str(code_or_id).strip() == "":
        raise ValidationError("Missing parameters")
    key = str(code_or_id).strip()

    q = db.session.query(CouponIssue)
    if key.isdigit():
        issue = q.filter_by(id=int(key)).first()
    else:
        issue = q.filter_by(code=key.upper()).first()
    if not issue or (consumer_id is not None and issue.consumer_id != consumer_id):
        raise NotFoundError("Coupon not found")
    if merchant_id is not None and issue.coupon.merchant_id != merchant_id:
        raise NotFoundError("Coupon not found")

    status = issue.effective_status
    return {
        "issue": issue.to_dict(),
        "coupon": issue.coupon.to_dict(),
        "status": status,
        "usable": status == ISSUE_ISSUED and issue.coupon.is_active,
    }


def list_consumer_coupons(consumer_id: int, status: str | None = None) -> list[dict]:
    if status and status not in ISSUE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ISSUE_STATUSES)}")
    issues = (
        db.session.query(CouponIssue)
        .filter_by(consumer_id=consumer_id)
        .order_by(CouponIssue.issued_at.desc(), CouponIssue.id.desc())
        .all()
    )
    result = []
    for issue in issues:
        row = issue.to_dict()
        if status and row["status"] != status:
            continue
        row["coupon"] = issue.coupon.to_dict()
        result.append(row)
    return result


# =============================================================================
# MERCHANT COUPON MANAGEMENT
# =============================================================================


def _check_store_owner(merchant_id: int, store_id: int | None) -> None:
    if store_id is None:
        return
    store = db.session.get(Store, store_id)
    if not store or store.merchant_id != merchant_id:
        raise ValidationError("store_id does not belong to this merchant")


def create_coupon(merchant_id: int, data: dict) -> Coupon:
    patch = validate_payload(model=Coupon, payload=data, policy=COUPON_POLICY, partial=False)
    enforce_rules_coupon(patch)
    _check_store_owner(merchant_id, patch.get("store_id"))
    coupon = Coupon(merchant_id=merchant_id, issued_count=0, **patch)
    db.session.add(coupon)
    db.session.commit()
    return coupon


def update_coupon(coupon_id: int, data: dict, merchant_id: int | None = None) -> Coupon:
    coupon = db.session.get(Coupon, coupon_id)
    if not coupon or (merchant_id is not None and coupon.merchant_id != merchant_id):
        raise NotFoundError("Coupon not found")
    patch = validate_payload(model=Coupon, payload=data, policy=COUPON_POLICY, partial=True)
    enforce_rules_coupon(patch, existing=coupon)
    if "store_id" in patch:
        _check_store_owner(coupon.merchant_id, patch["store_id"])
    if patch.get("total_issuable") is not None and patch["total_issuable"] < coupon.issued_count:
        raise ConflictError(
            "total_issuable cannot be lower than the number already issued",
            {"issued_count": coupon.issued_count},
        )
    for key, value in patch.items():
        setattr(coupon, key, value)
    db.session.commit()
    return coupon


def list_merchant_coupons(merchant_id: int, active_only: bool = False) -> list[dict]:
    q = db.session.query(Coupon).filter_by(merchant_id=merchant_id)
    if active_only:
        q = q.filter_by(is_active=True)
    return [c.to_dict() for c in q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()]
