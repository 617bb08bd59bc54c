# Overview: Service-layer operations for merchant/consumer CRM counters.

from __future__ import annotations

from ..extensions import db
from ..models import MerchantCustomer
from airctt.time_utils import utcnow
from .concurrency import begin_immediate, lock_for_update

TOUCHPOINT_VISIT = "VISIT"
TOUCHPOINT_TABLE_ORDER = "TABLE_ORDER"
TOUCHPOINT_COUPON_ISSUE = "COUPON_ISSUE"
TOUCHPOINT_COUPON_GAME = "COUPON_GAME"

# Touchpoints that count coupons handed out rather than visits
COUPON_TOUCHPOINTS = {TOUCHPOINT_COUPON_ISSUE, TOUCHPOINT_COUPON_GAME}


def register_interaction(
    merchant_id: int | None,
    consumer_id: int | None,
    touchpoint: str,
    amount: int = 0,
) -> MerchantCustomer | None:
    """
    Upsert the merchant/consumer relationship and bump its counters.

    Anonymous interactions (no consumer) are ignored. Flushes only; run
    through side_effects.run_best_effort, which commits.
    """
    if not merchant_id or not consumer_id:
        return None

    now = utcnow()
    begin_immediate()
    row = lock_for_update(
        db.session.query(MerchantCustomer).filter_by(merchant_id=merchant_id, consumer_id=consumer_id)
    ).first()
    if row is None:
        row = MerchantCustomer(
            merchant_id=merchant_id,
            consumer_id=consumer_id,
            visit_count=0,
            coupon_issue_count=0,
            total_spent=0,
        )
        db.session.add(row)

    if touchpoint in COUPON_TOUCHPOINTS:
        row.coupon_issue_count += 1
    else:
        row.visit_count += 1
        row.total_spent += max(int(amount or 0), 0)
        if row.first_visit_at is None:
            row.first_visit_at = now
        row.last_visit_at = now

    row.last_touchpoint = touchpoint
    db.session.flush()
    return row


def list_customers(merchant_id: int, limit: int = 100) -> list[dict]:
    rows = (
        db.session.query(MerchantCustomer)
        .filter_by(merchant_id=merchant_id)
        .order_by(MerchantCustomer.last_visit_at.desc(), MerchantCustomer.id.desc())
        .limit(limit)
        .all()
    )
    return [r.to_dict() for r in rows]
