# Overview: Service-layer operations for merchant statistics and settlement summaries; read-only aggregates.

from __future__ import annotations

import math
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Coupon, CouponIssue, KitchenOrder, MerchantCustomer, Store
from ..models.coupons import ISSUE_EXPIRED, ISSUE_ISSUED, ISSUE_USED
from ..models.orders import KITCHEN_CANCELLED
from ..validation import ValidationError
from airctt.time_utils import parse_iso_datetime, start_of_day, to_utc_z, utcnow
from . import merchant_service

PERIODS = ("today", "week", "month", "all")
SETTLEMENT_DEFAULT_DAYS = 7


def period_start(period: str, now: datetime | None = None) -> datetime | None:
    """Lower bound of a stats period; None for 'all'."""
    now = now or utcnow()
    if period == "today":
        return start_of_day(now)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return now - timedelta(days=30)
    if period == "all":
        return None
    raise ValidationError(f"period must be one of {', '.join(PERIODS)}")


def _store_ids(merchant_id: int, store_id: int | None) -> list[int]:
    if store_id is not None:
        return [merchant_service.get_store(store_id, merchant_id).id]
    return [row.id for row in db.session.query(Store.id).filter(Store.merchant_id == merchant_id).all()]


def _conversion_rate(used: int, issued: int) -> float:
    return round(used / issued * 100, 2) if issued else 0.0


def _merchant_issues(merchant_id: int):
    return (
        db.session.query(CouponIssue)
        .join(Coupon, Coupon.id == CouponIssue.coupon_id)
        .filter(Coupon.merchant_id == merchant_id)
    )


def merchant_stats(
    merchant_id: int,
    *,
    period: str = "week",
    store_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Coupon and order aggregates for one merchant over a period.

    With store_id, issues count when their coupon is honored at that store
    (store-bound or merchant-wide), redemptions when they happened there,
    and orders when they were placed there. Expired counts issues still
    unused whose coupon validity ended inside the period.
    """
    now = now or utcnow()
    start = period_start(period, now)
    store_ids = _store_ids(merchant_id, store_id)

    honored = _merchant_issues(merchant_id)
    if store_id is not None:
        honored = honored.filter(or_(Coupon.store_id.is_(None), Coupon.store_id == store_id))

    issued_q = honored
    used_q = _merchant_issues(merchant_id).filter(CouponIssue.status == ISSUE_USED)
    if store_id is not None:
        used_q = used_q.filter(CouponIssue.used_store_id == store_id)
    expired_q = honored.filter(
        CouponIssue.status.in_((ISSUE_ISSUED, ISSUE_EXPIRED)),
        Coupon.valid_to.isnot(None),
        Coupon.valid_to < now,
    )
    orders_q = db.session.query(KitchenOrder).filter(
        KitchenOrder.store_id.in_(store_ids),
        KitchenOrder.status != KITCHEN_CANCELLED,
    )
    customers_q = db.session.query(MerchantCustomer).filter(MerchantCustomer.merchant_id == merchant_id)

    if start is not None:
        issued_q = issued_q.filter(CouponIssue.issued_at >= start)
        used_q = used_q.filter(CouponIssue.used_at >= start)
        expired_q = expired_q.filter(Coupon.valid_to >= start)
        orders_q = orders_q.filter(KitchenOrder.created_at >= start)
        customers_q = customers_q.filter(MerchantCustomer.first_visit_at >= start)

    order_count, revenue, discount = orders_q.with_entities(
        func.count(KitchenOrder.id),
        func.coalesce(func.sum(KitchenOrder.final_amount), 0),
        func.coalesce(func.sum(KitchenOrder.discount_amount), 0),
    ).one()

    total_issued = issued_q.count()
    total_used = used_q.count()
    summary = {
        "total_issued": total_issued,
        "total_used": total_used,
        "total_expired": expired_q.count(),
        "total_orders": int(order_count or 0),
        "total_revenue": int(revenue or 0),
        "total_discount": int(discount or 0),
        "new_customers": customers_q.count(),
        "conversion_rate": _conversion_rate(total_used, total_issued),
    }

    # func.date comes back as a string on SQLite and a date on PostgreSQL
    trend: dict[str, dict] = {}

    def day(value) -> dict:
        key = str(value)
        return trend.setdefault(key, {"date": key, "issued": 0, "used": 0, "orders": 0, "revenue": 0})

    issued_day = func.date(CouponIssue.issued_at)
    for value, count in issued_q.with_entities(issued_day, func.count(CouponIssue.id)).group_by(issued_day).all():
        day(value)["issued"] += count
    used_day = func.date(CouponIssue.used_at)
    for value, count in used_q.with_entities(used_day, func.count(CouponIssue.id)).group_by(used_day).all():
        day(value)["used"] += count
    order_day = func.date(KitchenOrder.created_at)
    for value, count, amount in orders_q.with_entities(
        order_day, func.count(KitchenOrder.id), func.coalesce(func.sum(KitchenOrder.final_amount), 0)
    ).group_by(order_day).all():
        bucket = day(value)
        bucket["orders"] += count
        bucket["revenue"] += int(amount or 0)

    issued_by_coupon = dict(
        issued_q.with_entities(CouponIssue.coupon_id, func.count(CouponIssue.id)).group_by(CouponIssue.coupon_id).all()
    )
    used_by_coupon = dict(
        used_q.with_entities(CouponIssue.coupon_id, func.count(CouponIssue.id)).group_by(CouponIssue.coupon_id).all()
    )
    coupon_ids = set(issued_by_coupon) | set(used_by_coupon)
    coupons = db.session.query(Coupon).filter(Coupon.id.in_(coupon_ids)).all() if coupon_ids else []
    performance = []
    for coupon in coupons:
        issued = issued_by_coupon.get(coupon.id, 0)
        used = used_by_coupon.get(coupon.id, 0)
        performance.append({
            "coupon_id": coupon.id,
            "title": coupon.title,
            "discount_type": coupon.discount_type,
            "discount_value": coupon.discount_value,
            "issued": issued,
            "used": used,
            "conversion_rate": _conversion_rate(used, issued),
        })
    performance.sort(key=lambda row: (-row["used"], row["coupon_id"]))

    return {
        "summary": summary,
        "daily_trend": [trend[key] for key in sorted(trend)],
        "coupon_performance": performance,
        "meta": {
            "merchant_id": merchant_id,
            "store_id": store_id,
            "period": period,
            "start_date": start.date().isoformat() if start else None,
            "end_date": now.date().isoformat(),
        },
    }


def _fee(amount: int, rate: float) -> int:
    return int(math.floor(amount * rate / 100 + 0.5))


def settlement_summary(
    merchant_id: int,
    *,
    start: str | None = None,
    end: str | None = None,
    store_id: int | None = None,
) -> dict:
    """
    Settlement figures for table orders placed in [start, end).

    Defaults to the last seven days. Cancelled orders are reported as
    refunds and deducted from the net amount; the platform fee is taken
    on the gross of the orders that stood.
    """
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start and end must be ISO datetimes")
    end_dt = end_dt or utcnow()
    start_dt = start_dt or end_dt - timedelta(days=SETTLEMENT_DEFAULT_DAYS)
    if start_dt >= end_dt:
        raise ValidationError("start must be before end")

    rate = float(current_app.config["SETTLEMENT_FEE_RATE"])
    store_ids = _store_ids(merchant_id, store_id)
    names = dict(db.session.query(Store.id, Store.name).filter(Store.id.in_(store_ids)).all()) if store_ids else {}

    is_cancelled = (KitchenOrder.status == KITCHEN_CANCELLED).label("is_cancelled")
    rows = (
        db.session.query(
            KitchenOrder.store_id,
            is_cancelled,
            func.count(KitchenOrder.id),
            func.coalesce(func.sum(KitchenOrder.final_amount), 0),
            func.coalesce(func.sum(KitchenOrder.discount_amount), 0),
        )
        .filter(
            KitchenOrder.store_id.in_(store_ids),
            KitchenOrder.created_at >= start_dt,
            KitchenOrder.created_at < end_dt,
        )
        .group_by(KitchenOrder.store_id, is_cancelled)
        .all()
    )

    stores: dict[int, dict] = {}
    for sid, cancelled, count, amount, discount in rows:
        entry = stores.setdefault(sid, {
            "store_id": sid,
            "store_name": names.get(sid),
            "order_count": 0,
            "gross_amount": 0,
            "discount_amount": 0,
            "refund_count": 0,
            "refund_amount": 0,
        })
        if cancelled:
            entry["refund_count"] += count
            entry["refund_amount"] += int(amount or 0)
        else:
            entry["order_count"] += count
            entry["gross_amount"] += int(amount or 0)
            entry["discount_amount"] += int(discount or 0)

    for entry in stores.values():
        entry["fee_amount"] = _fee(entry["gross_amount"], rate)
        entry["net_amount"] = entry["gross_amount"] - entry["fee_amount"] - entry["refund_amount"]

    per_store = sorted(stores.values(), key=lambda e: e["store_id"])
    totals = {
        key: sum(e[key] for e in per_store)
        for key in (
            "order_count", "gross_amount", "discount_amount",
            "refund_count", "refund_amount", "fee_amount", "net_amount",
        )
    }
    return {
        "merchant_id": merchant_id,
        "period_start": to_utc_z(start_dt),
        "period_end": to_utc_z(end_dt),
        "fee_rate": rate,
        "totals": totals,
        "stores": per_store,
    }
