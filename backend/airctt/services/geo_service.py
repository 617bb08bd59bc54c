# Overview: Service-layer discovery of nearby coupons and stores.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Coupon, Store
from ..geo_utils import filter_within_radius, format_distance
from ..validation import ValidationError
from airctt.time_utils import utcnow, to_utc_z


def _in_window_filters(now):
    return (
        or_(Coupon.valid_from.is_(None), Coupon.valid_from <= now),
        or_(Coupon.valid_to.is_(None), Coupon.valid_to >= now),
    )


def nearby_coupons(
    lat: float,
    lng: float,
    radius_km: float | None = None,
    category: str | None = None,
    limit: int | None = None,
) -> dict:
    """
    Active, currently valid coupons at active stores within radius_km of
    (lat, lng), nearest first.

    A store-less coupon is listed at each active store of its merchant.
    Stores without coordinates cannot be ranked here and are skipped.
    """
    if lat is None or lng is None:
        raise ValidationError("lat and lng are required")
    radius_km = radius_km if radius_km is not None else current_app.config["NEARBY_DEFAULT_RADIUS_KM"]
    limit = limit if limit is not None else current_app.config["NEARBY_DEFAULT_LIMIT"]
    if radius_km <= 0:
        raise ValidationError("radius must be > 0")
    if limit <= 0:
        raise ValidationError("limit must be > 0")

    now = utcnow()
    q = (
        db.session.query(Coupon, Store)
        .join(Store, Store.merchant_id == Coupon.merchant_id)
        .filter(
            Coupon.is_active.is_(True),
            Store.is_active.is_(True),
            Store.lat.isnot(None),
            Store.lng.isnot(None),
            or_(Coupon.store_id.is_(None), Coupon.store_id == Store.id),
            *_in_window_filters(now),
        )
    )
    if category:
        q = q.filter(or_(Coupon.category == category, Store.category == category))

    rows = q.order_by(Coupon.id, Store.id).all()
    matches = filter_within_radius(
        (lat, lng),
        rows,
        coords=lambda row: (row[1].lat, row[1].lng),
        radius_m=radius_km * 1000,
        limit=limit,
    )

    data = []
    for match in matches:
        coupon, store = match.item
        data.append({
            "coupon_id": coupon.id,
            "merchant_id": coupon.merchant_id,
            "store_id": store.id,
            "title": coupon.title,
            "description": coupon.description,
            "discount_type": coupon.discount_type,
            "discount_value": coupon.discount_value,
            "store_name": store.name,
            "store_address": store.address,
            "distance_km": round(match.distance_m / 1000, 2),
            "valid_until": to_utc_z(coupon.valid_to) if coupon.valid_to else None,
        })

    return {
        "data": data,
        "meta": {"lat": lat, "lng": lng, "radius": radius_km, "count": len(data)},
    }


def nearby_stores(
    lat: float | None,
    lng: float | None,
    category: str | None = None,
    limit: int | None = None,
    radius_meters: float | None = None,
) -> list[dict]:
    """
    Active stores around the consumer, nearest first.

    Over-fetches limit * NEARBY_OVERFETCH_FACTOR rows before filtering.
    Without a consumer location (or for stores without coordinates) the
    distance is null and the store is always shown. The radius is the
    request's radius_meters, else the store's own radius.
    """
    cfg = current_app.config
    limit = limit if limit is not None else cfg["NEARBY_DEFAULT_LIMIT"]
    if limit <= 0:
        raise ValidationError("limit must be > 0")
    default_radius = cfg["STORE_DEFAULT_RADIUS_M"]

    q = db.session.query(Store).filter(Store.is_active.is_(True))
    if category:
        q = q.filter(Store.category == category)
    stores = q.order_by(Store.id).limit(limit * cfg["NEARBY_OVERFETCH_FACTOR"]).all()

    origin = (lat, lng) if lat is not None and lng is not None else None
    matches = filter_within_radius(
        origin,
        stores,
        coords=lambda s: (s.lat, s.lng),
        radius_m=lambda s: radius_meters or s.radius_m or default_radius,
        limit=limit,
    )

    result = []
    for match in matches:
        row = match.item.to_dict()
        distance = int(round(match.distance_m)) if match.distance_m is not None else None
        row["distance"] = distance
        row["distance_text"] = format_distance(match.distance_m)
        result.append(row)
    return result
