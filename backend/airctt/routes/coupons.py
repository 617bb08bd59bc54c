# Overview: Flask API routes for coupon discovery, issuance and redemption.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import handle_service_errors, require_auth, require_role
from ..services import coupon_service, geo_service, merchant_service
from ..validation import require_fields, parse_int

coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.get("/nearby")
@handle_service_errors("list nearby coupons")
def nearby_route():
    """GET ?lat&lng[&radius(km)&category&limit] -> coupons sorted by distance_km."""
    lat = request.args.get("lat", type=float)
    lng = request.args.get("lng", type=float)
    if lat is None or lng is None:
        return jsonify({"error": "lat and lng are required numbers"}), 400

    result = geo_service.nearby_coupons(
        lat,
        lng,
        radius_km=request.args.get("radius", type=float),
        category=request.args.get("category") or None,
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"success": True, **result})


@coupons_bp.post("/issue")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("issue coupon")
def issue_route():
    """
    Body {consumer_id, coupon_id, reason?} -> {coupon_issue_id, status}.

    Merchants may only issue their own coupons.
    """
    data = require_fields(request.get_json(silent=True), ("consumer_id", "coupon_id"))
    is_admin = g.role == "ADMIN"
    result = coupon_service.issue_coupon(
        parse_int(data["coupon_id"], "coupon_id"),
        parse_int(data["consumer_id"], "consumer_id"),
        reason=data.get("reason"),
        issued_from="admin" if is_admin else "merchant",
        merchant_id=None if is_admin else g.merchant_id,
    )
    return jsonify(result), 201


@coupons_bp.post("/use")
@require_auth
@handle_service_errors("redeem coupon")
def use_route():
    """
    Body {coupon_issue_id, store_id} -> {id, status, used_at}.

    404 when the issue does not exist; 400 naming the current status when
    it is not redeemable. A consumer can only redeem their own coupons and
    a merchant only at their own stores.
    """
    data = require_fields(request.get_json(silent=True), ("coupon_issue_id", "store_id"))
    store_id = parse_int(data["store_id"], "store_id")

    if g.role == "MERCHANT":
        merchant_service.get_store(store_id, g.merchant_id)

    result = coupon_service.redeem_coupon(
        parse_int(data["coupon_issue_id"], "coupon_issue_id"),
        store_id,
        consumer_id=g.consumer_id,
    )
    return jsonify({"id": result["id"], "status": result["status"], "used_at": result["used_at"]})


@coupons_bp.post("/<int:issue_id>/cancel")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("cancel coupon")
def cancel_route(issue_id: int):
    merchant_id = None if g.role == "ADMIN" else g.merchant_id
    return jsonify(coupon_service.cancel_issue(issue_id, merchant_id=merchant_id))


@coupons_bp.post("/check")
@require_auth
@require_role("CONSUMER", "MERCHANT", "ADMIN")
@handle_service_errors("check coupon")
def check_route():
    """Consumers see their own issues, merchants issues of their coupons, admins any."""
    data = request.get_json(silent=True) or {}
    return jsonify(coupon_service.check_coupon(
        data.get("code_or_id"),
        consumer_id=g.consumer_id if g.role == "CONSUMER" else None,
        merchant_id=g.merchant_id if g.role == "MERCHANT" else None,
    ))


@coupons_bp.get("/my")
@require_auth
@require_role("CONSUMER")
@handle_service_errors("list consumer coupons")
def my_coupons_route():
    status = request.args.get("status")
    return jsonify({"coupons": coupon_service.list_consumer_coupons(g.consumer_id, status)})
