# Overview: Flask API routes for merchant back-office operations (stores, menu, coupons, kitchen, wallet, stats).

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth, require_role, scoped_merchant_id
from ..services import (
    coupon_service,
    crm_service,
    kitchen_service,
    merchant_service,
    stats_service,
    ticket_service,
    wallet_service,
)
from airctt.time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_int, require_fields

merchant_bp = Blueprint("merchant", __name__, url_prefix="/api/merchant")


# =============================================================================
# ONBOARDING
# =============================================================================


@merchant_bp.post("/register")
@require_auth
@require_role("CONSUMER", "ADMIN")
@handle_service_errors("register merchant")
def register_route():
    """
    Create a pending merchant with its first store.

    A consumer account calling this becomes the merchant's operator account.
    """
    data = request.get_json(silent=True) or {}
    account_id = g.current_account.id if g.role == "CONSUMER" else None
    result = merchant_service.register_merchant(data, account_id=account_id)
    return jsonify({"success": True, **result}), 201


@merchant_bp.get("/me")
@require_auth
@require_role("MERCHANT")
@handle_service_errors("load merchant")
def me_route():
    merchant = merchant_service.get_merchant(g.merchant_id)
    return jsonify({
        "merchant": merchant.to_dict(),
        "stores": merchant_service.list_merchant_stores(g.merchant_id, include_inactive=True),
    })


# =============================================================================
# STORES, TABLES, PRODUCTS
# =============================================================================


@merchant_bp.get("/stores")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("list stores")
def list_stores_route():
    merchant_id = scoped_merchant_id()
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    return jsonify({"stores": merchant_service.list_merchant_stores(merchant_id, include_inactive)})


@merchant_bp.post("/stores")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("create store")
def create_store_route():
    merchant_id = scoped_merchant_id()
    data = dict(request.get_json(silent=True) or {})
    data.pop("merchant_id", None)
    store = merchant_service.create_store(merchant_id, data)
    return jsonify({"store": store.to_dict()}), 201


@merchant_bp.patch("/stores/<int:store_id>")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("update store")
def update_store_route(store_id: int):
    merchant_id = scoped_merchant_id(required=False)
    data = dict(request.get_json(silent=True) or {})
    data.pop("merchant_id", None)
    store = merchant_service.update_store(store_id, data, merchant_id=merchant_id)
    return jsonify({"store": store.to_dict()})


@merchant_bp.delete("/stores/<int:store_id>")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("deactivate store")
def deactivate_store_route(store_id: int):
    store = merchant_service.deactivate_store(store_id, merchant_id=scoped_merchant_id(required=False))
    return jsonify({"store": store.to_dict()})


@merchant_bp.get("/stores/<int:store_id>/tables")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("list tables")
def list_tables_route(store_id: int):
    merchant_service.get_store(store_id, scoped_merchant_id(required=False))
    return jsonify({"tables": merchant_service.list_tables(store_id)})


@merchant_bp.post("/stores/<int:store_id>/tables")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("add table")
def add_table_route(store_id: int):
    data = require_fields(request.get_json(silent=True), ("table_number",))
    seats = data.get("seats")
    table = merchant_service.add_table(
        store_id,
        data["table_number"],
        seats=parse_int(seats, "seats", minimum=1) if seats is not None else None,
        merchant_id=scoped_merchant_id(required=False),
    )
    return jsonify({"table": table.to_dict()}), 201


@merchant_bp.get("/stores/<int:store_id>/products")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("list products")
def list_products_route(store_id: int):
    merchant_service.get_store(store_id, scoped_merchant_id(required=False))
    active_only = request.args.get("include_inactive", "false").lower() != "true"
    return jsonify({"products": merchant_service.list_products(store_id, active_only=active_only)})


@merchant_bp.post("/stores/<int:store_id>/products")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("add product")
def add_product_route(store_id: int):
    data = dict(request.get_json(silent=True) or {})
    data.pop("merchant_id", None)
    product = merchant_service.add_product(store_id, data, merchant_id=scoped_merchant_id(required=False))
    return jsonify({"product": product.to_dict()}), 201


@merchant_bp.patch("/products/<int:product_id>")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("update product")
def update_product_route(product_id: int):
    data = dict(request.get_json(silent=True) or {})
    data.pop("merchant_id", None)
    product = merchant_service.update_product(product_id, data, merchant_id=scoped_merchant_id(required=False))
    return jsonify({"product": product.to_dict()})


# =============================================================================
# COUPONS
# =============================================================================


@merchant_bp.get("/coupons")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("list coupons")
def list_coupons_route():
    merchant_id = scoped_merchant_id()
    active_only = request.args.get("active_only", "false").lower() == "true"
    return jsonify({"coupons": coupon_service.list_merchant_coupons(merchant_id, active_only=active_only)})


@merchant_bp.post("/coupons")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("create coupon")
def create_coupon_route():
    merchant_id = scoped_merchant_id()
    data = dict(request.get_json(silent=True) or {})
    data.pop("merchant_id", None)
    coupon = coupon_service.create_coupon(merchant_id, data)
    return jsonify({"coupon": coupon.to_dict()}), 201


@merchant_bp.patch("/coupons/<int:coupon_id>")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("update coupon")
def update_coupon_route(coupon_id: int):
    data = dict(request.get_json(silent=True) or {})
    data.pop("merchant_id", None)
    coupon = coupon_service.update_coupon(coupon_id, data, merchant_id=scoped_merchant_id(required=False))
    return jsonify({"coupon": coupon.to_dict()})


@merchant_bp.get("/customers")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("list customers")
def customers_route():
    limit = request.args.get("limit", 100, type=int)
    return jsonify({"customers": crm_service.list_customers(scoped_merchant_id(), limit=limit)})


# =============================================================================
# KITCHEN
# =============================================================================


@merchant_bp.get("/kitchen")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("list kitchen orders")
def kitchen_list_route():
    """GET ?store_id[&status&today_only=true]"""
    store_id = request.args.get("store_id", type=int)
    if not store_id:
        raise ValidationError("store_id is required")
    merchant_service.get_store(store_id, scoped_merchant_id(required=False))
    today_only = request.args.get("today_only", "true").lower() != "false"
    orders = kitchen_service.list_kitchen_orders(
        store_id,
        status=request.args.get("status") or None,
        today_only=today_only,
    )
    return jsonify({"orders": orders, "count": len(orders)})


@merchant_bp.put("/kitchen")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("update kitchen order")
def kitchen_update_route():
    """Body {order_id, status}."""
    data = require_fields(request.get_json(silent=True), ("order_id", "status"))
    order = kitchen_service.update_kitchen_status(
        parse_int(data["order_id"], "order_id"),
        data["status"],
        merchant_id=scoped_merchant_id(required=False),
    )
    return jsonify({"order": order})


# =============================================================================
# WALLET
# =============================================================================


@merchant_bp.get("/wallet")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("load merchant wallet")
def wallet_route():
    limit = request.args.get("limit", 20, type=int)
    data = wallet_service.get_merchant_wallet(scoped_merchant_id(), limit=limit)
    return jsonify({"balance": data["wallet"]["balance"], **data})


# =============================================================================
# STATS AND SETTLEMENTS
# =============================================================================


@merchant_bp.get("/stats")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("load merchant stats")
def stats_route():
    """GET ?period=today|week|month|all[&store_id] (admins pass merchant_id)."""
    stats = stats_service.merchant_stats(
        scoped_merchant_id(),
        period=request.args.get("period") or "week",
        store_id=request.args.get("store_id", type=int),
    )
    return jsonify({"success": True, **stats})


@merchant_bp.get("/settlements")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("load settlements")
def settlements_route():
    """GET [?start&end&store_id]; defaults to the last seven days."""
    summary = stats_service.settlement_summary(
        scoped_merchant_id(),
        start=request.args.get("start") or None,
        end=request.args.get("end") or None,
        store_id=request.args.get("store_id", type=int),
    )
    return jsonify({"success": True, **summary})


# =============================================================================
# TICKETED EVENTS
# =============================================================================


@merchant_bp.get("/events")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("list events")
def list_events_route():
    return jsonify({"events": ticket_service.list_events(scoped_merchant_id(), active_only=False)})


@merchant_bp.post("/events")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("create event")
def create_event_route():
    merchant_id = scoped_merchant_id()
    data = require_fields(request.get_json(silent=True), ("title", "starts_at"))
    try:
        starts_at = parse_iso_datetime(str(data["starts_at"]))
    except ValueError:
        starts_at = None
    if starts_at is None:
        raise ValidationError("starts_at must be an ISO datetime")
    result = ticket_service.create_event(
        merchant_id,
        data["title"],
        starts_at,
        venue=data.get("venue"),
        ticket_types=data.get("ticket_types"),
    )
    return jsonify(result), 201
