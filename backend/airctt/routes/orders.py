# Overview: Flask API routes for table sessions, carts and order submission.

"""
Table-order flow.

The guest-facing routes are reachable without an account: the 8-char
session code printed behind the table QR is what authorizes cart edits and
submission for that session. A signed-in consumer is attached to new
sessions and may apply their own coupons.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import (
    handle_service_errors,
    optional_auth,
    require_auth,
    require_role,
    scoped_merchant_id,
)
from ..services import merchant_service, order_service
from ..validation import NotFoundError, ValidationError, parse_int, require_fields

orders_bp = Blueprint("orders", __name__, url_prefix="/api/order")


def _session_from_code(data: dict) -> dict:
    code = (data or {}).get("session_code")
    if not code:
        raise ValidationError("session_code is required")
    return order_service.get_session(code=str(code))


def _check_line_in_session(session: dict, cart_item_id: int) -> None:
    if not any(item["id"] == cart_item_id for item in session["cart_items"]):
        raise NotFoundError("Cart item not found")


@orders_bp.get("/menu")
@handle_service_errors("load menu")
def menu_route():
    store_id = request.args.get("store_id", type=int)
    if not store_id:
        raise ValidationError("store_id is required")
    store = merchant_service.get_store(store_id)
    return jsonify({"store": store.to_dict(), "products": merchant_service.list_products(store_id)})


# =============================================================================
# SESSIONS
# =============================================================================


@orders_bp.post("/session")
@optional_auth
@handle_service_errors("open table session")
def open_session_route():
    """Body {store_id, table_id, guest_phone?, party_size?} -> {session_id, session_code, is_new}."""
    data = require_fields(request.get_json(silent=True), ("store_id", "table_id"))
    result = order_service.open_session(
        parse_int(data["store_id"], "store_id"),
        parse_int(data["table_id"], "table_id"),
        user_id=g.consumer_id,
        guest_phone=data.get("guest_phone"),
        party_size=data.get("party_size"),
    )
    return jsonify(result), 201 if result["is_new"] else 200


@orders_bp.get("/session")
@handle_service_errors("load table session")
def get_session_route():
    """GET ?code=XXXXXXXX"""
    code = request.args.get("code")
    if not code:
        raise ValidationError("code is required")
    return jsonify({"session": order_service.get_session(code=code)})


def _merchant_session(session_id: int) -> None:
    session = order_service.get_session(session_id=session_id)
    merchant_service.get_store(session["store_id"], scoped_merchant_id(required=False))


@orders_bp.post("/session/<int:session_id>/pay")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("mark session paid")
def pay_session_route(session_id: int):
    _merchant_session(session_id)
    return jsonify(order_service.mark_session_paid(session_id))


@orders_bp.post("/session/<int:session_id>/close")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("close session")
def close_session_route(session_id: int):
    _merchant_session(session_id)
    return jsonify(order_service.close_session(session_id))


# =============================================================================
# CART
# =============================================================================


@orders_bp.post("/cart")
@handle_service_errors("add to cart")
def add_to_cart_route():
    """Body {session_code, product_id, quantity?, options?, special_request?}."""
    data = request.get_json(silent=True) or {}
    session = _session_from_code(data)
    if data.get("product_id") in (None, ""):
        raise ValidationError("Missing parameters", {"missing": ["product_id"]})
    result = order_service.add_to_cart(
        session["id"],
        parse_int(data["product_id"], "product_id"),
        quantity=data.get("quantity", 1),
        options=data.get("options"),
        special_request=data.get("special_request"),
    )
    return jsonify(result), 201


@orders_bp.put("/cart")
@handle_service_errors("update cart item")
def update_cart_route():
    """Body {session_code, cart_item_id, quantity}; quantity <= 0 removes the line."""
    data = request.get_json(silent=True) or {}
    session = _session_from_code(data)
    data = require_fields(data, ("cart_item_id", "quantity"))
    cart_item_id = parse_int(data["cart_item_id"], "cart_item_id")
    _check_line_in_session(session, cart_item_id)
    return jsonify(order_service.update_cart_item(cart_item_id, data["quantity"]))


@orders_bp.delete("/cart")
@handle_service_errors("remove cart item")
def remove_cart_route():
    """Body {session_code, cart_item_id}."""
    data = request.get_json(silent=True) or {}
    session = _session_from_code(data)
    data = require_fields(data, ("cart_item_id",))
    cart_item_id = parse_int(data["cart_item_id"], "cart_item_id")
    _check_line_in_session(session, cart_item_id)
    return jsonify(order_service.remove_cart_item(cart_item_id))


# =============================================================================
# SUBMIT
# =============================================================================


@orders_bp.post("/submit")
@optional_auth
@handle_service_errors("submit order")
def submit_route():
    """Body {session_code, coupon_issue_id?} -> {order_number, total_amount, discount_amount, final_amount, ...}."""
    data = request.get_json(silent=True) or {}
    session = _session_from_code(data)
    coupon_issue_id = data.get("coupon_issue_id")
    result = order_service.submit_order(
        session["id"],
        coupon_issue_id=parse_int(coupon_issue_id, "coupon_issue_id") if coupon_issue_id else None,
        consumer_id=g.consumer_id,
    )
    return jsonify(result), 201
