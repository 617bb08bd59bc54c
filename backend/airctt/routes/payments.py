# Overview: Flask API routes for merchant wallet top-ups through the card gateway.

from flask import Blueprint, jsonify, request

from ..decorators import handle_service_errors, require_auth, require_role, scoped_merchant_id
from ..services import payment_service
from ..validation import require_fields

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment")


@payments_bp.get("/topup")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("list topup packages")
def packages_route():
    return jsonify({"packages": payment_service.list_packages()})


@payments_bp.post("/topup")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("create topup")
def create_topup_route():
    """Body {package_id} or {custom_amount} -> {payment, toss_config}."""
    data = request.get_json(silent=True) or {}
    result = payment_service.create_topup(
        scoped_merchant_id(),
        package_id=data.get("package_id"),
        custom_amount=data.get("custom_amount"),
    )
    return jsonify(result), 201


@payments_bp.post("/confirm")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("confirm payment")
def confirm_route():
    """
    Body {paymentKey, orderId, amount} from the checkout redirect.

    Declines come back as 400 with the gateway code; an unreachable gateway
    is a 500 and the payment stays pending so the call can be repeated.
    """
    data = request.get_json(silent=True) or {}
    payload = {
        "payment_key": data.get("paymentKey") or data.get("payment_key"),
        "order_id": data.get("orderId") or data.get("order_id"),
        "amount": data.get("amount"),
    }
    require_fields(payload, ("payment_key", "order_id", "amount"))
    result = payment_service.confirm_payment(
        payload["payment_key"],
        payload["order_id"],
        payload["amount"],
        merchant_id=scoped_merchant_id(required=False),
    )
    return jsonify(result)
