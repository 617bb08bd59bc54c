# Overview: Flask API routes for wallet postings and balances.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth, require_role
from ..models.wallets import OWNER_CONSUMER
from ..services import wallet_service
from ..validation import parse_int, require_fields

wallet_bp = Blueprint("wallet", __name__, url_prefix="/api/wallet")


@wallet_bp.post("/transaction")
@require_auth
@handle_service_errors("post wallet transaction")
def transaction_route():
    """
    Body {consumer_id, type, amount_points} -> {status, wallet_tx_id, new_balance}.

    amount_points is signed; consumers may only post to their own wallet.
    """
    data = require_fields(request.get_json(silent=True), ("consumer_id", "type", "amount_points"))
    consumer_id = parse_int(data["consumer_id"], "consumer_id", minimum=1)
    if g.role == "CONSUMER" and consumer_id != g.consumer_id:
        return jsonify({"error": "Permission denied"}), 403

    amount = data["amount_points"]
    if isinstance(amount, str):
        amount = parse_int(amount, "amount_points")
    result = wallet_service.apply_consumer_delta(
        consumer_id,
        data["type"],
        amount,
        description=data.get("description"),
    )
    return jsonify({k: result[k] for k in ("status", "wallet_tx_id", "new_balance")})


@wallet_bp.get("/my-balance")
@require_auth
@require_role("CONSUMER")
@handle_service_errors("load wallet")
def my_balance_route():
    limit = request.args.get("limit", 20, type=int)
    data = wallet_service.get_wallet_with_transactions(OWNER_CONSUMER, g.consumer_id, limit=limit)
    return jsonify({"balance": data["wallet"]["balance"], **data})
