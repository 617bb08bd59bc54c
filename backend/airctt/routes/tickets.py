# Overview: Flask API routes for ticket sales and gate verification.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth, require_role, scoped_merchant_id
from ..services import ticket_service
from ..validation import parse_int, require_fields

tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/tickets")


@tickets_bp.get("/events")
@handle_service_errors("list events")
def events_route():
    return jsonify({"events": ticket_service.list_events()})


@tickets_bp.post("/purchase")
@require_auth
@require_role("CONSUMER")
@handle_service_errors("purchase tickets")
def purchase_route():
    data = require_fields(request.get_json(silent=True), ("ticket_type_id",))
    result = ticket_service.purchase_tickets(
        g.consumer_id,
        parse_int(data["ticket_type_id"], "ticket_type_id"),
        quantity=data.get("quantity", 1),
    )
    return jsonify(result), 201


@tickets_bp.post("/verify")
@require_auth
@require_role("MERCHANT", "ADMIN")
@handle_service_errors("verify ticket")
def verify_route():
    """Body {qr_code, event_id} -> {valid, result}. Gate staff can only check their own events."""
    data = require_fields(request.get_json(silent=True), ("qr_code", "event_id"))
    event_id = parse_int(data["event_id"], "event_id")
    ticket_service.get_event(event_id, scoped_merchant_id(required=False))
    return jsonify(ticket_service.verify_ticket(str(data["qr_code"]), event_id))


@tickets_bp.get("/my")
@require_auth
@require_role("CONSUMER")
@handle_service_errors("list tickets")
def my_tickets_route():
    return jsonify({"tickets": ticket_service.list_consumer_tickets(g.consumer_id)})
