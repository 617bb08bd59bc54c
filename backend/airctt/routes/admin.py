# Overview: Flask API routes for platform administration (merchant approval, audit, side-effect failures).

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth, require_role
from ..services import event_service, merchant_service, side_effects, wallet_service
from ..validation import parse_int, require_fields

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/approvals")
@require_auth
@require_role("ADMIN")
@handle_service_errors("list merchants for approval")
def approvals_route():
    """GET ?status=pending|reviewing|approved|rejected|suspended"""
    return jsonify(merchant_service.list_merchants_by_status(request.args.get("status") or None))


@admin_bp.post("/approvals")
@require_auth
@require_role("ADMIN")
@handle_service_errors("review merchant")
def review_route():
    """Body {merchant_id, action: approve|reject|suspend|review, reason?}."""
    data = require_fields(request.get_json(silent=True), ("merchant_id", "action"))
    result = merchant_service.review_merchant(
        parse_int(data["merchant_id"], "merchant_id"),
        data["action"],
        admin_account_id=g.current_account.id,
        reason=data.get("reason"),
    )
    return jsonify(result)


@admin_bp.get("/approvals/<int:merchant_id>/history")
@require_auth
@require_role("ADMIN")
@handle_service_errors("load approval history")
def approval_history_route(merchant_id: int):
    merchant_service.get_merchant(merchant_id)
    return jsonify({"history": merchant_service.approval_history(merchant_id)})


@admin_bp.get("/side-effect-failures")
@require_auth
@require_role("ADMIN")
@handle_service_errors("list side-effect failures")
def side_effect_failures_route():
    limit = request.args.get("limit", 100, type=int)
    failures = side_effects.list_failures(request.args.get("name") or None, limit=limit)
    return jsonify({"failures": failures, "count": len(failures)})


@admin_bp.get("/audit-logs")
@require_auth
@require_role("ADMIN")
@handle_service_errors("list audit logs")
def audit_logs_route():
    limit = request.args.get("limit", 100, type=int)
    return jsonify({"logs": event_service.list_audit_logs(request.args.get("entity_type") or None, limit=limit)})


@admin_bp.get("/ledger-check")
@require_auth
@require_role("ADMIN")
@handle_service_errors("verify wallet ledger")
def ledger_check_route():
    violations = wallet_service.verify_ledger(request.args.get("wallet_id", type=int))
    return jsonify({"ok": not violations, "violations": violations})


@admin_bp.get("/events")
@require_auth
@require_role("ADMIN")
@handle_service_errors("list transaction events")
def events_route():
    """GET ?type&merchant_id&limit -> analytics events, newest first."""
    events = event_service.list_events(
        request.args.get("type") or None,
        merchant_id=request.args.get("merchant_id", type=int),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"events": events, "count": len(events)})
