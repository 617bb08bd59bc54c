# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..models.accounts import ROLE_CONSUMER
from ..services import auth_service, session_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
@handle_service_errors("register account")
def register_route():
    """
    Consumer self-registration.

    Merchant operators sign up as consumers and then call
    POST /api/merchant/register; admin accounts come from the CLI.
    """
    data = request.get_json(silent=True) or {}
    account = auth_service.create_account(
        data.get("email"),
        data.get("password") or "",
        ROLE_CONSUMER,
        display_name=data.get("display_name"),
        phone=data.get("phone"),
    )
    return jsonify({"account": account.to_dict()}), 201


@auth_bp.post("/login")
@handle_service_errors("log in")
def login_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400

    account = auth_service.authenticate(email, password)
    if not account:
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        account_id=account.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({
        "token": token,
        "expires_at": session.expires_at.isoformat() + "Z",
        "account": account.to_dict(),
    })


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1].strip()
    session_service.revoke_session(token)
    return jsonify({"status": "logged_out"})


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"account": g.current_account.to_dict()})
