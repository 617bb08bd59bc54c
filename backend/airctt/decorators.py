# Overview: Request decorators for authentication, role checks and error mapping.

from functools import wraps

from flask import current_app, g, jsonify, request

from .extensions import db
from .services import session_service
from .validation import ServiceError, ValidationError, parse_int


def _is_authenticated() -> bool:
    return getattr(g, "current_account", None) is not None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_account: the authenticated Account
    - g.role: CONSUMER, MERCHANT or ADMIN
    - g.consumer_id: account id for consumers, else None
    - g.merchant_id: merchant the account acts for, else None
    - g.session_context: the full SessionContext
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_account = context.account
        g.role = context.account.role
        g.consumer_id = context.consumer_id
        g.merchant_id = context.merchant_id
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Allow only the given account roles (use after @require_auth)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401
            if g.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403
            if "MERCHANT" in roles and g.role == "MERCHANT" and not g.merchant_id:
                return jsonify({"error": "Account is not linked to a merchant"}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def handle_service_errors(action: str):
    """
    Map ServiceError subclasses to their JSON/status and anything else to a
    generic 500, rolling back the session in both cases.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ServiceError as e:
                db.session.rollback()
                return jsonify(e.to_dict()), e.status_code
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500
        return decorated_function
    return decorator


def optional_auth(f):
    """Like require_auth, but anonymous callers pass through with g.current_account = None."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_account = None
        g.role = None
        g.consumer_id = None
        g.merchant_id = None
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            context = session_service.validate_session(auth_header.split(" ", 1)[1].strip())
            if context:
                g.current_account = context.account
                g.role = context.account.role
                g.consumer_id = context.consumer_id
                g.merchant_id = context.merchant_id
                g.session_context = context
        return f(*args, **kwargs)
    return decorated_function


def scoped_merchant_id(required: bool = True) -> int | None:
    """
    Merchant the request acts for.

    MERCHANT accounts are pinned to their own merchant; ADMIN accounts name
    one with ?merchant_id= (or a merchant_id body field).
    """
    if g.role == "MERCHANT":
        return g.merchant_id
    raw = request.args.get("merchant_id")
    if raw is None:
        raw = (request.get_json(silent=True) or {}).get("merchant_id")
    if raw is None or raw == "":
        if required:
            raise ValidationError("merchant_id is required")
        return None
    return parse_int(raw, "merchant_id", minimum=1)
