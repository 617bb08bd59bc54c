from __future__ import annotations
from datetime import datetime
from airctt.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum money value in KRW (won). Prevents overflow and nonsensical prices.
MAX_AMOUNT = 1_000_000_000

COUPON_DISCOUNT_TYPES = ("percent", "amount")


class ServiceError(Exception):
    """
    Base for domain errors raised by services.

    Routes translate these into JSON responses using status_code/code,
    so services never have to know about HTTP.
    """
    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, details: dict | None = None, *, code: str | None = None):
        super().__init__(message)
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ValidationError(ServiceError, ValueError):
    """400-level input problem (missing or malformed fields)."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    """Referenced entity does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ServiceError, ValueError):
    """State is not eligible for the requested transition (e.g. coupon already used)."""
    status_code = 400
    code = "CONFLICT"


class ExpiredError(ServiceError):
    """Validity window has elapsed."""
    status_code = 410
    code = "EXPIRED"


class DependencyError(ServiceError):
    """Storage or third-party call failed."""
    status_code = 500
    code = "DEPENDENCY_ERROR"


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a client may write, and which a create must supply."""
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _as_int(key: str, value: Any) -> int:
    # JSON floats and "1e3"/"2.0" strings are rejected, not truncated
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be a whole number")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text.lstrip("-").isdigit():
        raise ValidationError(f"{key} must be a whole number")
    return int(text)


def _as_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")


def _as_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        parsed = parse_iso_datetime(value) if isinstance(value, str) else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _as_text(key: str, value: Any, col) -> str:
    text = str(value).strip()
    if not text and not col.nullable:
        raise ValidationError(f"{key} cannot be blank")
    limit = getattr(col.type, "length", None)
    if limit and len(text) > limit:
        raise ValidationError(f"{key} is longer than {limit} characters")
    return text


def _coerce(col, value: Any):
    coltype = col.type
    if isinstance(coltype, Boolean):
        return value if isinstance(value, bool) else bool(value)
    if isinstance(coltype, Integer):
        return _as_int(col.key, value)
    if isinstance(coltype, Float):
        return _as_float(col.key, value)
    if isinstance(coltype, DateTime):
        return _as_datetime(col.key, value)
    if isinstance(coltype, (String, Text)):
        return _as_text(col.key, value, col)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the model's columns and the policy.

    Every key must be writable; on create (partial=False) every required
    key must be present. Values are coerced to the column type. Returns
    the cleaned patch.
    """
    payload = {} if payload is None else payload
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    columns = {c.key: c for c in model.__mapper__.columns}
    rejected = sorted(k for k in payload if k not in policy.writable_fields or k not in columns)
    if rejected:
        raise ValidationError(f"Fields not allowed: {', '.join(rejected)}", {"fields": rejected})

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"missing": missing})

    patch: dict = {}
    for key, raw in payload.items():
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce(col, raw)
    return patch


def require_fields(data: dict | None, fields: tuple[str, ...], message: str = "Missing parameters") -> dict:
    """Reject payloads missing any of fields (None / "" count as missing; 0 does not)."""
    data = data or {}
    missing = [f for f in fields if data.get(f) is None or data.get(f) == ""]
    if missing:
        raise ValidationError(message, {"missing": missing})
    return data


def parse_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        parsed = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and parsed < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return parsed


def _check_amount(patch: dict, field: str) -> None:
    value = patch.get(field)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")


def enforce_rules_coupon(patch: dict, existing: Any = None) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    existing is the current Coupon row on updates (None on create).
    """
    discount_type = patch.get("discount_type", getattr(existing, "discount_type", None))
    if discount_type not in COUPON_DISCOUNT_TYPES:
        raise ValidationError("discount_type must be 'percent' or 'amount'")

    value = patch.get("discount_value", getattr(existing, "discount_value", None))
    if value is None or value <= 0:
        raise ValidationError("discount_value must be > 0")
    if discount_type == "percent" and value > 100:
        raise ValidationError("percent discount_value must be between 1 and 100")

    for field in ("discount_value", "max_discount_amount", "min_order_amount"):
        _check_amount(patch, field)

    for field in ("total_issuable", "per_user_limit"):
        if patch.get(field) is not None and patch[field] < 1:
            raise ValidationError(f"{field} must be >= 1")

    valid_from = patch.get("valid_from", getattr(existing, "valid_from", None))
    valid_to = patch.get("valid_to", getattr(existing, "valid_to", None))
    if valid_from and valid_to and valid_to < valid_from:
        raise ValidationError("valid_to must be after valid_from")


def enforce_rules_store(patch: dict) -> None:
    lat = patch.get("lat")
    lng = patch.get("lng")
    if lat is not None and not -90 <= lat <= 90:
        raise ValidationError("lat must be between -90 and 90")
    if lng is not None and not -180 <= lng <= 180:
        raise ValidationError("lng must be between -180 and 180")
    if patch.get("radius_m") is not None and patch["radius_m"] <= 0:
        raise ValidationError("radius_m must be > 0")


def enforce_rules_product(patch: dict) -> None:
    if "base_price" in patch and patch["base_price"] is not None:
        _check_amount(patch, "base_price")
