# Overview: Service-layer operations for accounts and password authentication.

"""
Account and password handling.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Account, Merchant
from ..models.accounts import ROLES, ROLE_MERCHANT
from ..validation import ValidationError, ConflictError, NotFoundError
from airctt.time_utils import utcnow

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash stored; treat as mismatch
        return False


def create_account(
    email: str,
    password: str,
    role: str,
    *,
    display_name: str | None = None,
    phone: str | None = None,
    merchant_id: int | None = None,
) -> Account:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    if role == ROLE_MERCHANT:
        if not merchant_id:
            raise ValidationError("merchant_id is required for merchant accounts")
        if db.session.get(Merchant, merchant_id) is None:
            raise NotFoundError("Merchant not found")

    account = Account(
        email=email,
        password_hash=hash_password(password),
        role=role,
        display_name=display_name,
        phone=phone,
        merchant_id=merchant_id if role == ROLE_MERCHANT else None,
        is_active=True,
    )
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email is already registered", code="EMAIL_TAKEN")
    return account


def authenticate(email: str, password: str) -> Account | None:
    """Return the active account matching email/password, else None."""
    email = (email or "").strip().lower()
    account = db.session.query(Account).filter_by(email=email).first()
    if not account or not account.is_active:
        return None
    if not verify_password(password or "", account.password_hash):
        return None
    account.last_login_at = utcnow()
    db.session.commit()
    return account


def link_account_to_merchant(account_id: int, merchant_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFoundError("Account not found")
    account.role = ROLE_MERCHANT
    account.merchant_id = merchant_id
    db.session.flush()
    return account
