# Overview: Service-layer operations for bearer-token sessions.

"""
Session Token Management Service

Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS)
- Revocable on logout
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, Account
from airctt.time_utils import utcnow, as_naive_utc


@dataclass
class SessionContext:
    """Identity resolved from a bearer token."""
    account: Account
    session: SessionToken

    @property
    def consumer_id(self) -> int | None:
        return self.account.id if self.account.role == "CONSUMER" else None

    @property
    def merchant_id(self) -> int | None:
        return self.account.merchant_id


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 of the token for storage.

    WHY SHA-256 not bcrypt: tokens are already high-entropy.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    account_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for an account.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    account = db.session.get(Account, account_id)
    if not account or not account.is_active:
        raise ValueError("Account not found or inactive")

    plaintext_token = generate_token()
    now = utcnow()
    hours = current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)

    session = SessionToken(
        account_id=account_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + timedelta(hours=hours),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Return SessionContext if the token is valid, else None.

    Invalid means unknown, revoked, expired, or the account is deactivated.
    """
    if not token:
        return None
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None

    now = utcnow()
    if as_naive_utc(session.expires_at) <= now:
        return None

    account = db.session.get(Account, session.account_id)
    if not account or not account.is_active:
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(account=account, session=session)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def purge_expired_sessions() -> int:
    """Delete expired or revoked tokens. Returns number of rows removed."""
    now = utcnow()
    deleted = (
        db.session.query(SessionToken)
        .filter((SessionToken.expires_at <= now) | (SessionToken.is_revoked.is_(True)))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
