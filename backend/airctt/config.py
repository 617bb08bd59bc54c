# backend/airctt/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/airctt.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///airctt.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))

    # Discovery defaults
    NEARBY_DEFAULT_RADIUS_KM = float(os.environ.get("NEARBY_DEFAULT_RADIUS_KM", "5"))
    NEARBY_DEFAULT_LIMIT = int(os.environ.get("NEARBY_DEFAULT_LIMIT", "20"))
    NEARBY_OVERFETCH_FACTOR = int(os.environ.get("NEARBY_OVERFETCH_FACTOR", "2"))
    STORE_DEFAULT_RADIUS_M = int(os.environ.get("STORE_DEFAULT_RADIUS_M", "5000"))

    # Source system never floored balances; flip to enforce a floor at zero.
    WALLET_ALLOW_NEGATIVE_BALANCE = _env_bool("WALLET_ALLOW_NEGATIVE_BALANCE", True)

    # Payments (Toss Payments confirm API)
    TOPUP_MIN_AMOUNT = int(os.environ.get("TOPUP_MIN_AMOUNT", "10000"))
    TOSS_CLIENT_KEY = os.environ.get("TOSS_CLIENT_KEY", "test_ck_placeholder")
    TOSS_SECRET_KEY = os.environ.get("TOSS_SECRET_KEY", "test_sk_placeholder")
    TOSS_API_BASE = os.environ.get("TOSS_API_BASE", "https://api.tosspayments.com")
    PAYMENT_GATEWAY_TIMEOUT = float(os.environ.get("PAYMENT_GATEWAY_TIMEOUT", "10"))
    PAYMENT_GATEWAY_RETRIES = int(os.environ.get("PAYMENT_GATEWAY_RETRIES", "3"))
    PAYMENT_GATEWAY_BACKOFF = float(os.environ.get("PAYMENT_GATEWAY_BACKOFF", "0.2"))
    PAYMENT_GATEWAY_TRANSPORT = None  # httpx transport override (tests)

    # Platform fee (percent) deducted from settled order revenue
    SETTLEMENT_FEE_RATE = float(os.environ.get("SETTLEMENT_FEE_RATE", "3.5"))

    # CRM/analytics writes run on a worker pool unless disabled
    SIDE_EFFECTS_ASYNC = _env_bool("SIDE_EFFECTS_ASYNC", True)
    SIDE_EFFECTS_MAX_WORKERS = int(os.environ.get("SIDE_EFFECTS_MAX_WORKERS", "4"))

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    }
