from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow

OWNER_CONSUMER = "CONSUMER"
OWNER_MERCHANT = "MERCHANT"
OWNER_TYPES = (OWNER_CONSUMER, OWNER_MERCHANT)


class Wallet(db.Model):
    """
    Points/prepaid balance for a consumer or a merchant.

    INVARIANT: balance equals the sum of this wallet's transaction amounts
    and the balance_after of its latest transaction. Only wallet_service
    mutates it, under a row lock plus optimistic version check.
    """
    __tablename__ = "wallets"
    __table_args__ = (
        db.UniqueConstraint("owner_type", "owner_id", name="uq_wallets_owner"),
        db.CheckConstraint("owner_type IN ('CONSUMER', 'MERCHANT')", name="ck_wallets_owner_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_type = db.Column(db.String(16), nullable=False)
    owner_id = db.Column(db.Integer, nullable=False, index=True)

    balance = db.Column(db.BigInteger, nullable=False, default=0)
    total_charged = db.Column(db.BigInteger, nullable=False, default=0)
    total_used = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_type": self.owner_type,
            "owner_id": self.owner_id,
            "balance": self.balance,
            "total_charged": self.total_charged,
            "total_used": self.total_used,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class WalletTransaction(db.Model):
    """
    Append-only ledger of wallet deltas.

    TRANSACTION TYPES (free-form, common values):
    - charge / bonus: merchant top-up and its bonus
    - earn / use: consumer points
    - adjust: manual correction

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "wallet_transactions"
    __table_args__ = (
        db.CheckConstraint("balance_after = balance_before + amount", name="ck_wallet_tx_balance_identity"),
        db.Index("ix_wallet_tx_wallet_id_id", "wallet_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id"), nullable=False, index=True)

    tx_type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.BigInteger, nullable=False)  # Signed
    balance_before = db.Column(db.BigInteger, nullable=False)
    balance_after = db.Column(db.BigInteger, nullable=False)

    description = db.Column(db.String(255), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    wallet = db.relationship("Wallet", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "wallet_id": self.wallet_id,
            "type": self.tx_type,
            "amount": self.amount,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }
