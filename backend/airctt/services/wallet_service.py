# Overview: Service-layer operations for the wallet ledger (consumer points, merchant prepaid balance).

"""
Wallet ledger.

Every balance change appends a WalletTransaction with
balance_after = balance_before + amount and moves Wallet.balance in the
same transaction. Mutations of one wallet are serialized by the row lock
(BEGIN IMMEDIATE on SQLite, SELECT ... FOR UPDATE elsewhere) with the
version_id column as an optimistic backstop; conflicts are retried.

INVARIANTS (checked by verify_ledger and the CLI):
- per row: balance_after == balance_before + amount
- chain: each row's balance_before == previous row's balance_after (first is 0)
- wallet.balance == sum(amounts) == last row's balance_after
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Account, Wallet, WalletTransaction
from ..models.accounts import ROLE_CONSUMER
from ..models.wallets import OWNER_CONSUMER, OWNER_MERCHANT, OWNER_TYPES
from ..validation import ConflictError, NotFoundError, ServiceError, ValidationError
from .concurrency import begin_immediate, lock_for_update, run_with_retry


def _validate_delta(owner_type: str, owner_id, tx_type, amount) -> None:
    if owner_type not in OWNER_TYPES:
        raise ValidationError(f"owner_type must be one of {', '.join(OWNER_TYPES)}")
    if not owner_id:
        raise ValidationError("Missing parameters")
    if not tx_type or not isinstance(tx_type, str) or len(tx_type) > 32:
        raise ValidationError("type must be a non-empty string (max 32 chars)")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount must be an integer")


def _find_wallet(owner_type: str, owner_id: int, for_update: bool = False) -> Wallet | None:
    q = db.session.query(Wallet).filter_by(owner_type=owner_type, owner_id=owner_id).populate_existing()
    if for_update:
        q = lock_for_update(q)
    return q.first()


def _get_or_create_locked(owner_type: str, owner_id: int) -> Wallet:
    """Caller must already hold the write transaction (begin_immediate)."""
    wallet = _find_wallet(owner_type, owner_id, for_update=True)
    if wallet:
        return wallet
    try:
        with db.session.begin_nested():
            wallet = Wallet(
                owner_type=owner_type,
                owner_id=owner_id,
                balance=0,
                total_charged=0,
                total_used=0,
            )
            db.session.add(wallet)
        return wallet
    except IntegrityError:
        wallet = _find_wallet(owner_type, owner_id, for_update=True)
        if not wallet:
            raise
        return wallet


def _apply(
    owner_type: str,
    owner_id: int,
    tx_type: str,
    amount: int,
    description: str | None,
    reference_type: str | None,
    reference_id: int | None,
) -> dict:
    wallet = _get_or_create_locked(owner_type, owner_id)
    before = wallet.balance
    after = before + amount

    if after < 0 and not current_app.config.get("WALLET_ALLOW_NEGATIVE_BALANCE", True):
        raise ConflictError(
            "Insufficient balance",
            {"balance": before, "amount": amount},
            code="INSUFFICIENT_BALANCE",
        )

    tx = WalletTransaction(
        wallet_id=wallet.id,
        tx_type=tx_type,
        amount=amount,
        balance_before=before,
        balance_after=after,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.session.add(tx)

    wallet.balance = after
    if amount > 0:
        wallet.total_charged += amount
    elif amount < 0:
        wallet.total_used += -amount
    db.session.flush()

    return {"status": "ok", "wallet_tx_id": tx.id, "new_balance": after, "wallet_id": wallet.id}


def apply_delta(
    owner_type: str,
    owner_id: int,
    tx_type: str,
    amount: int,
    *,
    description: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    commit: bool = True,
) -> dict:
    """
    Append a signed delta to the owner's wallet, creating it at 0 if needed.

    Zero is a valid amount (recorded as a row). commit=False joins the
    caller's transaction (payment confirmation credits charge + bonus that
    way) and leaves retry/rollback to the caller.

    Returns {status: "ok", wallet_tx_id, new_balance, wallet_id}.
    """
    _validate_delta(owner_type, owner_id, tx_type, amount)

    def _op():
        begin_immediate()
        try:
            result = _apply(owner_type, owner_id, tx_type, amount, description, reference_type, reference_id)
            if commit:
                db.session.commit()
            return result
        except ServiceError:
            if commit:
                db.session.rollback()
            raise

    if not commit:
        return _op()
    return run_with_retry(_op)


def apply_consumer_delta(consumer_id: int, tx_type: str, amount: int, description: str | None = None) -> dict:
    if not consumer_id or not tx_type or amount is None:
        raise ValidationError("Missing parameters")
    consumer = db.session.get(Account, consumer_id)
    if not consumer or consumer.role != ROLE_CONSUMER:
        raise NotFoundError("Consumer not found")
    return apply_delta(OWNER_CONSUMER, consumer_id, tx_type, amount, description=description)


def get_balance(owner_type: str, owner_id: int) -> int:
    """Current balance; 0 when the owner has no wallet yet."""
    wallet = _find_wallet(owner_type, owner_id)
    return wallet.balance if wallet else 0


def get_wallet_with_transactions(owner_type: str, owner_id: int, limit: int = 20) -> dict:
    """Wallet (created if missing) with its most recent transactions, newest first."""
    if owner_type not in OWNER_TYPES or not owner_id:
        raise ValidationError("Missing parameters")

    wallet = _find_wallet(owner_type, owner_id)
    if wallet is None:
        def _create():
            begin_immediate()
            created = _get_or_create_locked(owner_type, owner_id)
            db.session.commit()
            return created.id
        wallet_id = run_with_retry(_create)
        wallet = db.session.get(Wallet, wallet_id)

    txs = (
        db.session.query(WalletTransaction)
        .filter_by(wallet_id=wallet.id)
        .order_by(WalletTransaction.id.desc())
        .limit(limit)
        .all()
    )
    return {"wallet": wallet.to_dict(), "transactions": [t.to_dict() for t in txs]}


def get_merchant_wallet(merchant_id: int, limit: int = 20) -> dict:
    return get_wallet_with_transactions(OWNER_MERCHANT, merchant_id, limit)


def verify_ledger(wallet_id: int | None = None) -> list[dict]:
    """Return a list of invariant violations (empty when the ledger is consistent)."""
    q = db.session.query(Wallet)
    if wallet_id is not None:
        q = q.filter_by(id=wallet_id)

    violations: list[dict] = []
    for wallet in q.order_by(Wallet.id).all():
        txs = (
            db.session.query(WalletTransaction)
            .filter_by(wallet_id=wallet.id)
            .order_by(WalletTransaction.id)
            .all()
        )
        expected_before = 0
        total = 0
        for tx in txs:
            if tx.balance_after != tx.balance_before + tx.amount:
                violations.append({"wallet_id": wallet.id, "tx_id": tx.id, "problem": "ROW_IDENTITY"})
            if tx.balance_before != expected_before:
                violations.append({"wallet_id": wallet.id, "tx_id": tx.id, "problem": "CHAIN_BROKEN"})
            expected_before = tx.balance_after
            total += tx.amount

        if wallet.balance != total:
            violations.append({
                "wallet_id": wallet.id, "tx_id": None, "problem": "BALANCE_NOT_SUM",
                "balance": wallet.balance, "sum": total,
            })
        if txs and wallet.balance != txs[-1].balance_after:
            violations.append({"wallet_id": wallet.id, "tx_id": txs[-1].id, "problem": "BALANCE_NOT_LAST"})
    return violations
