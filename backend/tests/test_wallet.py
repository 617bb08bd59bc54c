# Overview: Pytest coverage for the wallet ledger, its invariants and the wallet routes.

import pytest
from sqlalchemy.exc import IntegrityError

from airctt.models import Wallet, WalletTransaction
from airctt.services import wallet_service
from airctt.validation import ConflictError, NotFoundError, ValidationError

from conftest import login


class TestApplyDelta:
    def test_spend_after_charge(self, db_session, consumer):
        wallet_service.apply_consumer_delta(consumer.id, "CHARGE", 1000)
        result = wallet_service.apply_consumer_delta(consumer.id, "USE", -300)

        assert result["status"] == "ok"
        assert result["new_balance"] == 700
        tx = db_session.get(WalletTransaction, result["wallet_tx_id"])
        assert (tx.balance_before, tx.amount, tx.balance_after) == (1000, -300, 700)

        wallet = db_session.get(Wallet, result["wallet_id"])
        assert wallet.balance == 700
        assert wallet.total_charged == 1000
        assert wallet.total_used == 300

    def test_wallet_created_on_first_delta(self, db_session, consumer):
        assert wallet_service.get_balance("CONSUMER", consumer.id) == 0
        result = wallet_service.apply_consumer_delta(consumer.id, "REWARD", 50)
        assert result["new_balance"] == 50
        assert db_session.query(Wallet).filter_by(owner_id=consumer.id).count() == 1

    def test_zero_amount_is_recorded(self, db_session, consumer):
        result = wallet_service.apply_consumer_delta(consumer.id, "ADJUST", 0)
        assert result["new_balance"] == 0
        assert db_session.query(WalletTransaction).count() == 1

    def test_negative_balance_allowed_by_default(self, db_session, consumer):
        assert wallet_service.apply_consumer_delta(consumer.id, "USE", -100)["new_balance"] == -100

    def test_negative_balance_can_be_refused(self, app, db_session, consumer, monkeypatch):
        monkeypatch.setitem(app.config, "WALLET_ALLOW_NEGATIVE_BALANCE", False)
        wallet_service.apply_consumer_delta(consumer.id, "CHARGE", 100)
        with pytest.raises(ConflictError) as exc:
            wallet_service.apply_consumer_delta(consumer.id, "USE", -101)
        assert exc.value.code == "INSUFFICIENT_BALANCE"
        assert wallet_service.get_balance("CONSUMER", consumer.id) == 100
        assert db_session.query(WalletTransaction).count() == 1

    def test_bad_input(self, db_session, consumer, merchant_user_a):
        with pytest.raises(ValidationError):
            wallet_service.apply_consumer_delta(consumer.id, "CHARGE", 1.5)
        with pytest.raises(ValidationError):
            wallet_service.apply_consumer_delta(consumer.id, "X" * 33, 10)
        with pytest.raises(NotFoundError):
            wallet_service.apply_consumer_delta(merchant_user_a.id, "CHARGE", 10)

    def test_owners_are_separate(self, db_session, consumer, merchant_a):
        wallet_service.apply_delta("CONSUMER", consumer.id, "CHARGE", 10)
        wallet_service.apply_delta("MERCHANT", merchant_a.id, "CHARGE", 20)
        assert wallet_service.get_balance("CONSUMER", consumer.id) == 10
        assert wallet_service.get_balance("MERCHANT", merchant_a.id) == 20


class TestLedgerInvariants:
    def test_sequence_keeps_every_invariant(self, db_session, consumer):
        amounts = [1000, -300, 250, 0, -2000, 75]
        for amount in amounts:
            wallet_service.apply_consumer_delta(consumer.id, "ADJUST", amount)

        wallet = db_session.query(Wallet).filter_by(owner_id=consumer.id).one()
        txs = db_session.query(WalletTransaction).filter_by(wallet_id=wallet.id).order_by(WalletTransaction.id).all()

        assert wallet.balance == sum(amounts) == txs[-1].balance_after
        previous_after = 0
        for tx in txs:
            assert tx.balance_after == tx.balance_before + tx.amount
            assert tx.balance_before == previous_after
            previous_after = tx.balance_after
        assert wallet_service.verify_ledger() == []

    def test_verify_ledger_reports_tampering(self, db_session, consumer):
        result = wallet_service.apply_consumer_delta(consumer.id, "CHARGE", 500)
        db_session.add(WalletTransaction(
            wallet_id=result["wallet_id"], tx_type="ADJUST", amount=10,
            balance_before=400, balance_after=410,
        ))
        db_session.commit()

        problems = {v["problem"] for v in wallet_service.verify_ledger(result["wallet_id"])}
        assert problems == {"CHAIN_BROKEN", "BALANCE_NOT_SUM", "BALANCE_NOT_LAST"}

    def test_schema_rejects_rows_breaking_the_identity(self, db_session, consumer):
        result = wallet_service.apply_consumer_delta(consumer.id, "CHARGE", 500)
        db_session.add(WalletTransaction(
            wallet_id=result["wallet_id"], tx_type="ADJUST", amount=10,
            balance_before=500, balance_after=999,
        ))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()
        assert wallet_service.verify_ledger(result["wallet_id"]) == []

    def test_cli_verify_ledger(self, app, db_session, consumer):
        wallet_service.apply_consumer_delta(consumer.id, "CHARGE", 500)
        runner = app.test_cli_runner()
        result = runner.invoke(args=["wallets", "verify-ledger"])
        assert result.exit_code == 0
        assert "PASS" in result.output

        wallet = db_session.query(Wallet).one()
        wallet.balance = 1
        db_session.commit()
        result = runner.invoke(args=["wallets", "verify-ledger"])
        assert result.exit_code == 1
        assert "BALANCE_NOT_SUM" in result.output


class TestWalletRoutes:
    def test_consumer_posts_to_own_wallet(self, client, db_session, consumer):
        headers = login(client, consumer)
        response = client.post('/api/wallet/transaction', json={
            'consumer_id': consumer.id, 'type': 'CHARGE', 'amount_points': 1000,
        }, headers=headers)
        assert response.status_code == 200
        assert response.json["new_balance"] == 1000
        assert response.json["status"] == "ok"

        response = client.post('/api/wallet/transaction', json={
            'consumer_id': consumer.id, 'type': 'USE', 'amount_points': '-300',
        }, headers=headers)
        assert response.json["new_balance"] == 700

        response = client.get('/api/wallet/my-balance', headers=headers)
        assert response.status_code == 200
        assert response.json["balance"] == 700
        assert [t["amount"] for t in response.json["transactions"]] == [-300, 1000]

    def test_consumer_cannot_post_for_someone_else(self, client, db_session, consumer, consumer_b):
        response = client.post('/api/wallet/transaction', json={
            'consumer_id': consumer_b.id, 'type': 'CHARGE', 'amount_points': 1000,
        }, headers=login(client, consumer))
        assert response.status_code == 403
        assert wallet_service.get_balance("CONSUMER", consumer_b.id) == 0

    def test_admin_may_post_for_any_consumer(self, client, db_session, admin, consumer):
        response = client.post('/api/wallet/transaction', json={
            'consumer_id': consumer.id, 'type': 'REWARD', 'amount_points': 10,
        }, headers=login(client, admin))
        assert response.status_code == 200

    def test_missing_fields_and_auth(self, client, db_session, consumer):
        assert client.post('/api/wallet/transaction', json={}).status_code == 401
        response = client.post('/api/wallet/transaction', json={'consumer_id': consumer.id},
                               headers=login(client, consumer))
        assert response.status_code == 400

    def test_merchant_wallet_route(self, client, db_session, merchant_user_a, merchant_a):
        wallet_service.apply_delta("MERCHANT", merchant_a.id, "CHARGE", 10000)
        response = client.get('/api/merchant/wallet', headers=login(client, merchant_user_a))
        assert response.status_code == 200
        assert response.json["balance"] == 10000
