# Overview: Pytest coverage for coupon issuance, redemption, discounts and coupon routes.

"""
Coupon lifecycle tests.

ISSUED -> USED happens at most once; the checks run in a fixed order
(not found, status, expiry, owner/store) and every failure carries the
HTTP status its error class maps to.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from airctt.models import Coupon, CouponIssue, MerchantCustomer, TransactionEvent
from airctt.services import coupon_service
from airctt.time_utils import utcnow
from airctt.validation import ConflictError, ExpiredError, NotFoundError, ValidationError

from conftest import login, make_coupon


class TestDiscountMath:
    def _coupon(self, **kw):
        values = {"discount_type": "percent", "discount_value": 10}
        values.update(kw)
        return Coupon(**values)

    def test_percent_of_fifty_thousand(self):
        coupon = self._coupon()
        discount = coupon_service.compute_discount(coupon, 50000)
        assert discount == 5000
        assert 50000 - discount == 45000

    def test_percent_is_floored(self):
        assert coupon_service.compute_discount(self._coupon(discount_value=15), 999) == 149

    def test_percent_cap(self):
        coupon = self._coupon(discount_value=50, max_discount_amount=3000)
        assert coupon_service.compute_discount(coupon, 20000) == 3000

    def test_amount_never_exceeds_subtotal(self):
        coupon = self._coupon(discount_type="amount", discount_value=3000)
        assert coupon_service.compute_discount(coupon, 2000) == 2000

    def test_min_order_not_met_means_no_discount(self):
        coupon = self._coupon(discount_type="amount", discount_value=3000, min_order_amount=10000)
        assert not coupon_service.discount_applies(coupon, 8000)
        assert coupon_service.compute_discount(coupon, 8000) == 0

    def test_discount_bounded_for_many_subtotals(self):
        coupons = [
            self._coupon(discount_value=100),
            self._coupon(discount_type="amount", discount_value=7000),
            self._coupon(discount_value=33, max_discount_amount=100),
        ]
        for coupon in coupons:
            for subtotal in (0, 1, 99, 5000, 6999, 7000, 123456):
                discount = coupon_service.compute_discount(coupon, subtotal)
                assert 0 <= discount <= subtotal


class TestIssue:
    def test_issue_returns_issued_code(self, db_session, consumer, coupon_a):
        result = coupon_service.issue_coupon(coupon_a.id, consumer.id)
        assert result["status"] == "ISSUED"
        assert len(result["code"]) == 8
        issue = db_session.get(CouponIssue, result["coupon_issue_id"])
        assert issue.reason == "MANUAL"
        assert issue.issued_from == "merchant"
        assert db_session.get(Coupon, coupon_a.id).issued_count == 1

    def test_issue_records_crm_and_event(self, db_session, consumer, coupon_a):
        coupon_service.issue_coupon(coupon_a.id, consumer.id)
        row = db_session.query(MerchantCustomer).filter_by(
            merchant_id=coupon_a.merchant_id, consumer_id=consumer.id
        ).one()
        assert row.coupon_issue_count == 1
        assert row.visit_count == 0
        assert db_session.query(TransactionEvent).filter_by(event_type="coupon_issued").count() == 1

    def test_game_channel_counts_as_coupon_touchpoint(self, db_session, consumer, coupon_a):
        coupon_service.issue_coupon(coupon_a.id, consumer.id, reason="GAME_REWARD", issued_from="event")
        row = db_session.query(MerchantCustomer).filter_by(consumer_id=consumer.id).one()
        assert row.coupon_issue_count == 1
        assert row.last_touchpoint == "COUPON_GAME"

    def test_missing_parameters(self, db_session):
        with pytest.raises(ValidationError, match="Missing parameters"):
            coupon_service.issue_coupon(None, None)

    def test_unknown_coupon_or_consumer(self, db_session, consumer, coupon_a, merchant_user_a):
        with pytest.raises(NotFoundError):
            coupon_service.issue_coupon(99999, consumer.id)
        with pytest.raises(NotFoundError):
            coupon_service.issue_coupon(coupon_a.id, 99999)
        # merchant accounts cannot hold coupons
        with pytest.raises(NotFoundError):
            coupon_service.issue_coupon(coupon_a.id, merchant_user_a.id)

    def test_inactive_and_not_yet_valid(self, db_session, consumer, merchant_a):
        inactive = make_coupon(db_session, merchant_a, is_active=False)
        future = make_coupon(db_session, merchant_a, valid_from=utcnow() + timedelta(days=1))
        with pytest.raises(ConflictError):
            coupon_service.issue_coupon(inactive.id, consumer.id)
        with pytest.raises(ConflictError):
            coupon_service.issue_coupon(future.id, consumer.id)

    def test_expired_coupon_cannot_be_issued(self, db_session, consumer, merchant_a):
        expired = make_coupon(db_session, merchant_a, valid_to=utcnow() - timedelta(seconds=1))
        with pytest.raises(ExpiredError):
            coupon_service.issue_coupon(expired.id, consumer.id)

    def test_sold_out(self, db_session, consumer, consumer_b, merchant_a):
        coupon = make_coupon(db_session, merchant_a, total_issuable=1)
        coupon_service.issue_coupon(coupon.id, consumer.id)
        with pytest.raises(ConflictError) as exc:
            coupon_service.issue_coupon(coupon.id, consumer_b.id)
        assert exc.value.code == "SOLD_OUT"
        assert db_session.get(Coupon, coupon.id).issued_count == 1

    def test_per_user_limit_ignores_cancelled(self, db_session, consumer, merchant_a):
        coupon = make_coupon(db_session, merchant_a, per_user_limit=1)
        first = coupon_service.issue_coupon(coupon.id, consumer.id)
        with pytest.raises(ConflictError) as exc:
            coupon_service.issue_coupon(coupon.id, consumer.id)
        assert exc.value.code == "PER_USER_LIMIT"

        coupon_service.cancel_issue(first["coupon_issue_id"])
        again = coupon_service.issue_coupon(coupon.id, consumer.id)
        assert again["status"] == "ISSUED"

    def test_merchant_scope(self, db_session, consumer, coupon_a, merchant_b):
        with pytest.raises(NotFoundError):
            coupon_service.issue_coupon(coupon_a.id, consumer.id, merchant_id=merchant_b.id)


class TestRedeem:
    def _issue(self, coupon, consumer):
        return coupon_service.issue_coupon(coupon.id, consumer.id)["coupon_issue_id"]

    def test_redeem_once(self, db_session, consumer, coupon_a, store_a):
        issue_id = self._issue(coupon_a, consumer)
        result = coupon_service.redeem_coupon(issue_id, store_a.id)
        assert result["id"] == issue_id
        assert result["status"] == "USED"
        assert result["used_at"].endswith("Z")

        issue = db_session.get(CouponIssue, issue_id)
        assert issue.status == "USED"
        assert issue.used_store_id == store_a.id

    def test_second_redeem_names_used_status(self, db_session, consumer, coupon_a, store_a):
        issue_id = self._issue(coupon_a, consumer)
        coupon_service.redeem_coupon(issue_id, store_a.id)
        with pytest.raises(ConflictError) as exc:
            coupon_service.redeem_coupon(issue_id, store_a.id)
        assert "USED" in str(exc.value)
        assert exc.value.status_code == 400

    def test_unknown_issue(self, db_session):
        with pytest.raises(NotFoundError, match="Coupon not found"):
            coupon_service.redeem_coupon(424242, None)

    def test_expired_after_issue(self, db_session, consumer, coupon_a, store_a):
        issue_id = self._issue(coupon_a, consumer)
        coupon = db_session.get(Coupon, coupon_a.id)
        coupon.valid_to = utcnow() - timedelta(seconds=1)
        db_session.commit()

        with pytest.raises(ExpiredError) as exc:
            coupon_service.redeem_coupon(issue_id, store_a.id)
        assert str(exc.value) == "Coupon cannot be used: EXPIRED"
        # Expiry is derived on read; the stored status is untouched
        assert db_session.get(CouponIssue, issue_id).status == "ISSUED"
        assert coupon_service.check_coupon(issue_id)["status"] == "EXPIRED"

    def test_status_checked_before_expiry(self, db_session, consumer, coupon_a, store_a):
        issue_id = self._issue(coupon_a, consumer)
        coupon_service.cancel_issue(issue_id)
        coupon = db_session.get(Coupon, coupon_a.id)
        coupon.valid_to = utcnow() - timedelta(seconds=1)
        db_session.commit()
        with pytest.raises(ConflictError, match="CANCELLED"):
            coupon_service.redeem_coupon(issue_id, store_a.id)

    def test_wrong_store(self, db_session, consumer, coupon_a, store_b):
        issue_id = self._issue(coupon_a, consumer)
        with pytest.raises(ConflictError) as exc:
            coupon_service.redeem_coupon(issue_id, store_b.id)
        assert exc.value.code == "WRONG_STORE"

    def test_owner_mismatch(self, db_session, consumer, consumer_b, coupon_a, store_a):
        issue_id = self._issue(coupon_a, consumer)
        with pytest.raises(ConflictError) as exc:
            coupon_service.redeem_coupon(issue_id, store_a.id, consumer_id=consumer_b.id)
        assert exc.value.code == "NOT_OWNER"

    def test_redeem_counts_a_visit(self, db_session, consumer, coupon_a, store_a):
        issue_id = self._issue(coupon_a, consumer)
        coupon_service.redeem_coupon(issue_id, store_a.id)
        row = db_session.query(MerchantCustomer).filter_by(consumer_id=consumer.id).one()
        assert row.visit_count == 1
        assert row.coupon_issue_count == 1
        assert db_session.query(TransactionEvent).filter_by(event_type="coupon_redeemed").count() == 1


class TestVersioning:
    def test_issuance_bumps_version(self, db_session, consumer, coupon_a):
        assert db_session.get(Coupon, coupon_a.id).version_id == 1
        coupon_service.issue_coupon(coupon_a.id, consumer.id)
        coupon = db_session.get(Coupon, coupon_a.id)
        assert coupon.issued_count == 1
        assert coupon.version_id == 2

    def test_stale_edit_is_rejected(self, db_session, coupon_a):
        coupon = db_session.get(Coupon, coupon_a.id)
        db_session.execute(
            update(Coupon)
            .where(Coupon.id == coupon_a.id)
            .values(version_id=Coupon.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        coupon.title = "Renamed"
        with pytest.raises(StaleDataError):
            db_session.flush()
        db_session.rollback()


class TestLookups:
    def test_check_by_code_and_id(self, db_session, consumer, coupon_a):
        issued = coupon_service.issue_coupon(coupon_a.id, consumer.id)
        by_code = coupon_service.check_coupon(issued["code"].lower())
        by_id = coupon_service.check_coupon(str(issued["coupon_issue_id"]))
        assert by_code["issue"]["id"] == by_id["issue"]["id"] == issued["coupon_issue_id"]
        assert by_code["usable"] is True
        assert by_code["coupon"]["title"] == "10% off"

    def test_check_hides_other_owners_issues(self, db_session, consumer, consumer_b, coupon_a, merchant_a, merchant_b):
        issue_id = coupon_service.issue_coupon(coupon_a.id, consumer.id)["coupon_issue_id"]
        with pytest.raises(NotFoundError):
            coupon_service.check_coupon(issue_id, consumer_id=consumer_b.id)
        with pytest.raises(NotFoundError):
            coupon_service.check_coupon(issue_id, merchant_id=merchant_b.id)
        assert coupon_service.check_coupon(issue_id, consumer_id=consumer.id)["status"] == "ISSUED"
        assert coupon_service.check_coupon(issue_id, merchant_id=merchant_a.id)["status"] == "ISSUED"

    def test_list_consumer_coupons_with_status_filter(self, db_session, consumer, coupon_a, store_a):
        first = coupon_service.issue_coupon(coupon_a.id, consumer.id)
        coupon_service.issue_coupon(coupon_a.id, consumer.id)
        coupon_service.redeem_coupon(first["coupon_issue_id"], store_a.id)

        assert len(coupon_service.list_consumer_coupons(consumer.id)) == 2
        used = coupon_service.list_consumer_coupons(consumer.id, "USED")
        assert [c["id"] for c in used] == [first["coupon_issue_id"]]
        with pytest.raises(ValidationError):
            coupon_service.list_consumer_coupons(consumer.id, "BOGUS")


class TestCouponRoutes:
    def test_merchant_issues_and_consumer_redeems(self, client, db_session, consumer, merchant_user_a, coupon_a, store_a):
        merchant_headers = login(client, merchant_user_a)
        response = client.post('/api/coupons/issue', json={
            'consumer_id': consumer.id, 'coupon_id': coupon_a.id,
        }, headers=merchant_headers)
        assert response.status_code == 201
        issue_id = response.json["coupon_issue_id"]

        consumer_headers = login(client, consumer)
        response = client.post('/api/coupons/use', json={
            'coupon_issue_id': issue_id, 'store_id': store_a.id,
        }, headers=consumer_headers)
        assert response.status_code == 200
        assert response.json["status"] == "USED"

        response = client.post('/api/coupons/use', json={
            'coupon_issue_id': issue_id, 'store_id': store_a.id,
        }, headers=consumer_headers)
        assert response.status_code == 400
        assert "USED" in response.json["error"]

    def test_status_codes_for_missing_and_expired(self, client, db_session, consumer, coupon_a, store_a):
        headers = login(client, consumer)
        response = client.post('/api/coupons/use', json={'coupon_issue_id': 9999, 'store_id': store_a.id}, headers=headers)
        assert response.status_code == 404

        issued = coupon_service.issue_coupon(coupon_a.id, consumer.id)
        coupon = db_session.get(Coupon, coupon_a.id)
        coupon.valid_to = utcnow() - timedelta(seconds=1)
        db_session.commit()
        response = client.post('/api/coupons/use', json={
            'coupon_issue_id': issued["coupon_issue_id"], 'store_id': store_a.id,
        }, headers=headers)
        assert response.status_code == 410
        assert response.json["error"] == "Coupon cannot be used: EXPIRED"

    def test_missing_fields_is_400(self, client, db_session, consumer):
        response = client.post('/api/coupons/use', json={}, headers=login(client, consumer))
        assert response.status_code == 400
        assert response.json["code"] == "VALIDATION_ERROR"

    def test_merchant_cannot_issue_other_merchants_coupon(self, client, db_session, consumer, merchant_user_b, coupon_a):
        response = client.post('/api/coupons/issue', json={
            'consumer_id': consumer.id, 'coupon_id': coupon_a.id,
        }, headers=login(client, merchant_user_b))
        assert response.status_code == 404

    def test_consumer_cannot_issue(self, client, db_session, consumer, coupon_a):
        response = client.post('/api/coupons/issue', json={
            'consumer_id': consumer.id, 'coupon_id': coupon_a.id,
        }, headers=login(client, consumer))
        assert response.status_code == 403

    def test_merchant_redeems_only_at_own_store(self, client, db_session, consumer, merchant_user_b, coupon_a, store_a):
        issued = coupon_service.issue_coupon(coupon_a.id, consumer.id)
        response = client.post('/api/coupons/use', json={
            'coupon_issue_id': issued["coupon_issue_id"], 'store_id': store_a.id,
        }, headers=login(client, merchant_user_b))
        assert response.status_code == 404

    def test_my_coupons(self, client, db_session, consumer, coupon_a):
        coupon_service.issue_coupon(coupon_a.id, consumer.id)
        response = client.get('/api/coupons/my', headers=login(client, consumer))
        assert response.status_code == 200
        assert len(response.json["coupons"]) == 1

    def test_merchant_coupon_management(self, client, db_session, merchant_user_a, store_a):
        headers = login(client, merchant_user_a)
        response = client.post('/api/merchant/coupons', json={
            'title': 'Half price', 'discount_type': 'percent', 'discount_value': 150,
        }, headers=headers)
        assert response.status_code == 400

        response = client.post('/api/merchant/coupons', json={
            'title': 'Half price', 'discount_type': 'percent', 'discount_value': 50,
            'max_discount_amount': 5000, 'valid_to': '2099-01-01T00:00:00Z',
        }, headers=headers)
        assert response.status_code == 201
        coupon_id = response.json["coupon"]["id"]

        response = client.patch(f'/api/merchant/coupons/{coupon_id}', json={'is_active': False}, headers=headers)
        assert response.status_code == 200
        assert response.json["coupon"]["is_active"] is False

        response = client.get('/api/merchant/coupons', headers=headers)
        assert [c["id"] for c in response.json["coupons"]] == [coupon_id]

    def test_cancel_route(self, client, db_session, consumer, merchant_user_a, coupon_a):
        issued = coupon_service.issue_coupon(coupon_a.id, consumer.id)
        headers = login(client, merchant_user_a)
        response = client.post(f'/api/coupons/{issued["coupon_issue_id"]}/cancel', headers=headers)
        assert response.status_code == 200
        assert response.json["status"] == "CANCELLED"
        response = client.post(f'/api/coupons/{issued["coupon_issue_id"]}/cancel', headers=headers)
        assert response.status_code == 400
