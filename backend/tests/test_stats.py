# Overview: Pytest coverage for merchant statistics and settlement summaries.

from datetime import timedelta

import pytest

from airctt.models import CouponIssue
from airctt.services import coupon_service, kitchen_service, order_service, stats_service
from airctt.time_utils import to_utc_z, utcnow
from airctt.validation import NotFoundError, ValidationError

from conftest import login, make_coupon


@pytest.fixture
def activity(db_session, merchant_a, store_a, table_a, products_a, consumer, coupon_a):
    """
    One served-path order of 2 x Americano with 10% off (7200 after 800
    discount), one cancelled Latte order (5000), a second unused issue of
    the 10% coupon and an issue of a coupon that expired yesterday.
    """
    now = utcnow()
    used = coupon_service.issue_coupon(coupon_a.id, consumer.id)
    coupon_service.issue_coupon(coupon_a.id, consumer.id)

    old = make_coupon(db_session, merchant_a, title="Old", valid_from=now - timedelta(days=10),
                      valid_to=now - timedelta(days=1))
    db_session.add(CouponIssue(coupon_id=old.id, consumer_id=consumer.id, code="OLDCOUPON1",
                               status="ISSUED", issued_at=now - timedelta(days=3)))
    db_session.commit()

    session_id = order_service.open_session(store_a.id, table_a.id, user_id=consumer.id)["session_id"]
    order_service.add_to_cart(session_id, products_a[0].id, quantity=2)
    kept = order_service.submit_order(session_id, coupon_issue_id=used["coupon_issue_id"])
    order_service.add_to_cart(session_id, products_a[1].id)
    dropped = order_service.submit_order(session_id)
    kitchen_service.update_kitchen_status(dropped["kitchen_order_id"], "cancelled", merchant_id=merchant_a.id)
    return {"kept": kept, "dropped": dropped, "old": old}


class TestMerchantStats:
    def test_week_summary(self, activity, merchant_a):
        assert activity["kept"]["final_amount"] == 7200

        stats = stats_service.merchant_stats(merchant_a.id, period="week")

        assert stats["summary"] == {
            "total_issued": 3,
            "total_used": 1,
            "total_expired": 1,
            "total_orders": 1,
            "total_revenue": 7200,
            "total_discount": 800,
            "new_customers": 1,
            "conversion_rate": 33.33,
        }
        assert stats["meta"]["period"] == "week"
        assert stats["meta"]["end_date"] == utcnow().date().isoformat()

    def test_today_leaves_out_older_activity(self, activity, merchant_a):
        summary = stats_service.merchant_stats(merchant_a.id, period="today")["summary"]
        assert summary["total_issued"] == 2
        assert summary["total_expired"] == 0
        assert summary["conversion_rate"] == 50.0

    def test_daily_trend_and_coupon_performance(self, activity, merchant_a, coupon_a):
        stats = stats_service.merchant_stats(merchant_a.id, period="all")
        assert stats["meta"]["start_date"] is None

        today = utcnow().date().isoformat()
        trend = {row["date"]: row for row in stats["daily_trend"]}
        assert trend[today] == {"date": today, "issued": 2, "used": 1, "orders": 1, "revenue": 7200}
        assert sum(row["issued"] for row in stats["daily_trend"]) == 3
        assert [row["date"] for row in stats["daily_trend"]] == sorted(trend)

        performance = stats["coupon_performance"]
        assert [row["coupon_id"] for row in performance] == [coupon_a.id, activity["old"].id]
        assert performance[0]["issued"] == 2
        assert performance[0]["used"] == 1
        assert performance[0]["conversion_rate"] == 50.0
        assert performance[1]["used"] == 0

    def test_other_merchant_sees_nothing(self, activity, merchant_b, store_b):
        stats = stats_service.merchant_stats(merchant_b.id, period="all")
        assert stats["summary"]["total_issued"] == 0
        assert stats["summary"]["total_orders"] == 0
        assert stats["daily_trend"] == []
        assert stats["coupon_performance"] == []

    def test_store_filter(self, activity, merchant_a, store_a, store_b):
        summary = stats_service.merchant_stats(merchant_a.id, period="week", store_id=store_a.id)["summary"]
        assert summary["total_orders"] == 1
        assert summary["total_used"] == 1
        with pytest.raises(NotFoundError):
            stats_service.merchant_stats(merchant_a.id, store_id=store_b.id)

    def test_unknown_period(self, db_session, merchant_a):
        with pytest.raises(ValidationError):
            stats_service.merchant_stats(merchant_a.id, period="year")


class TestSettlements:
    def test_fee_and_refunds(self, activity, merchant_a, store_a):
        summary = stats_service.settlement_summary(merchant_a.id)

        assert summary["fee_rate"] == 3.5
        assert summary["totals"] == {
            "order_count": 1,
            "gross_amount": 7200,
            "discount_amount": 800,
            "refund_count": 1,
            "refund_amount": 5000,
            "fee_amount": 252,
            "net_amount": 1948,
        }
        assert [s["store_name"] for s in summary["stores"]] == ["Cafe A Main"]

    def test_window_before_the_orders_is_empty(self, activity, merchant_a):
        end = utcnow() - timedelta(days=1)
        summary = stats_service.settlement_summary(merchant_a.id, end=to_utc_z(end))
        assert summary["stores"] == []
        assert summary["totals"]["gross_amount"] == 0

    def test_bad_window(self, db_session, merchant_a):
        with pytest.raises(ValidationError):
            stats_service.settlement_summary(merchant_a.id, start="2026-01-02T00:00:00Z", end="2026-01-01T00:00:00Z")
        with pytest.raises(ValidationError):
            stats_service.settlement_summary(merchant_a.id, start="yesterday")


class TestRoutes:
    def test_merchant_reads_own_stats(self, client, activity, merchant_user_a):
        headers = login(client, merchant_user_a)
        response = client.get('/api/merchant/stats?period=today', headers=headers)
        assert response.status_code == 200
        assert response.json["success"] is True
        assert response.json["summary"]["total_revenue"] == 7200

        response = client.get('/api/merchant/settlements', headers=headers)
        assert response.status_code == 200
        assert response.json["totals"]["net_amount"] == 1948

        assert client.get('/api/merchant/stats?period=decade', headers=headers).status_code == 400

    def test_admin_names_the_merchant(self, client, activity, admin, merchant_a):
        headers = login(client, admin)
        assert client.get('/api/merchant/stats', headers=headers).status_code == 400
        response = client.get(f'/api/merchant/stats?merchant_id={merchant_a.id}&period=all', headers=headers)
        assert response.status_code == 200
        assert response.json["summary"]["total_issued"] == 3

    def test_consumer_is_denied(self, client, consumer):
        headers = login(client, consumer)
        assert client.get('/api/merchant/stats', headers=headers).status_code == 403
        assert client.get('/api/merchant/settlements', headers=headers).status_code == 403
