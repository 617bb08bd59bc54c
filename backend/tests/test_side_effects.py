# Overview: Pytest coverage for best-effort side effects (CRM, analytics) and their failure log.

import logging
from concurrent.futures import Future

from airctt.models import CouponIssue, KitchenOrder, SideEffectFailure, TransactionEvent
from airctt.services import coupon_service, crm_service, event_service, order_service, side_effects

from conftest import login


def _boom(*args, **kwargs):
    raise RuntimeError("crm down")


class TestRunBestEffort:
    def test_success_commits(self, db_session):
        ok = side_effects.run_best_effort("event.test", event_service.record_event, "test_event", amount=5)
        assert ok is True
        assert db_session.query(TransactionEvent).filter_by(event_type="test_event").one().amount == 5

    def test_failure_is_recorded_and_partial_writes_discarded(self, db_session, caplog):
        def half_done():
            event_service.record_event("half_done")
            raise ValueError("nope")

        with caplog.at_level(logging.ERROR):
            ok = side_effects.run_best_effort("event.half", half_done)

        assert ok is False
        assert db_session.query(TransactionEvent).filter_by(event_type="half_done").count() == 0
        failure = db_session.query(SideEffectFailure).one()
        assert failure.name == "event.half"
        assert failure.error == "ValueError: nope"
        assert "Best-effort side effect event.half failed" in caplog.text

    def test_payload_is_json_safe(self, db_session):
        side_effects.run_best_effort("crm.bad", _boom, 1, object(), when={"k": (1, 2)})
        payload = db_session.query(SideEffectFailure).one().payload
        assert payload["args"][0] == 1
        assert isinstance(payload["args"][1], str)
        assert payload["kwargs"] == {"when": {"k": [1, 2]}}

    def test_async_mode_returns_future(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "SIDE_EFFECTS_ASYNC", True)
        calls = []
        try:
            future = side_effects.run_best_effort("noop", calls.append, "ran")
            assert isinstance(future, Future)
            assert future.result(timeout=5) is True
        finally:
            side_effects.shutdown(app)
        assert calls == ["ran"]


class TestPrimaryOperationsSurviveFailures:
    def test_redeem_survives_crm_failure(self, db_session, monkeypatch, consumer, coupon_a, store_a):
        issue_id = coupon_service.issue_coupon(coupon_a.id, consumer.id)["coupon_issue_id"]
        monkeypatch.setattr(crm_service, "register_interaction", _boom)

        result = coupon_service.redeem_coupon(issue_id, store_a.id)

        assert result["status"] == "USED"
        assert db_session.get(CouponIssue, issue_id).status == "USED"
        failure = db_session.query(SideEffectFailure).one()
        assert failure.name == "crm.coupon_redeemed"
        assert failure.payload["args"] == [coupon_a.merchant_id, consumer.id, "VISIT"]
        # Independent side effects still run
        assert db_session.query(TransactionEvent).filter_by(event_type="coupon_redeemed").count() == 1

    def test_submit_survives_event_failure(self, db_session, monkeypatch, store_a, table_a, products_a):
        opened = order_service.open_session(store_a.id, table_a.id)
        order_service.add_to_cart(opened["session_id"], products_a[0].id)
        monkeypatch.setattr(event_service, "record_event", _boom)

        result = order_service.submit_order(opened["session_id"])

        assert db_session.get(KitchenOrder, result["kitchen_order_id"]) is not None
        assert [f.name for f in db_session.query(SideEffectFailure).all()] == ["event.order_created"]

    def test_admin_lists_failures(self, client, db_session, admin, monkeypatch, consumer, coupon_a):
        monkeypatch.setattr(crm_service, "register_interaction", _boom)
        coupon_service.issue_coupon(coupon_a.id, consumer.id)

        response = client.get('/api/admin/side-effect-failures?name=crm.coupon_issue', headers=login(client, admin))
        assert response.status_code == 200
        assert response.json["count"] == 1
        assert response.json["failures"][0]["error"] == "RuntimeError: crm down"

    def test_admin_lists_events(self, client, db_session, admin, merchant_a, merchant_b):
        side_effects.run_best_effort("event.a", event_service.record_event, "qr_scan", merchant_id=merchant_a.id)
        side_effects.run_best_effort("event.b", event_service.record_event, "qr_scan", merchant_id=merchant_b.id)
        side_effects.run_best_effort("event.c", event_service.record_event, "order_created", merchant_id=merchant_a.id)

        headers = login(client, admin)
        response = client.get(f'/api/admin/events?type=qr_scan&merchant_id={merchant_a.id}', headers=headers)
        assert response.status_code == 200
        assert response.json["count"] == 1
        assert response.json["events"][0]["event_type"] == "qr_scan"

        response = client.get('/api/admin/events', headers=headers)
        assert [e["event_type"] for e in response.json["events"]] == ["order_created", "qr_scan", "qr_scan"]
