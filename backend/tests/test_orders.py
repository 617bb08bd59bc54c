# Overview: Pytest coverage for table sessions, carts and order submission.

import pytest

from airctt.models import (
    CartItem, CouponIssue, KitchenOrder, MerchantCustomer, Product, StoreTable, TableSession, TransactionEvent,
)
from airctt.services import coupon_service, order_service
from airctt.validation import ConflictError, NotFoundError, ValidationError

from conftest import login, make_coupon


@pytest.fixture
def session_a(db_session, store_a, table_a):
    return order_service.open_session(store_a.id, table_a.id)


class TestSessions:
    def test_open_then_reuse(self, db_session, store_a, table_a):
        first = order_service.open_session(store_a.id, table_a.id)
        second = order_service.open_session(store_a.id, table_a.id)
        assert first["is_new"] is True
        assert second["is_new"] is False
        assert second["session_id"] == first["session_id"]
        assert len(first["session_code"]) == 8

    def test_table_must_belong_to_store(self, db_session, store_b, table_a):
        with pytest.raises(NotFoundError):
            order_service.open_session(store_b.id, table_a.id)

    def test_closed_session_frees_the_table(self, db_session, store_a, table_a, products_a, session_a):
        order_service.add_to_cart(session_a["session_id"], products_a[0].id)
        order_service.submit_order(session_a["session_id"])
        order_service.mark_session_paid(session_a["session_id"])
        order_service.close_session(session_a["session_id"])

        reopened = order_service.open_session(store_a.id, table_a.id)
        assert reopened["is_new"] is True
        assert reopened["session_id"] != session_a["session_id"]

    def test_get_session_by_code_is_case_insensitive(self, db_session, session_a):
        data = order_service.get_session(code=session_a["session_code"].lower())
        assert data["id"] == session_a["session_id"]
        assert data["status"] == "active"
        assert data["table"]["table_number"] == "1"

    def test_pay_requires_ordering(self, db_session, session_a):
        with pytest.raises(ConflictError) as exc:
            order_service.mark_session_paid(session_a["session_id"])
        assert exc.value.code == "INVALID_SESSION"


class TestCart:
    def test_add_snapshots_price(self, db_session, products_a, session_a):
        result = order_service.add_to_cart(session_a["session_id"], products_a[0].id, quantity=2)
        assert result["added_item"]["unit_price"] == 4000
        assert result["added_item"]["line_total"] == 8000
        assert result["total_amount"] == 8000

        product = products_a[0]
        product.base_price = 4500
        db_session.commit()
        assert order_service.get_session(session_a["session_id"])["cart_items"][0]["unit_price"] == 4000

    def test_invalid_quantity(self, db_session, products_a, session_a):
        with pytest.raises(ValidationError):
            order_service.add_to_cart(session_a["session_id"], products_a[0].id, quantity=0)

    def test_product_from_other_store(self, db_session, store_b, products_a, session_a):
        foreign = Product(store_id=store_b.id, name="Steak", base_price=30000, is_active=True)
        db_session.add(foreign)
        db_session.commit()
        with pytest.raises(NotFoundError):
            order_service.add_to_cart(session_a["session_id"], foreign.id)

    def test_inactive_product(self, db_session, products_a, session_a):
        products_a[2].is_active = False
        db_session.commit()
        with pytest.raises(ConflictError) as exc:
            order_service.add_to_cart(session_a["session_id"], products_a[2].id)
        assert exc.value.code == "PRODUCT_UNAVAILABLE"

    def test_update_and_remove(self, db_session, products_a, session_a):
        line = order_service.add_to_cart(session_a["session_id"], products_a[1].id)["added_item"]
        updated = order_service.update_cart_item(line["id"], 3)
        assert updated["total_amount"] == 15000

        removed = order_service.update_cart_item(line["id"], 0)
        assert removed["removed"] is True
        assert removed["cart_items"] == []
        assert db_session.get(CartItem, line["id"]) is None

    def test_submitted_lines_are_locked(self, db_session, products_a, session_a):
        line = order_service.add_to_cart(session_a["session_id"], products_a[0].id)["added_item"]
        order_service.submit_order(session_a["session_id"])
        with pytest.raises(ConflictError) as exc:
            order_service.update_cart_item(line["id"], 5)
        assert exc.value.code == "LINE_LOCKED"
        with pytest.raises(ConflictError):
            order_service.remove_cart_item(line["id"])

    def test_paid_session_rejects_new_lines(self, db_session, products_a, session_a):
        order_service.add_to_cart(session_a["session_id"], products_a[0].id)
        order_service.submit_order(session_a["session_id"])
        order_service.mark_session_paid(session_a["session_id"])
        with pytest.raises(ConflictError) as exc:
            order_service.add_to_cart(session_a["session_id"], products_a[0].id)
        assert exc.value.code == "INVALID_SESSION"


class TestSubmit:
    def test_submit_without_coupon(self, db_session, products_a, session_a):
        order_service.add_to_cart(session_a["session_id"], products_a[0].id, quantity=2)
        order_service.add_to_cart(session_a["session_id"], products_a[2].id)
        result = order_service.submit_order(session_a["session_id"])

        assert result["order_number"] == 1
        assert result["total_amount"] == 18000
        assert result["discount_amount"] == 0
        assert result["final_amount"] == 18000
        assert result["coupon_applied"] is False
        assert [i["product_name"] for i in result["items"]] == ["Americano", "Cake"]

        session = db_session.get(TableSession, session_a["session_id"])
        assert session.status == "ordering"
        lines = db_session.query(CartItem).filter_by(session_id=session.id).all()
        assert {l.status for l in lines} == {"confirmed"}
        assert {l.kitchen_order_id for l in lines} == {result["kitchen_order_id"]}

    def test_empty_cart(self, db_session, session_a):
        with pytest.raises(ConflictError) as exc:
            order_service.submit_order(session_a["session_id"])
        assert exc.value.code == "EMPTY_CART"

    def test_rounds_accumulate_and_numbers_increase(self, db_session, products_a, session_a):
        order_service.add_to_cart(session_a["session_id"], products_a[0].id)
        first = order_service.submit_order(session_a["session_id"])
        order_service.add_to_cart(session_a["session_id"], products_a[1].id)
        second = order_service.submit_order(session_a["session_id"])

        assert (first["order_number"], second["order_number"]) == (1, 2)
        assert second["total_amount"] == 5000
        session = db_session.get(TableSession, session_a["session_id"])
        assert session.total_amount == 9000
        assert session.final_amount == 9000

    def test_submit_with_percent_coupon(self, db_session, consumer, merchant_a, store_a, table_a, products_a):
        opened = order_service.open_session(store_a.id, table_a.id, user_id=consumer.id)
        coupon = make_coupon(db_session, merchant_a)
        issue_id = coupon_service.issue_coupon(coupon.id, consumer.id)["coupon_issue_id"]

        order_service.add_to_cart(opened["session_id"], products_a[2].id, quantity=5)
        result = order_service.submit_order(opened["session_id"], coupon_issue_id=issue_id)

        assert result["total_amount"] == 50000
        assert result["discount_amount"] == 5000
        assert result["final_amount"] == 45000
        assert result["coupon_applied"] is True

        issue = db_session.get(CouponIssue, issue_id)
        assert issue.status == "USED"
        assert issue.used_order_session_id == opened["session_id"]
        order = db_session.get(KitchenOrder, result["kitchen_order_id"])
        assert order.coupon_issue_id == issue_id
        assert db_session.get(TableSession, opened["session_id"]).applied_coupon_issue_id == issue_id

    def test_min_order_not_met_leaves_coupon_unused(self, db_session, consumer, merchant_a, store_a, table_a, products_a):
        opened = order_service.open_session(store_a.id, table_a.id, user_id=consumer.id)
        coupon = make_coupon(
            db_session, merchant_a, discount_type="amount", discount_value=3000, min_order_amount=10000,
        )
        issue_id = coupon_service.issue_coupon(coupon.id, consumer.id)["coupon_issue_id"]

        order_service.add_to_cart(opened["session_id"], products_a[0].id, quantity=2)
        result = order_service.submit_order(opened["session_id"], coupon_issue_id=issue_id)

        assert result["total_amount"] == 8000
        assert result["discount_amount"] == 0
        assert result["final_amount"] == 8000
        assert db_session.get(CouponIssue, issue_id).status == "ISSUED"

    def test_used_coupon_rolls_back_the_whole_submit(self, db_session, consumer, merchant_a, store_a, table_a, products_a):
        opened = order_service.open_session(store_a.id, table_a.id, user_id=consumer.id)
        coupon = make_coupon(db_session, merchant_a)
        issue_id = coupon_service.issue_coupon(coupon.id, consumer.id)["coupon_issue_id"]
        coupon_service.redeem_coupon(issue_id, store_a.id)

        order_service.add_to_cart(opened["session_id"], products_a[0].id)
        with pytest.raises(ConflictError, match="USED"):
            order_service.submit_order(opened["session_id"], coupon_issue_id=issue_id)

        assert db_session.query(KitchenOrder).count() == 0
        lines = db_session.query(CartItem).filter_by(session_id=opened["session_id"]).all()
        assert [l.status for l in lines] == ["pending"]
        assert db_session.get(TableSession, opened["session_id"]).status == "active"

    def test_guest_session_needs_a_consumer_for_coupons(self, db_session, consumer, coupon_a, products_a, session_a):
        issue_id = coupon_service.issue_coupon(coupon_a.id, consumer.id)["coupon_issue_id"]
        order_service.add_to_cart(session_a["session_id"], products_a[0].id)
        with pytest.raises(ConflictError) as exc:
            order_service.submit_order(session_a["session_id"], coupon_issue_id=issue_id)
        assert exc.value.code == "COUPON_REQUIRES_CONSUMER"

        result = order_service.submit_order(session_a["session_id"], coupon_issue_id=issue_id, consumer_id=consumer.id)
        assert result["discount_amount"] == 400

    def test_guest_coupon_order_is_credited_to_the_coupon_owner(self, db_session, consumer, merchant_a, coupon_a,
                                                                products_a, session_a):
        issue_id = coupon_service.issue_coupon(coupon_a.id, consumer.id)["coupon_issue_id"]
        order_service.add_to_cart(session_a["session_id"], products_a[0].id)

        result = order_service.submit_order(session_a["session_id"], coupon_issue_id=issue_id, consumer_id=consumer.id)

        assert result["coupon_applied"] is True
        crm = db_session.query(MerchantCustomer).filter_by(merchant_id=merchant_a.id, consumer_id=consumer.id).one()
        assert crm.visit_count == 1
        assert crm.coupon_issue_count == 1
        assert crm.total_spent == 3600
        event = db_session.query(TransactionEvent).filter_by(event_type="order_created").one()
        assert event.consumer_id == consumer.id

    def test_someone_elses_coupon_is_rejected(self, db_session, consumer, consumer_b, coupon_a, store_a, table_a, products_a):
        opened = order_service.open_session(store_a.id, table_a.id, user_id=consumer_b.id)
        issue_id = coupon_service.issue_coupon(coupon_a.id, consumer.id)["coupon_issue_id"]
        order_service.add_to_cart(opened["session_id"], products_a[0].id)
        with pytest.raises(ConflictError) as exc:
            order_service.submit_order(opened["session_id"], coupon_issue_id=issue_id)
        assert exc.value.code == "NOT_OWNER"


class TestOrderRoutes:
    def test_guest_flow(self, client, db_session, store_a, table_a, products_a):
        response = client.post('/api/order/session', json={'store_id': store_a.id, 'table_id': table_a.id})
        assert response.status_code == 201
        code = response.json["session_code"]

        response = client.post('/api/order/session', json={'store_id': store_a.id, 'table_id': table_a.id})
        assert response.status_code == 200
        assert response.json["session_code"] == code

        response = client.post('/api/order/cart', json={
            'session_code': code, 'product_id': products_a[1].id, 'quantity': 2,
        })
        assert response.status_code == 201
        line_id = response.json["added_item"]["id"]

        response = client.put('/api/order/cart', json={'session_code': code, 'cart_item_id': line_id, 'quantity': 1})
        assert response.status_code == 200
        assert response.json["total_amount"] == 5000

        response = client.post('/api/order/submit', json={'session_code': code})
        assert response.status_code == 201
        assert response.json["order_number"] == 1
        assert response.json["final_amount"] == 5000

    def test_cart_item_must_belong_to_code(self, client, db_session, store_a, table_a, products_a):
        other_table = StoreTable(store_id=store_a.id, table_number="2", is_active=True)
        db_session.add(other_table)
        db_session.commit()
        mine = order_service.open_session(store_a.id, table_a.id)
        theirs = order_service.open_session(store_a.id, other_table.id)
        line = order_service.add_to_cart(theirs["session_id"], products_a[0].id)["added_item"]

        response = client.delete('/api/order/cart', json={'session_code': mine["session_code"], 'cart_item_id': line["id"]})
        assert response.status_code == 404

    def test_unknown_code(self, client, db_session):
        response = client.post('/api/order/submit', json={'session_code': 'NOPE1234'})
        assert response.status_code == 404

    def test_signed_in_consumer_attached_to_session(self, client, db_session, consumer, store_a, table_a):
        response = client.post('/api/order/session', json={'store_id': store_a.id, 'table_id': table_a.id},
                               headers=login(client, consumer))
        assert response.status_code == 201
        session = db_session.get(TableSession, response.json["session_id"])
        assert session.consumer_id == consumer.id

    def test_merchant_pays_and_closes(self, client, db_session, merchant_user_a, merchant_user_b, products_a, session_a):
        order_service.add_to_cart(session_a["session_id"], products_a[0].id)
        order_service.submit_order(session_a["session_id"])

        response = client.post(f'/api/order/session/{session_a["session_id"]}/pay', headers=login(client, merchant_user_b))
        assert response.status_code == 404

        headers = login(client, merchant_user_a)
        response = client.post(f'/api/order/session/{session_a["session_id"]}/pay', headers=headers)
        assert response.status_code == 200
        assert response.json["status"] == "paid"

        response = client.post(f'/api/order/session/{session_a["session_id"]}/close', headers=headers)
        assert response.status_code == 200
        assert response.json["status"] == "closed"

    def test_menu(self, client, db_session, store_a, products_a):
        response = client.get(f'/api/order/menu?store_id={store_a.id}')
        assert response.status_code == 200
        assert [p["name"] for p in response.json["products"]] == ["Americano", "Latte", "Cake"]
