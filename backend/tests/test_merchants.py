# Overview: Pytest coverage for merchant onboarding, admin approval and back-office store management.

import pytest

from airctt.models import Account, AuditLog, Merchant, MerchantApproval
from airctt.services import coupon_service, merchant_service
from airctt.validation import ConflictError, NotFoundError, ValidationError

from conftest import login


class TestRegistration:
    def test_register_creates_pending_merchant_and_store(self, db_session):
        result = merchant_service.register_merchant({
            "businessName": "Noodle House", "ownerName": "Kim", "phone": "010-3333-3333",
            "category": "restaurant", "storeName": "Noodle House Main", "lat": "37.51", "lng": 127.01,
        })
        assert result["merchant"]["approval_status"] == "pending"
        assert result["store"]["name"] == "Noodle House Main"
        assert result["store"]["lat"] == 37.51
        assert [c["title"] for c in result["recommended_coupons"]] == [
            "Lunch 10% off", "5,000 won off 30,000+",
        ]

    def test_unknown_category_gets_default_templates(self):
        titles = [t["title"] for t in merchant_service.recommended_templates("bakery")]
        assert titles == ["First visit 10% off", "3,000 won off 15,000+"]

    def test_required_fields(self, db_session):
        with pytest.raises(ValidationError):
            merchant_service.register_merchant({"businessName": "Only a name"})

    def test_bad_coordinates(self, db_session):
        with pytest.raises(ValidationError):
            merchant_service.register_merchant({
                "businessName": "Far", "ownerName": "X", "phone": "1", "lat": 123, "lng": 0,
            })

    def test_route_turns_consumer_into_operator(self, client, db_session, consumer):
        headers = login(client, consumer)
        response = client.post('/api/merchant/register', json={
            'business_name': 'Tea Room', 'owner_name': 'Lee', 'phone': '010-4444-4444', 'category': 'cafe',
        }, headers=headers)
        assert response.status_code == 201
        assert response.json["success"] is True
        merchant_id = response.json["merchant"]["id"]

        account = db_session.get(Account, consumer.id)
        assert account.role == "MERCHANT"
        assert account.merchant_id == merchant_id

        response = client.get('/api/merchant/me', headers=headers)
        assert response.status_code == 200
        assert response.json["merchant"]["business_name"] == "Tea Room"


class TestApproval:
    def _pending(self, db_session):
        return merchant_service.register_merchant({
            "business_name": "Pending Place", "owner_name": "Park", "phone": "010-5555-5555",
        })["merchant"]["id"]

    def test_review_writes_history_and_audit(self, db_session, admin):
        merchant_id = self._pending(db_session)
        merchant_service.review_merchant(merchant_id, "review", admin.id)
        result = merchant_service.review_merchant(merchant_id, "approve", admin.id, reason="docs ok")

        assert result["merchant"]["approval_status"] == "approved"
        assert db_session.get(Merchant, merchant_id).approved_at is not None
        history = merchant_service.approval_history(merchant_id)
        assert [(h["from_status"], h["to_status"]) for h in history] == [
            ("pending", "reviewing"), ("reviewing", "approved"),
        ]
        assert db_session.query(AuditLog).filter_by(action="MERCHANT_APPROVE", entity_id=merchant_id).count() == 1

    def test_unknown_action(self, db_session, admin):
        merchant_id = self._pending(db_session)
        with pytest.raises(ValidationError):
            merchant_service.review_merchant(merchant_id, "promote", admin.id)
        assert db_session.query(MerchantApproval).count() == 0

    def test_counts_by_status(self, db_session, merchant_a):
        self._pending(db_session)
        result = merchant_service.list_merchants_by_status("pending")
        assert [m["business_name"] for m in result["merchants"]] == ["Pending Place"]
        assert result["counts"]["pending"] == 1
        assert result["counts"]["approved"] == 1
        assert result["counts"]["total"] == 2

    def test_admin_routes(self, client, db_session, admin):
        merchant_id = self._pending(db_session)
        headers = login(client, admin)

        response = client.get('/api/admin/approvals?status=pending', headers=headers)
        assert response.status_code == 200
        assert response.json["counts"]["pending"] == 1

        response = client.post('/api/admin/approvals', json={
            'merchant_id': merchant_id, 'action': 'reject', 'reason': 'incomplete',
        }, headers=headers)
        assert response.status_code == 200
        assert response.json["approval"]["to_status"] == "rejected"

        response = client.get(f'/api/admin/approvals/{merchant_id}/history', headers=headers)
        assert len(response.json["history"]) == 1

        response = client.get('/api/admin/audit-logs', headers=headers)
        assert response.json["logs"][0]["action"] == "MERCHANT_REJECT"


class TestStoreManagement:
    def test_tables_and_duplicates(self, db_session, merchant_a, store_a):
        merchant_service.add_table(store_a.id, "A1", seats=2, merchant_id=merchant_a.id)
        with pytest.raises(ConflictError) as exc:
            merchant_service.add_table(store_a.id, "A1", merchant_id=merchant_a.id)
        assert exc.value.code == "DUPLICATE_TABLE"
        assert [t["table_number"] for t in merchant_service.list_tables(store_a.id)] == ["A1"]

    def test_foreign_store_is_not_found(self, db_session, merchant_b, store_a):
        with pytest.raises(NotFoundError):
            merchant_service.add_table(store_a.id, "9", merchant_id=merchant_b.id)
        with pytest.raises(NotFoundError):
            merchant_service.update_store(store_a.id, {"name": "Hijacked"}, merchant_id=merchant_b.id)

    def test_product_rules(self, db_session, merchant_a, store_a):
        with pytest.raises(ValidationError):
            merchant_service.add_product(store_a.id, {"name": "Free lunch", "base_price": -1}, merchant_id=merchant_a.id)
        with pytest.raises(ValidationError):
            merchant_service.add_product(store_a.id, {"name": "Tea", "base_price": 3000, "secret": 1},
                                         merchant_id=merchant_a.id)

    def test_store_routes(self, client, db_session, merchant_user_a, store_a):
        headers = login(client, merchant_user_a)

        response = client.post('/api/merchant/stores', json={'name': 'Cafe A Annex', 'lat': 37.49, 'lng': 127.0},
                               headers=headers)
        assert response.status_code == 201
        annex_id = response.json["store"]["id"]

        response = client.patch(f'/api/merchant/stores/{annex_id}', json={'radius_m': 800}, headers=headers)
        assert response.json["store"]["radius_m"] == 800

        response = client.post(f'/api/merchant/stores/{annex_id}/tables', json={'table_number': '7', 'seats': 2},
                               headers=headers)
        assert response.status_code == 201

        response = client.post(f'/api/merchant/stores/{annex_id}/products', json={'name': 'Tea', 'base_price': 3000},
                               headers=headers)
        assert response.status_code == 201
        product_id = response.json["product"]["id"]

        response = client.patch(f'/api/merchant/products/{product_id}', json={'is_active': False}, headers=headers)
        assert response.json["product"]["is_active"] is False

        response = client.delete(f'/api/merchant/stores/{annex_id}', headers=headers)
        assert response.json["store"]["is_active"] is False

        response = client.get('/api/merchant/stores', headers=headers)
        assert [s["id"] for s in response.json["stores"]] == [store_a.id]
        response = client.get('/api/merchant/stores?include_inactive=true', headers=headers)
        assert [s["id"] for s in response.json["stores"]] == [store_a.id, annex_id]

    def test_admin_must_name_the_merchant(self, client, db_session, admin, merchant_a, store_a):
        headers = login(client, admin)
        response = client.get('/api/merchant/stores', headers=headers)
        assert response.status_code == 400
        response = client.get(f'/api/merchant/stores?merchant_id={merchant_a.id}', headers=headers)
        assert [s["id"] for s in response.json["stores"]] == [store_a.id]

    def test_customers_route(self, client, db_session, merchant_user_a, consumer, coupon_a):
        coupon_service.issue_coupon(coupon_a.id, consumer.id)
        response = client.get('/api/merchant/customers', headers=login(client, merchant_user_a))
        assert response.status_code == 200
        assert [c["consumer_id"] for c in response.json["customers"]] == [consumer.id]
