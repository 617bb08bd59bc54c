"""
Pytest fixtures for airctt backend tests.

Provides the in-memory application, a per-test table wipe, tenant fixtures
(two merchants with their stores), accounts for each role, and auth helpers.
"""

from datetime import timedelta

import pytest
from airctt import create_app
from airctt.extensions import db
from airctt.models import Coupon, Merchant, Product, Store, StoreTable
from airctt.models.accounts import ROLE_ADMIN, ROLE_CONSUMER, ROLE_MERCHANT
from airctt.services.auth_service import create_account
from airctt.time_utils import utcnow

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'SIDE_EFFECTS_ASYNC': False,
        'TOSS_SECRET_KEY': 'test_sk_dummy',
        'TOSS_CLIENT_KEY': 'test_ck_dummy',
        'TOSS_API_BASE': 'https://pg.test',
        'PAYMENT_GATEWAY_RETRIES': 3,
        'PAYMENT_GATEWAY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def merchant_a(db_session):
    """Approved merchant A (first tenant)."""
    merchant = Merchant(
        business_name="Cafe A", owner_name="Owner A", phone="010-1111-1111",
        category="cafe", approval_status="approved", approved_at=utcnow(),
    )
    db_session.add(merchant)
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def merchant_b(db_session):
    """Approved merchant B (second tenant)."""
    merchant = Merchant(
        business_name="Bistro B", owner_name="Owner B", phone="010-2222-2222",
        category="restaurant", approval_status="approved", approved_at=utcnow(),
    )
    db_session.add(merchant)
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def store_a(db_session, merchant_a):
    """Store of merchant A at (37.5, 127.0)."""
    store = Store(merchant_id=merchant_a.id, name="Cafe A Main", address="1 Main St",
                  category="cafe", lat=37.5, lng=127.0, radius_m=5000, is_active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, merchant_b):
    """Store of merchant B about 2.2km north of store A."""
    store = Store(merchant_id=merchant_b.id, name="Bistro B", address="2 Side St",
                  category="restaurant", lat=37.52, lng=127.0, radius_m=5000, is_active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def table_a(db_session, store_a):
    table = StoreTable(store_id=store_a.id, table_number="1", seats=4, is_active=True)
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture(scope='function')
def products_a(db_session, store_a):
    """Menu of store A: Americano 4000, Latte 5000, Cake 10000."""
    products = [
        Product(store_id=store_a.id, name="Americano", base_price=4000, display_order=0, is_active=True),
        Product(store_id=store_a.id, name="Latte", base_price=5000, display_order=1, is_active=True),
        Product(store_id=store_a.id, name="Cake", base_price=10000, display_order=2, is_active=True),
    ]
    db_session.add_all(products)
    db_session.commit()
    return products


@pytest.fixture(scope='function')
def consumer(db_session):
    return create_account("consumer@test.local", PASSWORD, ROLE_CONSUMER, display_name="Consumer")


@pytest.fixture(scope='function')
def consumer_b(db_session):
    return create_account("consumer_b@test.local", PASSWORD, ROLE_CONSUMER, display_name="Consumer B")


@pytest.fixture(scope='function')
def admin(db_session):
    return create_account("admin@test.local", PASSWORD, ROLE_ADMIN)


@pytest.fixture(scope='function')
def merchant_user_a(db_session, merchant_a):
    return create_account("owner_a@test.local", PASSWORD, ROLE_MERCHANT, merchant_id=merchant_a.id)


@pytest.fixture(scope='function')
def merchant_user_b(db_session, merchant_b):
    return create_account("owner_b@test.local", PASSWORD, ROLE_MERCHANT, merchant_id=merchant_b.id)


def make_coupon(session, merchant, **overrides) -> Coupon:
    """Active coupon valid from an hour ago for thirty days unless overridden."""
    now = utcnow()
    values = {
        "merchant_id": merchant.id,
        "title": "10% off",
        "discount_type": "percent",
        "discount_value": 10,
        "valid_from": now - timedelta(hours=1),
        "valid_to": now + timedelta(days=30),
        "issued_count": 0,
        "is_active": True,
    }
    values.update(overrides)
    coupon = Coupon(**values)
    session.add(coupon)
    session.commit()
    return coupon


@pytest.fixture(scope='function')
def coupon_a(db_session, merchant_a, store_a):
    """10% coupon of merchant A, valid at every store of the merchant."""
    return make_coupon(db_session, merchant_a)


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for an account."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def login(client, account) -> dict:
    return auth_headers(get_auth_token(client, account.email))
