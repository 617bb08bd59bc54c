# Overview: Service-layer operations for merchants, stores, tables, menu products and admin approval.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Merchant, Store, StoreTable, Product, MerchantApproval
from ..models.merchants import APPROVAL_STATUSES
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_store,
    enforce_rules_product,
    ValidationError,
    NotFoundError,
    ConflictError,
)
from airctt.time_utils import utcnow
from . import auth_service, event_service


STORE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "phone", "category", "lat", "lng", "radius_m"},
    required_on_create={"name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category", "base_price", "display_order", "is_active"},
    required_on_create={"name", "base_price"},
)

REVIEW_ACTIONS = {
    "approve": "approved",
    "reject": "rejected",
    "suspend": "suspended",
    "review": "reviewing",
}

# Starter coupons suggested right after registration
COUPON_TEMPLATES = {
    "default": [
        {"title": "First visit 10% off", "discount_type": "percent", "discount_value": 10},
        {"title": "3,000 won off 15,000+", "discount_type": "amount", "discount_value": 3000,
         "min_order_amount": 15000},
    ],
    "cafe": [
        {"title": "Free size-up", "discount_type": "amount", "discount_value": 500},
        {"title": "Second drink 20% off", "discount_type": "percent", "discount_value": 20},
    ],
    "restaurant": [
        {"title": "Lunch 10% off", "discount_type": "percent", "discount_value": 10,
         "max_discount_amount": 5000},
        {"title": "5,000 won off 30,000+", "discount_type": "amount", "discount_value": 5000,
         "min_order_amount": 30000},
    ],
}


def recommended_templates(category: str | None) -> list[dict]:
    return [dict(t) for t in COUPON_TEMPLATES.get((category or "").lower(), COUPON_TEMPLATES["default"])]


def get_merchant(merchant_id: int) -> Merchant:
    merchant = db.session.get(Merchant, merchant_id)
    if merchant is None:
        raise NotFoundError("Merchant not found")
    return merchant


def get_store(store_id: int, merchant_id: int | None = None) -> Store:
    store = db.session.get(Store, store_id)
    if store is None or (merchant_id is not None and store.merchant_id != merchant_id):
        raise NotFoundError("Store not found")
    return store


def register_merchant(data: dict, account_id: int | None = None) -> dict:
    """
    Create a merchant (pending approval) with its first store.

    Accepts camelCase keys from the onboarding form as well as snake_case.
    """
    data = data or {}

    def pick(*keys):
        for k in keys:
            if data.get(k) not in (None, ""):
                return data[k]
        return None

    business_name = pick("business_name", "businessName")
    owner_name = pick("owner_name", "ownerName")
    phone = pick("phone")
    if not all([business_name, owner_name, phone]):
        raise ValidationError("businessName, ownerName and phone are required")

    category = pick("category")
    merchant = Merchant(
        business_name=str(business_name).strip(),
        owner_name=str(owner_name).strip(),
        phone=str(phone).strip(),
        email=pick("email"),
        business_number=pick("business_number", "businessNumber"),
        category=category,
        approval_status="pending",
    )
    db.session.add(merchant)
    db.session.flush()

    store_patch = validate_payload(
        model=Store,
        payload={
            k: v for k, v in {
                "name": pick("store_name", "storeName") or merchant.business_name,
                "address": pick("address"),
                "phone": merchant.phone,
                "category": category,
                "lat": pick("lat"),
                "lng": pick("lng"),
            }.items() if v is not None
        },
        policy=STORE_POLICY,
        partial=False,
    )
    enforce_rules_store(store_patch)
    store = Store(merchant_id=merchant.id, is_active=True, **store_patch)
    db.session.add(store)

    if account_id:
        auth_service.link_account_to_merchant(account_id, merchant.id)

    db.session.commit()
    return {
        "merchant": merchant.to_dict(),
        "store": store.to_dict(),
        "recommended_coupons": recommended_templates(category),
    }


def list_merchant_stores(merchant_id: int, include_inactive: bool = False) -> list[dict]:
    q = db.session.query(Store).filter_by(merchant_id=merchant_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return [s.to_dict() for s in q.order_by(Store.id).all()]


def create_store(merchant_id: int, data: dict) -> Store:
    get_merchant(merchant_id)
    patch = validate_payload(model=Store, payload=data, policy=STORE_POLICY, partial=False)
    enforce_rules_store(patch)
    store = Store(merchant_id=merchant_id, is_active=True, **patch)
    db.session.add(store)
    db.session.commit()
    return store


def update_store(store_id: int, data: dict, merchant_id: int | None = None) -> Store:
    store = get_store(store_id, merchant_id)
    patch = validate_payload(model=Store, payload=data, policy=STORE_POLICY, partial=True)
    enforce_rules_store(patch)
    for key, value in patch.items():
        setattr(store, key, value)
    db.session.commit()
    return store


def deactivate_store(store_id: int, merchant_id: int | None = None) -> Store:
    """Stores are soft-deactivated, never deleted."""
    store = get_store(store_id, merchant_id)
    store.is_active = False
    db.session.commit()
    return store


def add_table(store_id: int, table_number: str, seats: int | None = None, merchant_id: int | None = None) -> StoreTable:
    get_store(store_id, merchant_id)
    if not table_number or not str(table_number).strip():
        raise ValidationError("table_number is required")
    table = StoreTable(store_id=store_id, table_number=str(table_number).strip(), seats=seats, is_active=True)
    db.session.add(table)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Table number already exists for this store", code="DUPLICATE_TABLE")
    return table


def list_tables(store_id: int) -> list[dict]:
    rows = db.session.query(StoreTable).filter_by(store_id=store_id).order_by(StoreTable.id).all()
    return [t.to_dict() for t in rows]


def add_product(store_id: int, data: dict, merchant_id: int | None = None) -> Product:
    get_store(store_id, merchant_id)
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    product = Product(store_id=store_id, **patch)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, data: dict, merchant_id: int | None = None) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    get_store(product.store_id, merchant_id)
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    for key, value in patch.items():
        setattr(product, key, value)
    db.session.commit()
    return product


def list_products(store_id: int, active_only: bool = True) -> list[dict]:
    q = db.session.query(Product).filter_by(store_id=store_id)
    if active_only:
        q = q.filter_by(is_active=True)
    return [p.to_dict() for p in q.order_by(Product.display_order, Product.id).all()]


def review_merchant(
    merchant_id: int,
    action: str,
    admin_account_id: int | None,
    reason: str | None = None,
) -> dict:
    """Apply an admin review action; writes approval history and audit log atomically."""
    to_status = REVIEW_ACTIONS.get((action or "").lower())
    if to_status is None:
        raise ValidationError(f"action must be one of {', '.join(REVIEW_ACTIONS)}")

    merchant = get_merchant(merchant_id)
    from_status = merchant.approval_status
    merchant.approval_status = to_status
    if to_status == "approved":
        merchant.approved_at = utcnow()

    history = MerchantApproval(
        merchant_id=merchant.id,
        action=action.lower(),
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        admin_account_id=admin_account_id,
    )
    db.session.add(history)
    event_service.record_audit(
        actor_account_id=admin_account_id,
        action=f"MERCHANT_{action.upper()}",
        entity_type="merchant",
        entity_id=merchant.id,
        details={"from": from_status, "to": to_status, "reason": reason},
    )
    db.session.commit()
    current_app.logger.info("Merchant %s moved %s -> %s by admin %s", merchant.id, from_status, to_status, admin_account_id)
    return {"merchant": merchant.to_dict(), "approval": history.to_dict()}


def list_merchants_by_status(status: str | None = None) -> dict:
    if status and status not in APPROVAL_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(APPROVAL_STATUSES)}")
    q = db.session.query(Merchant)
    if status:
        q = q.filter_by(approval_status=status)
    merchants = [m.to_dict() for m in q.order_by(Merchant.created_at.desc(), Merchant.id.desc()).all()]

    counts = {s: 0 for s in APPROVAL_STATUSES}
    for st, n in db.session.query(Merchant.approval_status, func.count(Merchant.id)).group_by(Merchant.approval_status):
        counts[st] = n
    counts["total"] = sum(counts[s] for s in APPROVAL_STATUSES)
    return {"merchants": merchants, "counts": counts}


def approval_history(merchant_id: int) -> list[dict]:
    rows = (
        db.session.query(MerchantApproval)
        .filter_by(merchant_id=merchant_id)
        .order_by(MerchantApproval.id)
        .all()
    )
    return [r.to_dict() for r in rows]
