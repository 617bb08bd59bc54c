# Overview: Service-layer operations for analytics events and the admin audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import TransactionEvent, AuditLog


def record_event(
    event_type: str,
    *,
    merchant_id: int | None = None,
    store_id: int | None = None,
    consumer_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    amount: int | None = None,
    payload: dict | None = None,
) -> TransactionEvent:
    """
    Append an analytics event. Flushes, does not commit: callers either
    run inside side_effects.run_best_effort or own the transaction.
    """
    event = TransactionEvent(
        event_type=event_type,
        merchant_id=merchant_id,
        store_id=store_id,
        consumer_id=consumer_id,
        reference_type=reference_type,
        reference_id=reference_id,
        amount=amount,
        payload=payload,
    )
    db.session.add(event)
    db.session.flush()
    return event


def record_audit(
    *,
    actor_account_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | None,
    details: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor_account_id=actor_account_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_events(
    event_type: str | None = None,
    merchant_id: int | None = None,
    limit: int = 100,
) -> list[dict]:
    q = db.session.query(TransactionEvent)
    if event_type:
        q = q.filter_by(event_type=event_type)
    if merchant_id:
        q = q.filter_by(merchant_id=merchant_id)
    return [e.to_dict() for e in q.order_by(TransactionEvent.id.desc()).limit(limit).all()]


def list_audit_logs(entity_type: str | None = None, limit: int = 100) -> list[dict]:
    q = db.session.query(AuditLog)
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    return [a.to_dict() for a in q.order_by(AuditLog.id.desc()).limit(limit).all()]
