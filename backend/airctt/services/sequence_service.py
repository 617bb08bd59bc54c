# Overview: Service-layer allocation of per-day sequential numbers.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DailySequence
from airctt.time_utils import utcnow

SEQ_KITCHEN_ORDER = "KITCHEN_ORDER"
SEQ_TICKET = "TICKET"


class SequenceError(Exception):
    """Raised when sequence operations fail."""


def _current(sequence_type: str, scope_id: int, business_date: date) -> int:
    return (
        db.session.query(DailySequence.next_number)
        .filter_by(sequence_type=sequence_type, scope_id=scope_id, business_date=business_date)
        .scalar()
    )


def next_daily_number(
    *,
    sequence_type: str,
    scope_id: int = 0,
    business_date: date | None = None,
) -> int:
    """
    Atomically allocate the next number for (type, scope, day), starting at 1.

    Runs inside the caller's transaction (no commit). The first allocation of
    a day inserts the row under a savepoint; losing that insert race falls
    back to the UPDATE path.
    """
    if not sequence_type:
        raise SequenceError("sequence_type is required")
    business_date = business_date or utcnow().date()

    stmt = (
        update(DailySequence)
        .where(
            DailySequence.sequence_type == sequence_type,
            DailySequence.scope_id == scope_id,
            DailySequence.business_date == business_date,
        )
        .values(next_number=DailySequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current(sequence_type, scope_id, business_date) - 1

    try:
        with db.session.begin_nested():
            db.session.add(DailySequence(
                sequence_type=sequence_type,
                scope_id=scope_id,
                business_date=business_date,
                next_number=2,
            ))
        return 1
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _current(sequence_type, scope_id, business_date) - 1
