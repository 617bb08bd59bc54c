from __future__ import annotations

from ..extensions import db


class DailySequence(db.Model):
    """
    Atomic per-scope, per-day counters (kitchen order numbers per store,
    ticket numbers per day).

    WHY: Counting today's rows and adding one races under concurrent
    submissions; this row is bumped with a single UPDATE instead.
    """
    __tablename__ = "daily_sequences"
    __table_args__ = (
        db.UniqueConstraint("sequence_type", "scope_id", "business_date", name="uq_daily_sequences_scope_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence_type = db.Column(db.String(32), nullable=False)
    scope_id = db.Column(db.Integer, nullable=False, default=0)
    business_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
