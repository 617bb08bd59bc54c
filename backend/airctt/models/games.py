from __future__ import annotations

from ..extensions import db
from airctt.time_utils import to_utc_z, utcnow


class GameSession(db.Model):
    """One play of the coupon mini-game by a consumer."""
    __tablename__ = "game_sessions"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    consumer_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    game_type = db.Column(db.String(32), nullable=False)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)
    steps_cleared = db.Column(db.Integer, nullable=True)
    success = db.Column(db.Boolean, nullable=True)
    client_info = db.Column(db.JSON, nullable=True)

    reward_type = db.Column(db.String(16), nullable=True)
    reward_value = db.Column(db.Integer, nullable=True)
    coupon_issue_id = db.Column(db.Integer, db.ForeignKey("coupon_issues.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "consumer_id": self.consumer_id,
            "game_type": self.game_type,
            "started_at": to_utc_z(self.started_at),
            "finished_at": to_utc_z(self.finished_at) if self.finished_at else None,
            "steps_cleared": self.steps_cleared,
            "success": self.success,
            "reward_type": self.reward_type,
            "reward_value": self.reward_value,
            "coupon_issue_id": self.coupon_issue_id,
        }
