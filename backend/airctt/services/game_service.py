# Overview: Service-layer operations for the coupon mini-game and its weighted reward draws.

from __future__ import annotations

import random

from flask import current_app
from sqlalchemy import func, or_, update

from ..extensions import db
from ..models import Account, Coupon, GameSession, Merchant
from ..models.accounts import ROLE_CONSUMER
from ..validation import ConflictError, NotFoundError, ServiceError, ValidationError, parse_int
from airctt.time_utils import to_utc_z, utcnow
from . import coupon_service
from .concurrency import begin_immediate, run_with_retry

# (upper bound on rand(), rarity, points)
RARITY_TABLE = (
    (0.5, "common", 10),
    (0.8, "rare", 30),
    (0.95, "epic", 80),
    (1.0, "legendary", 200),
)

COUPON_ROLL_RANGE = 400
COUPON_NO_REWARD_BELOW = 300

# (upper bound on roll - 300, percent)
COUPON_PERCENT_TABLE = (
    (20, 10),
    (30, 20),
    (45, 30),
    (55, 40),
    (65, 50),
    (75, 60),
    (83, 70),
    (90, 80),
    (96, 90),
    (100, 100),
)

FAILED_MESSAGE = "Game finished, no reward generated."


def draw_rarity(rng: random.Random | None = None) -> tuple[str, int]:
    roll = (rng or random).random()
    for bound, rarity, points in RARITY_TABLE:
        if roll < bound:
            return rarity, points
    return RARITY_TABLE[-1][1], RARITY_TABLE[-1][2]


def draw_coupon_percent(rng: random.Random | None = None) -> int | None:
    """Roll in [0, 400): three in four rolls win nothing; the rest map to 10..100%."""
    roll = (rng or random).random() * COUPON_ROLL_RANGE
    if roll < COUPON_NO_REWARD_BELOW:
        return None
    win = roll - COUPON_NO_REWARD_BELOW
    for bound, percent in COUPON_PERCENT_TABLE:
        if win < bound:
            return percent
    return COUPON_PERCENT_TABLE[-1][1]


def start_game(consumer_id: int, game_type: str) -> dict:
    if not consumer_id or not game_type:
        raise ValidationError("Missing parameters")
    consumer = db.session.get(Account, consumer_id)
    if not consumer or consumer.role != ROLE_CONSUMER:
        raise NotFoundError("Consumer not found")

    session = GameSession(consumer_id=consumer_id, game_type=str(game_type)[:32], started_at=utcnow())
    db.session.add(session)
    db.session.commit()
    return {"session_id": session.id, "started_at": to_utc_z(session.started_at)}


def _pick_reward_coupon(rng: random.Random, percent: int | None) -> tuple[Merchant | None, Coupon | None]:
    """
    Random approved merchant, then one of its active, in-window, not sold-out
    coupons. A drawn percent picks the percent coupon closest to it.
    """
    now = utcnow()
    merchants = (
        db.session.query(Merchant)
        .filter_by(approval_status="approved")
        .order_by(Merchant.id)
        .all()
    )
    if not merchants:
        return None, None
    merchant = rng.choice(merchants)

    coupons = (
        db.session.query(Coupon)
        .filter(
            Coupon.merchant_id == merchant.id,
            Coupon.is_active.is_(True),
            or_(Coupon.valid_from.is_(None), Coupon.valid_from <= now),
            or_(Coupon.valid_to.is_(None), Coupon.valid_to >= now),
            or_(Coupon.total_issuable.is_(None), Coupon.issued_count < Coupon.total_issuable),
        )
        .order_by(Coupon.id)
        .all()
    )
    if not coupons:
        return merchant, None
    if percent is not None:
        percent_coupons = [c for c in coupons if c.discount_type == "percent"]
        if percent_coupons:
            return merchant, min(percent_coupons, key=lambda c: abs(c.discount_value - percent))
    return merchant, rng.choice(coupons)


def _close_game(session_id: int, steps, success: bool, client_info, consumer_id: int | None) -> GameSession:
    """Stamp finished_at once; a second finish (or a concurrent one) gets GAME_FINISHED."""
    def _op():
        begin_immediate()
        try:
            game = db.session.query(GameSession).filter_by(id=session_id).populate_existing().first()
            if not game or (consumer_id is not None and game.consumer_id != consumer_id):
                raise NotFoundError("Game session not found")
            moved = db.session.execute(
                update(GameSession)
                .where(GameSession.id == session_id, GameSession.finished_at.is_(None))
                .values(finished_at=utcnow(), steps_cleared=steps, success=success, client_info=client_info)
                .execution_options(synchronize_session=False)
            )
            if moved.rowcount == 0:
                raise ConflictError("Game session already finished", code="GAME_FINISHED")
            db.session.commit()
            return game
        except ServiceError:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def finish_game(
    session_id: int,
    steps_cleared=None,
    success: bool = False,
    client_info: dict | None = None,
    rng: random.Random | None = None,
    consumer_id: int | None = None,
) -> dict:
    """
    Close a game session; on success draw a reward and try to issue a coupon.

    reward_value and discount_type describe the coupon actually issued
    (0 and None when nothing was issued). issue_id is None when no
    merchant/coupon is available or issuance is refused (sold out,
    per-user limit); the game result still stands.
    """
    if not session_id:
        raise ValidationError("Missing parameters")
    rng = rng or random.Random()
    steps = parse_int(steps_cleared, "steps_cleared", minimum=0) if steps_cleared is not None else None

    game = _close_game(session_id, steps, bool(success), client_info, consumer_id)
    if not success:
        return {"success": False, "message": FAILED_MESSAGE}

    rarity, points = draw_rarity(rng)
    percent = draw_coupon_percent(rng)
    merchant, coupon = _pick_reward_coupon(rng, percent)

    result = {
        "success": True,
        "reward_type": "COUPON",
        "reward_value": 0,
        "discount_type": None,
        "rarity": rarity,
        "points": points,
        "coupon_title": None,
        "issue_id": None,
    }
    if merchant is None:
        result["message"] = "No merchant found"

    if coupon is not None:
        try:
            issued = coupon_service.issue_coupon(
                coupon.id, game.consumer_id, reason="GAME_REWARD", issued_from="event",
            )
            result.update(
                issue_id=issued["coupon_issue_id"],
                coupon_title=issued["coupon_title"],
                reward_value=coupon.discount_value,
                discount_type=coupon.discount_type,
            )
        except ServiceError as exc:
            db.session.rollback()
            current_app.logger.info("Game reward coupon %s not issued: %s", coupon.id, exc)

    game = db.session.get(GameSession, session_id)
    game.reward_type = "COUPON"
    game.reward_value = result["reward_value"]
    game.coupon_issue_id = result["issue_id"]
    db.session.commit()
    return result


def game_stats(consumer_id: int) -> dict:
    played, won = (
        db.session.query(func.count(GameSession.id), func.count(GameSession.coupon_issue_id))
        .filter(GameSession.consumer_id == consumer_id)
        .one()
    )
    return {"played": played, "coupons_won": won}
