# Overview: Flask API routes for the reward mini-game.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth, require_role
from ..services import game_service
from ..validation import parse_int, require_fields

game_bp = Blueprint("game", __name__, url_prefix="/api/game")


@game_bp.post("/start")
@require_auth
@require_role("CONSUMER")
@handle_service_errors("start game")
def start_route():
    data = request.get_json(silent=True) or {}
    return jsonify(game_service.start_game(g.consumer_id, data.get("game_type") or "stairs")), 201


@game_bp.post("/finish")
@require_auth
@require_role("CONSUMER")
@handle_service_errors("finish game")
def finish_route():
    """Body {session_id, steps_cleared, success, client_info?}."""
    data = require_fields(request.get_json(silent=True), ("session_id",))
    result = game_service.finish_game(
        parse_int(data["session_id"], "session_id"),
        steps_cleared=data.get("steps_cleared"),
        success=bool(data.get("success")),
        client_info=data.get("client_info"),
        consumer_id=g.consumer_id,
    )
    return jsonify(result)


@game_bp.get("/stats")
@require_auth
@require_role("CONSUMER")
@handle_service_errors("load game stats")
def stats_route():
    return jsonify(game_service.game_stats(g.consumer_id))
