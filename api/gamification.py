import logging
from flask import Blueprint, request, jsonify

from .auth import get_services, token_required
from .error_utils import bad_request_error, not_found_error
from .pydantic_models import LeaderboardResponse, RankResponse

gamification_bp = Blueprint('gamification_bp', __name__)

DEFAULT_LEADERBOARD_SIZE = 10
MAX_LEADERBOARD_SIZE = 100


@gamification_bp.route('/leaderboard', methods=['GET'])
@token_required
def get_leaderboard(session):
    try:
        limit = int(request.args.get('limit', DEFAULT_LEADERBOARD_SIZE))
    except ValueError:
        return bad_request_error("'limit' must be an integer.")
    limit = max(1, min(limit, MAX_LEADERBOARD_SIZE))

    ranker = get_services().leaderboard
    entries = ranker.top_n(limit)
    for entry in entries:
        entry.isCurrentUser = entry.uid == session.uid

    my_rank = ranker.rank_of(session.uid)
    logging.debug(f"Leaderboard of {len(entries)} entries served to {session.uid} (rank {my_rank})")
    return jsonify(LeaderboardResponse(leaderboard=entries, myRank=my_rank).model_dump()), 200


@gamification_bp.route('/leaderboard/rank/<uid>', methods=['GET'])
@token_required
def get_rank(session, uid):
    rank = get_services().leaderboard.rank_of(uid)
    if rank is None:
        return not_found_error("User not found")
    return jsonify(RankResponse(uid=uid, rank=rank).model_dump()), 200
