# FILE: ecorewards-backend/api/auth.py

import logging
from functools import wraps
from flask import Blueprint, current_app, request, jsonify

from exceptions import AuthenticationError
from .error_utils import create_error_response
from .pydantic_models import SignupRequest, SessionResponse, ProfileResponse, UpdateProfileRequest

auth_bp = Blueprint('auth_bp', __name__)


def get_services():
    return current_app.config['SERVICES']


def token_required(f):
    """Verifies the Firebase ID token and passes the resulting Session as `session`."""
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get('Authorization')
        if not auth_header or not auth_header.startswith('Bearer '):
            return create_error_response("TOKEN_MISSING", status_code=401)
        token = auth_header.split(' ', 1)[1].strip()
        try:
            kwargs['session'] = get_services().sessions.session_from_token(token)
        except AuthenticationError as e:
            return create_error_response(e.error_code, e.message or None, status_code=401)
        return f(*args, **kwargs)
    return decorated


# --- Endpoints ---
@auth_bp.route('/signup', methods=['POST'])
def signup():
    req_data = SignupRequest.model_validate(request.get_json())
    session = get_services().sessions.sign_up(req_data.email, req_data.password, req_data.name)
    return jsonify(SessionResponse(uid=session.uid, email=session.email, name=session.name).model_dump()), 201


@auth_bp.route('/logout', methods=['POST'])
@token_required
def logout(session):
    get_services().sessions.sign_out(session)
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.route('/me', methods=['GET'])
@token_required
def get_me(session):
    services = get_services()
    user = services.repository.get_user(session.uid)
    rank = services.leaderboard.rank_of(session.uid)
    logging.debug(f"Profile requested by {session.uid}")
    return jsonify(ProfileResponse(user=user, rank=rank).model_dump(mode='json')), 200


@auth_bp.route('/me', methods=['PATCH'])
@token_required
def update_me(session):
    req_data = UpdateProfileRequest.model_validate(request.get_json())
    user = get_services().repository.update_user(session.uid, {"name": req_data.name})
    logging.info(f"Profile of {session.uid} renamed")
    return jsonify(user.model_dump(mode='json')), 200
