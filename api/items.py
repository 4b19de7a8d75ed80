import logging
from flask import Blueprint, request, jsonify

from .auth import get_services, token_required
from .error_utils import bad_request_error
from .pydantic_models import ItemListResponse, VerificationResponse

items_bp = Blueprint('items_bp', __name__)

DEFAULT_UNVERIFIED_LIMIT = 20
MAX_UNVERIFIED_LIMIT = 100


def _item_json(item):
    return item.model_dump(mode='json')


@items_bp.route('', methods=['POST'])
@token_required
def upload_item(session):
    """Classifies an uploaded photo and creates the (unverified) item."""
    image = request.files.get('image')
    if image is None:
        return bad_request_error("An 'image' file is required.")
    description = request.form.get('description')

    item = get_services().orchestrator.upload(session, image.read(), description)
    return jsonify(_item_json(item)), 201


@items_bp.route('', methods=['GET'])
@token_required
def list_my_items(session):
    items = get_services().repository.get_items_by_user(session.uid)
    items.sort(key=lambda i: i.createdAt, reverse=True)
    return jsonify(ItemListResponse(items=items).model_dump(mode='json')), 200


@items_bp.route('/unverified', methods=['GET'])
@token_required
def list_unverified_items(session):
    try:
        limit = int(request.args.get('limit', DEFAULT_UNVERIFIED_LIMIT))
    except ValueError:
        return bad_request_error("'limit' must be an integer.")
    limit = max(1, min(limit, MAX_UNVERIFIED_LIMIT))

    items = get_services().repository.get_unverified_items(limit)
    return jsonify(ItemListResponse(items=items).model_dump(mode='json')), 200


@items_bp.route('/<item_id>', methods=['GET'])
@token_required
def get_item(session, item_id):
    item = get_services().repository.get_item(item_id)
    return jsonify(_item_json(item)), 200


@items_bp.route('/<item_id>/verify', methods=['POST'])
@token_required
def verify_item(session, item_id):
    """Checks a disposal video. A rejection is a normal 200 response carrying the reason."""
    video = request.files.get('video')
    if video is None:
        return bad_request_error("A 'video' file is required.")

    outcome = get_services().orchestrator.verify(session, item_id, video.read(), video.mimetype)
    logging.info(f"Verification for item {item_id} by {session.uid}: accepted={outcome.accepted}")
    response = VerificationResponse(
        itemId=outcome.itemId,
        success=outcome.accepted,
        reason=outcome.reason,
        pointsAwarded=outcome.pointsAwarded,
    )
    return jsonify(response.model_dump()), 200
