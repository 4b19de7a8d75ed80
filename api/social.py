import logging
from flask import Blueprint, request, jsonify

from community import MAX_POST_IMAGE_SIZE
from media_normalizer import normalize_image
from .auth import get_services, token_required
from .error_utils import bad_request_error
from .pydantic_models import CreatePostRequest, PostListResponse

social_bp = Blueprint('social_bp', __name__)


@social_bp.route('', methods=['GET'])
@token_required
def list_posts(session):
    posts = get_services().posts.list_posts()
    return jsonify(PostListResponse(posts=posts).model_dump(mode='json')), 200


@social_bp.route('', methods=['POST'])
@token_required
def create_post(session):
    """Creates a post from form fields; an optional 'image' file is normalized and stored inline."""
    req_data = CreatePostRequest.model_validate(request.form.to_dict())

    image_url = None
    image = request.files.get('image')
    if image is not None:
        if not (image.mimetype or '').startswith('image/'):
            return bad_request_error("Please select an image file")
        data = image.read()
        if len(data) > MAX_POST_IMAGE_SIZE:
            return bad_request_error("Image size must be less than 5MB")
        image_url = normalize_image(data).data_uri

    post = get_services().posts.create_post(session.uid, session.display_name, req_data.content, image_url)
    return jsonify(post.model_dump(mode='json')), 201


@social_bp.route('/<post_id>', methods=['GET'])
@token_required
def get_post(session, post_id):
    post = get_services().posts.get_post(post_id)
    return jsonify(post.model_dump(mode='json')), 200


@social_bp.route('/<post_id>/like', methods=['POST'])
@token_required
def like_post(session, post_id):
    post = get_services().posts.like(post_id, session.uid)
    logging.debug(f"{session.uid} toggled like on post {post_id}")
    return jsonify(post.model_dump(mode='json')), 200


@social_bp.route('/<post_id>/dislike', methods=['POST'])
@token_required
def dislike_post(session, post_id):
    post = get_services().posts.dislike(post_id, session.uid)
    logging.debug(f"{session.uid} toggled dislike on post {post_id}")
    return jsonify(post.model_dump(mode='json')), 200
