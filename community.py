import logging

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from exceptions import NotFoundError, ValidationError, WriteConflictError
from models import Post, from_snapshot, utcnow, validate_many

logger = logging.getLogger(__name__)

POSTS_COLLECTION = 'posts'
MAX_POST_IMAGE_SIZE = 5 * 1024 * 1024  # 5MB, checked before normalization


class PostRepository:
    """The community feed: posts with like/dislike voting."""

    def __init__(self, db):
        self.db = db

    def _posts(self):
        return self.db.collection(POSTS_COLLECTION)

    def create_post(self, user_id, username, content, image_url=None) -> Post:
        content = (content or "").strip()
        if not content and not image_url:
            raise ValidationError("Please enter a message or select an image")

        post_ref = self._posts().document()
        post_data = {
            'userId': user_id,
            'username': username or 'Anonymous',
            'content': content,
            'timestamp': utcnow(),
            'likes': 0,
            'dislikes': 0,
            'likedBy': [],
            'dislikedBy': [],
        }
        if image_url:
            post_data['imageUrl'] = image_url
        post_ref.set(post_data)
        logger.info(f"Post {post_ref.id} created by {user_id} (image: {bool(image_url)})")
        return Post(id=post_ref.id, **post_data)

    def list_posts(self, limit=50):
        query = self._posts().order_by('timestamp', direction=firestore.Query.DESCENDING).limit(limit)
        return validate_many(Post, query.stream())

    def get_post(self, post_id) -> Post:
        snapshot = self._posts().document(post_id).get()
        if not snapshot.exists:
            raise NotFoundError(f"Post with ID {post_id} not found")
        return from_snapshot(Post, snapshot)

    def like(self, post_id, user_id) -> Post:
        return self._vote(post_id, user_id, 'like')

    def dislike(self, post_id, user_id) -> Post:
        return self._vote(post_id, user_id, 'dislike')

    def _vote(self, post_id, user_id, kind):
        """
        Toggles the user's vote. Voting for the opposite side moves the vote, so a
        user is never in both likedBy and dislikedBy.
        """
        post_ref = self._posts().document(post_id)
        snapshot = post_ref.get()
        if not snapshot.exists:
            raise NotFoundError(f"Post with ID {post_id} not found")
        post = from_snapshot(Post, snapshot)

        if kind == 'like':
            same, other = 'likedBy', 'dislikedBy'
        else:
            same, other = 'dislikedBy', 'likedBy'
        voters = {same: list(getattr(post, same)), other: list(getattr(post, other))}

        if user_id in voters[same]:
            voters[same].remove(user_id)
        else:
            voters[same].append(user_id)
            if user_id in voters[other]:
                voters[other].remove(user_id)

        update_data = {
            'likedBy': voters['likedBy'],
            'dislikedBy': voters['dislikedBy'],
            'likes': len(voters['likedBy']),
            'dislikes': len(voters['dislikedBy']),
        }
        try:
            post_ref.update(update_data, option=self.db.write_option(last_update_time=snapshot.update_time))
        except gcp_exceptions.FailedPrecondition as e:
            raise WriteConflictError(f"Post {post_id} was updated concurrently; please retry") from e

        return post.model_copy(update=update_data)
