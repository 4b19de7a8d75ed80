import logging

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from exceptions import NotFoundError, WriteConflictError
from models import Classification, Item, UserProfile, from_snapshot, utcnow, validate_many

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'
ITEMS_COLLECTION = 'items'

# Fields a caller may never overwrite through update_item/update_user. The
# verification and points fields change only through create_item and verify_item.
_PROTECTED_ITEM_FIELDS = {'id', 'userId', 'createdAt', 'isVerified', 'pointsAwarded', 'verificationVideoUrl'}
_PROTECTED_USER_FIELDS = {'uid', 'createdAt', 'points', 'items', 'itemsUploaded'}


def _serialize(value):
    if isinstance(value, Classification):
        return value.value
    return value


class ItemRepository:
    """Firestore access for the `users` and `items` collections."""

    def __init__(self, db):
        self.db = db

    def _users(self):
        return self.db.collection(USERS_COLLECTION)

    def _items(self):
        return self.db.collection(ITEMS_COLLECTION)

    def _get_existing(self, ref, kind):
        snapshot = ref.get()
        if not snapshot.exists:
            raise NotFoundError(f"{kind} with ID {ref.id} not found")
        return snapshot

    # --- Users ---

    def create_user(self, uid, name=None, email=None):
        now = utcnow()
        user = UserProfile(uid=uid, name=name, email=email, points=0, itemsUploaded=0, items=[],
                           createdAt=now, updatedAt=now)
        self._users().document(uid).set(user.model_dump(exclude={'rank'}))
        logger.info(f"Created user profile {uid}")
        return user

    def get_user(self, uid) -> UserProfile:
        snapshot = self._get_existing(self._users().document(uid), "User")
        return from_snapshot(UserProfile, snapshot, id_field='uid')

    def find_user(self, uid):
        """Like get_user, but returns None for a missing profile."""
        try:
            return self.get_user(uid)
        except NotFoundError:
            return None

    def update_user(self, uid, fields) -> UserProfile:
        user_ref = self._users().document(uid)
        self._get_existing(user_ref, "User")
        update_data = {k: _serialize(v) for k, v in fields.items() if k not in _PROTECTED_USER_FIELDS}
        update_data['updatedAt'] = utcnow()
        user_ref.update(update_data)
        return self.get_user(uid)

    # --- Items ---

    def create_item(self, user_id, image_url, classification, recyclability_score=0, resale_value=0.0,
                    disposal_instructions="", description=None) -> Item:
        """
        Creates an unverified item and, in the same batch, appends its id to the
        owner's item list and bumps their upload counter.
        """
        user_ref = self._users().document(user_id)
        self._get_existing(user_ref, "User")

        item_ref = self._items().document()
        now = utcnow()
        item = Item(
            id=item_ref.id,
            userId=user_id,
            imageUrl=image_url,
            description=description.strip() if description and description.strip() else None,
            classification=classification,
            recyclabilityScore=recyclability_score,
            resaleValue=resale_value,
            disposalInstructions=disposal_instructions or "",
            isVerified=False,
            pointsAwarded=0,
            createdAt=now,
            updatedAt=now,
        )
        item_data = item.model_dump(mode='python', exclude_none=True)
        item_data['classification'] = _serialize(item.classification)

        batch = self.db.batch()
        batch.set(item_ref, item_data)
        batch.update(user_ref, {
            'items': firestore.ArrayUnion([item.id]),
            'itemsUploaded': firestore.Increment(1),
            'updatedAt': now,
        })
        try:
            batch.commit()
        except gcp_exceptions.NotFound as e:
            raise NotFoundError(f"User with ID {user_id} not found") from e

        logger.info(f"Created item {item.id} for user {user_id} ({item_data['classification']})")
        return item

    def get_item(self, item_id) -> Item:
        snapshot = self._get_existing(self._items().document(item_id), "Item")
        return from_snapshot(Item, snapshot)

    def get_items_by_user(self, user_id):
        """All items owned by user_id. The store gives no ordering; callers sort."""
        self._get_existing(self._users().document(user_id), "User")
        query = self._items().where(filter=firestore.FieldFilter('userId', '==', user_id))
        return validate_many(Item, query.stream())

    def update_item(self, item_id, fields) -> Item:
        item_ref = self._items().document(item_id)
        self._get_existing(item_ref, "Item")
        update_data = {k: _serialize(v) for k, v in fields.items() if k not in _PROTECTED_ITEM_FIELDS}
        update_data['updatedAt'] = utcnow()
        item_ref.update(update_data)
        return self.get_item(item_id)

    def verify_item(self, item_id, video_ref, points_to_award) -> bool:
        """
        Marks the item verified and credits its owner, as one compare-and-swap.

        Returns False without writing anything when the item is already verified.
        The item write carries a last-update-time precondition, so a concurrent
        writer makes the whole batch (including the points credit) fail.
        """
        item_ref = self._items().document(item_id)
        snapshot = self._get_existing(item_ref, "Item")
        item = from_snapshot(Item, snapshot)
        if item.isVerified:
            logger.warning(f"Item {item_id} is already verified; skipping award of {points_to_award} points")
            return False

        now = utcnow()
        user_ref = self._users().document(item.userId)
        batch = self.db.batch()
        batch.update(item_ref, {
            'isVerified': True,
            'verificationVideoUrl': video_ref,
            'pointsAwarded': points_to_award,
            'updatedAt': now,
        }, option=self.db.write_option(last_update_time=snapshot.update_time))
        batch.update(user_ref, {'points': firestore.Increment(points_to_award), 'updatedAt': now})

        try:
            batch.commit()
        except gcp_exceptions.FailedPrecondition as e:
            if self.get_item(item_id).isVerified:
                logger.warning(f"Item {item_id} was verified concurrently; award skipped")
                return False
            raise WriteConflictError(f"Item {item_id} changed while it was being verified") from e
        except gcp_exceptions.NotFound as e:
            raise NotFoundError(f"User with ID {item.userId} not found") from e

        logger.info(f"Verified item {item_id}; awarded {points_to_award} points to {item.userId}")
        return True

    def get_unverified_items(self, limit=20):
        # This query requires a composite index in Firestore on (isVerified, createdAt desc)
        query = self._items().where(
            filter=firestore.FieldFilter('isVerified', '==', False)
        ).order_by(
            'createdAt', direction=firestore.Query.DESCENDING
        ).limit(limit)
        return validate_many(Item, query.stream())
