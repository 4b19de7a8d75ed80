import json
import logging
from typing import Optional

from google.cloud import firestore
from pydantic import BaseModel

from models import UserProfile, from_snapshot, validate_many
from repository import USERS_COLLECTION

logger = logging.getLogger(__name__)

LEADERBOARD_CACHE_PREFIX = "leaderboard_top"
RANK_BATCH_SIZE = 500


class LeaderboardEntry(BaseModel):
    rank: int
    uid: str
    name: Optional[str] = "Anonymous"
    points: int = 0
    itemsUploaded: int = 0
    isCurrentUser: bool = False


def _count(query):
    return query.count().get()[0][0].value


class LeaderboardRanker:
    """
    Ranks users by points, descending. Equal points are ordered by uid ascending,
    which is the only tie-break that is stable across reads.
    """

    def __init__(self, db, redis_client=None, cache_ttl=60):
        self.db = db
        self.redis_client = redis_client
        self.cache_ttl = cache_ttl

    def _ordered(self):
        return self.db.collection(USERS_COLLECTION).order_by(
            'points', direction=firestore.Query.DESCENDING
        ).order_by(
            'uid', direction=firestore.Query.ASCENDING
        )

    def _cache_key(self, n):
        return f"{LEADERBOARD_CACHE_PREFIX}:{n}"

    def top_n(self, n=10):
        """The n highest-scoring users with strictly positive points."""
        cache_key = self._cache_key(n)
        if self.redis_client:
            try:
                cached = self.redis_client.get(cache_key)
                if cached:
                    return [LeaderboardEntry.model_validate(e) for e in json.loads(cached)]
            except Exception as e:
                logger.warning(f"Leaderboard cache read failed: {e}")

        query = self.db.collection(USERS_COLLECTION).where(
            filter=firestore.FieldFilter('points', '>', 0)
        ).order_by(
            'points', direction=firestore.Query.DESCENDING
        ).order_by(
            'uid', direction=firestore.Query.ASCENDING
        ).limit(n)

        entries = [
            LeaderboardEntry(rank=rank, uid=user.uid, name=user.name, points=user.points,
                             itemsUploaded=user.itemsUploaded)
            for rank, user in enumerate(validate_many(UserProfile, query.stream(), id_field='uid'), 1)
        ]

        if self.redis_client:
            try:
                self.redis_client.set(cache_key, json.dumps([e.model_dump() for e in entries]), ex=self.cache_ttl)
            except Exception as e:
                logger.warning(f"Leaderboard cache write failed: {e}")
        return entries

    def rank_of(self, uid) -> Optional[int]:
        """1-based position of uid among all users, or None if the user does not exist."""
        user_doc = self.db.collection(USERS_COLLECTION).document(uid).get()
        if not user_doc.exists:
            return None

        user = from_snapshot(UserProfile, user_doc, id_field='uid')
        points = user.points
        users = self.db.collection(USERS_COLLECTION)
        rank_above = _count(users.where(filter=firestore.FieldFilter('points', '>', points)))
        rank_at_my_level = _count(
            users.where(filter=firestore.FieldFilter('points', '==', points))
                 .where(filter=firestore.FieldFilter('uid', '<=', uid))
        )
        rank = rank_above + rank_at_my_level
        # A stored points/uid value the model had to default matches neither count query.
        stored = user_doc.to_dict()
        if stored.get('points') != points or stored.get('uid') != uid:
            rank += 1
        return rank

    def invalidate(self):
        """Drops every cached top-N page."""
        if not self.redis_client:
            return
        try:
            keys = list(self.redis_client.scan_iter(match=f"{LEADERBOARD_CACHE_PREFIX}:*"))
            if keys:
                self.redis_client.delete(*keys)
        except Exception as e:
            logger.warning(f"Leaderboard cache invalidation failed: {e}")

    def stamp_ranks(self):
        """Writes each user's current rank onto their document, committing every 500 updates."""
        logger.info("Starting the user rank update process...")
        users_ref = self.db.collection(USERS_COLLECTION)
        batch = self.db.batch()
        updated_users_count = 0

        for rank, user_doc in enumerate(self._ordered().stream(), 1):
            batch.update(users_ref.document(user_doc.id), {'rank': rank})
            updated_users_count += 1
            if updated_users_count % RANK_BATCH_SIZE == 0:
                logger.info(f"Committing a batch of {RANK_BATCH_SIZE} rank updates...")
                batch.commit()
                batch = self.db.batch()

        if updated_users_count % RANK_BATCH_SIZE != 0:
            logger.info(f"Committing the final batch of {updated_users_count % RANK_BATCH_SIZE} rank updates...")
            batch.commit()

        logger.info(f"Successfully updated the rank for {updated_users_count} users.")
        return updated_users_count
