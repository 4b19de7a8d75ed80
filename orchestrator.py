"""
Item lifecycle: upload -> classify -> UNVERIFIED -> verify -> VERIFIED.

    [no item]  --upload-->          UNVERIFIED
    UNVERIFIED --verify accepted--> VERIFIED (points awarded once)
    UNVERIFIED --verify rejected--> UNVERIFIED (user may retry)

Verification calls run on a worker pool. Each call is tagged with a per-item
token; only the verdict carrying the item's current token may change state, so a
verdict that arrives after its caller timed out (or was superseded by a retry)
cannot be applied twice or out of order.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from pydantic import BaseModel

import gemini_service
from exceptions import (
    AlreadyVerifiedError,
    EcoRewardsError,
    InvalidTransitionError,
    ValidationError,
    VerificationInProgressError,
    VerificationTimeoutError,
)
from media_normalizer import load_image_reference, normalize_image
from models import Classification, points_for

logger = logging.getLogger(__name__)

DEFAULT_VERIFIED_VIDEO_REF = "verified"


class VerificationOutcome(BaseModel):
    itemId: str
    accepted: bool
    reason: Optional[str] = None
    pointsAwarded: int = 0


class LifecycleOrchestrator:
    def __init__(self, repository, genai_client, model=gemini_service.DEFAULT_MODEL,
                 video_store=None, verification_timeout=30.0, executor=None, on_points_awarded=None):
        self.repository = repository
        self.genai_client = genai_client
        self.model = model
        self.video_store = video_store
        self.verification_timeout = verification_timeout
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="verify")
        self.on_points_awarded = on_points_awarded

        self._state_lock = threading.Lock()
        # Per-item entries live until the item is verified.
        self._item_locks = {}
        self._tokens = {}

    # --- Upload ---

    def upload(self, session, image_bytes, description=None):
        """Normalizes and classifies an image, then creates the unverified item for session.uid."""
        normalized = normalize_image(image_bytes)
        result = gemini_service.classify_item(
            self.genai_client, normalized.data, normalized.mime_type, description, model=self.model
        )
        item = self.repository.create_item(
            user_id=session.uid,
            image_url=normalized.data_uri,
            classification=result.classification,
            recyclability_score=result.score,
            resale_value=result.resaleValue,
            disposal_instructions=result.disposalInstructions,
            description=description,
        )
        logger.info(f"Upload by {session.uid} classified as {result.classification.value} (score {result.score})")
        return item

    # --- Verification ---

    def current_token(self, item_id):
        with self._state_lock:
            return self._tokens.get(item_id, 0)

    def _next_token(self, item_id):
        with self._state_lock:
            self._tokens[item_id] = self._tokens.get(item_id, 0) + 1
            return self._tokens[item_id]

    def _item_lock(self, item_id):
        with self._state_lock:
            return self._item_locks.setdefault(item_id, threading.RLock())

    def _forget(self, item_id):
        with self._state_lock:
            self._item_locks.pop(item_id, None)
            self._tokens.pop(item_id, None)

    def _check_transition(self, item):
        if item.isVerified:
            raise AlreadyVerifiedError("This item has already been verified.")
        if item.classification is None or item.classification == Classification.WASTE:
            raise InvalidTransitionError("Items classified as Waste cannot be verified for points.")
        if not item.disposalInstructions:
            raise ValidationError("Item data is incomplete. Please try uploading the item again.")
        if not item.imageUrl:
            raise ValidationError("Item image is missing. Please try uploading the item again.")

    def verify(self, session, item_id, video_bytes, video_mime):
        """
        Checks a disposal video against the item and awards points on acceptance.
        All guards run before any oracle call.
        """
        item = self.repository.get_item(item_id)
        self._check_transition(item)
        gemini_service.validate_verification_video(video_bytes, video_mime)
        image_bytes, image_mime = load_image_reference(item.imageUrl)

        lock = self._item_lock(item_id)
        if not lock.acquire(blocking=False):
            raise VerificationInProgressError("A verification for this item is already in progress.")
        try:
            token = self._next_token(item_id)
            logger.info(f"Verification #{token} for item {item_id} requested by {session.uid}")
            future = self.executor.submit(
                gemini_service.verify_disposal, self.genai_client, video_bytes, video_mime,
                image_bytes, image_mime, item.disposalInstructions, self.model,
            )
            try:
                verdict = future.result(timeout=self.verification_timeout)
            except FutureTimeoutError:
                caller = threading.get_ident()
                finished_inline = []

                def on_done(f):
                    # add_done_callback runs the callback right here if the call finished
                    # after the wait expired but before registration.
                    if threading.get_ident() == caller:
                        finished_inline.append(f)
                        return
                    self._reconcile_late_verdict(item_id, token, f, video_bytes, video_mime)

                future.add_done_callback(on_done)
                if finished_inline:
                    return self._apply_verdict(item_id, token, future.result(), video_bytes, video_mime)
                logger.warning(f"Verification #{token} for item {item_id} timed out after {self.verification_timeout}s")
                raise VerificationTimeoutError(
                    "Video analysis is taking longer than expected. Please try again with a shorter video."
                )
            return self._apply_verdict(item_id, token, verdict, video_bytes, video_mime)
        finally:
            lock.release()

    def _apply_verdict(self, item_id, token, verdict, video_bytes, video_mime):
        if token != self.current_token(item_id):
            logger.info(f"Discarding stale verdict #{token} for item {item_id}")
            return None

        if not verdict.accepted:
            logger.info(f"Verification #{token} for item {item_id} rejected: {verdict.reason}")
            return VerificationOutcome(itemId=item_id, accepted=False, reason=verdict.reason)

        # Re-read right before the award; the repository write itself is a CAS on isVerified.
        item = self.repository.get_item(item_id)
        if item.isVerified:
            raise AlreadyVerifiedError("This item has already been verified.")

        points = points_for(item.classification)
        video_ref = DEFAULT_VERIFIED_VIDEO_REF
        if self.video_store is not None:
            video_ref = self.video_store(item_id, video_bytes, video_mime)

        if not self.repository.verify_item(item_id, video_ref, points):
            raise AlreadyVerifiedError("This item has already been verified.")
        self._forget(item_id)

        if self.on_points_awarded is not None:
            try:
                self.on_points_awarded(item.userId, points)
            except Exception as e:
                logger.error(f"Post-award hook failed for item {item_id}: {e}", exc_info=True)

        return VerificationOutcome(itemId=item_id, accepted=True, pointsAwarded=points)

    def _reconcile_late_verdict(self, item_id, token, future, video_bytes, video_mime):
        """Applies a verdict that arrived after its caller stopped waiting, if it is still current."""
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Late verification #{token} for item {item_id} failed: {error}")
            return

        with self._state_lock:
            lock = self._item_locks.get(item_id)
        if lock is None:
            logger.info(f"Late verification #{token} for item {item_id} discarded; the item is already verified")
            return
        with lock:
            try:
                outcome = self._apply_verdict(item_id, token, future.result(), video_bytes, video_mime)
            except EcoRewardsError as e:
                logger.warning(f"Late verification #{token} for item {item_id} not applied: {e}")
                return
        if outcome is not None:
            logger.info(f"Reconciled late verification #{token} for item {item_id}: accepted={outcome.accepted}")

    def shutdown(self):
        self.executor.shutdown(wait=False)
