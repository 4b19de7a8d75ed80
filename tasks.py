# FILE: ecorewards-backend/tasks.py

import logging
import os

from celery import Celery
from dotenv import load_dotenv

from dependencies import LEADERBOARD_CACHE_TTL, get_db, get_redis_client
from leaderboard import LeaderboardRanker
from logging_config import setup_logging

# --- SETUP & CONFIG ---
load_dotenv()
setup_logging()

celery_app = Celery('tasks', broker=os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'), include=['tasks'])
celery_app.conf.update(
    task_track_started=True,
    task_ignore_result=True,
)


def _ranker():
    return LeaderboardRanker(get_db(), redis_client=get_redis_client(), cache_ttl=LEADERBOARD_CACHE_TTL)


@celery_app.task(name="refresh_user_ranks", max_retries=3, default_retry_delay=60)
def refresh_user_ranks():
    """Stamps every user's current leaderboard rank onto their profile document."""
    try:
        return _ranker().stamp_ranks()
    except Exception as e:
        logging.error(f"An error occurred during the rank update process: {e}", exc_info=True)
        raise


def dispatch_post_award(user_id, points):
    """
    Runs after a verification credits points. The cache is dropped inline so the
    awarding user sees their new total; rank stamping is left to the worker.
    """
    redis_client = get_redis_client()
    if redis_client:
        LeaderboardRanker(None, redis_client=redis_client).invalidate()
    try:
        refresh_user_ranks.delay()
    except Exception as e:
        logging.error(f"Failed to queue rank refresh after awarding {points} points to {user_id}: {e}")
