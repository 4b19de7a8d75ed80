"""
Dependency container for the EcoRewards backend.
Reads configuration from the environment and builds the shared clients lazily,
so importing a module never opens a connection. `build_services()` assembles
the bundle the Flask app and the Celery worker are given.
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import Optional

import redis
from dotenv import load_dotenv
from google import genai
from google.cloud import firestore, storage

from community import PostRepository
from firebase_init import initialize_firebase
from leaderboard import LeaderboardRanker
from orchestrator import LifecycleOrchestrator
from repository import ItemRepository
from sessions import SessionManager
from video_store import GCSVideoStore

load_dotenv()

# --- Environment variables ---
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
GCS_BUCKET_NAME = os.environ.get("GCS_BUCKET_NAME")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
VERIFICATION_TIMEOUT_SECONDS = float(os.environ.get("VERIFICATION_TIMEOUT_SECONDS", "30"))
LEADERBOARD_CACHE_TTL = int(os.environ.get("LEADERBOARD_CACHE_TTL", "60"))

# --- Lazily initialized clients ---
_lock = threading.Lock()
_db, _storage_client, _genai_client, _redis_client = None, None, None, None
_redis_checked = False


def get_db():
    global _db
    with _lock:
        if _db is None:
            initialize_firebase()
            _db = firestore.Client()
        return _db


def get_storage_client():
    global _storage_client
    with _lock:
        _storage_client = _storage_client or storage.Client()
        return _storage_client


def get_genai_client():
    global _genai_client
    with _lock:
        if _genai_client is None:
            if not GEMINI_API_KEY:
                logging.warning("GEMINI_API_KEY is not set; Gemini calls will fail.")
            _genai_client = genai.Client(api_key=GEMINI_API_KEY)
        return _genai_client


def get_redis_client():
    """Returns a connected Redis client, or None when Redis is unavailable (caching is then skipped)."""
    global _redis_client, _redis_checked
    with _lock:
        if not _redis_checked:
            _redis_checked = True
            try:
                _redis_client = redis.from_url(REDIS_URL, decode_responses=True, socket_connect_timeout=5)
                _redis_client.ping()
                logging.info("Redis connection initialized successfully")
            except redis.exceptions.ConnectionError as e:
                logging.error(f"Failed to connect to Redis: {e}")
                _redis_client = None
        return _redis_client


@dataclass
class Services:
    repository: ItemRepository
    leaderboard: LeaderboardRanker
    posts: PostRepository
    orchestrator: LifecycleOrchestrator
    sessions: SessionManager
    db: Optional[object] = None


def build_services(db=None, genai_client=None, redis_client=None, firebase_auth=None,
                   video_store=None, on_points_awarded=None):
    """Wires the services together. Anything not passed in is built from the environment."""
    db = db or get_db()
    genai_client = genai_client or get_genai_client()
    if redis_client is None:
        redis_client = get_redis_client()
    if video_store is None and GCS_BUCKET_NAME:
        video_store = GCSVideoStore(get_storage_client(), GCS_BUCKET_NAME)

    repository = ItemRepository(db)
    leaderboard = LeaderboardRanker(db, redis_client=redis_client, cache_ttl=LEADERBOARD_CACHE_TTL)
    orchestrator = LifecycleOrchestrator(
        repository,
        genai_client,
        model=GEMINI_MODEL,
        video_store=video_store,
        verification_timeout=VERIFICATION_TIMEOUT_SECONDS,
        on_points_awarded=on_points_awarded,
    )
    sessions = SessionManager(repository, firebase_auth) if firebase_auth else SessionManager(repository)
    return Services(
        repository=repository,
        leaderboard=leaderboard,
        posts=PostRepository(db),
        orchestrator=orchestrator,
        sessions=sessions,
        db=db,
    )
