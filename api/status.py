import datetime
from flask import Blueprint, jsonify
from google.cloud import firestore

from repository import USERS_COLLECTION
from .auth import get_services

status_bp = Blueprint('status_bp', __name__)


# --- Helper Check Functions ---

def check_firestore(db):
    """Checks the leaderboard query, which also proves the users index exists."""
    try:
        _ = list(db.collection(USERS_COLLECTION).order_by('points', direction=firestore.Query.DESCENDING).limit(1).stream())
        return {"status": "OK", "details": "Firestore users collection is accessible."}
    except Exception as e:
        return {"status": "ERROR", "details": f"Failed to query Firestore. Check indexes and credentials. Error: {str(e)}"}


def check_redis(redis_client):
    """Checks if the Redis server is responsive. Redis is optional, so absence is not an error."""
    if not redis_client:
        return {"status": "OK", "details": "Redis is not configured; leaderboard caching is disabled."}
    try:
        redis_client.ping()
        return {"status": "OK", "details": "Ping successful."}
    except Exception as e:
        return {"status": "ERROR", "details": f"Failed to ping Redis server: {str(e)}"}


@status_bp.route('/health', methods=['GET'])
def health():
    services = get_services()
    checks = {
        "firestore": check_firestore(services.db),
        "redis": check_redis(services.leaderboard.redis_client),
    }
    healthy = all(c["status"] == "OK" for c in checks.values())
    return jsonify({
        "status": "OK" if healthy else "ERROR",
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "checks": checks,
    }), 200 if healthy else 503
