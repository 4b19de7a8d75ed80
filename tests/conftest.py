import io
from types import SimpleNamespace

import pytest
from PIL import Image

import gemini_service
from community import PostRepository
from leaderboard import LeaderboardRanker
from media_normalizer import VideoInfo
from orchestrator import LifecycleOrchestrator
from repository import ItemRepository
from sessions import Session, SessionManager
from tests.fake_firestore import FakeFirestore


class FakeGeminiClient:
    """Records generate_content calls and answers from a queue of replies (or a callable)."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []
        self.models = SimpleNamespace(generate_content=self._generate_content)

    def queue(self, *replies):
        self.replies.extend(replies)

    def _generate_content(self, model, contents):
        self.calls.append({"model": model, "contents": contents})
        if not self.replies:
            raise AssertionError("Unexpected Gemini call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply()
        return SimpleNamespace(text=reply)


class _AuthError(Exception):
    pass


class FakeFirebaseAuth:
    """The subset of firebase_admin.auth used by SessionManager."""

    EmailAlreadyExistsError = type("EmailAlreadyExistsError", (_AuthError,), {})
    InvalidIdTokenError = type("InvalidIdTokenError", (_AuthError,), {})
    ExpiredIdTokenError = type("ExpiredIdTokenError", (InvalidIdTokenError,), {})
    RevokedIdTokenError = type("RevokedIdTokenError", (InvalidIdTokenError,), {})

    def __init__(self):
        self.accounts = {}
        self.revoked = []

    def create_user(self, email, password, display_name=None):
        if email in self.accounts:
            raise self.EmailAlreadyExistsError(email)
        uid = f"uid-{len(self.accounts) + 1}"
        self.accounts[email] = uid
        return SimpleNamespace(uid=uid, email=email, display_name=display_name)

    def verify_id_token(self, token):
        # Tokens in tests look like "token:<uid>:<email>".
        parts = token.split(':')
        if len(parts) != 3 or parts[0] != 'token':
            raise self.InvalidIdTokenError(token)
        return {"uid": parts[1], "email": parts[2]}

    def revoke_refresh_tokens(self, uid):
        self.revoked.append(uid)


def make_image_bytes(width=100, height=50, mode='RGB', fmt='PNG', color=(10, 120, 30)):
    if mode == 'RGBA' and len(color) == 3:
        color = color + (128,)
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def set_points(db, uid, points):
    """Writes a point total directly; the repository only credits points through verify_item."""
    db.collection("users").document(uid).update({"points": points})


def bearer(uid, email="user@example.com"):
    return {"Authorization": f"Bearer token:{uid}:{email}"}


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def repository(db):
    return ItemRepository(db)


@pytest.fixture
def gemini():
    return FakeGeminiClient()


@pytest.fixture
def video_duration(monkeypatch):
    """Controls the duration reported by the video reader; defaults to 10 seconds."""
    state = {"duration": 10.0}

    def fake_reader(data):
        return VideoInfo(duration=state["duration"], fps=30.0, frame_count=int(state["duration"] * 30),
                         width=640, height=480)

    monkeypatch.setattr(gemini_service, "read_video_info", fake_reader)
    return state


@pytest.fixture
def orchestrator(repository, gemini, video_duration):
    orch = LifecycleOrchestrator(repository, gemini, model="test-model", verification_timeout=5)
    yield orch
    orch.executor.shutdown(wait=True)


@pytest.fixture
def user(repository):
    repository.create_user("alice", name="Alice", email="alice@example.com")
    return Session(uid="alice", email="alice@example.com", name="Alice")


@pytest.fixture
def firebase_auth():
    return FakeFirebaseAuth()


@pytest.fixture
def services(db, repository, gemini, orchestrator, firebase_auth):
    from dependencies import Services
    return Services(
        repository=repository,
        leaderboard=LeaderboardRanker(db),
        posts=PostRepository(db),
        orchestrator=orchestrator,
        sessions=SessionManager(repository, firebase_auth),
        db=db,
    )


@pytest.fixture
def client(services):
    from main import create_app
    app = create_app(services)
    app.config['TESTING'] = True
    return app.test_client()
