import datetime

import pytest

from community import POSTS_COLLECTION, PostRepository
from exceptions import NotFoundError, ValidationError, WriteConflictError


@pytest.fixture
def posts(db):
    return PostRepository(db)


def test_create_post(posts):
    post = posts.create_post("alice", "Alice", "  Recycled 10 cans today!  ")

    stored = posts.get_post(post.id)
    assert stored.content == "Recycled 10 cans today!"
    assert stored.username == "Alice"
    assert stored.likes == 0
    assert stored.imageUrl is None


def test_create_post_needs_content_or_image(posts):
    with pytest.raises(ValidationError):
        posts.create_post("alice", "Alice", "   ")
    assert posts.create_post("alice", "Alice", "", image_url="data:image/jpeg;base64,AAAA").imageUrl


def test_list_posts_newest_first(posts, db):
    base = datetime.datetime(2024, 6, 1, tzinfo=datetime.timezone.utc)
    for i in range(3):
        db.seed(POSTS_COLLECTION, f"p{i}", {
            "userId": "alice", "username": "Alice", "content": f"post {i}",
            "timestamp": base + datetime.timedelta(minutes=i),
        })

    assert [p.id for p in posts.list_posts()] == ["p2", "p1", "p0"]
    assert [p.id for p in posts.list_posts(limit=1)] == ["p2"]


def test_like_toggles(posts):
    post = posts.create_post("alice", "Alice", "hello")

    liked = posts.like(post.id, "bob")
    assert liked.likes == 1
    assert liked.likedBy == ["bob"]

    unliked = posts.like(post.id, "bob")
    assert unliked.likes == 0
    assert posts.get_post(post.id).likedBy == []


def test_vote_moves_between_like_and_dislike(posts):
    post = posts.create_post("alice", "Alice", "hello")
    posts.like(post.id, "bob")

    moved = posts.dislike(post.id, "bob")

    assert (moved.likes, moved.dislikes) == (0, 1)
    assert moved.likedBy == []
    assert moved.dislikedBy == ["bob"]


def test_vote_on_missing_post(posts):
    with pytest.raises(NotFoundError):
        posts.like("ghost", "bob")


def test_concurrent_vote_conflict(posts, db):
    post = posts.create_post("alice", "Alice", "hello")
    touched = []

    def concurrent_vote(ref):
        if ref.id == post.id and not touched:
            touched.append(ref.id)
            db._write(ref, dict(db.raw(POSTS_COLLECTION, post.id), likes=1, likedBy=["carol"]))

    db.before_commit_hooks.append(concurrent_vote)

    with pytest.raises(WriteConflictError):
        posts.like(post.id, "bob")
    assert posts.get_post(post.id).likedBy == ["carol"]
