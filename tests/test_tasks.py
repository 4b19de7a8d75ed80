from unittest.mock import MagicMock

import pytest

import tasks
from leaderboard import LeaderboardRanker
from repository import USERS_COLLECTION
from tests.conftest import set_points
from video_store import GCSVideoStore


def test_refresh_user_ranks_stamps_ranks(monkeypatch, db, repository):
    repository.create_user("alice")
    repository.create_user("bob")
    set_points(db, "bob", 10)
    monkeypatch.setattr(tasks, "_ranker", lambda: LeaderboardRanker(db))

    assert tasks.refresh_user_ranks() == 2
    assert db.raw(USERS_COLLECTION, "bob")["rank"] == 1
    assert db.raw(USERS_COLLECTION, "alice")["rank"] == 2


def test_refresh_user_ranks_reraises(monkeypatch):
    ranker = MagicMock()
    ranker.stamp_ranks.side_effect = RuntimeError("firestore unavailable")
    monkeypatch.setattr(tasks, "_ranker", lambda: ranker)

    with pytest.raises(RuntimeError):
        tasks.refresh_user_ranks()


def test_dispatch_post_award_invalidates_cache_and_queues_refresh(monkeypatch):
    redis_client = MagicMock()
    redis_client.scan_iter.return_value = iter(["leaderboard_top:10"])
    delay = MagicMock()
    monkeypatch.setattr(tasks, "get_redis_client", lambda: redis_client)
    monkeypatch.setattr(tasks.refresh_user_ranks, "delay", delay)

    tasks.dispatch_post_award("alice", 20)

    redis_client.delete.assert_called_once_with("leaderboard_top:10")
    delay.assert_called_once_with()


def test_dispatch_post_award_survives_broker_outage(monkeypatch):
    monkeypatch.setattr(tasks, "get_redis_client", lambda: None)
    monkeypatch.setattr(tasks.refresh_user_ranks, "delay", MagicMock(side_effect=ConnectionError("no broker")))

    tasks.dispatch_post_award("alice", 20)


def test_gcs_video_store_uploads_and_returns_path():
    storage_client = MagicMock()
    blob = storage_client.bucket.return_value.blob.return_value
    store = GCSVideoStore(storage_client, "eco-videos")

    ref = store("item123", b"video", "video/mp4")

    storage_client.bucket.assert_called_once_with("eco-videos")
    blob_name = storage_client.bucket.return_value.blob.call_args.args[0]
    assert blob_name.startswith("verifications/item123/")
    blob.upload_from_string.assert_called_once_with(b"video", content_type="video/mp4")
    assert ref == f"gs://eco-videos/{blob_name}"
