"""HTTP contract tests for the jukebox API."""

from __future__ import annotations

import asyncio
import json
import unittest
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from jukebox.api.app import app
from jukebox.app_settings import get_settings
from jukebox.services.analytics_engine import get_analytics_engine
from jukebox.services.analytics_store import AnalyticsStore, set_analytics_store
from jukebox.services.local_time import local_date_label, now_ms


@pytest.fixture
def music_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "music"
    directory.mkdir()
    for name in ("songA.mp3", "songB.mp3", "cover.jpg"):
        (directory / name).write_bytes(b"")
    return directory


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "jukebox.db.json"


@pytest.fixture
def client(music_dir: Path, db_path: Path, monkeypatch):
    monkeypatch.setenv("JUKEBOX_MUSIC_DIR", str(music_dir))
    monkeypatch.setenv("JUKEBOX_DB_PATH", str(db_path))
    monkeypatch.setenv("JUKEBOX_AUTOSAVE_INTERVAL", "0")
    monkeypatch.setenv("JUKEBOX_STATS_DAYS", "7")
    monkeypatch.setenv("JUKEBOX_PLAYLIST_PREFIX_FILTER", "Tuesday Boys")
    monkeypatch.delenv("JUKEBOX_TIMEZONE", raising=False)
    get_settings.cache_clear()
    set_analytics_store(None)
    with TestClient(app) as test_client:
        yield test_client
    set_analytics_store(None)
    get_settings.cache_clear()


def test_visit_play_download_and_stats(client: TestClient):
    assert client.post("/api/trackvisit").json()["totalVisits"] == 1

    response = client.post("/api/trackplay", json={"filename": "songA"})
    assert response.status_code == 200
    assert response.json() == {"message": "Play tracked.", "play_count": 1}

    for expected in (1, 2):
        response = client.post("/api/trackdownload", json={"filename": "songA"})
        assert response.json()["download_count"] == expected
    client.post("/api/trackplay", json={"filename": "songB"})

    stats = client.get("/api/stats", params={"days": 1}).json()

    assert stats["totalVisits"] == 1
    assert stats["tracks"] == [
        {"filename": "songA", "play_count": 1, "download_count": 2},
        {"filename": "songB", "play_count": 1, "download_count": 0},
    ]
    assert stats["dailyData"] == {
        "labels": [local_date_label(now_ms())],
        "visits": [1],
        "plays": [2],
        "downloads": [2],
    }


def test_stats_uses_configured_window(client: TestClient):
    stats = client.get("/api/stats").json()

    assert len(stats["dailyData"]["labels"]) == 7
    assert stats["dailyData"]["labels"][-1] == local_date_label(now_ms())


@pytest.mark.parametrize(
    "body",
    [{"filename": ""}, {"filename": "   "}, {}, {"filename": None}, {"filename": 42}, None],
)
def test_invalid_filename_is_400(client: TestClient, body):
    for path in ("/api/trackplay", "/api/trackdownload"):
        response = client.post(path, json=body)
        assert response.status_code == 400

    assert client.get("/api/stats").json()["tracks"] == []


def test_music_list_merges_disk_and_counts(client: TestClient):
    client.post("/api/trackplay", json={"filename": "songB"})
    client.post("/api/trackplay", json={"filename": "removed"})

    response = client.get("/api/music")

    assert response.status_code == 200
    assert response.json() == [
        {"filename": "songB", "play_count": 1, "download_count": 0},
        {"filename": "songA", "play_count": 0, "download_count": 0},
    ]


def test_music_list_without_directory(client: TestClient, music_dir: Path):
    for entry in music_dir.iterdir():
        entry.unlink()
    music_dir.rmdir()

    assert client.get("/api/music").json() == []


def test_client_config(client: TestClient):
    assert client.get("/api/config").json() == {
        "playlistPrefixFilter": "Tuesday Boys",
        "debugLogging": False,
    }


def test_records_are_persisted(client: TestClient, db_path: Path):
    client.post("/api/trackvisit")
    client.post("/api/trackplay", json={"filename": "songA"})

    data = json.loads(db_path.read_text(encoding="utf-8"))
    assert data["total_visits"] == 1
    assert data["tracks"] == [{"filename": "songA", "play_count": 1, "download_count": 0}]


def test_health(client: TestClient):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["store"]["ready"] is True


def test_unsaved_record_is_reported(client: TestClient, tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = AnalyticsStore(blocker / "jukebox.db.json", autosave_interval=0)
    store.init()
    set_analytics_store(store)

    response = client.post("/api/trackplay", json={"filename": "songA"})

    assert response.status_code == 200
    assert response.json()["play_count"] == 1
    assert "warning" in response.json()

    health = client.get("/health").json()
    assert health["status"] == "degraded"
    assert health["store"]["persistence_error"]

    stats = client.get("/api/stats", params={"days": 1}).json()
    assert stats["tracks"] == [{"filename": "songA", "play_count": 1, "download_count": 0}]
    assert stats["dailyData"]["plays"] == [1]


def test_saved_record_has_no_warning(client: TestClient):
    response = client.post("/api/trackvisit")

    assert "warning" not in response.json()


def test_recording_runs_in_worker_thread(client: TestClient, monkeypatch):
    engine = get_analytics_engine()
    record_play = engine.record_play
    seen: list[str] = []

    def tracked_record_play(track_id):
        try:
            asyncio.get_running_loop()
            seen.append("event loop")
        except RuntimeError:
            seen.append("worker")
        return record_play(track_id)

    monkeypatch.setattr(engine, "record_play", tracked_record_play)

    assert client.post("/api/trackplay", json={"filename": "songA"}).json()["play_count"] == 1
    assert seen == ["worker"]


class NotReadyTest(unittest.TestCase):
    """Without the startup hook the store is never initialized."""

    def setUp(self) -> None:
        set_analytics_store(AnalyticsStore())
        self.client = TestClient(app)

    def tearDown(self) -> None:
        set_analytics_store(None)

    def test_routes_answer_503(self) -> None:
        self.assertEqual(self.client.post("/api/trackvisit").status_code, 503)
        self.assertEqual(
            self.client.post("/api/trackplay", json={"filename": "songA"}).status_code,
            503,
        )
        self.assertEqual(self.client.get("/api/stats").status_code, 503)
        self.assertEqual(self.client.get("/api/music").status_code, 503)

    def test_validation_still_comes_first(self) -> None:
        response = self.client.post("/api/trackplay", json={"filename": ""})
        self.assertEqual(response.status_code, 400)
