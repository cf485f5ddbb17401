"""Tests for the track list and stats payload."""

from jukebox.services.local_time import local_date_label

from conftest import UTC


def _names(tracks):
    return [track.track_id for track in tracks]


def test_ties_break_by_filename(engine, reporting):
    for track_id, plays in (("B", 5), ("C", 3), ("A", 5)):
        for _ in range(plays):
            engine.record_play(track_id)

    tracks = reporting.build_track_list(["C", "B", "A"])

    assert _names(tracks) == ["A", "B", "C"]
    assert [track.play_count for track in tracks] == [5, 5, 3]


def test_disk_listing_decides_membership(engine, reporting):
    engine.record_play("gone")
    engine.record_download("gone")
    engine.record_play("kept")

    tracks = reporting.build_track_list(["kept", "new"])

    assert [track.to_payload() for track in tracks] == [
        {"filename": "kept", "play_count": 1, "download_count": 0},
        {"filename": "new", "play_count": 0, "download_count": 0},
    ]


def test_duplicate_disk_entries_collapse(reporting):
    tracks = reporting.build_track_list(["songA", "songA"])

    assert _names(tracks) == ["songA"]


def test_empty_disk_listing(engine, reporting):
    engine.record_play("songA")

    assert reporting.build_track_list([]) == []


def test_track_list_does_not_create_counters(reporting, store):
    reporting.build_track_list(["songA"])

    assert store.counters.get_track("songA") is None


def test_end_to_end_scenario(engine, reporting, clock):
    engine.record_visit()
    engine.record_play("songA")
    engine.record_download("songA")
    engine.record_download("songA")
    engine.record_play("songB")

    payload = reporting.build_stats_payload(1)

    assert payload["totalVisits"] == 1
    assert payload["tracks"] == [
        {"filename": "songA", "play_count": 1, "download_count": 2},
        {"filename": "songB", "play_count": 1, "download_count": 0},
    ]
    assert payload["dailyData"] == {
        "labels": [local_date_label(clock.now, UTC)],
        "visits": [1],
        "plays": [2],
        "downloads": [2],
    }


def test_stats_tracks_sorted_by_plays(engine, reporting):
    engine.record_download("quiet")
    engine.record_play("loud")
    engine.record_play("loud")

    payload = reporting.build_stats_payload(7)

    assert [track["filename"] for track in payload["tracks"]] == ["loud", "quiet"]


def test_stats_payload_reflects_new_writes(engine, reporting):
    engine.record_visit()
    first = reporting.build_stats_payload(7)
    again = reporting.build_stats_payload(7)

    engine.record_visit()
    after_write = reporting.build_stats_payload(7)

    assert again == first
    assert reporting.cache.get_stats()["hits"] == 1
    assert first["totalVisits"] == 1
    assert after_write["totalVisits"] == 2
    assert after_write["dailyData"]["visits"][-1] == 2


def test_stats_payload_rolls_over_at_midnight(engine, reporting, clock):
    engine.record_visit()
    before = reporting.build_stats_payload(2)

    clock.advance(days=1)
    after = reporting.build_stats_payload(2)

    assert after["dailyData"]["labels"][0] == before["dailyData"]["labels"][1]
    assert after["dailyData"]["visits"] == [1, 0]


def test_empty_store_payload(reporting):
    payload = reporting.build_stats_payload(7)

    assert payload["totalVisits"] == 0
    assert payload["tracks"] == []
    assert payload["dailyData"]["visits"] == [0] * 7
    assert len(payload["dailyData"]["labels"]) == 7


def test_cached_payload_is_not_shared_with_callers(engine, reporting):
    engine.record_play("songA")
    first = reporting.build_stats_payload(7)
    first["tracks"].clear()
    first["dailyData"]["plays"][-1] = 99

    again = reporting.build_stats_payload(7)
    again["totalVisits"] = 5

    assert reporting.cache.get_stats()["hits"] == 1
    assert again["tracks"] == [{"filename": "songA", "play_count": 1, "download_count": 0}]
    assert again["dailyData"]["plays"][-1] == 1
    assert reporting.build_stats_payload(7)["totalVisits"] == 0
