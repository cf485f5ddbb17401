"""
Analytics Snapshot File

JSON persistence for the analytics store. The whole store is written as one
document, atomically, so counters and events on disk always come from the
same instant.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jukebox.services.counter_store import TrackCounter
from jukebox.services.errors import PersistenceFailure
from jukebox.services.event_store import EVENT_KINDS, TRACK_EVENT_KINDS, UsageEvent

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
SNAPSHOT_KEYS = ("version", "total_visits", "tracks", "events")

# Collections written by the previous LokiJS-based server
LOKI_FORMAT = "lokijs"
LOKI_PLAYS = "plays"
LOKI_STATS = "stats"
LOKI_EVENTS = "events"
LOKI_TOTAL_VISITS = "totalVisits"


@dataclass
class Snapshot:
    """Decoded snapshot contents."""

    total_visits: int = 0
    tracks: list[TrackCounter] = field(default_factory=list)
    events: list[UsageEvent] = field(default_factory=list)
    imported_from: str | None = None


def _count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _parse_tracks(raw_tracks: Any) -> list[TrackCounter]:
    tracks: list[TrackCounter] = []
    if not isinstance(raw_tracks, list):
        return tracks
    for raw in raw_tracks:
        if not isinstance(raw, dict):
            continue
        track_id = raw.get("filename")
        if not isinstance(track_id, str) or not track_id:
            logger.warning(f"Skipping track record without a filename: {raw!r}")
            continue
        # Older snapshots may lack one of the counts
        tracks.append(
            TrackCounter(
                track_id=track_id,
                play_count=_count(raw.get("play_count")),
                download_count=_count(raw.get("download_count")),
            )
        )
    return tracks


def _parse_events(raw_events: Any) -> list[UsageEvent]:
    events: list[UsageEvent] = []
    if not isinstance(raw_events, list):
        return events
    skipped = 0
    for raw in raw_events:
        if not isinstance(raw, dict):
            skipped += 1
            continue
        kind = raw.get("type")
        timestamp = raw.get("timestamp")
        track_id = raw.get("filename")
        if kind not in EVENT_KINDS or isinstance(timestamp, bool) or not isinstance(timestamp, int):
            skipped += 1
            continue
        if kind in TRACK_EVENT_KINDS:
            if not isinstance(track_id, str) or not track_id:
                skipped += 1
                continue
        else:
            track_id = None
        events.append(UsageEvent(kind=kind, occurred_at=timestamp, track_id=track_id))
    if skipped:
        logger.warning(f"Skipped {skipped} malformed event records while loading snapshot")
    return events


def _from_loki(path: Path, raw_collections: list[Any]) -> Snapshot:
    """Import a database file saved by the LokiJS server."""
    collections: dict[str, Any] = {}
    for collection in raw_collections:
        if isinstance(collection, dict) and isinstance(collection.get("name"), str):
            collections[collection["name"]] = collection.get("data")

    total_visits = 0
    stats_docs = collections.get(LOKI_STATS)
    for doc in stats_docs if isinstance(stats_docs, list) else []:
        if isinstance(doc, dict) and doc.get("type") == LOKI_TOTAL_VISITS:
            total_visits = _count(doc.get("count"))
            break

    snapshot = Snapshot(
        total_visits=total_visits,
        tracks=_parse_tracks(collections.get(LOKI_PLAYS)),
        events=_parse_events(collections.get(LOKI_EVENTS)),
        imported_from=LOKI_FORMAT,
    )
    logger.info(
        f"Imported LokiJS database {path}: {total_visits} visits, "
        f"{len(snapshot.tracks)} tracks, {len(snapshot.events)} events"
    )
    return snapshot


def backup_snapshot(path: Path, suffix: str) -> Path:
    """
    Copy the snapshot file aside before it is replaced.

    Returns:
        Path of the copy

    Raises:
        PersistenceFailure: The copy could not be made
    """
    backup = path.with_name(f"{path.name}.{suffix}.bak")
    try:
        shutil.copy2(path, backup)
    except OSError as exc:
        raise PersistenceFailure(f"Could not back up {path} to {backup}: {exc}") from exc
    logger.info(f"Backed up {path} to {backup}")
    return backup


def read_snapshot(path: Path) -> Snapshot:
    """
    Load a snapshot from disk.

    Args:
        path: Snapshot file location

    Returns:
        The decoded snapshot; an empty one if the file does not exist. A
        LokiJS database from the previous server is imported.

    Raises:
        PersistenceFailure: The file exists but cannot be read, or is JSON
            that is neither a snapshot nor a LokiJS database
    """
    if not path.exists():
        logger.info(f"No analytics snapshot at {path}, starting empty")
        return Snapshot()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise PersistenceFailure(f"Could not read analytics snapshot {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise PersistenceFailure(f"Analytics snapshot {path} is not a JSON object")
    if isinstance(data.get("collections"), list):
        return _from_loki(path, data["collections"])
    if not any(key in data for key in SNAPSHOT_KEYS):
        raise PersistenceFailure(
            f"{path} is a JSON object but not an analytics snapshot; refusing to load it"
        )

    version = data.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        logger.warning(f"Snapshot {path} has version {version}, expected {SNAPSHOT_VERSION}")

    return Snapshot(
        total_visits=_count(data.get("total_visits")),
        tracks=_parse_tracks(data.get("tracks")),
        events=_parse_events(data.get("events")),
    )


def encode_snapshot(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "saved_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
        "total_visits": snapshot.total_visits,
        "tracks": [
            {
                "filename": track.track_id,
                "play_count": track.play_count,
                "download_count": track.download_count,
            }
            for track in snapshot.tracks
        ],
        "events": [event.to_record() for event in snapshot.events],
    }


def write_snapshot(path: Path, snapshot: Snapshot) -> None:
    """
    Atomically replace the snapshot file.

    Raises:
        PersistenceFailure: The document could not be written
    """
    payload = json.dumps(encode_snapshot(snapshot), ensure_ascii=True)
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            handle.write(payload + "\n")
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise PersistenceFailure(f"Could not write analytics snapshot {path}: {exc}") from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
