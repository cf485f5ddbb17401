"""
Counter Store

Cumulative per-track play/download counters and the global visit counter.
These are a cached reduction of the event log.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

PLAY_FIELD = "play_count"
DOWNLOAD_FIELD = "download_count"


@dataclass
class TrackCounter:
    """Running totals for one track, keyed by its exact filename."""

    track_id: str
    play_count: int = 0
    download_count: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "filename": self.track_id,
            "play_count": self.play_count,
            "download_count": self.download_count,
        }


class CounterStore:
    """Per-track counters plus the singleton visit total."""

    def __init__(self, total_visits: int = 0) -> None:
        self._tracks: dict[str, TrackCounter] = {}
        self._total_visits = total_visits

    @property
    def total_visits(self) -> int:
        return self._total_visits

    def get_track(self, track_id: str) -> TrackCounter | None:
        """Look up a track without creating it."""
        return self._tracks.get(track_id)

    def get_or_create_track(self, track_id: str) -> TrackCounter:
        """
        Return the counter for ``track_id``, creating it with zero counts.

        Keys are matched exactly: case-sensitive, no whitespace normalization.
        """
        counter = self._tracks.get(track_id)
        if counter is None:
            counter = TrackCounter(track_id=track_id)
            self._tracks[track_id] = counter
        return counter

    def load_track(self, track_id: str, play_count: int, download_count: int) -> TrackCounter:
        """Restore a counter from persisted state."""
        counter = TrackCounter(track_id, play_count, download_count)
        self._tracks[track_id] = counter
        return counter

    def increment_play(self, track_id: str) -> int:
        counter = self.get_or_create_track(track_id)
        counter.play_count += 1
        return counter.play_count

    def increment_download(self, track_id: str) -> int:
        counter = self.get_or_create_track(track_id)
        counter.download_count += 1
        return counter.download_count

    def increment_visits(self) -> int:
        self._total_visits += 1
        return self._total_visits

    def list_tracks(self) -> list[TrackCounter]:
        """Copies of all known counters, unordered."""
        return [replace(counter) for counter in self._tracks.values()]

    def rollback_increment(self, track_id: str, field: str, created: bool) -> None:
        """Undo one increment made by a transaction that failed."""
        if created:
            self._tracks.pop(track_id, None)
            return
        counter = self._tracks[track_id]
        setattr(counter, field, getattr(counter, field) - 1)

    def rollback_visit(self) -> None:
        self._total_visits -= 1
