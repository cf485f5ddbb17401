"""
Reporting Service

Shapes analytics into the payloads the jukebox API returns: the on-disk track
list merged with counters, and the stats page payload.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable

from jukebox.services.analytics_engine import (
    AnalyticsEngine,
    get_analytics_engine,
    validate_window,
)
from jukebox.services.counter_store import TrackCounter
from jukebox.services.local_time import local_date_label
from jukebox.services.stats_cache import StatsCache

logger = logging.getLogger(__name__)


def _popularity_order(track: TrackCounter) -> tuple[int, str]:
    return (-track.play_count, track.track_id)


class ReportingService:
    """Builds track listings and stats payloads from the analytics engine."""

    def __init__(self, engine: AnalyticsEngine, cache: StatsCache | None = None) -> None:
        self.engine = engine
        self.cache = cache if cache is not None else StatsCache()

    def build_track_list(self, files_on_disk: Iterable[str]) -> list[TrackCounter]:
        """
        Merge the on-disk track names with their counters.

        Disk presence decides membership: tracks never counted appear with zero
        counts, counted tracks missing from disk are left out.

        Args:
            files_on_disk: Track filenames currently in the music directory

        Returns:
            Counters sorted by play count (desc), then filename (asc)
        """
        with self.engine.store.reading() as store:
            merged: dict[str, TrackCounter] = {}
            for track_id in files_on_disk:
                if track_id in merged:
                    continue
                existing = store.counters.get_track(track_id)
                merged[track_id] = TrackCounter(
                    track_id=track_id,
                    play_count=existing.play_count if existing else 0,
                    download_count=existing.download_count if existing else 0,
                )

        tracks = sorted(merged.values(), key=_popularity_order)
        logger.debug(f"Built track list with {len(tracks)} tracks")
        return tracks

    def build_stats_payload(self, days: int) -> dict[str, Any]:
        """
        Assemble totals, the per-track table and the daily series.

        Args:
            days: Window size for the daily series

        Returns:
            Dict with totalVisits, tracks and dailyData; the caller owns it
            and may modify it without affecting the cached copy
        """
        days = validate_window(days)
        with self.engine.store.reading() as store:
            today = local_date_label(self.engine.clock(), self.engine.tz)
            key = f"stats:{days}:{store.revision}:{today}"
            hit, payload = self.cache.get(key)
            if hit:
                logger.debug(f"Cache hit for stats window {days}")
                return copy.deepcopy(payload)

            total_visits, tracks = self.engine.snapshot_counters()
            series = self.engine.compute_daily_series(days)

        payload = {
            "totalVisits": total_visits,
            "tracks": [track.to_payload() for track in sorted(tracks, key=_popularity_order)],
            "dailyData": series.to_payload(),
        }
        self.cache.set(key, payload)
        return copy.deepcopy(payload)


# Singleton instance
_reporting: ReportingService | None = None


def get_reporting_service() -> ReportingService:
    """Get the singleton ReportingService bound to the current engine."""
    global _reporting
    engine = get_analytics_engine()
    if _reporting is None or _reporting.engine is not engine:
        _reporting = ReportingService(engine)
    return _reporting
