"""
Analytics Engine

The single write path (``record_event``) and the single read path
(``compute_daily_series``) for jukebox usage analytics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, Callable

from jukebox.app_settings import get_settings
from jukebox.services.analytics_store import AnalyticsStore, get_analytics_store
from jukebox.services.counter_store import DOWNLOAD_FIELD, PLAY_FIELD, TrackCounter
from jukebox.services.errors import InvalidInput
from jukebox.services.event_store import (
    EVENT_DOWNLOAD,
    EVENT_KINDS,
    EVENT_PLAY,
    EVENT_VISIT,
    TRACK_EVENT_KINDS,
    UsageEvent,
)
from jukebox.services.local_time import (
    DATE_FORMAT,
    local_date,
    local_date_label,
    local_midnight_ms,
    now_ms,
    window_days,
)

logger = logging.getLogger(__name__)

_COUNTER_FIELDS = {
    EVENT_PLAY: PLAY_FIELD,
    EVENT_DOWNLOAD: DOWNLOAD_FIELD,
}


@dataclass
class DailyBucket:
    """Event counts for one local calendar day."""

    date: str
    visits: int = 0
    plays: int = 0
    downloads: int = 0

    def add(self, kind: str) -> None:
        if kind == EVENT_VISIT:
            self.visits += 1
        elif kind == EVENT_PLAY:
            self.plays += 1
        elif kind == EVENT_DOWNLOAD:
            self.downloads += 1


@dataclass
class DailySeries:
    """Chronological day buckets for a fixed window ending today."""

    buckets: list[DailyBucket]

    @property
    def labels(self) -> list[str]:
        return [bucket.date for bucket in self.buckets]

    @property
    def visits(self) -> list[int]:
        return [bucket.visits for bucket in self.buckets]

    @property
    def plays(self) -> list[int]:
        return [bucket.plays for bucket in self.buckets]

    @property
    def downloads(self) -> list[int]:
        return [bucket.downloads for bucket in self.buckets]

    def to_payload(self) -> dict[str, list[Any]]:
        """Parallel arrays aligned by index, one entry per day label."""
        return {
            "labels": self.labels,
            "visits": self.visits,
            "plays": self.plays,
            "downloads": self.downloads,
        }


def validate_track_id(track_id: Any) -> str:
    if not isinstance(track_id, str) or not track_id.strip():
        raise InvalidInput("Invalid filename.")
    return track_id


def validate_window(days: Any) -> int:
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise InvalidInput(f"Window size must be an integer >= 1, got {days!r}")
    return days


class AnalyticsEngine:
    """Records usage events and rebuilds the daily time series."""

    def __init__(
        self,
        store: AnalyticsStore,
        clock: Callable[[], int] = now_ms,
        tz: tzinfo | None = None,
    ) -> None:
        """
        Args:
            store: Initialized (or to-be-initialized) analytics store
            clock: Returns the current time in epoch milliseconds
            tz: Timezone that defines calendar days; None uses the host's
        """
        self.store = store
        self.clock = clock
        self.tz = tz

    def record_event(self, kind: str, track_id: str | None = None) -> int:
        """
        Record one usage event and bump the matching counter.

        The counter update and the event append are one transaction: either
        both are applied or neither is.

        Args:
            kind: visit, play or download
            track_id: Track filename; required for play and download, ignored
                for visit

        Returns:
            The counter value after the increment

        Raises:
            InvalidInput: Unknown kind or missing/blank track_id (no mutation)
            NotReady: The store is not initialized
        """
        if kind not in EVENT_KINDS:
            raise InvalidInput(f"Unknown event kind: {kind!r}")
        if kind in TRACK_EVENT_KINDS:
            track_id = validate_track_id(track_id)
        else:
            track_id = None

        with self.store.transaction() as store:
            if kind == EVENT_VISIT:
                count = store.increment_visits()
            else:
                count = store.increment_track(track_id, _COUNTER_FIELDS[kind])
            store.append_event(UsageEvent(kind=kind, occurred_at=self.clock(), track_id=track_id))

        if track_id is None:
            logger.info(f"Recorded {kind}: total {count}")
        else:
            logger.info(f"Recorded {kind} for {track_id}: {count}")
        return count

    def record_visit(self) -> int:
        return self.record_event(EVENT_VISIT)

    def record_play(self, track_id: str | None) -> int:
        return self.record_event(EVENT_PLAY, track_id)

    def record_download(self, track_id: str | None) -> int:
        return self.record_event(EVENT_DOWNLOAD, track_id)

    def compute_daily_series(self, days: int) -> DailySeries:
        """
        Bucket recent events by local calendar day.

        Args:
            days: Window size; the window ends today and starts days - 1
                days earlier

        Returns:
            DailySeries with one zero-filled bucket per day, oldest first
        """
        days = validate_window(days)
        with self.store.reading() as store:
            now = self.clock()
            window = window_days(local_date(now, self.tz), days)
            labels = [day.strftime(DATE_FORMAT) for day in window]
            buckets = {label: DailyBucket(label) for label in labels}
            start = local_midnight_ms(window[0], self.tz)
            recent = store.events.query_range(start)

            dropped = 0
            for event in recent:
                bucket = buckets.get(local_date_label(event.occurred_at, self.tz))
                if bucket is None:
                    dropped += 1
                    continue
                bucket.add(event.kind)

        logger.debug(
            f"Aggregated {len(recent) - dropped} events over the last {days} days"
            + (f" ({dropped} outside the window)" if dropped else "")
        )
        return DailySeries(buckets=list(buckets.values()))

    def snapshot_counters(self) -> tuple[int, list[TrackCounter]]:
        """Total visits and a copy of every track counter, read together."""
        with self.store.reading() as store:
            return store.counters.total_visits, store.counters.list_tracks()


# Singleton instance
_engine: AnalyticsEngine | None = None


def get_analytics_engine() -> AnalyticsEngine:
    """Get the singleton AnalyticsEngine bound to the current store."""
    global _engine
    store = get_analytics_store()
    if _engine is None or _engine.store is not store:
        _engine = AnalyticsEngine(store, tz=get_settings().timezone)
    return _engine
