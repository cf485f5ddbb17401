"""
Analytics Store

Owns the event log and the counters behind one lock. Provides the
init/flush/close lifecycle, the transaction wrapper every write goes through,
and periodic snapshot persistence.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterator

from jukebox.app_settings import get_settings
from jukebox.services.counter_store import DOWNLOAD_FIELD, PLAY_FIELD, CounterStore
from jukebox.services.errors import NotReady, PersistenceFailure, StoreInconsistency
from jukebox.services.event_store import (
    EVENT_DOWNLOAD,
    EVENT_PLAY,
    EVENT_VISIT,
    EventStore,
    UsageEvent,
)
from jukebox.services.snapshot import Snapshot, backup_snapshot, read_snapshot, write_snapshot

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_INTERVAL = 4.0


class AnalyticsStore:
    """
    Event log plus counters, kept consistent as a single unit.

    Every mutation runs inside ``transaction()``. Each mutating call records an
    undo step in the transaction journal; if the block raises, the journal is
    replayed in reverse so the log and the counters never disagree.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
    ) -> None:
        """
        Create an uninitialized store.

        Args:
            path: Snapshot file, or None for a purely in-memory store
            autosave_interval: Seconds between background flushes; <= 0 flushes
                after every committed transaction
        """
        self.path = Path(path).expanduser() if path is not None else None
        self.autosave_interval = autosave_interval
        self.events = EventStore()
        self.counters = CounterStore()
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._ready = False
        self._dirty = False
        self._revision = 0
        self._journal: list[Callable[[], None]] | None = None
        self._autosave: AutosaveWorker | None = None
        self._persistence_error: str | None = None

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def revision(self) -> int:
        """Number of committed transactions since init."""
        return self._revision

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def persistence_error(self) -> str | None:
        """Message of the last failed flush, cleared by the next success."""
        return self._persistence_error

    @property
    def write_through(self) -> bool:
        return self.path is not None and self.autosave_interval <= 0

    # Lifecycle

    def init(self) -> None:
        """
        Load the snapshot (if any) and mark the store ready.

        Raises:
            PersistenceFailure: The snapshot exists but is unreadable, is not
                a snapshot, or an imported database could not be backed up
        """
        with self._lock:
            if self._ready:
                return
            snapshot = read_snapshot(self.path) if self.path is not None else Snapshot()
            if snapshot.imported_from is not None:
                backup_snapshot(self.path, snapshot.imported_from)

            counters = CounterStore(total_visits=snapshot.total_visits)
            for track in snapshot.tracks:
                counters.load_track(track.track_id, track.play_count, track.download_count)
            events = EventStore()
            for event in snapshot.events:
                events.append(event)

            self.counters = counters
            self.events = events
            self._dirty = False
            self._revision = 0
            self._ready = True

            mismatches = self._find_mismatches()
            if mismatches:
                logger.warning(
                    f"Loaded snapshot counters disagree with the event log in "
                    f"{len(mismatches)} place(s): {mismatches[:5]}"
                )
            logger.info(
                f"Analytics store ready ({len(events)} events, "
                f"{len(snapshot.tracks)} tracks, {counters.total_visits} visits)"
            )

        if self.path is not None and self.autosave_interval > 0:
            self._autosave = AutosaveWorker(self, self.autosave_interval)
            self._autosave.start()

    def flush(self) -> bool:
        """
        Write the current state to the snapshot file if it changed.

        Returns:
            True if a snapshot was written

        Raises:
            NotReady: The store was never initialized
            PersistenceFailure: The write failed; in-memory state is unaffected
        """
        if self.path is None:
            return False
        with self._flush_lock:
            with self._lock:
                self.require_ready()
                if not self._dirty:
                    return False
                snapshot = Snapshot(
                    total_visits=self.counters.total_visits,
                    tracks=self.counters.list_tracks(),
                    events=list(self.events),
                )
                revision = self._revision

            try:
                write_snapshot(self.path, snapshot)
            except PersistenceFailure as exc:
                self._persistence_error = str(exc)
                raise

            with self._lock:
                self._persistence_error = None
                if self._revision == revision:
                    self._dirty = False

        logger.debug(f"Flushed analytics snapshot at revision {revision} to {self.path}")
        return True

    def close(self) -> None:
        """Stop autosave, write a final snapshot and mark the store not ready."""
        if self._autosave is not None:
            self._autosave.stop()
            self._autosave = None
        if not self._ready:
            return
        try:
            self.flush()
        except PersistenceFailure as exc:
            logger.error(f"Final analytics flush failed: {exc}")
        with self._lock:
            self._ready = False
        logger.info("Analytics store closed")

    def require_ready(self) -> None:
        if not self._ready:
            raise NotReady("Analytics store is initializing, please try again shortly.")

    # Transactions

    @contextmanager
    def transaction(self) -> Iterator["AnalyticsStore"]:
        """Run a block of mutations as one unit; roll all of them back on error."""
        with self._lock:
            self.require_ready()
            if self._journal is not None:
                raise RuntimeError("Nested analytics transactions are not supported")
            journal: list[Callable[[], None]] = []
            self._journal = journal
            try:
                yield self
            except BaseException:
                for undo in reversed(journal):
                    undo()
                raise
            finally:
                self._journal = None
            self._revision += 1
            self._dirty = True

        if self.write_through:
            self._flush_quietly()

    @contextmanager
    def reading(self) -> Iterator["AnalyticsStore"]:
        """Hold the lock for a consistent read of both stores."""
        with self._lock:
            self.require_ready()
            yield self

    def _active_journal(self) -> list[Callable[[], None]]:
        if self._journal is None:
            raise RuntimeError("Analytics mutations must run inside transaction()")
        return self._journal

    def increment_visits(self) -> int:
        journal = self._active_journal()
        total = self.counters.increment_visits()
        journal.append(self.counters.rollback_visit)
        return total

    def increment_track(self, track_id: str, field: str) -> int:
        journal = self._active_journal()
        created = self.counters.get_track(track_id) is None
        if field == PLAY_FIELD:
            count = self.counters.increment_play(track_id)
        elif field == DOWNLOAD_FIELD:
            count = self.counters.increment_download(track_id)
        else:
            raise ValueError(f"Unknown counter field: {field}")
        journal.append(partial(self.counters.rollback_increment, track_id, field, created))
        return count

    def append_event(self, event: UsageEvent) -> None:
        journal = self._active_journal()
        self.events.append(event)
        journal.append(partial(self.events.rollback_append, event))

    def _flush_quietly(self) -> None:
        try:
            self.flush()
        except PersistenceFailure as exc:
            logger.warning(f"Analytics change kept in memory but not persisted: {exc}")

    # Consistency

    def _find_mismatches(self) -> list[str]:
        kinds: Counter[str] = Counter()
        per_track: Counter[tuple[str, str | None]] = Counter()
        for event in self.events:
            kinds[event.kind] += 1
            if event.kind != EVENT_VISIT:
                per_track[(event.kind, event.track_id)] += 1

        mismatches: list[str] = []
        if kinds[EVENT_VISIT] != self.counters.total_visits:
            mismatches.append(
                f"total_visits={self.counters.total_visits} events={kinds[EVENT_VISIT]}"
            )
        known = set()
        for track in self.counters.list_tracks():
            known.add(track.track_id)
            plays = per_track[(EVENT_PLAY, track.track_id)]
            downloads = per_track[(EVENT_DOWNLOAD, track.track_id)]
            if track.play_count != plays:
                mismatches.append(f"{track.track_id}: play_count={track.play_count} events={plays}")
            if track.download_count != downloads:
                mismatches.append(
                    f"{track.track_id}: download_count={track.download_count} events={downloads}"
                )
        for (kind, track_id), total in per_track.items():
            if track_id not in known:
                mismatches.append(f"{track_id}: {total} {kind} events without a counter")
        return mismatches

    def verify_consistency(self) -> None:
        """
        Recount the event log and compare it with the counters.

        Raises:
            StoreInconsistency: At least one counter disagrees with the log
        """
        with self.reading():
            mismatches = self._find_mismatches()
        if mismatches:
            raise StoreInconsistency("; ".join(mismatches))

    def get_stats(self) -> dict[str, Any]:
        """Store status for health reporting."""
        with self._lock:
            return {
                "ready": self._ready,
                "path": str(self.path) if self.path is not None else None,
                "events": len(self.events),
                "tracks": len(self.counters.list_tracks()),
                "total_visits": self.counters.total_visits,
                "revision": self._revision,
                "dirty": self._dirty,
                "persistence_error": self._persistence_error,
            }


class AutosaveWorker:
    """Background thread that flushes the store on a fixed interval."""

    def __init__(self, store: AnalyticsStore, interval: float) -> None:
        self.store = store
        self.interval = interval
        self._stop_event = threading.Event()
        self._worker_thread: threading.Thread | None = None

    def start(self) -> None:
        if self._worker_thread and self._worker_thread.is_alive():
            return
        self._stop_event.clear()
        self._worker_thread = threading.Thread(
            target=self._run, name="analytics-autosave", daemon=True
        )
        self._worker_thread.start()
        logger.info(f"Analytics autosave started (every {self.interval:g}s)")

    def stop(self) -> None:
        self._stop_event.set()
        if self._worker_thread:
            self._worker_thread.join(timeout=2.0)
        logger.info("Analytics autosave stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.store.flush()
            except PersistenceFailure as exc:
                logger.warning(f"Autosave failed, will retry: {exc}")
            except NotReady:
                return


# Singleton instance
_store: AnalyticsStore | None = None


def get_analytics_store() -> AnalyticsStore:
    """Get the singleton AnalyticsStore configured from settings."""
    global _store
    if _store is None:
        settings = get_settings()
        _store = AnalyticsStore(settings.db_path, settings.autosave_interval)
    return _store


def set_analytics_store(store: AnalyticsStore | None) -> None:
    """Replace the singleton store (None resets to settings on next access)."""
    global _store
    _store = store
