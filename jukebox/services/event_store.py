"""
Usage Event Store

Append-only log of timestamped visit/play/download events, kept sorted by
timestamp so recent-window queries are a binary search instead of a scan.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Any, Iterator

EVENT_VISIT = "visit"
EVENT_PLAY = "play"
EVENT_DOWNLOAD = "download"

EVENT_KINDS = {EVENT_VISIT, EVENT_PLAY, EVENT_DOWNLOAD}
TRACK_EVENT_KINDS = {EVENT_PLAY, EVENT_DOWNLOAD}


@dataclass(frozen=True)
class UsageEvent:
    """A single usage event. ``occurred_at`` is epoch milliseconds."""

    kind: str
    occurred_at: int
    track_id: str | None = None

    def to_record(self) -> dict[str, Any]:
        """Serialize for the JSON snapshot."""
        record: dict[str, Any] = {"type": self.kind, "timestamp": self.occurred_at}
        if self.track_id is not None:
            record["filename"] = self.track_id
        return record


class EventStore:
    """Sorted, append-only event log."""

    def __init__(self) -> None:
        self._events: list[UsageEvent] = []
        # Parallel to _events; bisect runs on this list
        self._timestamps: list[int] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[UsageEvent]:
        return iter(list(self._events))

    def append(self, event: UsageEvent) -> None:
        """Insert an event at its position in timestamp order."""
        if not self._timestamps or event.occurred_at >= self._timestamps[-1]:
            self._events.append(event)
            self._timestamps.append(event.occurred_at)
            return
        index = bisect.bisect_right(self._timestamps, event.occurred_at)
        self._events.insert(index, event)
        self._timestamps.insert(index, event.occurred_at)

    def query_range(
        self,
        from_inclusive: int,
        to_inclusive: int | None = None,
    ) -> list[UsageEvent]:
        """
        Return events whose timestamp lies in a closed interval.

        Args:
            from_inclusive: Lower bound in epoch milliseconds
            to_inclusive: Upper bound in epoch milliseconds, or None for no bound

        Returns:
            Matching events in timestamp order
        """
        start = bisect.bisect_left(self._timestamps, from_inclusive)
        if to_inclusive is None:
            return self._events[start:]
        end = bisect.bisect_right(self._timestamps, to_inclusive)
        return self._events[start:end]

    def count(self, kind: str, track_id: str | None = None) -> int:
        """Count events of ``kind``, optionally restricted to one track."""
        return sum(
            1
            for event in self._events
            if event.kind == kind and (track_id is None or event.track_id == track_id)
        )

    def rollback_append(self, event: UsageEvent) -> None:
        """Discard an event appended by a transaction that failed."""
        for index in range(len(self._events) - 1, -1, -1):
            if self._events[index] is event:
                del self._events[index]
                del self._timestamps[index]
                return
