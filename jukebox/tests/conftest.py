from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from jukebox.services.analytics_engine import AnalyticsEngine
from jukebox.services.analytics_store import AnalyticsStore
from jukebox.services.reporting import ReportingService

UTC = ZoneInfo("UTC")


def to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class FakeClock:
    """Settable clock returning epoch milliseconds."""

    def __init__(self, moment: datetime) -> None:
        self.now = to_ms(moment)

    def __call__(self) -> int:
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = to_ms(moment)

    def advance(self, **kwargs: float) -> None:
        self.now += int(timedelta(**kwargs).total_seconds() * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> AnalyticsStore:
    analytics_store = AnalyticsStore()
    analytics_store.init()
    yield analytics_store
    analytics_store.close()


@pytest.fixture
def engine(store: AnalyticsStore, clock: FakeClock) -> AnalyticsEngine:
    return AnalyticsEngine(store, clock=clock, tz=UTC)


@pytest.fixture
def reporting(engine: AnalyticsEngine) -> ReportingService:
    return ReportingService(engine)
