"""
Analytics Errors

Exception types raised by the analytics stores and engine.
"""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for analytics failures."""


class InvalidInput(AnalyticsError, ValueError):
    """A recording or query call was given a malformed or missing field."""


class NotReady(AnalyticsError):
    """The analytics store has not been initialized (or was closed)."""


class PersistenceFailure(AnalyticsError):
    """Loading or flushing the analytics snapshot failed."""


class StoreInconsistency(AnalyticsError):
    """Counters disagree with a recount of the event log."""
