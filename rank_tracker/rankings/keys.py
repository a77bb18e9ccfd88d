"""Grouping keys that decide when two observations count as the same measurement.

All keys are case-insensitive on keyword and territory. Minute and window keys
are computed on the UTC instant.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from rank_tracker.rankings.observation import Observation

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ExactKey = tuple[str, str, int, str]
MinuteKey = tuple[str, str, int, int, int, int, int, int]
WindowKey = tuple[str, str, int]


def exact_key(observation: Observation) -> ExactKey:
    return (
        observation.keyword_key,
        observation.territory,
        observation.position,
        observation.timestamp.isoformat(),
    )


def minute_key(observation: Observation) -> MinuteKey:
    ts = observation.timestamp
    return (
        observation.keyword_key,
        observation.territory,
        observation.position,
        ts.year,
        ts.month,
        ts.day,
        ts.hour,
        ts.minute,
    )


def window_key(observation: Observation, window_size_minutes: int = 5) -> WindowKey:
    """Floor the instant into fixed windows; position is deliberately not part of the key."""
    if window_size_minutes < 1:
        raise ValueError("window_size_minutes must be >= 1")
    window_ms = window_size_minutes * 60 * 1000
    epoch_ms = (observation.timestamp - _EPOCH) // timedelta(milliseconds=1)
    return (observation.keyword_key, observation.territory, epoch_ms // window_ms)
