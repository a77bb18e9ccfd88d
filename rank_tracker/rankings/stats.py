from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from rank_tracker.core.config import TREND_LOOKBACK
from rank_tracker.rankings.dedup import partition
from rank_tracker.rankings.observation import Observation, format_timestamp
from rank_tracker.rankings.territory import territory_label

TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"
TREND_NEW = "new"


@dataclass(frozen=True)
class KeywordStats:
    keyword: str | None
    territory: str | None
    current_position: int | None
    previous_position: int | None
    trend: str | None
    best_position: int | None
    worst_position: int | None
    timestamp: datetime | None = None
    previous_timestamp: datetime | None = None
    change: int | None = None
    lookback_change: int | None = None
    lookback_position: int | None = None
    observation_count: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "territory": self.territory,
            "territoryLabel": territory_label(self.territory) if self.territory else None,
            "currentPosition": self.current_position,
            "previousPosition": self.previous_position,
            "trend": self.trend,
            "bestPosition": self.best_position,
            "worstPosition": self.worst_position,
            "timestamp": format_timestamp(self.timestamp) if self.timestamp else None,
            "previousTimestamp": (
                format_timestamp(self.previous_timestamp) if self.previous_timestamp else None
            ),
            "change": self.change,
            "lookbackChange": self.lookback_change,
            "lookbackPosition": self.lookback_position,
            "observationCount": self.observation_count,
        }


def classify_trend(current: int, previous: int | None) -> str:
    if previous is None:
        return TREND_NEW
    if current < previous:
        return TREND_UP
    if current > previous:
        return TREND_DOWN
    return TREND_STABLE


def compute_stats(series: Iterable[Observation], *, lookback: int = TREND_LOOKBACK) -> KeywordStats:
    """Derive current/best/worst and trend for one canonical series.

    Lower positions are better, so a drop in position number is an ``up``
    trend. ``change`` and ``lookback_change`` are ``previous - current``:
    positive means the playlist climbed.
    """
    ordered = sorted(series, key=lambda item: item.timestamp)
    if not ordered:
        return KeywordStats(
            keyword=None,
            territory=None,
            current_position=None,
            previous_position=None,
            trend=None,
            best_position=None,
            worst_position=None,
        )

    latest = ordered[-1]
    previous = ordered[-2] if len(ordered) > 1 else None
    positions = [item.position for item in ordered]
    previous_position = previous.position if previous else None

    baseline_index = max(len(ordered) - 1 - lookback, 0)
    baseline = ordered[baseline_index]
    lookback_change = baseline.position - latest.position if baseline is not latest else None

    return KeywordStats(
        keyword=latest.keyword,
        territory=latest.territory,
        current_position=latest.position,
        previous_position=previous_position,
        trend=classify_trend(latest.position, previous_position),
        best_position=min(positions),
        worst_position=max(positions),
        timestamp=latest.timestamp,
        previous_timestamp=previous.timestamp if previous else None,
        change=previous_position - latest.position if previous else None,
        lookback_change=lookback_change,
        lookback_position=baseline.position if baseline is not latest else None,
        observation_count=len(ordered),
    )


def compute_playlist_stats(
    observations: Iterable[Observation], *, lookback: int = TREND_LOOKBACK
) -> list[KeywordStats]:
    """One stats row per (keyword, territory), most recently observed first."""
    stats = [
        compute_stats(members, lookback=lookback)
        for members in partition(observations).values()
    ]
    return sorted(stats, key=lambda item: item.timestamp, reverse=True)
