"""Collapse noisy, repeated ranking observations into canonical series.

Every cleanup variant (exact repeats, same-minute jitter, five-minute rank
flicker) is one ``DedupPolicy`` value fed to ``deduplicate``.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from rank_tracker.core.config import DEDUP_DEFAULT_POLICY, DEDUP_WINDOW_MINUTES
from rank_tracker.core.exceptions import ObservationError
from rank_tracker.rankings.keys import exact_key, minute_key, window_key
from rank_tracker.rankings.observation import Observation, format_timestamp
from rank_tracker.rankings.ranking_logging import log_observation_rejected

logger = logging.getLogger(__name__)

GroupKey = tuple[str, str]


class Granularity(str, Enum):
    EXACT = "exact"
    MINUTE = "minute"
    WINDOW = "window"


class Preference(str, Enum):
    LATEST = "latest"
    BEST_RANK = "best_rank"


@dataclass(frozen=True)
class DedupPolicy:
    granularity: Granularity = Granularity.MINUTE
    preference: Preference = Preference.LATEST
    window_minutes: int = DEDUP_WINDOW_MINUTES

    @classmethod
    def from_name(cls, name: str | None, *, window_minutes: int | None = None) -> "DedupPolicy":
        """Resolve ``exact``, ``minute`` or ``window`` to a policy.

        The window policy prefers the best rank; the other two keep the latest
        observation of each bucket.
        """
        normalized = (name or DEDUP_DEFAULT_POLICY).strip().lower()
        minutes = window_minutes or DEDUP_WINDOW_MINUTES
        if normalized == Granularity.EXACT.value:
            return cls(Granularity.EXACT, Preference.LATEST, minutes)
        if normalized == Granularity.MINUTE.value:
            return cls(Granularity.MINUTE, Preference.LATEST, minutes)
        if normalized == Granularity.WINDOW.value:
            return cls(Granularity.WINDOW, Preference.BEST_RANK, minutes)
        raise ValueError(f"Unknown dedup policy: {name!r}")

    @property
    def name(self) -> str:
        return self.granularity.value

    def bucket_key(self, observation: Observation) -> tuple:
        if self.granularity is Granularity.EXACT:
            return exact_key(observation)
        if self.granularity is Granularity.MINUTE:
            return minute_key(observation)
        return window_key(observation, self.window_minutes)

    def prefers(self, candidate: Observation, incumbent: Observation) -> bool:
        """True only when ``candidate`` is strictly better, so full ties keep the incumbent."""
        if self.preference is Preference.BEST_RANK:
            if candidate.position != incumbent.position:
                return candidate.position < incumbent.position
        return candidate.timestamp > incumbent.timestamp


MINUTE_LATEST = DedupPolicy(Granularity.MINUTE, Preference.LATEST)
EXACT_LATEST = DedupPolicy(Granularity.EXACT, Preference.LATEST)
WINDOW_BEST_RANK = DedupPolicy(Granularity.WINDOW, Preference.BEST_RANK)


def default_policy() -> DedupPolicy:
    return DedupPolicy.from_name(DEDUP_DEFAULT_POLICY)


@dataclass
class CollapsedBucket:
    keyword: str
    territory: str
    kept: Observation
    removed: list[Observation]

    def to_preview(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "territory": self.territory,
            "kept": f"#{self.kept.position} at {format_timestamp(self.kept.timestamp)}",
            "removed": [
                f"#{item.position} at {format_timestamp(item.timestamp)}" for item in self.removed
            ],
        }


@dataclass
class ValidationResult:
    accepted: list[Observation] = field(default_factory=list)
    rejected_reasons: Counter = field(default_factory=Counter)

    @property
    def rejected(self) -> int:
        return sum(self.rejected_reasons.values())


@dataclass
class DedupResult:
    policy: DedupPolicy
    series: dict[GroupKey, list[Observation]]
    rejected_reasons: Counter = field(default_factory=Counter)
    collapsed: list[CollapsedBucket] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return sum(self.rejected_reasons.values())

    @property
    def accepted(self) -> int:
        return sum(len(items) for items in self.series.values())

    @property
    def duplicates_removed(self) -> int:
        return sum(len(bucket.removed) for bucket in self.collapsed)

    def observations(self) -> list[Observation]:
        flattened = [item for items in self.series.values() for item in items]
        return sorted(flattened, key=lambda item: item.timestamp)


def validate_observations(
    items: Iterable[Observation | Mapping[str, Any]],
    *,
    playlist_id: str | None = None,
) -> ValidationResult:
    """Turn raw payloads into observations, counting each rejection by reason."""
    result = ValidationResult()
    for item in items:
        if isinstance(item, Observation):
            # Already checked in __post_init__.
            result.accepted.append(item)
            continue
        try:
            result.accepted.append(Observation.from_payload(item))
        except ObservationError as exc:
            result.rejected_reasons[exc.reason] += 1
            log_observation_rejected(playlist_id=playlist_id, reason=exc.reason, message=str(exc))
    return result


def select_representative(members: list[Observation], policy: DedupPolicy) -> Observation:
    best = members[0]
    for candidate in members[1:]:
        if policy.prefers(candidate, best):
            best = candidate
    return best


def partition(observations: Iterable[Observation]) -> dict[GroupKey, list[Observation]]:
    groups: dict[GroupKey, list[Observation]] = {}
    for observation in observations:
        groups.setdefault(observation.group, []).append(observation)
    return groups


def deduplicate(
    observations: Iterable[Observation | Mapping[str, Any]],
    policy: DedupPolicy | None = None,
    *,
    playlist_id: str | None = None,
) -> DedupResult:
    """Produce one canonical series per (keyword, territory).

    Raw payloads are validated first; invalid territories and malformed fields
    are counted in ``rejected_reasons`` and never reach a series. Within each
    bucket of ``policy`` a single representative survives. Series are sorted
    ascending by timestamp; equal timestamps keep input order.
    """
    policy = policy or default_policy()
    validated = validate_observations(observations, playlist_id=playlist_id)
    result = DedupResult(policy=policy, series={}, rejected_reasons=validated.rejected_reasons)

    for group, members in partition(validated.accepted).items():
        buckets: dict[tuple, list[Observation]] = {}
        for observation in members:
            buckets.setdefault(policy.bucket_key(observation), []).append(observation)

        representatives: list[Observation] = []
        for bucket_members in buckets.values():
            kept = select_representative(bucket_members, policy)
            representatives.append(kept)
            if len(bucket_members) > 1:
                kept_index = next(
                    index for index, item in enumerate(bucket_members) if item is kept
                )
                result.collapsed.append(
                    CollapsedBucket(
                        keyword=kept.keyword,
                        territory=kept.territory,
                        kept=kept,
                        removed=[
                            item
                            for index, item in enumerate(bucket_members)
                            if index != kept_index
                        ],
                    )
                )
        result.series[group] = sorted(representatives, key=lambda item: item.timestamp)

    if result.collapsed:
        logger.info(
            "dedup playlist_id=%s policy=%s groups=%s collapsed_buckets=%s removed=%s",
            playlist_id,
            policy.name,
            len(result.series),
            len(result.collapsed),
            result.duplicates_removed,
        )
    return result
