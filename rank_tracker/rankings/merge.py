from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from rank_tracker.core.config import PLAYLIST_RETENTION_CAP
from rank_tracker.rankings.dedup import DedupPolicy
from rank_tracker.rankings.keys import exact_key
from rank_tracker.rankings.observation import Observation, ensure_utc


def _sort_key(observation: Observation) -> tuple:
    # Total order so the merged series does not depend on arrival order.
    return (observation.timestamp, *exact_key(observation)[:3])


@dataclass
class MergeResult:
    series: list[Observation]
    added: int = 0
    already_present: int = 0
    replaced: int = 0
    superseded: int = 0
    truncated: int = 0


@dataclass
class PlaylistHistory:
    """In-memory form of one playlist's canonical record."""

    playlist_id: str
    name: str = ""
    image: str = ""
    observations: list[Observation] = field(default_factory=list)
    last_updated: datetime | None = None


def merge(
    existing: Iterable[Observation],
    batch: Iterable[Observation],
    *,
    policy: DedupPolicy | None = None,
    cap: int = PLAYLIST_RETENTION_CAP,
) -> MergeResult:
    """Merge an already deduplicated batch into an existing series.

    Observations whose exact key is already stored are skipped, so merging the
    same batch again is a no-op. With a ``policy``, a new observation landing in
    a bucket that already holds one keeps whichever the policy prefers. Only the
    ``cap`` most recent observations survive.
    """
    series = list(existing)
    present = {exact_key(item) for item in series}
    by_bucket: dict[tuple, int] = {}
    if policy is not None:
        for index, item in enumerate(series):
            by_bucket.setdefault(policy.bucket_key(item), index)

    result = MergeResult(series=series)
    for observation in batch:
        key = exact_key(observation)
        if key in present:
            result.already_present += 1
            continue
        if policy is not None:
            bucket = policy.bucket_key(observation)
            index = by_bucket.get(bucket)
            if index is not None:
                incumbent = series[index]
                if not policy.prefers(observation, incumbent):
                    result.superseded += 1
                    continue
                present.discard(exact_key(incumbent))
                series[index] = observation
                present.add(key)
                result.replaced += 1
                continue
            by_bucket[bucket] = len(series)
        series.append(observation)
        present.add(key)
        result.added += 1

    series.sort(key=_sort_key)
    if len(series) > cap:
        result.truncated = len(series) - cap
        series = series[-cap:]
    result.series = series
    return result


def merge_into_playlist(
    history: PlaylistHistory,
    batch: Iterable[Observation],
    *,
    name: str | None = None,
    image: str | None = None,
    now: datetime | None = None,
    policy: DedupPolicy | None = None,
    cap: int = PLAYLIST_RETENTION_CAP,
) -> MergeResult:
    """Apply ``merge`` to a playlist and refresh its metadata.

    Name and image are only filled in when the stored value is empty; a present
    value is never replaced by an absent one.
    """
    result = merge(history.observations, batch, policy=policy, cap=cap)
    history.observations = result.series
    history.last_updated = ensure_utc(now) if now else datetime.now(timezone.utc)
    incoming_name = (name or "").strip()
    incoming_image = (image or "").strip()
    if incoming_name and not history.name:
        history.name = incoming_name
    if incoming_image and not history.image:
        history.image = incoming_image
    return result
