from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from sqlalchemy.orm import Session

from rank_tracker.core.exceptions import (
    BatchEnvelopeError,
    ConcurrentMergeConflict,
    PlaylistNotFound,
)
from rank_tracker.core.locks import PlaylistLockRegistry, playlist_locks
from rank_tracker.rankings.dedup import DedupPolicy, deduplicate, validate_observations
from rank_tracker.rankings.merge import PlaylistHistory, merge_into_playlist
from rank_tracker.rankings.observation import parse_timestamp
from rank_tracker.rankings.ranking_logging import (
    log_ingest_start,
    log_merge_conflict,
    log_ranking_event,
    log_retention_truncated,
)
from rank_tracker.rankings.territory import normalize_territory
from rank_tracker.repositories.keyword_history import append_keyword_history
from rank_tracker.repositories.ranked_playlists import (
    get_ranked_playlist,
    record_to_history,
    save_playlist_history,
)


@dataclass
class BatchEnvelope:
    playlist_id: str
    name: str | None
    image: str | None
    keywords: list[Any]


@dataclass
class IngestReport:
    playlist_id: str
    accepted: int = 0
    rejected_reasons: Counter = field(default_factory=Counter)
    added: int = 0
    duplicates_removed: int = 0
    already_present: int = 0
    superseded: int = 0
    truncated: int = 0
    logged: int = 0

    @property
    def rejected(self) -> int:
        return sum(self.rejected_reasons.values())

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "playlistId": self.playlist_id,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "rejectedReasons": dict(self.rejected_reasons),
            "added": self.added,
            "duplicatesRemoved": self.duplicates_removed,
            "alreadyPresent": self.already_present,
            "superseded": self.superseded,
            "truncated": self.truncated,
            "logged": self.logged,
        }


def parse_batch_envelope(payload: object) -> BatchEnvelope:
    """Reject a batch as a whole only when its envelope is unusable."""
    if not isinstance(payload, Mapping):
        raise BatchEnvelopeError("Batch must be a JSON object.")
    playlist_id = payload.get("id")
    if not isinstance(playlist_id, str) or not playlist_id.strip():
        raise BatchEnvelopeError("Batch is missing a playlist id.")
    keywords = payload.get("keywords")
    if not isinstance(keywords, list):
        raise BatchEnvelopeError("Batch keywords must be a list.")
    name = payload.get("name")
    image = payload.get("image")
    return BatchEnvelope(
        playlist_id=playlist_id.strip(),
        name=name if isinstance(name, str) else None,
        image=image if isinstance(image, str) else None,
        keywords=keywords,
    )


def ingest_batch(
    db: Session,
    playlist_id: str,
    observations: Iterable[Any],
    *,
    name: str | None = None,
    image: str | None = None,
    policy: DedupPolicy | None = None,
    now: datetime | None = None,
    locks: PlaylistLockRegistry = playlist_locks,
) -> IngestReport:
    """Validate, deduplicate and merge one scraper batch into the canonical record.

    Per-observation failures are counted in the report. The read-modify-write of
    the stored record runs under the playlist lock; a lost race surfaces as
    ``ConcurrentMergeConflict``.
    """
    raw = list(observations)
    log_ingest_start(playlist_id=playlist_id, name=name, observation_count=len(raw))
    validated = validate_observations(raw, playlist_id=playlist_id)
    dedup = deduplicate(validated.accepted, policy, playlist_id=playlist_id)
    report = IngestReport(
        playlist_id=playlist_id,
        accepted=len(validated.accepted),
        rejected_reasons=validated.rejected_reasons,
        duplicates_removed=dedup.duplicates_removed,
    )
    now = now or datetime.now(timezone.utc)

    try:
        with locks.hold(playlist_id):
            record = get_ranked_playlist(db, playlist_id)
            history = record_to_history(record)[0] if record else PlaylistHistory(playlist_id)
            merged = merge_into_playlist(
                history,
                dedup.observations(),
                name=name,
                image=image,
                now=now,
                policy=dedup.policy,
            )
            report.added = merged.added + merged.replaced
            report.already_present = merged.already_present
            report.superseded = merged.superseded
            report.truncated = merged.truncated
            if merged.truncated:
                log_retention_truncated(
                    playlist_id=playlist_id, dropped=merged.truncated, cap=len(merged.series)
                )
            report.logged = append_keyword_history(db, playlist_id, validated.accepted)
            save_playlist_history(db, history, record)
    except ConcurrentMergeConflict as exc:
        log_merge_conflict(playlist_id=playlist_id, exc=exc)
        raise

    log_ranking_event("ingest_result", playlist_id, **report.to_payload())
    return report


def delete_keyword(
    db: Session,
    playlist_id: str,
    keyword: str,
    *,
    locks: PlaylistLockRegistry = playlist_locks,
) -> int:
    """Remove every observation of ``keyword`` (all territories, case-insensitive)."""
    target = keyword.strip().lower()
    with locks.hold(playlist_id):
        record = get_ranked_playlist(db, playlist_id)
        if record is None:
            raise PlaylistNotFound(playlist_id)
        history, _ = record_to_history(record)
        kept = [item for item in history.observations if item.keyword_key != target]
        removed = len(history.observations) - len(kept)
        history.observations = kept
        save_playlist_history(db, history, record)
    log_ranking_event("keyword_deleted", playlist_id, keyword=keyword, removed=removed)
    return removed


def delete_datapoint(
    db: Session,
    playlist_id: str,
    *,
    keyword: str,
    territory: str,
    timestamp: str,
    locks: PlaylistLockRegistry = playlist_locks,
) -> int:
    target_keyword = keyword.strip().lower()
    target_territory = normalize_territory(territory)
    target_timestamp = parse_timestamp(timestamp)
    with locks.hold(playlist_id):
        record = get_ranked_playlist(db, playlist_id)
        if record is None:
            raise PlaylistNotFound(playlist_id)
        history, _ = record_to_history(record)
        kept = [
            item
            for item in history.observations
            if not (
                item.keyword_key == target_keyword
                and item.territory == target_territory
                and item.timestamp == target_timestamp
            )
        ]
        removed = len(history.observations) - len(kept)
        if removed:
            history.observations = kept
            save_playlist_history(db, history, record)
    log_ranking_event(
        "datapoint_deleted",
        playlist_id,
        keyword=keyword,
        territory=target_territory,
        timestamp=timestamp,
        removed=removed,
    )
    return removed
