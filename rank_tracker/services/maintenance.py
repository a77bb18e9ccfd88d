"""Whole-store passes: re-deduplication, territory cleanup and recovery from the logs."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from rank_tracker.core.exceptions import PlaylistNotFound
from rank_tracker.core.locks import PlaylistLockRegistry, playlist_locks
from rank_tracker.rankings.dedup import DedupPolicy, deduplicate, default_policy
from rank_tracker.rankings.ranking_logging import log_ranking_event
from rank_tracker.rankings.recovery import reconstruct
from rank_tracker.rankings.territory import is_valid_territory, normalize_territory
from rank_tracker.repositories.keyword_history import (
    list_keyword_logs,
    list_logged_playlist_ids,
)
from rank_tracker.repositories.ranked_playlists import (
    get_ranked_playlist,
    list_ranked_playlists,
    record_to_history,
    save_playlist_history,
)

logger = logging.getLogger(__name__)
PREVIEW_LIMIT = 100


def _target_ids(db: Session, playlist_id: str | None) -> list[str]:
    if playlist_id:
        return [playlist_id]
    return [record.playlist_id for record in list_ranked_playlists(db)]


def deduplicate_stored_playlists(
    db: Session,
    *,
    policy: DedupPolicy | None = None,
    dry_run: bool = False,
    playlist_id: str | None = None,
    locks: PlaylistLockRegistry = playlist_locks,
) -> dict[str, Any]:
    """Run the engine over stored records; with ``dry_run`` only report what would go."""
    policy = policy or default_policy()
    preview: list[dict[str, Any]] = []
    playlist_stats: list[dict[str, Any]] = []
    processed = changed = removed_total = rejected_total = 0

    for target_id in _target_ids(db, playlist_id):
        with locks.hold(target_id):
            record = get_ranked_playlist(db, target_id)
            if record is None:
                if playlist_id:
                    raise PlaylistNotFound(target_id)
                continue
            processed += 1
            history, stored = record_to_history(record)
            original_count = len(record.keywords or [])
            dedup = deduplicate(history.observations, policy, playlist_id=target_id)
            removed = dedup.duplicates_removed
            removed_total += removed
            rejected_total += stored.rejected
            for bucket in dedup.collapsed:
                if len(preview) >= PREVIEW_LIMIT:
                    break
                preview.append({"playlist": record.name, **bucket.to_preview()})
            if not removed and not stored.rejected:
                continue
            changed += 1
            playlist_stats.append(
                {
                    "playlistId": target_id,
                    "playlistName": record.name,
                    "originalCount": original_count,
                    "newCount": dedup.accepted,
                    "duplicatesRemoved": removed,
                    "invalidRemoved": stored.rejected,
                }
            )
            if dry_run:
                continue
            history.observations = dedup.observations()
            save_playlist_history(db, history, record)

    summary = {
        "policy": policy.name,
        "dryRun": dry_run,
        "playlistsProcessed": processed,
        "playlistsChanged": changed,
        "duplicatesRemoved": removed_total,
        "invalidRemoved": rejected_total,
        "playlistStats": playlist_stats,
        "preview": preview,
    }
    log_ranking_event(
        "dedup_result",
        playlist_id,
        policy=policy.name,
        dry_run=dry_run,
        processed=processed,
        changed=changed,
        removed=removed_total,
    )
    return summary


def cleanup_stored_territories(
    db: Session,
    *,
    dry_run: bool = False,
    locks: PlaylistLockRegistry = playlist_locks,
) -> dict[str, Any]:
    """Drop stored observations whose territory is invalid and canonicalise the rest.

    Invalid territories are never defaulted to some other market.
    """
    territory_counts: Counter = Counter()
    dropped_total = rewritten_total = processed = 0

    for target_id in _target_ids(db, None):
        with locks.hold(target_id):
            record = get_ranked_playlist(db, target_id)
            if record is None:
                continue
            processed += 1
            stored_payloads = list(record.keywords or [])
            history, stored = record_to_history(record)
            for observation in history.observations:
                territory_counts[observation.territory] += 1
            canonical = [item.to_payload() for item in history.observations]
            rewritten_total += sum(
                1
                for before in stored_payloads
                if isinstance(before, dict)
                and is_valid_territory(before.get("territory"))
                and before.get("territory") != normalize_territory(before.get("territory"))
            )
            dropped_total += stored.rejected
            if dry_run or canonical == stored_payloads:
                continue
            save_playlist_history(db, history, record)

    summary = {
        "dryRun": dry_run,
        "playlistsProcessed": processed,
        "invalidRemoved": dropped_total,
        "normalized": rewritten_total,
        "territories": dict(sorted(territory_counts.items())),
    }
    log_ranking_event("territory_cleanup_result", None, **summary)
    return summary


def recover_playlists(
    db: Session,
    *,
    playlist_id: str | None = None,
    policy: DedupPolicy | None = None,
    now: datetime | None = None,
    locks: PlaylistLockRegistry = playlist_locks,
) -> dict[str, Any]:
    """Rebuild canonical records from the keyword history logs."""
    now = now or datetime.now(timezone.utc)
    target_ids = [playlist_id] if playlist_id else list_logged_playlist_ids(db)
    recovered: list[dict[str, Any]] = []
    skipped_total = 0

    for target_id in target_ids:
        logs = list_keyword_logs(db, target_id)
        if not logs:
            logger.info("[RECOVERY] playlist_id=%s no history logs", target_id)
            continue
        with locks.hold(target_id):
            record = get_ranked_playlist(db, target_id)
            existing = record_to_history(record)[0] if record else None
            result = reconstruct(target_id, logs, existing=existing, policy=policy, now=now)
            save_playlist_history(db, result.history, record)
        skipped_total += result.skipped
        recovered.append(
            {
                "playlistId": target_id,
                "name": result.history.name,
                "observations": result.recovered,
                "skipped": result.skipped,
                "duplicatesRemoved": result.dedup.duplicates_removed,
            }
        )
        log_ranking_event(
            "recovery_result",
            target_id,
            observations=result.recovered,
            skipped=result.skipped,
            logs=len(logs),
        )

    return {
        "recoveredPlaylists": recovered,
        "skippedEntries": skipped_total,
        "historyPlaylistsChecked": len(target_ids),
    }
