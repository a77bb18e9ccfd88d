from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from rank_tracker.core.exceptions import PlaylistNotFound
from rank_tracker.rankings.dedup import DedupPolicy, deduplicate
from rank_tracker.rankings.recovery import KeywordLog, flatten_logs
from rank_tracker.rankings.stats import compute_playlist_stats, compute_stats
from rank_tracker.rankings.territory import normalize_territory
from rank_tracker.repositories.keyword_history import entry_to_payload, get_keyword_log_entries
from rank_tracker.repositories.ranked_playlists import get_ranked_playlist, record_to_history


def build_playlist_trends(db: Session, playlist_id: str) -> dict[str, Any]:
    record = get_ranked_playlist(db, playlist_id)
    if record is None:
        raise PlaylistNotFound(playlist_id)
    history, _ = record_to_history(record)
    stats = compute_playlist_stats(history.observations)
    return {
        "playlistId": playlist_id,
        "name": history.name,
        "trends": [item.to_payload() for item in stats],
    }


def build_keyword_history(
    db: Session,
    playlist_id: str,
    keyword: str,
    territory: str,
    *,
    policy: DedupPolicy | None = None,
) -> dict[str, Any]:
    """Raw log (oldest first) alongside the read-time deduplicated series and its stats."""
    territory = normalize_territory(territory)
    entries = get_keyword_log_entries(db, playlist_id, keyword, territory)
    rankings = [entry_to_payload(entry) for entry in entries]
    dedup = deduplicate(
        flatten_logs([KeywordLog(keyword=keyword, territory=territory, entries=rankings)]),
        policy,
        playlist_id=playlist_id,
    )
    series = dedup.observations()
    return {
        "keyword": keyword,
        "territory": territory,
        "rankings": rankings,
        "deduplicated": [
            {"position": item.position, "timestamp": item.to_payload()["timestamp"]}
            for item in series
        ],
        "skipped": dedup.rejected,
        "stats": compute_stats(series).to_payload(),
    }
