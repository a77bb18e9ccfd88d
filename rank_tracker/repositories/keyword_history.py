from __future__ import annotations

from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from rank_tracker.core.config import KEYWORD_HISTORY_CAP
from rank_tracker.models.keyword_history import KeywordHistoryEntry
from rank_tracker.rankings.observation import Observation, format_timestamp
from rank_tracker.rankings.recovery import KeywordLog


def _identity_filter(playlist_id: str, keyword: str, territory: str):
    return (
        KeywordHistoryEntry.playlist_id == playlist_id,
        func.lower(KeywordHistoryEntry.keyword) == keyword.strip().lower(),
        func.lower(KeywordHistoryEntry.territory) == territory.strip().lower(),
    )


def _trim_log(db: Session, playlist_id: str, keyword: str, territory: str, cap: int) -> int:
    stale_ids = (
        db.execute(
            select(KeywordHistoryEntry.id)
            .where(*_identity_filter(playlist_id, keyword, territory))
            .order_by(KeywordHistoryEntry.id.desc())
            .offset(cap)
        )
        .scalars()
        .all()
    )
    if not stale_ids:
        return 0
    db.execute(delete(KeywordHistoryEntry).where(KeywordHistoryEntry.id.in_(stale_ids)))
    return len(stale_ids)


def append_keyword_history(
    db: Session,
    playlist_id: str,
    observations: Iterable[Observation],
    *,
    cap: int = KEYWORD_HISTORY_CAP,
) -> int:
    """Append every observation to its log and keep the ``cap`` newest per log.

    Nothing is deduplicated here. The caller owns the commit.
    """
    identities: dict[tuple[str, str], Observation] = {}
    appended = 0
    for observation in observations:
        db.add(
            KeywordHistoryEntry(
                playlist_id=playlist_id,
                keyword=observation.keyword,
                territory=observation.territory,
                position=observation.position,
                timestamp=format_timestamp(observation.timestamp),
                user_id=observation.user_id,
                session_id=observation.session_id,
            )
        )
        identities.setdefault(observation.group, observation)
        appended += 1
    db.flush()
    for observation in identities.values():
        _trim_log(db, playlist_id, observation.keyword, observation.territory, cap)
    return appended


def get_keyword_log_entries(
    db: Session, playlist_id: str, keyword: str, territory: str
) -> list[KeywordHistoryEntry]:
    """Oldest first."""
    return (
        db.execute(
            select(KeywordHistoryEntry)
            .where(*_identity_filter(playlist_id, keyword, territory))
            .order_by(KeywordHistoryEntry.id.asc())
        )
        .scalars()
        .all()
    )


def entry_to_payload(entry: KeywordHistoryEntry) -> dict:
    payload = {"position": entry.position, "timestamp": entry.timestamp}
    if entry.user_id:
        payload["userId"] = entry.user_id
    if entry.session_id:
        payload["sessionId"] = entry.session_id
    return payload


def list_keyword_logs(db: Session, playlist_id: str) -> list[KeywordLog]:
    entries = (
        db.execute(
            select(KeywordHistoryEntry)
            .where(KeywordHistoryEntry.playlist_id == playlist_id)
            .order_by(KeywordHistoryEntry.id.asc())
        )
        .scalars()
        .all()
    )
    logs: dict[tuple[str, str], KeywordLog] = {}
    for entry in entries:
        identity = (entry.keyword.strip().lower(), entry.territory.strip().lower())
        log = logs.get(identity)
        if log is None:
            log = KeywordLog(keyword=entry.keyword, territory=entry.territory)
            logs[identity] = log
        log.entries.append(entry_to_payload(entry))
    return list(logs.values())


def list_logged_playlist_ids(db: Session) -> list[str]:
    return (
        db.execute(
            select(KeywordHistoryEntry.playlist_id)
            .distinct()
            .order_by(KeywordHistoryEntry.playlist_id)
        )
        .scalars()
        .all()
    )
