from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rank_tracker.core.exceptions import ConcurrentMergeConflict
from rank_tracker.models.ranked_playlist import RankedPlaylist
from rank_tracker.rankings.dedup import ValidationResult, validate_observations
from rank_tracker.rankings.merge import PlaylistHistory
from rank_tracker.rankings.observation import ensure_utc, format_timestamp


def get_ranked_playlist(db: Session, playlist_id: str) -> RankedPlaylist | None:
    return db.execute(
        select(RankedPlaylist).where(RankedPlaylist.playlist_id == playlist_id)
    ).scalar_one_or_none()


def list_ranked_playlists(db: Session) -> list[RankedPlaylist]:
    return (
        db.execute(select(RankedPlaylist).order_by(RankedPlaylist.last_updated.desc()))
        .scalars()
        .all()
    )


def record_to_history(record: RankedPlaylist) -> tuple[PlaylistHistory, ValidationResult]:
    """Load a stored record; stored entries that no longer validate are reported, not kept."""
    validated = validate_observations(record.keywords or [], playlist_id=record.playlist_id)
    history = PlaylistHistory(
        playlist_id=record.playlist_id,
        name=record.name or "",
        image=record.image or "",
        observations=validated.accepted,
        last_updated=ensure_utc(record.last_updated) if record.last_updated else None,
    )
    return history, validated


def save_playlist_history(
    db: Session,
    history: PlaylistHistory,
    record: RankedPlaylist | None = None,
) -> RankedPlaylist:
    if record is None:
        record = RankedPlaylist(playlist_id=history.playlist_id)
    record.name = history.name
    record.image = history.image or None
    record.keywords = [item.to_payload() for item in history.observations]
    record.last_updated = history.last_updated
    db.add(record)
    try:
        db.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        raise ConcurrentMergeConflict(history.playlist_id, type(exc).__name__) from exc
    db.refresh(record)
    return record


def record_to_payload(record: RankedPlaylist) -> dict:
    last_updated = ensure_utc(record.last_updated) if record.last_updated else None
    return {
        "id": record.playlist_id,
        "name": record.name,
        "image": record.image or None,
        "keywords": list(record.keywords or []),
        "lastUpdated": format_timestamp(last_updated) if last_updated else None,
    }
