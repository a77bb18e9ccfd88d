from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from rank_tracker.api.routes.errors import raise_http_error
from rank_tracker.core.db import get_db
from rank_tracker.core.exceptions import RankTrackerError
from rank_tracker.rankings.dedup import DedupPolicy
from rank_tracker.services.maintenance import (
    cleanup_stored_territories,
    deduplicate_stored_playlists,
    recover_playlists,
)

router = APIRouter(tags=["maintenance"])


def _resolve_policy(name: str | None, window_minutes: int | None) -> DedupPolicy:
    try:
        return DedupPolicy.from_name(name, window_minutes=window_minutes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/deduplicate")
def deduplicate_playlists(
    policy: str | None = Query(default=None),
    window_minutes: int | None = Query(default=None, ge=1, le=1440),
    dry_run: bool = Query(default=False),
    playlistId: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    resolved = _resolve_policy(policy, window_minutes)
    try:
        summary = deduplicate_stored_playlists(
            db, policy=resolved, dry_run=dry_run, playlist_id=playlistId
        )
    except RankTrackerError as exc:
        raise_http_error(exc)
    return {"success": True, **summary}


@router.post("/territories")
def cleanup_territories(
    dry_run: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    try:
        summary = cleanup_stored_territories(db, dry_run=dry_run)
    except RankTrackerError as exc:
        raise_http_error(exc)
    return {"success": True, **summary}


@router.post("/recover")
def recover(
    playlistId: str | None = Query(default=None),
    policy: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    resolved = _resolve_policy(policy, None)
    try:
        summary = recover_playlists(db, playlist_id=playlistId, policy=resolved)
    except RankTrackerError as exc:
        raise_http_error(exc)
    if not summary["recoveredPlaylists"]:
        raise HTTPException(
            status_code=404,
            detail={
                "message": "No history data found to recover",
                "historyPlaylistsChecked": summary["historyPlaylistsChecked"],
            },
        )
    return {"success": True, **summary}
