import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from rank_tracker.api.routes.errors import raise_http_error
from rank_tracker.core.db import get_db
from rank_tracker.core.exceptions import RankTrackerError
from rank_tracker.repositories.ranked_playlists import (
    get_ranked_playlist,
    list_ranked_playlists,
    record_to_payload,
)
from rank_tracker.schemas.rankings import IngestReportOut, PlaylistRecordOut, PlaylistTrendsOut
from rank_tracker.services.ingestion import (
    delete_datapoint,
    delete_keyword,
    ingest_batch,
    parse_batch_envelope,
)
from rank_tracker.services.reporting import build_playlist_trends

router = APIRouter(tags=["playlists"])
logger = logging.getLogger(__name__)


@router.post("/add-rankings", response_model=IngestReportOut)
def add_rankings(payload: Any = Body(default=None), db: Session = Depends(get_db)):
    try:
        envelope = parse_batch_envelope(payload)
        report = ingest_batch(
            db,
            envelope.playlist_id,
            envelope.keywords,
            name=envelope.name,
            image=envelope.image,
        )
    except RankTrackerError as exc:
        raise_http_error(exc)
    return report.to_payload()


@router.get("", response_model=list[PlaylistRecordOut])
def get_playlists(db: Session = Depends(get_db)):
    return [record_to_payload(record) for record in list_ranked_playlists(db)]


@router.get("/{playlist_id}", response_model=PlaylistRecordOut)
def get_playlist(playlist_id: str, db: Session = Depends(get_db)):
    record = get_ranked_playlist(db, playlist_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Playlist not found.")
    return record_to_payload(record)


@router.get("/{playlist_id}/trends", response_model=PlaylistTrendsOut)
def get_playlist_trends(playlist_id: str, db: Session = Depends(get_db)):
    try:
        return build_playlist_trends(db, playlist_id)
    except RankTrackerError as exc:
        raise_http_error(exc)


@router.delete("/{playlist_id}/keywords/{keyword}")
def remove_keyword(playlist_id: str, keyword: str, db: Session = Depends(get_db)):
    try:
        removed = delete_keyword(db, playlist_id, keyword)
    except RankTrackerError as exc:
        raise_http_error(exc)
    logger.info("Deleted keyword %r from playlist %s (%s observations)", keyword, playlist_id, removed)
    return {"success": True, "deletedCount": removed}


@router.delete("/{playlist_id}/datapoint")
def remove_datapoint(
    playlist_id: str,
    keyword: str | None = Query(default=None),
    territory: str | None = Query(default=None),
    timestamp: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if not keyword or not territory or not timestamp:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "keyword, territory, and timestamp are required",
                "received": {
                    "keyword": bool(keyword),
                    "territory": bool(territory),
                    "timestamp": bool(timestamp),
                },
            },
        )
    try:
        removed = delete_datapoint(
            db,
            playlist_id,
            keyword=keyword,
            territory=territory,
            timestamp=timestamp,
        )
    except RankTrackerError as exc:
        raise_http_error(exc)
    if not removed:
        raise HTTPException(
            status_code=404,
            detail={
                "message": "Data point not found",
                "criteria": {"keyword": keyword, "territory": territory, "timestamp": timestamp},
            },
        )
    return {"success": True, "deletedCount": removed}
