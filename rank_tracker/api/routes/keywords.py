from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from rank_tracker.api.routes.errors import raise_http_error
from rank_tracker.core.db import get_db
from rank_tracker.core.exceptions import RankTrackerError
from rank_tracker.schemas.rankings import KeywordHistoryOut
from rank_tracker.services.reporting import build_keyword_history

router = APIRouter(tags=["keywords"])


@router.get("/history", response_model=KeywordHistoryOut)
def get_keyword_history(
    playlistId: str | None = Query(default=None),
    keyword: str | None = Query(default=None),
    territory: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if not playlistId or not keyword or not territory:
        raise HTTPException(
            status_code=400,
            detail="Missing required parameters: playlistId, keyword, territory",
        )
    try:
        return build_keyword_history(db, playlistId, keyword, territory)
    except RankTrackerError as exc:
        raise_http_error(exc)
