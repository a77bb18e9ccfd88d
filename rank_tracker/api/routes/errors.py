import logging
from typing import NoReturn

from fastapi import HTTPException, status

from rank_tracker.core.exceptions import (
    BatchEnvelopeError,
    ConcurrentMergeConflict,
    ObservationError,
    PlaylistNotFound,
    RankTrackerError,
)

logger = logging.getLogger(__name__)


def raise_http_error(exc: RankTrackerError) -> NoReturn:
    if isinstance(exc, PlaylistNotFound):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Playlist not found.") from exc
    if isinstance(exc, ConcurrentMergeConflict):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "retryable": True},
        ) from exc
    if isinstance(exc, (BatchEnvelopeError, ObservationError)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    logger.error("Unhandled rank tracker error: %s", exc)
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
