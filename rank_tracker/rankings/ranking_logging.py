from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate_message(message: str | None, max_length: int = 200) -> str | None:
    if message is None:
        return None
    return message[:max_length]


def log_ranking_event(event: str, playlist_id: str | None, **fields: object) -> None:
    payload = {
        "type": event,
        "playlist_id": playlist_id,
        "ts": _now_iso(),
        **fields,
    }
    logger.info(json.dumps(payload, sort_keys=True, default=str))


def log_ingest_start(*, playlist_id: str, name: str | None, observation_count: int) -> None:
    logger.info(
        "[INGEST_START] playlist_id=%s name=%s observations=%s",
        playlist_id,
        name,
        observation_count,
    )


def log_observation_rejected(*, playlist_id: str | None, reason: str, message: str) -> None:
    logger.info(
        "[OBSERVATION_REJECTED] playlist_id=%s reason=%s message=%s",
        playlist_id,
        reason,
        _truncate_message(message),
    )


def log_retention_truncated(*, playlist_id: str | None, dropped: int, cap: int) -> None:
    logger.info(
        "[RETENTION_TRUNCATED] playlist_id=%s dropped=%s cap=%s",
        playlist_id,
        dropped,
        cap,
    )


def log_merge_conflict(*, playlist_id: str, exc: Exception) -> None:
    logger.warning(
        "[MERGE_CONFLICT] playlist_id=%s exc_type=%s message=%s",
        playlist_id,
        type(exc).__name__,
        _truncate_message(str(exc)),
    )
