from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from rank_tracker.core.config import PLAYLIST_RETENTION_CAP, RECOVERED_PLAYLIST_NAME
from rank_tracker.rankings.dedup import DedupPolicy, DedupResult, deduplicate
from rank_tracker.rankings.merge import MergeResult, PlaylistHistory, merge_into_playlist


@dataclass
class KeywordLog:
    """Entries of one (playlist, keyword, territory) history log.

    Entries only carry position and timestamp; keyword and territory come from
    the log identity.
    """

    keyword: str
    territory: str
    entries: list[Mapping[str, Any]] = field(default_factory=list)


@dataclass
class RecoveryResult:
    history: PlaylistHistory
    dedup: DedupResult
    merge: MergeResult

    @property
    def skipped(self) -> int:
        return self.dedup.rejected

    @property
    def recovered(self) -> int:
        return len(self.history.observations)


def flatten_logs(logs: Iterable[KeywordLog]) -> list[dict[str, Any]]:
    payloads: list[dict[str, Any]] = []
    for log in logs:
        for entry in log.entries:
            if not isinstance(entry, Mapping):
                # Leave it for the validator to count as malformed.
                payloads.append(entry)
                continue
            payloads.append(
                {
                    "keyword": log.keyword,
                    "territory": log.territory,
                    "position": entry.get("position"),
                    "timestamp": entry.get("timestamp"),
                    "userId": entry.get("userId"),
                    "sessionId": entry.get("sessionId"),
                }
            )
    return payloads


def reconstruct(
    playlist_id: str,
    logs: Iterable[KeywordLog],
    *,
    existing: PlaylistHistory | None = None,
    policy: DedupPolicy | None = None,
    now: datetime | None = None,
    cap: int = PLAYLIST_RETENTION_CAP,
) -> RecoveryResult:
    """Rebuild a playlist's canonical record from its keyword history logs.

    Best effort: unparseable entries are skipped and counted. Name and image of
    an ``existing`` record are kept; the record's observations are not.
    """
    dedup = deduplicate(flatten_logs(logs), policy, playlist_id=playlist_id)
    history = PlaylistHistory(
        playlist_id=playlist_id,
        name=(existing.name if existing else "") or RECOVERED_PLAYLIST_NAME.format(playlist_id),
        image=existing.image if existing else "",
    )
    merged = merge_into_playlist(
        history,
        dedup.observations(),
        now=now,
        policy=dedup.policy,
        cap=cap,
    )
    return RecoveryResult(history=history, dedup=dedup, merge=merged)
