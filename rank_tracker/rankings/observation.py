from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from rank_tracker.core.config import MAX_POSITION
from rank_tracker.core.exceptions import MalformedObservation
from rank_tracker.rankings.territory import normalize_territory


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: object) -> datetime:
    """Parse an ISO-8601 instant into an aware UTC datetime at millisecond precision."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        cleaned = value.strip().replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(cleaned)
        except ValueError as exc:
            raise MalformedObservation(
                f"Unparseable timestamp: {value!r}", reason="malformed_timestamp"
            ) from exc
    else:
        raise MalformedObservation(
            f"Missing or non-string timestamp: {value!r}", reason="malformed_timestamp"
        )
    try:
        parsed = ensure_utc(parsed)
    except (OverflowError, ValueError) as exc:
        raise MalformedObservation(
            f"Timestamp out of range: {value!r}", reason="malformed_timestamp"
        ) from exc
    return parsed.replace(microsecond=(parsed.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_position(value: object) -> int:
    if isinstance(value, bool):
        raise MalformedObservation(f"Non-numeric position: {value!r}", reason="malformed_position")
    if isinstance(value, int):
        position = value
    elif isinstance(value, float) and value.is_integer():
        position = int(value)
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        position = int(value.strip())
    else:
        raise MalformedObservation(f"Non-numeric position: {value!r}", reason="malformed_position")
    if position < 1:
        raise MalformedObservation(f"Position must be >= 1: {position}", reason="malformed_position")
    if position > MAX_POSITION:
        raise MalformedObservation(
            f"Position above {MAX_POSITION}: {position}", reason="malformed_position"
        )
    return position


def parse_keyword(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedObservation(f"Missing keyword: {value!r}", reason="malformed_keyword")
    return value.strip()


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Observation:
    keyword: str
    territory: str
    position: int
    timestamp: datetime
    user_id: str | None = None
    session_id: str | None = None

    def __post_init__(self) -> None:
        # Direct construction goes through the same checks as payloads.
        object.__setattr__(self, "keyword", parse_keyword(self.keyword))
        object.__setattr__(self, "territory", normalize_territory(self.territory))
        object.__setattr__(self, "position", parse_position(self.position))
        object.__setattr__(self, "timestamp", parse_timestamp(self.timestamp))

    @property
    def keyword_key(self) -> str:
        return self.keyword.lower()

    @property
    def group(self) -> tuple[str, str]:
        return (self.keyword_key, self.territory)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Observation":
        """Validate a raw scraper or storage payload.

        Raises ``InvalidTerritory`` or ``MalformedObservation``; never returns a
        half-valid observation.
        """
        if not isinstance(payload, Mapping):
            raise MalformedObservation(f"Observation is not an object: {payload!r}")
        keyword = parse_keyword(payload.get("keyword"))
        position = parse_position(payload.get("position"))
        timestamp = parse_timestamp(payload.get("timestamp"))
        territory = normalize_territory(payload.get("territory"))
        return cls(
            keyword=keyword,
            territory=territory,
            position=position,
            timestamp=timestamp,
            user_id=_optional_str(payload.get("userId")),
            session_id=_optional_str(payload.get("sessionId")),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "keyword": self.keyword,
            "position": self.position,
            "territory": self.territory,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.user_id:
            payload["userId"] = self.user_id
        if self.session_id:
            payload["sessionId"] = self.session_id
        return payload
