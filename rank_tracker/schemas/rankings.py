from typing import Any

from pydantic import BaseModel


class IngestReportOut(BaseModel):
    success: bool
    playlistId: str
    accepted: int
    rejected: int
    rejectedReasons: dict[str, int]
    added: int
    duplicatesRemoved: int
    alreadyPresent: int
    superseded: int
    truncated: int
    logged: int


class PlaylistRecordOut(BaseModel):
    id: str
    name: str
    image: str | None = None
    keywords: list[dict[str, Any]]
    lastUpdated: str | None = None


class KeywordStatsOut(BaseModel):
    keyword: str | None
    territory: str | None
    territoryLabel: str | None = None
    currentPosition: int | None
    previousPosition: int | None
    trend: str | None
    bestPosition: int | None
    worstPosition: int | None
    timestamp: str | None = None
    previousTimestamp: str | None = None
    change: int | None = None
    lookbackChange: int | None = None
    lookbackPosition: int | None = None
    observationCount: int = 0


class PlaylistTrendsOut(BaseModel):
    playlistId: str
    name: str
    trends: list[KeywordStatsOut]


class KeywordHistoryOut(BaseModel):
    keyword: str
    territory: str
    rankings: list[dict[str, Any]]
    deduplicated: list[dict[str, Any]]
    skipped: int
    stats: KeywordStatsOut
