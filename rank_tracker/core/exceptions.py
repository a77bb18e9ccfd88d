"""Exceptions raised by the ranking ingestion engine and its storage boundary."""

from __future__ import annotations


class RankTrackerError(Exception):
    """Base exception for all rank tracker errors."""


class ObservationError(RankTrackerError):
    """A single observation could not be accepted.

    These are recovered locally: the batch keeps going and the ``reason`` is
    counted in the ingestion report.
    """

    reason = "invalid_observation"

    def __init__(self, message: str, reason: str | None = None):
        if reason is not None:
            self.reason = reason
        super().__init__(message)


class InvalidTerritory(ObservationError):
    """Raised when a territory does not normalize to a two-letter code."""

    reason = "invalid_territory"

    def __init__(self, territory: object):
        self.territory = territory
        super().__init__(f"Invalid territory: {territory!r}")


class MalformedObservation(ObservationError):
    """Raised when keyword, position or timestamp cannot be parsed."""

    reason = "malformed_payload"


class BatchEnvelopeError(RankTrackerError):
    """Raised when a whole batch is structurally unusable."""


class PlaylistNotFound(RankTrackerError):
    """Raised when no canonical record exists for a playlist."""

    def __init__(self, playlist_id: str):
        self.playlist_id = playlist_id
        super().__init__(f"Playlist not found: {playlist_id}")


class ConcurrentMergeConflict(RankTrackerError):
    """Raised when a merge could not be serialized against another writer.

    Callers may retry; the stored record was left untouched.
    """

    retryable = True

    def __init__(self, playlist_id: str, detail: str | None = None):
        self.playlist_id = playlist_id
        message = f"Concurrent merge conflict for playlist {playlist_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
