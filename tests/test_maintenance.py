from __future__ import annotations

from datetime import datetime, timezone

import pytest

from rank_tracker.core.exceptions import PlaylistNotFound
from rank_tracker.core.locks import PlaylistLockRegistry
from rank_tracker.models import KeywordHistoryEntry, RankedPlaylist
from rank_tracker.rankings.dedup import DedupPolicy
from rank_tracker.repositories.ranked_playlists import get_ranked_playlist
from rank_tracker.services.ingestion import ingest_batch
from rank_tracker.services.maintenance import (
    cleanup_stored_territories,
    deduplicate_stored_playlists,
    recover_playlists,
)

NOW = datetime(2024, 2, 1, tzinfo=timezone.utc)


def _entry(timestamp: str, position: int, territory: str = "de", keyword: str = "chill") -> dict:
    return {"keyword": keyword, "territory": territory, "position": position, "timestamp": timestamp}


def _store(db, playlist_id: str, keywords: list[dict], name: str = "Chill Mix") -> None:
    db.add(
        RankedPlaylist(
            playlist_id=playlist_id,
            name=name,
            keywords=keywords,
            last_updated=NOW,
        )
    )
    db.commit()


def _noisy_keywords() -> list[dict]:
    return [
        _entry("2024-01-01T10:00:05.000Z", 3),
        _entry("2024-01-01T10:00:40.000Z", 3),
        _entry("2024-01-01T11:00:00.000Z", 4),
        _entry("2024-01-01T12:00:00.000Z", 2, territory="unknown"),
    ]


def test_deduplicate_dry_run_reports_without_writing(db) -> None:
    _store(db, "p1", _noisy_keywords())

    summary = deduplicate_stored_playlists(db, dry_run=True, locks=PlaylistLockRegistry())

    assert summary["dryRun"] is True
    assert summary["policy"] == "minute"
    assert summary["playlistsProcessed"] == 1
    assert summary["playlistsChanged"] == 1
    assert summary["duplicatesRemoved"] == 1
    assert summary["invalidRemoved"] == 1
    assert summary["playlistStats"][0]["originalCount"] == 4
    assert summary["playlistStats"][0]["newCount"] == 2
    assert summary["preview"] == [
        {
            "playlist": "Chill Mix",
            "keyword": "chill",
            "territory": "de",
            "kept": "#3 at 2024-01-01T10:00:40.000Z",
            "removed": ["#3 at 2024-01-01T10:00:05.000Z"],
        }
    ]
    assert len(get_ranked_playlist(db, "p1").keywords) == 4


def test_deduplicate_applies_and_is_stable(db) -> None:
    _store(db, "p1", _noisy_keywords())
    _store(db, "p2", [_entry("2024-01-01T10:00:00.000Z", 1)], name="Clean")

    summary = deduplicate_stored_playlists(db, locks=PlaylistLockRegistry())

    assert summary["playlistsProcessed"] == 2
    assert summary["playlistsChanged"] == 1
    record = get_ranked_playlist(db, "p1")
    assert [item["timestamp"] for item in record.keywords] == [
        "2024-01-01T10:00:40.000Z",
        "2024-01-01T11:00:00.000Z",
    ]

    again = deduplicate_stored_playlists(db, locks=PlaylistLockRegistry())
    assert again["playlistsChanged"] == 0
    assert again["duplicatesRemoved"] == 0


def test_deduplicate_window_policy_keeps_best_rank(db) -> None:
    _store(
        db,
        "p1",
        [
            _entry("2024-01-01T10:00:00.000Z", 5),
            _entry("2024-01-01T10:02:00.000Z", 3),
            _entry("2024-01-01T10:04:00.000Z", 4),
        ],
    )

    summary = deduplicate_stored_playlists(
        db,
        policy=DedupPolicy.from_name("window"),
        playlist_id="p1",
        locks=PlaylistLockRegistry(),
    )

    assert summary["policy"] == "window"
    assert summary["duplicatesRemoved"] == 2
    assert [item["position"] for item in get_ranked_playlist(db, "p1").keywords] == [3]


def test_deduplicate_unknown_playlist_raises(db) -> None:
    with pytest.raises(PlaylistNotFound):
        deduplicate_stored_playlists(db, playlist_id="missing", locks=PlaylistLockRegistry())


def test_cleanup_territories_drops_invalid_and_normalizes(db) -> None:
    _store(
        db,
        "p1",
        [
            _entry("2024-01-01T10:00:00.000Z", 3, territory="DE"),
            _entry("2024-01-01T11:00:00.000Z", 4, territory="unknown"),
            _entry("2024-01-01T12:00:00.000Z", 5, territory="us"),
        ],
    )

    preview = cleanup_stored_territories(db, dry_run=True, locks=PlaylistLockRegistry())

    assert preview["invalidRemoved"] == 1
    assert preview["normalized"] == 1
    assert preview["territories"] == {"de": 1, "us": 1}
    assert len(get_ranked_playlist(db, "p1").keywords) == 3

    cleanup_stored_territories(db, locks=PlaylistLockRegistry())

    territories = [item["territory"] for item in get_ranked_playlist(db, "p1").keywords]
    assert territories == ["de", "us"]


def test_recover_rebuilds_from_logs_and_skips_bad_entries(db) -> None:
    ingest_batch(
        db,
        "p1",
        [
            _entry("2024-01-01T10:00:00Z", 9),
            _entry("2024-01-01T11:00:00Z", 7),
            _entry("2024-01-01T12:00:00Z", 4, keyword="focus", territory="us"),
        ],
        name="Chill Mix",
        now=NOW,
        locks=PlaylistLockRegistry(),
    )
    db.add(KeywordHistoryEntry(playlist_id="p1", keyword="chill", territory="de", position=None, timestamp="later"))
    record = get_ranked_playlist(db, "p1")
    record.keywords = []
    db.commit()

    summary = recover_playlists(db, now=NOW, locks=PlaylistLockRegistry())

    assert summary["historyPlaylistsChecked"] == 1
    assert summary["skippedEntries"] == 1
    assert summary["recoveredPlaylists"] == [
        {
            "playlistId": "p1",
            "name": "Chill Mix",
            "observations": 3,
            "skipped": 1,
            "duplicatesRemoved": 0,
        }
    ]
    assert len(get_ranked_playlist(db, "p1").keywords) == 3


def test_recover_without_record_uses_placeholder_name(db) -> None:
    db.add(KeywordHistoryEntry(playlist_id="p9", keyword="chill", territory="de", position=2, timestamp="2024-01-01T10:00:00.000Z"))
    db.commit()

    summary = recover_playlists(db, playlist_id="p9", now=NOW, locks=PlaylistLockRegistry())

    assert summary["recoveredPlaylists"][0]["name"] == "Recovered Playlist p9"
    assert get_ranked_playlist(db, "p9").name == "Recovered Playlist p9"
    assert recover_playlists(db, playlist_id="nothing", locks=PlaylistLockRegistry())["recoveredPlaylists"] == []
