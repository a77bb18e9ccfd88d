from __future__ import annotations

from datetime import datetime, timedelta, timezone

from rank_tracker.rankings.dedup import MINUTE_LATEST
from rank_tracker.rankings.keys import exact_key
from rank_tracker.rankings.merge import PlaylistHistory, merge, merge_into_playlist
from rank_tracker.rankings.observation import Observation

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _obs(minutes: int, position: int = 5, keyword: str = "kw", territory: str = "de", seconds: int = 0) -> Observation:
    return Observation(
        keyword=keyword,
        territory=territory,
        position=position,
        timestamp=BASE + timedelta(minutes=minutes, seconds=seconds),
    )


def _keys(series: list[Observation]) -> list[tuple]:
    return [exact_key(item) for item in series]


def test_merge_is_idempotent() -> None:
    existing = [_obs(0), _obs(10, 4)]
    batch = [_obs(20, 3), _obs(30, 2, keyword="other")]

    once = merge(existing, batch)
    twice = merge(once.series, batch)

    assert once.added == 2
    assert twice.added == 0
    assert twice.already_present == 2
    assert _keys(twice.series) == _keys(once.series)


def test_merge_is_commutative_for_disjoint_batches() -> None:
    existing = [_obs(0)]
    first = [_obs(5, 4), _obs(6, 4, territory="us")]
    second = [_obs(7, 3), _obs(8, 9, keyword="Other")]

    left = merge(merge(existing, first).series, second)
    right = merge(merge(existing, second).series, first)

    assert _keys(left.series) == _keys(right.series)


def test_merge_skips_exact_repeats_inside_existing() -> None:
    existing = [_obs(0, 7, keyword="Chill")]

    result = merge(existing, [_obs(0, 7, keyword="chill")])

    assert result.added == 0
    assert result.already_present == 1
    assert result.series[0].keyword == "Chill"


def test_retention_cap_drops_oldest() -> None:
    existing = [_obs(minute) for minute in range(1000)]
    batch = [_obs(minute) for minute in range(1000, 1050)]

    result = merge(existing, batch, cap=1000)

    assert len(result.series) == 1000
    assert result.truncated == 50
    assert result.series[0].timestamp == BASE + timedelta(minutes=50)
    assert result.series[-1].timestamp == BASE + timedelta(minutes=1049)


def test_policy_reconciles_bucket_collisions_in_either_order() -> None:
    early = _obs(0, 12, seconds=5)
    late = _obs(0, 12, seconds=42)

    forward = merge(merge([], [early], policy=MINUTE_LATEST).series, [late], policy=MINUTE_LATEST)
    backward = merge(merge([], [late], policy=MINUTE_LATEST).series, [early], policy=MINUTE_LATEST)

    assert forward.replaced == 1
    assert backward.superseded == 1
    assert _keys(forward.series) == _keys(backward.series) == [exact_key(late)]

    again = merge(forward.series, [early], policy=MINUTE_LATEST)
    assert _keys(again.series) == [exact_key(late)]


def test_merge_into_playlist_fills_only_missing_metadata() -> None:
    now = datetime(2024, 2, 1, 12, tzinfo=timezone.utc)
    history = PlaylistHistory(playlist_id="p1", name="Original", image="")

    merge_into_playlist(history, [_obs(0)], name="Renamed", image="https://img/1.jpg", now=now)

    assert history.name == "Original"
    assert history.image == "https://img/1.jpg"
    assert history.last_updated == now

    merge_into_playlist(history, [], name="", image="https://img/2.jpg", now=now)

    assert history.name == "Original"
    assert history.image == "https://img/1.jpg"


def test_merge_into_new_playlist_takes_incoming_name() -> None:
    history = PlaylistHistory(playlist_id="p1")

    result = merge_into_playlist(history, [_obs(0), _obs(1)], name=" Focus ", image=None)

    assert history.name == "Focus"
    assert history.image == ""
    assert result.added == 2
    assert history.last_updated is not None
