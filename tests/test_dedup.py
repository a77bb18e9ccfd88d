from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import combinations

import pytest

from rank_tracker.rankings.dedup import (
    EXACT_LATEST,
    MINUTE_LATEST,
    WINDOW_BEST_RANK,
    DedupPolicy,
    Granularity,
    Preference,
    deduplicate,
)
from rank_tracker.rankings.observation import Observation


def _payload(keyword: str, position, timestamp: str, territory="de", **extra) -> dict:
    return {
        "keyword": keyword,
        "position": position,
        "territory": territory,
        "timestamp": timestamp,
        **extra,
    }


def test_minute_policy_keeps_latest_within_same_minute() -> None:
    result = deduplicate(
        [
            _payload("chill", 12, "2024-01-01T10:00:05Z"),
            _payload("chill", 12, "2024-01-01T10:00:42Z"),
        ],
        MINUTE_LATEST,
    )

    series = result.series[("chill", "de")]
    assert len(series) == 1
    assert series[0].timestamp == datetime(2024, 1, 1, 10, 0, 42, tzinfo=timezone.utc)
    assert result.duplicates_removed == 1
    assert result.rejected == 0


def test_window_policy_keeps_best_rank() -> None:
    result = deduplicate(
        [
            _payload("chill", 8, "2024-01-01T10:00:00Z"),
            _payload("chill", 3, "2024-01-01T10:02:00Z"),
            _payload("chill", 8, "2024-01-01T10:04:00Z"),
        ],
        WINDOW_BEST_RANK,
    )

    series = result.series[("chill", "de")]
    assert [item.position for item in series] == [3]
    assert len(result.collapsed) == 1
    assert [item.position for item in result.collapsed[0].removed] == [8, 8]


def test_best_rank_ties_break_on_latest_timestamp() -> None:
    result = deduplicate(
        [
            _payload("chill", 3, "2024-01-01T10:01:00Z", sessionId="early"),
            _payload("chill", 3, "2024-01-01T10:03:00Z", sessionId="late"),
            _payload("chill", 5, "2024-01-01T10:04:00Z"),
        ],
        WINDOW_BEST_RANK,
    )

    assert [item.session_id for item in result.series[("chill", "de")]] == ["late"]


def test_exact_policy_only_collapses_identical_repeats() -> None:
    result = deduplicate(
        [
            _payload("chill", 12, "2024-01-01T10:00:05Z"),
            _payload("Chill", 12, "2024-01-01T10:00:05Z", territory="DE"),
            _payload("chill", 12, "2024-01-01T10:00:42Z"),
        ],
        EXACT_LATEST,
    )

    assert len(result.series[("chill", "de")]) == 2
    assert result.duplicates_removed == 1


def test_full_ties_keep_first_in_input_order() -> None:
    observations = [
        _payload("chill", 4, "2024-01-01T10:00:05Z", userId="first"),
        _payload("chill", 4, "2024-01-01T10:00:05Z", userId="second"),
    ]

    forward = deduplicate(observations, MINUTE_LATEST)
    backward = deduplicate(list(reversed(observations)), MINUTE_LATEST)

    assert forward.series[("chill", "de")][0].user_id == "first"
    assert backward.series[("chill", "de")][0].user_id == "second"


def test_invalid_and_malformed_observations_are_counted_not_fatal() -> None:
    result = deduplicate(
        [
            _payload("chill", 12, "2024-01-01T10:00:05Z"),
            _payload("chill", 12, "2024-01-01T10:00:05Z", territory="unknown"),
            _payload("chill", 12, "2024-01-01T10:00:05Z", territory=None),
            _payload("chill", "n/a", "2024-01-01T10:00:05Z"),
            _payload("chill", 12, "not a date"),
            "garbage",
        ],
        MINUTE_LATEST,
    )

    assert result.accepted == 1
    assert result.rejected == 5
    assert result.rejected_reasons == {
        "invalid_territory": 2,
        "malformed_position": 1,
        "malformed_timestamp": 1,
        "malformed_payload": 1,
    }


def test_partitions_by_keyword_and_territory_case_insensitively() -> None:
    result = deduplicate(
        [
            _payload("Chill", 5, "2024-01-01T10:00:05Z", territory="DE"),
            _payload("chill", 5, "2024-01-01T10:00:30Z", territory="de"),
            _payload("chill", 5, "2024-01-01T10:00:30Z", territory="us"),
            _payload("focus", 9, "2024-01-01T10:00:30Z", territory="de"),
        ],
        MINUTE_LATEST,
    )

    assert set(result.series) == {("chill", "de"), ("chill", "us"), ("focus", "de")}
    assert len(result.series[("chill", "de")]) == 1


def test_series_are_sorted_ascending_by_timestamp() -> None:
    result = deduplicate(
        [
            _payload("chill", 5, "2024-01-03T10:00:00Z"),
            _payload("chill", 6, "2024-01-01T10:00:00Z"),
            _payload("chill", 7, "2024-01-02T10:00:00Z"),
        ],
        MINUTE_LATEST,
    )

    assert [item.position for item in result.series[("chill", "de")]] == [6, 7, 5]
    assert [item.position for item in result.observations()] == [6, 7, 5]


@pytest.mark.parametrize("policy", [EXACT_LATEST, MINUTE_LATEST, WINDOW_BEST_RANK])
def test_no_two_survivors_share_a_bucket(policy: DedupPolicy) -> None:
    base = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    observations = [
        Observation(
            keyword="chill" if index % 3 else "Chill",
            territory="de",
            position=1 + index % 4,
            timestamp=base + timedelta(seconds=17 * index),
        )
        for index in range(60)
    ]
    observations += observations[:10]

    result = deduplicate(observations, policy)

    for series in result.series.values():
        for first, second in combinations(series, 2):
            assert policy.bucket_key(first) != policy.bucket_key(second)


def test_single_member_buckets_pass_through_unchanged() -> None:
    observation = Observation(
        keyword="chill",
        territory="de",
        position=2,
        timestamp=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
    )

    result = deduplicate([observation], WINDOW_BEST_RANK)

    assert result.series[("chill", "de")][0] is observation
    assert result.collapsed == []


def test_policy_from_name() -> None:
    assert DedupPolicy.from_name("minute") == MINUTE_LATEST
    assert DedupPolicy.from_name("EXACT") == EXACT_LATEST
    window = DedupPolicy.from_name("window", window_minutes=10)
    assert window.granularity is Granularity.WINDOW
    assert window.preference is Preference.BEST_RANK
    assert window.window_minutes == 10
    with pytest.raises(ValueError):
        DedupPolicy.from_name("nuclear")


def test_collapsed_bucket_preview() -> None:
    result = deduplicate(
        [
            _payload("chill", 8, "2024-01-01T10:00:00Z"),
            _payload("chill", 3, "2024-01-01T10:02:00Z"),
        ],
        WINDOW_BEST_RANK,
    )

    assert result.collapsed[0].to_preview() == {
        "keyword": "chill",
        "territory": "de",
        "kept": "#3 at 2024-01-01T10:02:00.000Z",
        "removed": ["#8 at 2024-01-01T10:00:00.000Z"],
    }


def test_constructed_observations_share_a_partition_across_territory_case() -> None:
    observations = [
        Observation(keyword="chill", territory="DE", position=4, timestamp=datetime(2024, 1, 1, 10, 0, 5, tzinfo=timezone.utc)),
        Observation(keyword="Chill", territory="de", position=4, timestamp=datetime(2024, 1, 1, 10, 0, 40, tzinfo=timezone.utc)),
    ]

    result = deduplicate(observations, MINUTE_LATEST)

    assert list(result.series) == [("chill", "de")]
    assert result.duplicates_removed == 1


def test_naive_timestamps_are_read_as_utc_by_the_window_policy() -> None:
    naive = Observation(keyword="chill", territory="de", position=8, timestamp=datetime(2024, 1, 1, 10, 1))
    aware = Observation(
        keyword="chill", territory="de", position=3, timestamp=datetime(2024, 1, 1, 10, 3, tzinfo=timezone.utc)
    )

    result = deduplicate([naive, aware], WINDOW_BEST_RANK)

    assert [item.position for item in result.observations()] == [3]
