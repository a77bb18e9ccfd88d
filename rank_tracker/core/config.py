import os


def _int_env(name: str, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    raw_value = os.getenv(name, str(default))
    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        parsed = default
    parsed = max(parsed, minimum)
    if maximum is not None:
        parsed = min(parsed, maximum)
    return parsed


PLAYLIST_RETENTION_CAP = _int_env("PLAYLIST_RETENTION_CAP", 1000)
KEYWORD_HISTORY_CAP = _int_env("KEYWORD_HISTORY_CAP", 100)
MAX_POSITION = _int_env("MAX_POSITION", 10000, maximum=2**31 - 1)

DEDUP_DEFAULT_POLICY = (os.getenv("DEDUP_DEFAULT_POLICY") or "minute").strip().lower()
DEDUP_WINDOW_MINUTES = _int_env("DEDUP_WINDOW_MINUTES", 5, maximum=24 * 60)

TREND_LOOKBACK = _int_env("TREND_LOOKBACK", 5, maximum=100)

PLAYLIST_LOCK_TIMEOUT_SECONDS = _int_env("PLAYLIST_LOCK_TIMEOUT_SECONDS", 10, maximum=120)

RECOVERED_PLAYLIST_NAME = "Recovered Playlist {}"
