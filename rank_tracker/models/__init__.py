from rank_tracker.models.base import Base
from rank_tracker.models.keyword_history import KeywordHistoryEntry
from rank_tracker.models.ranked_playlist import RankedPlaylist

__all__ = [
    "Base",
    "KeywordHistoryEntry",
    "RankedPlaylist",
]
