"""Watch completion and staleness facts for a requested item."""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from watchtagger.core.models import (
    MOVIE,
    SHOW,
    ManagedMediaRecord,
    MediaItem,
    RequestRecord,
    WatchFacts,
    WatchSession,
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _latest(sessions: List[WatchSession]) -> datetime:
    return max((s.timestamp for s in sessions), default=EPOCH)


class WatchStatusEvaluator:
    """Évalue le visionnage du demandeur, des autres utilisateurs, et l'obsolescence."""

    @staticmethod
    def partition(sessions: List[WatchSession], username: str):
        owner = username.lower()
        own = [s for s in sessions if s.username.lower() == owner]
        others = [s for s in sessions if s.username.lower() != owner]
        return own, others

    @staticmethod
    def requester_fully_watched(
        item: MediaItem,
        own_sessions: List[WatchSession],
        managed: Optional[ManagedMediaRecord],
    ) -> bool:
        if item.kind == MOVIE:
            return any(s.watched for s in own_sessions)

        if item.kind == SHOW:
            stats = managed.episode_statistics if managed else None
            if not stats or stats.episode_count <= 0:
                return False
            # Distinct episodes so repeat views are not double counted
            watched_episodes = {
                s.episode_key for s in own_sessions if s.watched and s.episode_key
            }
            return (
                len(watched_episodes) == stats.episode_count
                and stats.percent_complete == 100
            )

        return False

    @classmethod
    def evaluate(
        cls,
        item: MediaItem,
        request: RequestRecord,
        sessions: List[WatchSession],
        managed: Optional[ManagedMediaRecord],
        now: datetime,
        stale_added_threshold: timedelta,
        stale_view_threshold: timedelta,
    ) -> WatchFacts:
        own, others = cls.partition(sessions, request.requester_username)

        view_cutoff = now - stale_view_threshold
        others_watching = bool(others) and _latest(others) >= view_cutoff

        added_at = item.added_at or request.media_added_at
        added_long_ago = added_at is not None and added_at < now - stale_added_threshold
        last_view = _latest(own + others)
        is_stale = added_long_ago and last_view < view_cutoff

        return WatchFacts(
            requester_fully_watched=cls.requester_fully_watched(item, own, managed),
            others_watching=others_watching,
            is_stale=is_stale,
        )
