"""
Leaderboard service - ranked per-cycle creator standings with caching.

Reads are eventually consistent: a short TTL cache sits in front of the
query, and the ledger remains the source of truth.
"""

from typing import Optional
import asyncio
import time
import logging

from sqlalchemy import select
from subgames.constants import CacheConstants
from subgames.services.base import BaseService
from subgames.data_models.results import CycleLeaderboard, LeaderboardRow
from subgames.database.models import LeaderboardEntry, User
from subgames.utils.cycle import get_cycle_id, parse_cycle_id
from subgames.utils.exceptions import InvalidCycleError

logger = logging.getLogger(__name__)


class LeaderboardService(BaseService):
    """Service for cycle leaderboard queries with a TTL cache."""

    def __init__(self, session_factory, clock=None, cache_ttl: Optional[float] = None):
        super().__init__(session_factory, clock)
        # TTL cache keyed by cycle id
        self._cache = {}
        self._cache_timestamps = {}
        self._cache_ttl = CacheConstants.LEADERBOARD_CACHE_TTL if cache_ttl is None else cache_ttl
        self._cache_max_size = CacheConstants.DEFAULT_MAX_CACHE_SIZE
        self._cache_lock = asyncio.Lock()

    async def _get_cached(self, key: str) -> Optional[CycleLeaderboard]:
        async with self._cache_lock:
            if key not in self._cache_timestamps:
                return None
            if time.time() - self._cache_timestamps[key] >= self._cache_ttl:
                return None
            return self._cache[key]

    async def _store(self, key: str, leaderboard: CycleLeaderboard):
        """Cache a result, dropping expired entries and the oldest beyond the size limit."""
        async with self._cache_lock:
            current_time = time.time()
            expired_keys = [
                k for k, timestamp in self._cache_timestamps.items()
                if current_time - timestamp >= self._cache_ttl
            ]
            for k in expired_keys:
                self._cache.pop(k, None)
                self._cache_timestamps.pop(k, None)

            self._cache[key] = leaderboard
            self._cache_timestamps[key] = current_time

            if len(self._cache) > self._cache_max_size:
                oldest = sorted(self._cache_timestamps.items(), key=lambda x: x[1])
                for k, _ in oldest[:len(self._cache) - self._cache_max_size]:
                    self._cache.pop(k, None)
                    self._cache_timestamps.pop(k, None)

    async def get_cycle_leaderboard(self, cycle_id: Optional[str] = None,
                                    limit: Optional[int] = None) -> CycleLeaderboard:
        """
        Ranked entries for ``cycle_id`` (default: the running cycle).

        Ordering matches settlement: most points first, then whoever reached
        that score earliest, so rank 1 is always the would-be winner.
        """
        if cycle_id is None:
            cycle_id = get_cycle_id(self.now())
        else:
            try:
                parse_cycle_id(cycle_id)
            except ValueError:
                raise InvalidCycleError(cycle_id)

        cache_key = f"leaderboard:{cycle_id}"
        cached = await self._get_cached(cache_key)
        if cached is not None:
            return self._truncate(cached, limit)

        async with self.get_session() as session:
            result = await session.execute(
                select(LeaderboardEntry, User.display_name)
                .outerjoin(User, User.id == LeaderboardEntry.creator_id)
                .where(LeaderboardEntry.cycle_id == cycle_id)
                .order_by(
                    LeaderboardEntry.total_points.desc(),
                    LeaderboardEntry.first_to_reach_current_score.asc(),
                    LeaderboardEntry.id.asc()
                )
            )
            rows = [
                LeaderboardRow(
                    rank=rank,
                    creator_id=entry.creator_id,
                    display_name=display_name or 'Unknown Creator',
                    total_points=entry.total_points,
                    supporter_count=entry.supporter_count,
                    first_to_reach_current_score=entry.first_to_reach_current_score
                )
                for rank, (entry, display_name) in enumerate(result.all(), start=1)
            ]

        leaderboard = CycleLeaderboard(cycle_id=cycle_id, rows=rows)
        await self._store(cache_key, leaderboard)
        return self._truncate(leaderboard, limit)

    @staticmethod
    def _truncate(leaderboard: CycleLeaderboard, limit: Optional[int]) -> CycleLeaderboard:
        if limit is None or len(leaderboard.rows) <= limit:
            return leaderboard
        return CycleLeaderboard(cycle_id=leaderboard.cycle_id, rows=leaderboard.rows[:limit])

    async def clear_cache(self):
        """Clears the entire leaderboard cache."""
        async with self._cache_lock:
            self._cache.clear()
            self._cache_timestamps.clear()
        logger.info("Leaderboard cache cleared.")
