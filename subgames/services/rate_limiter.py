"""
Rate limiting infrastructure for session starts and external lookups.

Simple in-memory fixed-window counters keyed by (actor, action). Best-effort
abuse deterrence: counts are per process and reset on restart.
"""

import time
import asyncio
import math
from functools import wraps
from typing import Callable, Dict, Mapping, Optional, Tuple
import logging

from subgames.constants import RateLimitConstants
from subgames.utils.exceptions import RateLimitError

logger = logging.getLogger(__name__)

class FixedWindowRateLimiter:
    """In-memory fixed-window rate limiter.

    Each (actor, action) pair owns one window: [start, start + window). The
    first call opens a window with count 1; later calls inside it increment
    the count and fail once it exceeds the action's ceiling.
    """

    def __init__(self, limits: Optional[Mapping[str, Tuple[int, int]]] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.limits = dict(limits if limits is not None else RateLimitConstants.LIMITS)
        self._clock = clock or time.monotonic
        self._windows: Dict[str, Tuple[float, int]] = {}  # key -> (window start, count)
        self._lock = asyncio.Lock()

    async def hit(self, actor_id: str, action: str) -> int:
        """
        Record one request and return the count in the current window.

        Raises:
            RateLimitError: If the ceiling for ``action`` is exceeded
            KeyError: If ``action`` has no configured limit
        """
        limit, window = self.limits[action]
        key = f"{actor_id}:{action}"
        now = self._clock()

        async with self._lock:
            start, count = self._windows.get(key, (None, 0))
            if start is None or now >= start + window:
                self._windows[key] = (now, 1)
                return 1

            count += 1
            self._windows[key] = (start, count)
            if count > limit:
                retry_after = max(1, math.ceil(start + window - now))
                logger.info(f"Rate limit hit for {key} ({count}/{limit}), retry in {retry_after}s")
                raise RateLimitError(action, retry_after)
            return count

    async def purge_expired(self) -> int:
        """Drop windows that have ended so memory stays bounded."""
        now = self._clock()
        async with self._lock:
            expired = [
                key for key, (start, _) in self._windows.items()
                if now >= start + self.limits[key.rsplit(':', 1)[1]][1]
            ]
            for key in expired:
                del self._windows[key]
        return len(expired)

def rate_limit(action: str):
    """Decorator for rate limiting Discord commands through the bot's shared limiter."""
    def decorator(func):
        @wraps(func)
        async def wrapper(self, interaction, *args, **kwargs):
            rate_limiter = self.bot.rate_limiter

            # Bot owner bypasses rate limits
            from subgames.config import Config
            if interaction.user.id == Config.OWNER_DISCORD_ID:
                return await func(self, interaction, *args, **kwargs)

            try:
                await rate_limiter.hit(str(interaction.user.id), action)
            except RateLimitError as e:
                await interaction.response.send_message(e.user_message, ephemeral=True)
                return

            return await func(self, interaction, *args, **kwargs)
        return wrapper
    return decorator
