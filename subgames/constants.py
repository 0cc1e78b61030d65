"""
Bot-wide constants for the SubGames Discord bot.

Game rules and rate limits live here as read-only tables; they are the
server-side source of truth for point values and timing windows and are
never taken from the client.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple


@dataclass(frozen=True)
class GameRule:
    """Anti-cheat timing window and point value for one minigame."""
    min_seconds: float
    max_seconds: float
    points: int


# Every max_seconds must stay below the session TTL (10 minutes by default)
GAME_RULES: Mapping[str, GameRule] = MappingProxyType({
    'reactionTest': GameRule(min_seconds=2.0, max_seconds=60.0, points=1),
    'whackAMole': GameRule(min_seconds=3.0, max_seconds=120.0, points=3),
    'blockBlast': GameRule(min_seconds=20.0, max_seconds=540.0, points=5),
    'colorMatch': GameRule(min_seconds=15.0, max_seconds=300.0, points=8),
    'memoryFlip': GameRule(min_seconds=10.0, max_seconds=300.0, points=5),
    'patternPro': GameRule(min_seconds=15.0, max_seconds=300.0, points=10),
})

DIFFICULTIES: Tuple[str, ...] = ('easy', 'standard', 'hard')
DEFAULT_DIFFICULTY = 'easy'


class CycleConstants:
    """Constants related to the daily scoring cycle."""

    # Hour (reference timezone) at which every cycle closes
    BOUNDARY_HOUR = 18

    # Cycle key format, e.g. 2025-11-12-18:00
    KEY_FORMAT = "%Y-%m-%d-18:00"

    # Points granted by a redeemed pity point
    PITY_POINT_VALUE = 1


class RateLimitConstants:
    """Fixed-window limits as (max requests, window seconds) per action."""

    START_SESSION = 'start_session'
    CHANNEL_LOOKUP = 'channel_lookup'
    REFERRAL_CLICK = 'referral_click'

    LIMITS: Mapping[str, Tuple[int, int]] = MappingProxyType({
        START_SESSION: (30, 3600),
        CHANNEL_LOOKUP: (5, 600),
        REFERRAL_CLICK: (10, 3600),
    })


class CacheConstants:
    """Constants for caching behavior."""

    # Leaderboard reads are eventually consistent
    LEADERBOARD_CACHE_TTL = 30

    DEFAULT_MAX_CACHE_SIZE = 200


class UIConstants:
    """Constants for Discord UI elements."""

    DEFAULT_EMBED_COLOR = 0x3b5998
    GOLD_RANK_COLOR = 0xffd700
    SUCCESS_COLOR = 0x2ecc71

    TROPHY_EMOJI = "🏆"
    GIFT_EMOJI = "🎁"
    TARGET_EMOJI = "🎯"
    GAME_EMOJI = "🎮"

    LEADERBOARD_PAGE_SIZE = 10
