"""
Services package for the SubGames bot.
"""

from .base import BaseService
from .rate_limiter import FixedWindowRateLimiter
from .session_service import GameSessionService
from .ledger_service import PointLedgerService
from .settlement_service import CycleSettlementService
from .pity_service import PityPointService
from .leaderboard import LeaderboardService
from .referral_service import ReferralService

__all__ = [
    'BaseService', 'FixedWindowRateLimiter', 'GameSessionService', 'PointLedgerService',
    'CycleSettlementService', 'PityPointService', 'LeaderboardService', 'ReferralService'
]
