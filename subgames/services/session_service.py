"""
Game session service - the anti-cheat gate.

Issues short-lived, single-use sessions bound to a user, a game type and the
server-side point value, and sweeps sessions that expired unused. Issuing a
session never touches the ledger, so the UI can fire it optimistically.
"""

import uuid
import logging
from datetime import timedelta
from typing import Optional
from sqlalchemy import delete, and_

from subgames.config import Config
from subgames.constants import GAME_RULES, DEFAULT_DIFFICULTY, RateLimitConstants
from subgames.database.models import GameSession, User
from subgames.services.base import BaseService
from subgames.services.rate_limiter import FixedWindowRateLimiter
from subgames.utils.exceptions import UnauthenticatedError, UnknownGameTypeError

logger = logging.getLogger(__name__)

class GameSessionService(BaseService):
    """Creates and garbage-collects game sessions."""

    def __init__(self, session_factory, rate_limiter: Optional[FixedWindowRateLimiter] = None,
                 clock=None, ttl_minutes: Optional[int] = None):
        super().__init__(session_factory, clock)
        self.rate_limiter = rate_limiter
        self.ttl = timedelta(minutes=ttl_minutes or Config.SESSION_TTL_MINUTES)

    async def start_session(self, user_id: str, game_type: str,
                            difficulty: Optional[str] = None,
                            display_name: Optional[str] = None) -> GameSession:
        """
        Issue a new unused session for ``game_type``.

        The expected point value comes from the server-side game rules, never
        from the caller.

        Raises:
            UnauthenticatedError: No caller identity
            UnknownGameTypeError: ``game_type`` has no configured rules
            RateLimitError: Too many session starts in the current window
        """
        if not user_id:
            raise UnauthenticatedError()

        rule = GAME_RULES.get(game_type)
        if rule is None:
            raise UnknownGameTypeError(game_type)

        if self.rate_limiter is not None:
            await self.rate_limiter.hit(user_id, RateLimitConstants.START_SESSION)

        now = self.now()
        game_session = GameSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            game_type=game_type,
            difficulty=difficulty or DEFAULT_DIFFICULTY,
            start_time=now,
            expires_at=now + self.ttl,
            used=False,
            expected_point_value=rule.points
        )

        async with self.get_session() as session:
            if await session.get(User, user_id) is None:
                session.add(User(id=user_id, display_name=display_name or user_id))
            session.add(game_session)

        logger.debug(f"Issued session {game_session.id} ({game_type}) to user {user_id}")
        return game_session

    async def get_game_session(self, session_id: str) -> Optional[GameSession]:
        async with self.get_session() as session:
            return await session.get(GameSession, session_id)

    async def cleanup_expired_sessions(self) -> int:
        """Delete sessions that expired without being used. Returns the number removed."""
        now = self.now()
        async with self.get_session() as session:
            result = await session.execute(
                delete(GameSession).where(
                    and_(
                        GameSession.expires_at < now,
                        GameSession.used == False
                    )
                )
            )
            count = result.rowcount or 0

        if count:
            logger.info(f"Cleaned up {count} expired game sessions")
        else:
            logger.debug("No expired game sessions to clean up")
        return count
