"""
Base service class for the SubGames bot.

Provides async database session management, an injectable clock, and retry
logic for transactions that lose a write conflict.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar
from datetime import datetime
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import AsyncSession

from subgames.config import Config
from subgames.utils.cycle import utc_now
from subgames.utils.exceptions import TransactionError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Errors meaning "someone else wrote first"; the whole transaction is re-run
CONFLICT_ERRORS = (IntegrityError, StaleDataError, OperationalError)

class BaseService:
    """Base class for all services with async database session management."""

    def __init__(self, session_factory, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from Database class
            clock: Returns the current time as naive UTC; defaults to the wall clock
        """
        self.session_factory = session_factory
        self.clock = clock or utc_now

    def now(self) -> datetime:
        return self.clock()

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def execute_with_retry(self, func: Callable[[], Awaitable[T]], operation: str,
                                 max_retries: Optional[int] = None) -> T:
        """
        Run ``func`` (one full transaction attempt) until it commits without a write conflict.

        Domain errors raised by ``func`` propagate immediately; only conflict
        errors are retried, with capped exponential backoff.
        """
        if max_retries is None:
            max_retries = Config.LEDGER_MAX_RETRIES

        for attempt in range(max_retries):
            try:
                return await func()
            except CONFLICT_ERRORS as e:
                if attempt == max_retries - 1:
                    logger.error(f"{operation} failed after {max_retries} attempts: {e}")
                    raise TransactionError(operation, max_retries)
                logger.warning(f"Retry attempt {attempt + 1} for {operation}: {e}")
                await asyncio.sleep(min(0.05 * (2 ** attempt), 1.0))
