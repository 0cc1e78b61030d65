"""Referral click tracking for creator promotional links."""

import logging
from typing import Optional
from sqlalchemy import update

from subgames.constants import RateLimitConstants
from subgames.database.models import User, ReferralClick
from subgames.services.base import BaseService
from subgames.services.rate_limiter import FixedWindowRateLimiter
from subgames.utils.exceptions import CreatorNotFoundError

logger = logging.getLogger(__name__)

class ReferralService(BaseService):

    def __init__(self, session_factory, rate_limiter: Optional[FixedWindowRateLimiter] = None, clock=None):
        super().__init__(session_factory, clock)
        self.rate_limiter = rate_limiter

    async def track_referral_click(self, creator_id: str, actor_id: Optional[str] = None) -> int:
        """
        Count one click on a creator's promotional link and return the new total.

        Anonymous callers are rate limited under their network origin, which
        the caller passes as ``actor_id``.

        Raises:
            RateLimitError: More than the allowed clicks in the current window
            CreatorNotFoundError: ``creator_id`` is not a registered creator
        """
        actor = actor_id or 'anonymous'
        if self.rate_limiter is not None:
            await self.rate_limiter.hit(actor, RateLimitConstants.REFERRAL_CLICK)

        async with self.get_session() as session:
            creator = await session.get(User, creator_id)
            if creator is None or not creator.is_creator:
                raise CreatorNotFoundError(creator_id)

            # Single-statement increment; counters tolerate concurrent clicks
            await session.execute(
                update(User)
                .where(User.id == creator_id)
                .values(referral_clicks=User.referral_clicks + 1, version=User.version + 1)
                .execution_options(synchronize_session=False)
            )
            session.add(ReferralClick(creator_id=creator_id, clicked_by=actor, clicked_at=self.now()))
            await session.flush()
            await session.refresh(creator)
            total = creator.referral_clicks

        logger.info(f"Referral click for creator {creator_id} from {actor} (total {total})")
        return total
