"""
Pity point issuance and redemption.

After a cycle settles, every player whose pick backed a losing creator gets a
pity point for that cycle. Visiting the winner's link spends it: one point
goes to the player's creator in the *current* cycle. Spending is
irrevocable and happens at most once per (cycle, player).
"""

import logging
from typing import Optional
from sqlalchemy import select, update, and_

from subgames.constants import CycleConstants
from subgames.data_models.results import (
    CycleWinnerAnnounced, PityIssueResult, PityRedemption, PityStatus
)
from subgames.database.models import (
    CycleWinner, CyclePick, PityEligibility, StartingBonus, StartingBonusSupporter
)
from subgames.services.base import BaseService
from subgames.services.ledger_service import credit_leaderboard, get_pick_for_update
from subgames.utils.cycle import get_cycle_id, get_completed_cycle_id, is_cycle_closed, parse_cycle_id
from subgames.utils.exceptions import InvalidCycleError, UnauthenticatedError

logger = logging.getLogger(__name__)

# Reasons reported when a redemption does not apply
NOT_ELIGIBLE = 'not_eligible'
ALREADY_REDEEMED = 'already_redeemed'
WINNER_MISMATCH = 'winner_mismatch'
NO_CURRENT_PICK = 'no_current_pick'
CYCLE_NOT_CLOSED = 'cycle_not_closed'


class _NotApplicable(Exception):
    """Aborts a redemption attempt and rolls back; never leaves this module."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PityPointService(BaseService):
    """Issues pity eligibility after settlement and redeems it on winner-link clicks."""

    def _resolve_cycle(self, cycle_id: Optional[str]) -> str:
        if cycle_id is None:
            return get_completed_cycle_id(self.now())
        try:
            parse_cycle_id(cycle_id)
        except ValueError:
            raise InvalidCycleError(cycle_id)
        return cycle_id

    async def handle_winner_announced(self, event: CycleWinnerAnnounced) -> PityIssueResult:
        return await self.award_pity_points(event.cycle_id)

    async def award_pity_points(self, cycle_id: Optional[str] = None) -> PityIssueResult:
        """
        Mark every non-winning pick of a settled cycle eligible for a pity point.

        Safe to re-run: rows are upserted, spent points stay spent, and picks
        that now back the recorded winner lose any stale eligibility.
        """
        cycle_id = self._resolve_cycle(cycle_id)

        async with self.get_session() as session:
            async with session.begin():
                winner = await session.get(CycleWinner, cycle_id)
                if winner is None:
                    logger.info(f"No winner recorded for cycle {cycle_id}, skipping pity points")
                    return PityIssueResult(cycle_id, None, 0)

                picks = (await session.execute(
                    select(CyclePick).where(CyclePick.cycle_id == cycle_id)
                )).scalars().all()
                existing = {
                    row.user_id: row for row in (await session.execute(
                        select(PityEligibility).where(PityEligibility.cycle_id == cycle_id)
                    )).scalars()
                }

                eligible_count = 0
                for pick in picks:
                    row = existing.get(pick.user_id)
                    if pick.creator_id == winner.winner_id:
                        if row is not None:
                            row.eligible_for_pity_point = False
                            row.winner_id = winner.winner_id
                        continue

                    if row is None:
                        row = PityEligibility(
                            cycle_id=cycle_id,
                            user_id=pick.user_id,
                            clicked_winner_link=False
                        )
                        session.add(row)
                    row.eligible_for_pity_point = True
                    row.winner_id = winner.winner_id
                    row.their_creator_id = pick.creator_id
                    eligible_count += 1

        logger.info(f"Awarded pity points to {eligible_count} users for cycle {cycle_id}")
        return PityIssueResult(cycle_id, winner.winner_id, eligible_count)

    async def redeem_pity(self, user_id: str, cycle_id: Optional[str] = None,
                          winner_id: Optional[str] = None) -> PityRedemption:
        """
        Spend the caller's pity point from ``cycle_id`` on their current creator.

        Returns a non-applied result with a ``reason`` instead of raising when
        there is nothing to redeem.

        Raises:
            UnauthenticatedError: No caller identity
            InvalidCycleError: Malformed cycle key
            TransactionError: Conflicting writes kept winning
        """
        if not user_id:
            raise UnauthenticatedError()
        cycle_id = self._resolve_cycle(cycle_id)

        try:
            redemption = await self.execute_with_retry(
                lambda: self._redeem_attempt(user_id, cycle_id, winner_id),
                operation="pity redemption"
            )
        except _NotApplicable as e:
            logger.debug(f"Pity point for user {user_id} in cycle {cycle_id} not applied: {e.reason}")
            return PityRedemption(pity_point_applied=False, cycle_id=cycle_id, reason=e.reason)

        logger.info(
            f"Applied pity point from cycle {cycle_id} for user {user_id} "
            f"to creator {redemption.to_creator} in cycle {redemption.cycle_id}"
        )
        return redemption

    async def _redeem_attempt(self, user_id: str, cycle_id: str,
                              winner_id: Optional[str]) -> PityRedemption:
        points = CycleConstants.PITY_POINT_VALUE
        now = self.now()
        # Points only ever flow forward into a later cycle
        if not is_cycle_closed(cycle_id, now):
            raise _NotApplicable(CYCLE_NOT_CLOSED)
        current_cycle_id = get_cycle_id(now)

        async with self.get_session() as session:
            async with session.begin():
                eligibility = await session.scalar(
                    select(PityEligibility).where(
                        PityEligibility.cycle_id == cycle_id,
                        PityEligibility.user_id == user_id
                    )
                )
                if eligibility is None or not eligibility.eligible_for_pity_point:
                    raise _NotApplicable(NOT_ELIGIBLE)
                if eligibility.clicked_winner_link:
                    raise _NotApplicable(ALREADY_REDEEMED)
                if winner_id is not None and winner_id != eligibility.winner_id:
                    raise _NotApplicable(WINNER_MISMATCH)

                claim = await session.execute(
                    update(PityEligibility)
                    .where(and_(
                        PityEligibility.id == eligibility.id,
                        PityEligibility.clicked_winner_link == False
                    ))
                    .values(clicked_winner_link=True, clicked_at=now)
                    .execution_options(synchronize_session=False)
                )
                if claim.rowcount != 1:
                    raise _NotApplicable(ALREADY_REDEEMED)

                pick = await get_pick_for_update(session, current_cycle_id, user_id)
                if pick is None:
                    raise _NotApplicable(NO_CURRENT_PICK)

                pick.points_earned += points
                await credit_leaderboard(session, current_cycle_id, pick.creator_id, user_id, points, now)

                bonus = await session.scalar(
                    select(StartingBonus).where(
                        StartingBonus.cycle_id == current_cycle_id,
                        StartingBonus.creator_id == pick.creator_id
                    )
                )
                if bonus is None:
                    bonus = StartingBonus(
                        cycle_id=current_cycle_id,
                        creator_id=pick.creator_id,
                        pity_points_received=0,
                        from_supporters=[]
                    )
                    session.add(bonus)
                bonus.pity_points_received += points
                if user_id not in {s.user_id for s in bonus.from_supporters}:
                    bonus.from_supporters.append(StartingBonusSupporter(user_id=user_id))

                return PityRedemption(
                    pity_point_applied=True,
                    points_awarded=points,
                    to_creator=pick.creator_id,
                    cycle_id=current_cycle_id
                )

    async def click_winner_link(self, user_id: str, cycle_id: Optional[str] = None,
                                winner_url: Optional[str] = None) -> PityRedemption:
        """Redeem on a winner-link visit; the link itself is opened by the caller."""
        if winner_url:
            logger.debug(f"User {user_id} followed winner link {winner_url}")
        return await self.redeem_pity(user_id, cycle_id)

    async def apply_pity_points(self, user_id: str, previous_cycle_id: str,
                                winner_id: str) -> PityRedemption:
        return await self.redeem_pity(user_id, previous_cycle_id, winner_id=winner_id)

    async def get_pity_status(self, user_id: str) -> PityStatus:
        """Whether the user holds an unspent pity point for the most recently closed cycle."""
        cycle_id = get_completed_cycle_id(self.now())
        async with self.get_session() as session:
            eligibility = await session.scalar(
                select(PityEligibility).where(
                    PityEligibility.cycle_id == cycle_id,
                    PityEligibility.user_id == user_id
                )
            )
        if eligibility is None:
            return PityStatus(cycle_id, False)
        return PityStatus(cycle_id, eligibility.is_redeemable, eligibility.winner_id)
