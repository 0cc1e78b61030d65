"""
Cycle settlement service.

Ranks the leaderboard of a closed cycle and writes its CycleWinner record.
The winner is the entry with the most points; ties go to the entry that
reached its current score first. Writing a new winner record publishes a
``CycleWinnerAnnounced`` event through the injected callback so the pity
issuer can fan out eligibility without polling.
"""

import logging
from typing import Awaitable, Callable, Optional
from sqlalchemy import select

from subgames.data_models.results import CycleWinnerAnnounced, SettlementResult, WinnerSummary
from subgames.database.models import CycleWinner, LeaderboardEntry, User
from subgames.services.base import BaseService
from subgames.utils.cycle import get_completed_cycle_id, get_cycle_bounds, is_cycle_closed, parse_cycle_id
from subgames.utils.exceptions import CycleNotClosedError, InvalidCycleError

logger = logging.getLogger(__name__)

WinnerCallback = Callable[[CycleWinnerAnnounced], Awaitable[None]]


def _summarize(record: CycleWinner) -> WinnerSummary:
    return WinnerSummary(
        cycle_id=record.cycle_id,
        winner_id=record.winner_id,
        winner_name=record.winner_name,
        winner_photo_url=record.winner_photo_url or '',
        promotional_url=record.promotional_url or '',
        final_score=record.final_score,
        supporter_count=record.supporter_count,
        first_to_reach_score=record.first_to_reach_score,
        announced_at=record.announced_at,
        cycle_start_time=record.cycle_start_time,
        cycle_end_time=record.cycle_end_time
    )


class CycleSettlementService(BaseService):
    """Settles closed cycles and serves their winner records."""

    def __init__(self, session_factory, on_winner_announced: Optional[WinnerCallback] = None, clock=None):
        super().__init__(session_factory, clock)
        self.on_winner_announced = on_winner_announced

    def _resolve_cycle(self, cycle_id: Optional[str]) -> str:
        if cycle_id is None:
            return get_completed_cycle_id(self.now())
        try:
            parse_cycle_id(cycle_id)
        except ValueError:
            raise InvalidCycleError(cycle_id)
        return cycle_id

    async def settle_cycle(self, cycle_id: Optional[str] = None, force: bool = False) -> SettlementResult:
        """
        Pick and record the winner of ``cycle_id`` (default: the most recently closed cycle).

        Settling an already-settled cycle returns the stored record untouched
        unless ``force`` is set, in which case the ranking is recomputed and
        the record overwritten. A cycle without leaderboard entries reports
        no entries and writes nothing.

        Args:
            cycle_id: Cycle key to settle
            force: Recompute and overwrite an existing winner record

        Returns:
            SettlementResult with the winner summary, or none when the cycle had no entries

        Raises:
            InvalidCycleError: Malformed cycle key
            CycleNotClosedError: The cycle is still running or lies in the future
        """
        cycle_id = self._resolve_cycle(cycle_id)
        if not is_cycle_closed(cycle_id, self.now()):
            raise CycleNotClosedError(cycle_id)
        logger.info(f"Calculating winner for cycle {cycle_id}")

        async with self.get_session() as session:
            async with session.begin():
                existing = await session.get(CycleWinner, cycle_id)
                if existing is not None and not force:
                    logger.info(f"Cycle {cycle_id} already settled, winner {existing.winner_id}")
                    return SettlementResult(cycle_id, _summarize(existing), created=False)

                top = await session.scalar(
                    select(LeaderboardEntry)
                    .where(LeaderboardEntry.cycle_id == cycle_id)
                    .order_by(
                        LeaderboardEntry.total_points.desc(),
                        LeaderboardEntry.first_to_reach_current_score.asc(),
                        LeaderboardEntry.id.asc()
                    )
                    .limit(1)
                )
                if top is None:
                    logger.info(f"No leaderboard entries for cycle {cycle_id}")
                    return SettlementResult(cycle_id)

                creator = await session.get(User, top.creator_id)
                start_time, end_time = get_cycle_bounds(cycle_id)

                record = existing or CycleWinner(cycle_id=cycle_id)
                record.winner_id = top.creator_id
                record.winner_name = creator.display_name if creator else 'Unknown Creator'
                record.winner_photo_url = creator.photo_url if creator else ''
                record.promotional_url = creator.promotional_url if creator else ''
                record.final_score = top.total_points
                record.supporter_count = top.supporter_count
                record.first_to_reach_score = top.first_to_reach_current_score
                record.announced_at = self.now()
                record.cycle_start_time = start_time
                record.cycle_end_time = end_time
                if existing is None:
                    session.add(record)

                summary = _summarize(record)

        logger.info(
            f"Winner for cycle {cycle_id}: {summary.winner_name} ({summary.winner_id}) "
            f"with {summary.final_score} points from {summary.supporter_count} supporters"
        )

        if self.on_winner_announced is not None:
            try:
                await self.on_winner_announced(CycleWinnerAnnounced(cycle_id, summary.winner_id))
            except Exception as e:
                # The winner record is committed; pity issuance can be replayed by an admin
                logger.error(f"Winner announcement for cycle {cycle_id} failed: {e}", exc_info=True)

        return SettlementResult(cycle_id, summary, created=True)

    async def get_winner(self, cycle_id: Optional[str] = None) -> Optional[WinnerSummary]:
        """Winner record for ``cycle_id`` (default: the most recently closed cycle), if settled."""
        cycle_id = self._resolve_cycle(cycle_id)
        async with self.get_session() as session:
            record = await session.get(CycleWinner, cycle_id)
            return _summarize(record) if record else None
