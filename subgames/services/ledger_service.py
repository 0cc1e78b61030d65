"""
Point ledger service - result validation and atomic point transfer.

A submitted result is checked against its game session (existence, single
use, ownership, expiry, server-measured play time) and then committed in one
transaction that:

1. claims the session with a conditional ``UPDATE ... WHERE used = false``,
2. credits the player's cycle pick,
3. upserts the creator's leaderboard entry (adding a new supporter at most once),
4. bumps the player's aggregate stats,
5. appends an immutable audit row.

Any failure rolls the whole transaction back and the session stays unused, so
the client may retry until it expires. Users, picks and leaderboard entries
carry an optimistic version column; a conflicting concurrent writer makes the
flush fail and the attempt is re-run from scratch.
"""

import logging
from datetime import datetime
from typing import Optional
from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from subgames.constants import GAME_RULES
from subgames.data_models.results import (
    SubmitResultOutcome, PickOutcome, UserStats, RecentResult
)
from subgames.database.models import (
    GameSession, CyclePick, LeaderboardEntry, LeaderboardSupporter,
    User, GameResult
)
from subgames.services.base import BaseService
from subgames.utils.cycle import get_cycle_id
from subgames.utils.exceptions import (
    UnauthenticatedError, SessionNotFoundError, SessionAlreadyUsedError,
    SessionOwnershipError, SessionExpiredError, TooFastError, TooSlowError,
    NoPickError, UnknownGameTypeError, CreatorNotFoundError
)

logger = logging.getLogger(__name__)


async def get_pick_for_update(session: AsyncSession, cycle_id: str, user_id: str) -> Optional[CyclePick]:
    return await session.scalar(
        select(CyclePick)
        .where(CyclePick.cycle_id == cycle_id, CyclePick.user_id == user_id)
        .with_for_update()
    )


async def get_entry_for_update(session: AsyncSession, cycle_id: str, creator_id: str) -> Optional[LeaderboardEntry]:
    return await session.scalar(
        select(LeaderboardEntry)
        .where(LeaderboardEntry.cycle_id == cycle_id, LeaderboardEntry.creator_id == creator_id)
        .with_for_update()
    )


async def credit_leaderboard(session: AsyncSession, cycle_id: str, creator_id: str,
                             user_id: str, points: int, now: datetime) -> LeaderboardEntry:
    """
    Add ``points`` to the (cycle, creator) entry, creating it on first credit.

    ``user_id`` joins the supporter set the first time it credits this entry.
    """
    entry = await get_entry_for_update(session, cycle_id, creator_id)
    if entry is None:
        entry = LeaderboardEntry(
            cycle_id=cycle_id,
            creator_id=creator_id,
            total_points=points,
            supporter_count=1,
            first_to_reach_current_score=now,
            last_updated=now,
            supporters=[LeaderboardSupporter(user_id=user_id)]
        )
        session.add(entry)
        return entry

    entry.total_points += points
    entry.last_updated = now
    if points:
        entry.first_to_reach_current_score = now
    if user_id not in entry.supporter_ids:
        entry.supporters.append(LeaderboardSupporter(user_id=user_id))
        entry.supporter_count += 1
    return entry


class PointLedgerService(BaseService):
    """Validates game results and commits point transfers."""

    async def submit_result(self, user_id: str, session_id: str,
                            client_time_taken: Optional[float] = None) -> SubmitResultOutcome:
        """
        Validate a finished game session and award its points to the caller's creator.

        ``client_time_taken`` is stored for audit only; scoring uses the
        server-measured time since the session started.

        Raises:
            UnauthenticatedError, SessionNotFoundError, SessionAlreadyUsedError,
            SessionOwnershipError, SessionExpiredError, TooFastError,
            TooSlowError, NoPickError, TransactionError
        """
        if not user_id:
            raise UnauthenticatedError()

        outcome = await self.execute_with_retry(
            lambda: self._submit_attempt(user_id, session_id, client_time_taken),
            operation="result submission"
        )
        logger.info(
            f"Awarded {outcome.points_awarded} points from user {user_id} to creator "
            f"{outcome.creator_id} in cycle {outcome.cycle_id} ({outcome.elapsed_seconds:.1f}s)"
        )
        return outcome

    async def _submit_attempt(self, user_id: str, session_id: str,
                              client_time_taken: Optional[float]) -> SubmitResultOutcome:
        """Single attempt at validating and committing a game result."""
        async with self.get_session() as session:
            async with session.begin():
                game_session = await session.get(GameSession, session_id, populate_existing=True)
                if game_session is None:
                    raise SessionNotFoundError(session_id)
                if game_session.used:
                    raise SessionAlreadyUsedError(session_id)
                if game_session.user_id != user_id:
                    raise SessionOwnershipError(session_id, user_id)

                now = self.now()
                if now >= game_session.expires_at:
                    raise SessionExpiredError(session_id)

                rule = GAME_RULES.get(game_session.game_type)
                if rule is None:
                    raise UnknownGameTypeError(game_session.game_type)

                elapsed = (now - game_session.start_time).total_seconds()
                if elapsed < rule.min_seconds:
                    raise TooFastError(game_session.game_type, elapsed, rule.min_seconds)
                if elapsed > rule.max_seconds:
                    raise TooSlowError(game_session.game_type, elapsed, rule.max_seconds)

                # Claim the session; only one concurrent submission can flip it
                claim = await session.execute(
                    update(GameSession)
                    .where(and_(GameSession.id == session_id, GameSession.used == False))
                    .values(used=True)
                    .execution_options(synchronize_session=False)
                )
                if claim.rowcount != 1:
                    raise SessionAlreadyUsedError(session_id)

                cycle_id = get_cycle_id(now)
                pick = await get_pick_for_update(session, cycle_id, user_id)
                if pick is None:
                    raise NoPickError(user_id, cycle_id)

                points = rule.points
                creator_id = pick.creator_id

                pick.points_earned += points
                await credit_leaderboard(session, cycle_id, creator_id, user_id, points, now)

                user = await session.get(User, user_id, with_for_update=True)
                if user is None:
                    user = User(id=user_id, display_name=user_id, total_games_played=0, total_points_earned=0)
                    session.add(user)
                    await session.flush()
                user.total_games_played += 1
                user.total_points_earned += points

                session.add(GameResult(
                    user_id=user_id,
                    session_id=session_id,
                    cycle_id=cycle_id,
                    game_type=game_session.game_type,
                    points_awarded=points,
                    elapsed_seconds=elapsed,
                    client_time_taken=client_time_taken,
                    tipped_to_creator=creator_id,
                    validated=True,
                    completed_at=now
                ))

        return SubmitResultOutcome(
            success=True,
            points_awarded=points,
            creator_id=creator_id,
            cycle_id=cycle_id,
            elapsed_seconds=elapsed
        )

    async def pick_creator(self, user_id: str, creator_id: str,
                           display_name: Optional[str] = None) -> PickOutcome:
        """
        Pick (or switch to) a creator for the current cycle.

        Points already earned this cycle follow the pick to the new creator,
        so every leaderboard total keeps matching the picks that reference it.

        Raises:
            UnauthenticatedError: No caller identity
            CreatorNotFoundError: ``creator_id`` is not a registered creator
        """
        if not user_id:
            raise UnauthenticatedError()

        outcome = await self.execute_with_retry(
            lambda: self._pick_attempt(user_id, creator_id, display_name),
            operation="creator pick"
        )
        if outcome.switched:
            logger.info(f"User {user_id} switched from {outcome.previous_creator_id} to {creator_id} in cycle {outcome.cycle_id}")
        elif outcome.previous_creator_id is None:
            logger.info(f"User {user_id} picked {creator_id} for cycle {outcome.cycle_id}")
        return outcome

    async def _pick_attempt(self, user_id: str, creator_id: str,
                            display_name: Optional[str]) -> PickOutcome:
        async with self.get_session() as session:
            async with session.begin():
                creator = await session.get(User, creator_id)
                if creator is None or not creator.is_creator:
                    raise CreatorNotFoundError(creator_id)

                if await session.get(User, user_id) is None:
                    session.add(User(id=user_id, display_name=display_name or user_id))

                now = self.now()
                cycle_id = get_cycle_id(now)
                pick = await get_pick_for_update(session, cycle_id, user_id)

                if pick is None:
                    pick = CyclePick(
                        cycle_id=cycle_id,
                        user_id=user_id,
                        creator_id=creator_id,
                        points_earned=0,
                        picked_at=now,
                        last_switched_at=now,
                        switch_count=0
                    )
                    session.add(pick)

                    entry = await get_entry_for_update(session, cycle_id, creator_id)
                    if entry is not None and user_id not in entry.supporter_ids:
                        entry.supporters.append(LeaderboardSupporter(user_id=user_id))
                        entry.supporter_count += 1
                        entry.last_updated = now
                    return PickOutcome(cycle_id, creator_id, None, 0, 0)

                previous_creator_id = pick.creator_id
                if previous_creator_id == creator_id:
                    return PickOutcome(cycle_id, creator_id, previous_creator_id,
                                       pick.points_earned, pick.switch_count)

                await self._move_support(session, cycle_id, user_id, previous_creator_id,
                                         creator_id, pick.points_earned, now)
                pick.creator_id = creator_id
                pick.last_switched_at = now
                pick.switch_count += 1

                return PickOutcome(cycle_id, creator_id, previous_creator_id,
                                   pick.points_earned, pick.switch_count)

    async def _move_support(self, session: AsyncSession, cycle_id: str, user_id: str,
                            from_creator: str, to_creator: str, points: int, now: datetime):
        """Move a switching player's supporter slot and cycle points between entries."""
        old_entry = await get_entry_for_update(session, cycle_id, from_creator)
        if old_entry is not None:
            for supporter in list(old_entry.supporters):
                if supporter.user_id == user_id:
                    old_entry.supporters.remove(supporter)
                    old_entry.supporter_count = max(0, old_entry.supporter_count - 1)
            if points:
                old_entry.total_points -= points
                old_entry.first_to_reach_current_score = now
            old_entry.last_updated = now

        new_entry = await get_entry_for_update(session, cycle_id, to_creator)
        if new_entry is None and not points:
            return
        await credit_leaderboard(session, cycle_id, to_creator, user_id, points, now)

    async def get_pick(self, user_id: str, cycle_id: Optional[str] = None) -> Optional[CyclePick]:
        cycle_id = cycle_id or get_cycle_id(self.now())
        async with self.get_session() as session:
            return await session.scalar(
                select(CyclePick).where(CyclePick.cycle_id == cycle_id, CyclePick.user_id == user_id)
            )

    async def get_user_stats(self, user_id: str, recent_limit: int = 5) -> Optional[UserStats]:
        """Aggregate stats, the current pick and the latest audited results for a user."""
        cycle_id = get_cycle_id(self.now())
        async with self.get_session() as session:
            user = await session.get(User, user_id)
            if user is None:
                return None

            pick = await session.scalar(
                select(CyclePick).where(CyclePick.cycle_id == cycle_id, CyclePick.user_id == user_id)
            )
            results = await session.execute(
                select(GameResult)
                .where(GameResult.user_id == user_id)
                .order_by(GameResult.completed_at.desc(), GameResult.id.desc())
                .limit(recent_limit)
            )

            return UserStats(
                user_id=user.id,
                total_games_played=user.total_games_played,
                total_points_earned=user.total_points_earned,
                cycle_id=cycle_id,
                current_creator_id=pick.creator_id if pick else None,
                cycle_points=pick.points_earned if pick else 0,
                recent_results=[
                    RecentResult(
                        game_type=r.game_type,
                        points_awarded=r.points_awarded,
                        elapsed_seconds=r.elapsed_seconds,
                        tipped_to_creator=r.tipped_to_creator,
                        completed_at=r.completed_at
                    )
                    for r in results.scalars()
                ]
            )
