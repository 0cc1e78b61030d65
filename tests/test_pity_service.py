import logging

import pytest
from sqlalchemy import select

from subgames.database.models import PityEligibility, StartingBonus, LeaderboardEntry, CyclePick
from subgames.services.pity_service import (
    NOT_ELIGIBLE, ALREADY_REDEEMED, WINNER_MISMATCH, NO_CURRENT_PICK, CYCLE_NOT_CLOSED
)
from subgames.services.settlement_service import CycleSettlementService
from subgames.utils.exceptions import UnauthenticatedError
from tests.helpers import AFTER_CLOSE, CURRENT_CYCLE, NEXT_CYCLE


@pytest.fixture
async def settled(creators, ledger, play, db, clock, pity_service):
    """CURRENT_CYCLE won by alpha (player-1, player-2) over beta (player-3), pity issued via the event."""
    settlement = CycleSettlementService(
        db.session_factory, on_winner_announced=pity_service.handle_winner_announced, clock=clock
    )
    await ledger.pick_creator('player-1', 'alpha')
    await ledger.pick_creator('player-2', 'alpha')
    await ledger.pick_creator('player-3', 'beta')
    await play('player-1')
    await play('player-3', 'reactionTest', 5)
    clock.set(AFTER_CLOSE)
    result = await settlement.settle_cycle()
    assert result.winner.winner_id == 'alpha'
    return settlement


async def eligibility_rows(db, cycle_id=CURRENT_CYCLE):
    async with db.get_session() as session:
        rows = (await session.execute(
            select(PityEligibility).where(PityEligibility.cycle_id == cycle_id)
        )).scalars().all()
    return {row.user_id: row for row in rows}


async def get_entry(db, cycle_id, creator_id):
    async with db.get_session() as session:
        return await session.scalar(
            select(LeaderboardEntry).where(
                LeaderboardEntry.cycle_id == cycle_id,
                LeaderboardEntry.creator_id == creator_id
            )
        )


async def test_only_losing_supporters_become_eligible(settled, db):
    rows = await eligibility_rows(db)

    assert set(rows) == {'player-3'}
    row = rows['player-3']
    assert row.eligible_for_pity_point and not row.clicked_winner_link
    assert (row.winner_id, row.their_creator_id) == ('alpha', 'beta')


async def test_reissuing_is_idempotent(settled, pity_service, db):
    result = await pity_service.award_pity_points(CURRENT_CYCLE)

    assert (result.winner_id, result.eligible_count) == ('alpha', 1)
    assert set(await eligibility_rows(db)) == {'player-3'}


async def test_no_winner_means_no_pity(pity_service, clock, db):
    clock.set(AFTER_CLOSE)
    result = await pity_service.award_pity_points()

    assert result.winner_id is None
    assert result.eligible_count == 0
    assert await eligibility_rows(db) == {}


async def test_redemption_credits_current_creator(settled, ledger, pity_service, db, clock):
    await ledger.pick_creator('player-3', 'beta')

    redemption = await pity_service.redeem_pity('player-3', CURRENT_CYCLE)

    assert redemption.pity_point_applied
    assert (redemption.points_awarded, redemption.to_creator, redemption.cycle_id) == (1, 'beta', NEXT_CYCLE)

    entry = await get_entry(db, NEXT_CYCLE, 'beta')
    assert entry.total_points == 1
    assert entry.supporter_ids == {'player-3'}
    assert (await ledger.get_pick('player-3')).points_earned == 1

    row = (await eligibility_rows(db))['player-3']
    assert row.clicked_winner_link
    assert row.clicked_at == clock()

    async with db.get_session() as session:
        bonus = await session.scalar(select(StartingBonus).where(StartingBonus.cycle_id == NEXT_CYCLE))
    assert (bonus.creator_id, bonus.pity_points_received) == ('beta', 1)
    assert [s.user_id for s in bonus.from_supporters] == ['player-3']


async def test_redemption_follows_the_new_pick(settled, ledger, pity_service, db):
    await ledger.pick_creator('player-3', 'alpha')

    redemption = await pity_service.redeem_pity('player-3', CURRENT_CYCLE)

    assert redemption.to_creator == 'alpha'
    assert (await get_entry(db, NEXT_CYCLE, 'alpha')).total_points == 1


async def test_second_redemption_is_a_no_op(settled, ledger, pity_service, db):
    await ledger.pick_creator('player-3', 'beta')

    first = await pity_service.redeem_pity('player-3', CURRENT_CYCLE)
    second = await pity_service.click_winner_link('player-3', CURRENT_CYCLE, 'https://example.com/alpha')

    assert first.pity_point_applied
    assert not second.pity_point_applied
    assert second.reason == ALREADY_REDEEMED
    assert (await get_entry(db, NEXT_CYCLE, 'beta')).total_points == 1


async def test_winners_supporters_cannot_redeem(settled, ledger, pity_service):
    await ledger.pick_creator('player-1', 'alpha')

    redemption = await pity_service.redeem_pity('player-1', CURRENT_CYCLE)

    assert not redemption.pity_point_applied
    assert redemption.reason == NOT_ELIGIBLE


async def test_redemption_needs_a_current_pick(settled, pity_service, db):
    redemption = await pity_service.redeem_pity('player-3', CURRENT_CYCLE)

    assert not redemption.pity_point_applied
    assert redemption.reason == NO_CURRENT_PICK
    # Nothing was spent
    assert (await eligibility_rows(db))['player-3'].is_redeemable


async def test_running_cycle_pity_is_not_spent_into_itself(settled, ledger, pity_service, db):
    await ledger.pick_creator('player-3', 'beta')
    async with db.transaction() as session:
        session.add(PityEligibility(
            cycle_id=NEXT_CYCLE, user_id='player-3', winner_id='alpha', their_creator_id='beta'
        ))

    redemption = await pity_service.redeem_pity('player-3', NEXT_CYCLE)

    assert not redemption.pity_point_applied
    assert redemption.reason == CYCLE_NOT_CLOSED
    assert (await eligibility_rows(db, NEXT_CYCLE))['player-3'].is_redeemable
    assert await get_entry(db, NEXT_CYCLE, 'beta') is None


async def test_apply_pity_points_checks_winner(settled, ledger, pity_service):
    await ledger.pick_creator('player-3', 'beta')

    wrong = await pity_service.apply_pity_points('player-3', CURRENT_CYCLE, 'beta')
    right = await pity_service.apply_pity_points('player-3', CURRENT_CYCLE, 'alpha')

    assert wrong.reason == WINNER_MISMATCH
    assert right.pity_point_applied


async def test_reissue_keeps_spent_points_spent(settled, ledger, pity_service, db):
    await ledger.pick_creator('player-3', 'beta')
    await pity_service.redeem_pity('player-3', CURRENT_CYCLE)

    await pity_service.award_pity_points(CURRENT_CYCLE)

    row = (await eligibility_rows(db))['player-3']
    assert row.clicked_winner_link
    assert not (await pity_service.redeem_pity('player-3', CURRENT_CYCLE)).pity_point_applied


async def test_redemption_keeps_leaderboard_conserved(settled, ledger, play, pity_service, db):
    await ledger.pick_creator('player-3', 'beta')
    await ledger.pick_creator('player-4', 'beta')
    await play('player-4')
    await pity_service.redeem_pity('player-3', CURRENT_CYCLE)

    async with db.get_session() as session:
        picks = (await session.execute(
            select(CyclePick).where(CyclePick.cycle_id == NEXT_CYCLE, CyclePick.creator_id == 'beta')
        )).scalars().all()
    entry = await get_entry(db, NEXT_CYCLE, 'beta')
    assert entry.total_points == sum(p.points_earned for p in picks) == 4
    assert entry.supporter_count == 2


async def test_pity_status(settled, ledger, pity_service):
    status = await pity_service.get_pity_status('player-3')
    assert status.cycle_id == CURRENT_CYCLE
    assert status.has_pity_point
    assert status.winner_id == 'alpha'

    await ledger.pick_creator('player-3', 'beta')
    await pity_service.redeem_pity('player-3')

    assert not (await pity_service.get_pity_status('player-3')).has_pity_point
    assert not (await pity_service.get_pity_status('player-1')).has_pity_point


async def test_redemption_requires_identity(pity_service):
    with pytest.raises(UnauthenticatedError):
        await pity_service.redeem_pity('', CURRENT_CYCLE)


async def test_winner_link_visit_is_logged(settled, ledger, pity_service, caplog):
    caplog.set_level(logging.DEBUG, logger='subgames.services.pity_service')
    await ledger.pick_creator('player-3', 'beta')

    redemption = await pity_service.click_winner_link('player-3', CURRENT_CYCLE, 'https://example.com/alpha')

    assert redemption.pity_point_applied
    assert "followed winner link https://example.com/alpha" in caplog.text
