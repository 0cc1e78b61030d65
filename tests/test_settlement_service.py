import pytest
from datetime import datetime
from sqlalchemy import select, update

from subgames.database.models import CycleWinner, LeaderboardEntry
from subgames.services.settlement_service import CycleSettlementService
from subgames.utils.exceptions import CycleNotClosedError, InvalidCycleError
from tests.helpers import AFTER_CLOSE, CURRENT_CYCLE, NEXT_CYCLE


async def count_winners(db):
    async with db.get_session() as session:
        return len((await session.execute(select(CycleWinner))).scalars().all())


async def test_no_entries_writes_nothing(settlement, announced, clock, db):
    clock.set(AFTER_CLOSE)

    result = await settlement.settle_cycle()

    assert result.cycle_id == CURRENT_CYCLE
    assert result.no_entries
    assert not result.created
    assert announced == []
    assert await count_winners(db) == 0


async def test_highest_total_wins(creators, ledger, play, settlement, announced, clock):
    await ledger.pick_creator('player-1', 'alpha')
    await ledger.pick_creator('player-2', 'beta')
    await play('player-1')
    await play('player-2', 'patternPro', 20)
    clock.set(AFTER_CLOSE)

    result = await settlement.settle_cycle()

    assert result.created
    winner = result.winner
    assert (winner.winner_id, winner.winner_name, winner.final_score) == ('beta', 'Beta', 10)
    assert winner.promotional_url == 'https://example.com/beta'
    assert winner.supporter_count == 1
    assert winner.announced_at == AFTER_CLOSE
    assert winner.cycle_start_time == datetime(2025, 11, 12, 0, 0)
    assert winner.cycle_end_time == datetime(2025, 11, 13, 0, 0)
    assert [(e.cycle_id, e.winner_id) for e in announced] == [(CURRENT_CYCLE, 'beta')]


async def test_tie_goes_to_first_to_reach_score(creators, ledger, play, settlement, clock):
    await ledger.pick_creator('player-1', 'beta')
    await ledger.pick_creator('player-2', 'alpha')
    await play('player-1')  # beta reaches 3 first
    await play('player-2')  # alpha reaches 3 later
    clock.set(AFTER_CLOSE)

    result = await settlement.settle_cycle(CURRENT_CYCLE)

    assert result.winner.winner_id == 'beta'
    assert result.winner.final_score == 3


async def test_tie_break_uses_latest_score_change(creators, ledger, play, settlement, clock):
    await ledger.pick_creator('player-1', 'alpha')
    await ledger.pick_creator('player-2', 'beta')
    await play('player-1', 'reactionTest', 5)  # alpha 1
    await play('player-2')                     # beta 3
    await play('player-1', 'reactionTest', 5)  # alpha 2
    await play('player-1', 'reactionTest', 5)  # alpha 3, reached after beta
    clock.set(AFTER_CLOSE)

    result = await settlement.settle_cycle()

    assert result.winner.winner_id == 'beta'


async def test_second_settlement_is_a_no_op(creators, ledger, play, settlement, announced, clock, db):
    await ledger.pick_creator('player-1', 'alpha')
    await play('player-1')
    clock.set(AFTER_CLOSE)

    first = await settlement.settle_cycle()
    clock.advance(minutes=30)
    second = await settlement.settle_cycle()

    assert first.created and not second.created
    assert second.winner == first.winner
    assert len(announced) == 1
    assert await count_winners(db) == 1


async def test_forced_settlement_overwrites(creators, ledger, play, settlement, announced, clock, db):
    await ledger.pick_creator('player-1', 'alpha')
    await ledger.pick_creator('player-2', 'beta')
    await play('player-1')
    await play('player-2', 'reactionTest', 5)
    clock.set(AFTER_CLOSE)
    await settlement.settle_cycle()

    async with db.get_session() as session:
        await session.execute(
            update(LeaderboardEntry)
            .where(LeaderboardEntry.creator_id == 'beta')
            .values(total_points=50)
        )
        await session.commit()

    result = await settlement.settle_cycle(force=True)

    assert result.created
    assert result.winner.winner_id == 'beta'
    assert (await settlement.get_winner()).final_score == 50
    assert [e.winner_id for e in announced] == ['alpha', 'beta']
    assert await count_winners(db) == 1


async def test_running_cycle_cannot_be_settled(creators, ledger, play, settlement, announced, clock, db):
    await ledger.pick_creator('player-1', 'alpha')
    await ledger.pick_creator('player-2', 'beta')
    await play('player-1')

    with pytest.raises(CycleNotClosedError):
        await settlement.settle_cycle(CURRENT_CYCLE)
    with pytest.raises(CycleNotClosedError):
        await settlement.settle_cycle(NEXT_CYCLE, force=True)
    assert await count_winners(db) == 0
    assert announced == []

    # Points earned after the rejected attempt still count once the cycle closes
    await play('player-2', 'colorMatch', 20)
    clock.set(AFTER_CLOSE)
    result = await settlement.settle_cycle(CURRENT_CYCLE)
    assert result.winner.winner_id == 'beta'
    assert result.winner.final_score == 8


async def test_invalid_cycle_id(settlement):
    with pytest.raises(InvalidCycleError):
        await settlement.settle_cycle('last tuesday')


async def test_get_winner(creators, ledger, play, settlement, clock):
    await ledger.pick_creator('player-1', 'alpha')
    await play('player-1')
    clock.set(AFTER_CLOSE)

    assert await settlement.get_winner() is None
    await settlement.settle_cycle()

    winner = await settlement.get_winner()
    assert winner.winner_id == 'alpha'
    assert (await settlement.get_winner(CURRENT_CYCLE)) == winner
    assert await settlement.get_winner('2025-11-01-18:00') is None


async def test_failing_listener_does_not_undo_settlement(creators, ledger, play, db, clock):
    async def broken(event):
        raise RuntimeError("listener down")

    service = CycleSettlementService(db.session_factory, on_winner_announced=broken, clock=clock)
    await ledger.pick_creator('player-1', 'alpha')
    await play('player-1')
    clock.set(AFTER_CLOSE)

    result = await service.settle_cycle()

    assert result.created
    assert await count_winners(db) == 1
