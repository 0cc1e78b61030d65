import pytest

from subgames.config import Config
from subgames.database.database import Database
from subgames.services import (
    FixedWindowRateLimiter, GameSessionService, PointLedgerService, CycleSettlementService,
    PityPointService, LeaderboardService, ReferralService
)
from tests.helpers import FakeClock, FakeMonotonic


@pytest.fixture(autouse=True)
def reference_timezone(monkeypatch):
    monkeypatch.setattr(Config, 'CYCLE_TIMEZONE', 'America/Chicago')
    monkeypatch.setattr(Config, 'SESSION_TTL_MINUTES', 10)
    monkeypatch.setattr(Config, 'LEDGER_MAX_RETRIES', 5)
    monkeypatch.setattr(Config, 'DEBUG', False)


@pytest.fixture
async def db(tmp_path):
    """File-backed SQLite database so concurrent transactions use separate connections."""
    database = Database(f"sqlite:///{tmp_path / 'subgames_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def rate_limiter(monotonic):
    return FixedWindowRateLimiter(clock=monotonic)


@pytest.fixture
def session_service(db, clock):
    return GameSessionService(db.session_factory, clock=clock)


@pytest.fixture
def ledger(db, clock):
    return PointLedgerService(db.session_factory, clock=clock)


@pytest.fixture
def pity_service(db, clock):
    return PityPointService(db.session_factory, clock=clock)


@pytest.fixture
def announced():
    """Events published by the settlement service."""
    return []


@pytest.fixture
def settlement(db, clock, announced):
    async def record(event):
        announced.append(event)

    return CycleSettlementService(db.session_factory, on_winner_announced=record, clock=clock)


@pytest.fixture
def leaderboard_service(db, clock):
    return LeaderboardService(db.session_factory, clock=clock, cache_ttl=0)


@pytest.fixture
def referral_service(db, clock, rate_limiter):
    return ReferralService(db.session_factory, rate_limiter, clock=clock)


@pytest.fixture
async def creators(db):
    """Two registered creators, 'alpha' and 'beta'."""
    await db.register_creator('alpha', 'Alpha', 'https://example.com/alpha')
    await db.register_creator('beta', 'Beta', 'https://example.com/beta')
    return 'alpha', 'beta'


@pytest.fixture
def play(session_service, ledger, clock):
    """Start a session, let ``seconds`` pass, then submit it."""
    async def _play(user_id: str, game_type: str = 'whackAMole', seconds: float = 10.0):
        game_session = await session_service.start_session(user_id, game_type)
        clock.advance(seconds)
        return await ledger.submit_result(user_id, game_session.id, seconds)

    return _play
