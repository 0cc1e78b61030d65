import pytest

from subgames.constants import RateLimitConstants
from subgames.services.rate_limiter import FixedWindowRateLimiter
from subgames.utils.exceptions import RateLimitError, ErrorKind

START = RateLimitConstants.START_SESSION


async def test_allows_up_to_the_ceiling(rate_limiter):
    counts = [await rate_limiter.hit('u1', START) for _ in range(30)]
    assert counts == list(range(1, 31))


async def test_rejects_past_the_ceiling_with_retry_after(rate_limiter, monotonic):
    for _ in range(30):
        await rate_limiter.hit('u1', START)
    monotonic.advance(100)

    with pytest.raises(RateLimitError) as exc_info:
        await rate_limiter.hit('u1', START)

    assert exc_info.value.retry_after == 3500
    assert exc_info.value.kind == ErrorKind.RESOURCE_EXHAUSTED


async def test_window_resets_after_expiry(rate_limiter, monotonic):
    for _ in range(30):
        await rate_limiter.hit('u1', START)
    monotonic.advance(3600)

    assert await rate_limiter.hit('u1', START) == 1


async def test_actors_and_actions_are_independent(rate_limiter):
    for _ in range(5):
        await rate_limiter.hit('u1', RateLimitConstants.CHANNEL_LOOKUP)
    with pytest.raises(RateLimitError):
        await rate_limiter.hit('u1', RateLimitConstants.CHANNEL_LOOKUP)

    assert await rate_limiter.hit('u2', RateLimitConstants.CHANNEL_LOOKUP) == 1
    assert await rate_limiter.hit('u1', START) == 1


async def test_retry_after_is_at_least_one_second(monotonic):
    limiter = FixedWindowRateLimiter({'burst': (1, 10)}, clock=monotonic)
    await limiter.hit('u1', 'burst')
    monotonic.advance(9.9)

    with pytest.raises(RateLimitError) as exc_info:
        await limiter.hit('u1', 'burst')
    assert exc_info.value.retry_after == 1


async def test_unknown_action_raises_key_error(rate_limiter):
    with pytest.raises(KeyError):
        await rate_limiter.hit('u1', 'not_an_action')


async def test_purge_expired_drops_only_finished_windows(rate_limiter, monotonic):
    await rate_limiter.hit('u1', RateLimitConstants.CHANNEL_LOOKUP)  # 10 minute window
    await rate_limiter.hit('u1', START)  # 1 hour window
    monotonic.advance(601)

    assert await rate_limiter.purge_expired() == 1
    assert await rate_limiter.hit('u1', START) == 2
