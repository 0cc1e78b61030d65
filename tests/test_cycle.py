from datetime import datetime

import pytest
import pytz

from subgames.utils.cycle import (
    get_cycle_id, get_completed_cycle_id, get_cycle_bounds, parse_cycle_id,
    format_cycle_id, to_reference_time, is_cycle_closed
)


def test_cycle_before_boundary_closes_today():
    # 14:00 CST
    assert get_cycle_id(datetime(2025, 11, 12, 20, 0)) == '2025-11-12-18:00'


def test_cycle_one_second_before_boundary():
    # 17:59:59 CST
    assert get_cycle_id(datetime(2025, 11, 12, 23, 59, 59)) == '2025-11-12-18:00'


def test_cycle_at_boundary_closes_tomorrow():
    # 18:00:00 CST
    assert get_cycle_id(datetime(2025, 11, 13, 0, 0)) == '2025-11-13-18:00'


def test_cycle_after_midnight_local():
    # 00:30 CST on the 13th
    assert get_cycle_id(datetime(2025, 11, 13, 6, 30)) == '2025-11-13-18:00'


def test_days_ago_offset():
    moment = datetime(2025, 11, 12, 20, 0)
    assert get_cycle_id(moment, days_ago=1) == '2025-11-11-18:00'
    assert get_cycle_id(moment, days_ago=12) == '2025-10-31-18:00'


def test_completed_cycle_branches_on_boundary():
    assert get_completed_cycle_id(datetime(2025, 11, 12, 23, 59)) == '2025-11-11-18:00'
    assert get_completed_cycle_id(datetime(2025, 11, 13, 0, 0)) == '2025-11-12-18:00'


def test_aware_datetimes_are_converted():
    moment = pytz.timezone('Europe/Berlin').localize(datetime(2025, 11, 13, 0, 30))
    # 17:30 CST on the 12th
    assert get_cycle_id(moment) == '2025-11-12-18:00'


def test_identical_inputs_give_identical_keys():
    moment = datetime(2025, 6, 1, 12, 0)
    assert {get_cycle_id(moment) for _ in range(5)} == {get_cycle_id(moment)}


def test_timezone_override():
    assert get_cycle_id(datetime(2025, 11, 12, 18, 0), tz_name='UTC') == '2025-11-13-18:00'
    assert get_cycle_id(datetime(2025, 11, 12, 17, 59), tz_name='UTC') == '2025-11-12-18:00'


def test_bounds_in_standard_time():
    start, end = get_cycle_bounds('2025-11-12-18:00')
    assert start == datetime(2025, 11, 12, 0, 0)
    assert end == datetime(2025, 11, 13, 0, 0)


def test_bounds_in_daylight_time():
    start, end = get_cycle_bounds('2025-07-01-18:00')
    assert start == datetime(2025, 6, 30, 23, 0)
    assert end == datetime(2025, 7, 1, 23, 0)


def test_every_moment_falls_inside_its_cycle_bounds():
    for moment in (datetime(2025, 11, 12, 0, 0), datetime(2025, 11, 12, 23, 59), datetime(2025, 3, 9, 12, 0)):
        start, end = get_cycle_bounds(get_cycle_id(moment))
        assert start <= moment < end


def test_parse_and_format_round_trip():
    assert parse_cycle_id('2025-11-12-18:00').isoformat() == '2025-11-12'
    assert format_cycle_id(parse_cycle_id('2025-01-05-18:00')) == '2025-01-05-18:00'


@pytest.mark.parametrize('bad', ['2025-11-12', '2025-11-12-17:00', 'yesterday', '', None])
def test_parse_rejects_malformed_keys(bad):
    with pytest.raises(ValueError):
        parse_cycle_id(bad)


def test_naive_input_is_treated_as_utc():
    local = to_reference_time(datetime(2025, 11, 12, 20, 0))
    assert (local.hour, local.minute) == (14, 0)


def test_cycle_closes_at_its_boundary():
    # 18:00 CST on the 12th is 00:00 UTC on the 13th
    assert not is_cycle_closed('2025-11-12-18:00', datetime(2025, 11, 12, 23, 59, 59))
    assert is_cycle_closed('2025-11-12-18:00', datetime(2025, 11, 13, 0, 0))
    assert not is_cycle_closed('2025-11-13-18:00', datetime(2025, 11, 13, 0, 0))
