"""
Cycle identification utilities.

A cycle is named after the moment it closes: ``2025-11-12-18:00`` is the cycle
that ends at 18:00 on 2025-11-12 in the reference timezone and started at
18:00 the day before. Every cycle-scoped table is partitioned by this key, so
all callers go through these functions instead of formatting dates themselves.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

import pytz

from subgames.config import Config
from subgames.constants import CycleConstants


def utc_now() -> datetime:
    """Current time as naive UTC, the representation stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _reference_tz(tz_name: Optional[str] = None):
    return pytz.timezone(tz_name or Config.CYCLE_TIMEZONE)


def to_reference_time(moment: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert a datetime to the reference timezone. Naive input is treated as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(_reference_tz(tz_name))


def format_cycle_id(end_date: date) -> str:
    return end_date.strftime(CycleConstants.KEY_FORMAT)


def parse_cycle_id(cycle_id: str) -> date:
    """
    Parse a cycle key back into the date on which the cycle closes.

    Raises:
        ValueError: If the key is not of the form YYYY-MM-DD-18:00
    """
    try:
        parsed = datetime.strptime(cycle_id, CycleConstants.KEY_FORMAT)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid cycle id: {cycle_id!r}")
    return parsed.date()


def get_cycle_id(moment: Optional[datetime] = None, days_ago: int = 0,
                 tz_name: Optional[str] = None) -> str:
    """
    Get the key of the cycle running at ``moment``, or of a cycle ``days_ago`` before it.

    Before the 18:00 boundary the running cycle closes today; at or after the
    boundary it closes tomorrow.
    """
    local = to_reference_time(moment or utc_now(), tz_name)
    end_date = local.date()
    if local.hour >= CycleConstants.BOUNDARY_HOUR:
        end_date += timedelta(days=1)
    return format_cycle_id(end_date - timedelta(days=days_ago))


def get_completed_cycle_id(moment: Optional[datetime] = None,
                           tz_name: Optional[str] = None) -> str:
    """Key of the most recently closed cycle at ``moment``."""
    return get_cycle_id(moment, days_ago=1, tz_name=tz_name)


def get_cycle_bounds(cycle_id: str, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """Return (start, end) of a cycle as naive UTC datetimes."""
    tz = _reference_tz(tz_name)
    end_date = parse_cycle_id(cycle_id)
    start_date = end_date - timedelta(days=1)

    def _boundary(day: date) -> datetime:
        local = tz.localize(datetime(day.year, day.month, day.day, CycleConstants.BOUNDARY_HOUR))
        return local.astimezone(pytz.utc).replace(tzinfo=None)

    return _boundary(start_date), _boundary(end_date)


def is_cycle_closed(cycle_id: str, moment: Optional[datetime] = None,
                    tz_name: Optional[str] = None) -> bool:
    """Whether the 18:00 boundary that ends ``cycle_id`` has passed at ``moment``."""
    _, end = get_cycle_bounds(cycle_id, tz_name)
    return (moment or utc_now()) >= end
