"""Shared test doubles and fixed points in time."""

from datetime import datetime, timedelta

# 14:00 in Chicago (CST), inside cycle 2025-11-12-18:00
START_TIME = datetime(2025, 11, 12, 20, 0, 0)
CURRENT_CYCLE = '2025-11-12-18:00'
NEXT_CYCLE = '2025-11-13-18:00'
# 19:00 in Chicago, one hour after CURRENT_CYCLE closed
AFTER_CLOSE = datetime(2025, 11, 13, 1, 0, 0)


class FakeClock:
    """Settable naive-UTC clock shared by every service in a test."""

    def __init__(self, start: datetime = START_TIME):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, **kwargs):
        self.current += timedelta(seconds=seconds, **kwargs)

    def set(self, moment: datetime):
        self.current = moment


class FakeMonotonic:
    def __init__(self):
        self.value = 0.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float):
        self.value += seconds
