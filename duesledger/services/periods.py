"""Calendar arithmetic over ``YYYY-MM`` billing periods.

Everything here is pure: "now" only enters through an injected clock, so batch
jobs, API handlers and tests agree on the current period without patching
globals.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Callable, Iterator
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]

PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


class SystemClock:
    """Wall-clock time in the association's timezone."""

    def __init__(self, timezone: str = "UTC") -> None:
        self.tz = ZoneInfo(timezone)

    def __call__(self) -> datetime:
        return datetime.now(self.tz)


def _split(period: str) -> tuple[int, int]:
    return int(period[:4]), int(period[5:7])


def _format(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def parse_period(value: str) -> str:
    """Validate a user-supplied period key and return it unchanged."""
    candidate = (value or "").strip()
    if not PERIOD_PATTERN.match(candidate):
        raise ValueError(f"Invalid period {value!r}; expected YYYY-MM.")
    return candidate


def period_of(value: date | datetime) -> str:
    return _format(value.year, value.month)


def months_between(start: str, end: str) -> int:
    start_year, start_month = _split(start)
    end_year, end_month = _split(end)
    return (end_year - start_year) * 12 + (end_month - start_month)


def add_months(period: str, months: int) -> str:
    year, month = _split(period)
    index = year * 12 + (month - 1) + months
    return _format(index // 12, index % 12 + 1)


def current_period(clock: Clock) -> str:
    return period_of(clock())


def iter_periods(start: str, end: str) -> Iterator[str]:
    """Yield every period from ``start`` through ``end`` inclusive."""
    for offset in range(months_between(start, end) + 1):
        yield add_months(start, offset)


def is_past_grace(period: str, today: date, grace_day_of_month: int) -> bool:
    """Whether an unpaid charge of ``period`` counts as delinquent on ``today``.

    Earlier periods are always past grace. For the running period the boundary
    is inclusive: on the grace day itself the charge is already delinquent.
    """
    today_period = period_of(today)
    if period < today_period:
        return True
    if period > today_period:
        return False
    return today.day >= grace_day_of_month
