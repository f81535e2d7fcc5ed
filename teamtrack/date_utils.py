"""Calendar date helpers: DD/MM/YYYY parsing, day spans and the request clock."""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from teamtrack import config
from teamtrack.errors import InvalidDateFormat

_DMY_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")


def parse_date(value: Any) -> date:
    """Parse a ``DD/MM/YYYY`` string into a date.

    ``date`` instances pass through unchanged. Anything that cannot be split
    into a real day/month/year raises ``InvalidDateFormat``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateFormat(value)
    match = _DMY_RE.match(value)
    if not match:
        raise InvalidDateFormat(value)
    day, month, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        raise InvalidDateFormat(value) from None


def format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def normalize_date(value: Any) -> str:
    """Validate and re-render a date as zero-padded ``DD/MM/YYYY``."""
    return format_date(parse_date(value))


def day_span(first: Any, second: Any) -> int:
    """Whole days between two calendar dates, order-independent."""
    return abs((parse_date(second) - parse_date(first)).days)


def compare_dates(first: Any, second: Any) -> int:
    a, b = parse_date(first), parse_date(second)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


class Clock:
    """Date provider. ``today()`` is evaluated on every call."""

    def __init__(self, timezone: str | None = None):
        self._tz = ZoneInfo(timezone or config.TIMEZONE)

    def today(self) -> date:
        return datetime.now(self._tz).date()

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def timestamp(self) -> str:
        """``HH:MM:SS DD/MM/YYYY`` stamp used by task update logs."""
        return self.now().strftime("%H:%M:%S %d/%m/%Y")


class FixedClock(Clock):
    """Clock pinned to a settable date, for tests and replays."""

    def __init__(self, today: Any):
        self._today = parse_date(today)

    def set(self, today: Any) -> None:
        self._today = parse_date(today)

    def today(self) -> date:
        return self._today

    def now(self) -> datetime:
        return datetime(self._today.year, self._today.month, self._today.day)
