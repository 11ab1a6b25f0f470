"""Half-open date intervals and calendar-relative partitioning.

Step sizes are resolved with `dateutil.relativedelta`, so "1 month" from
January 31st lands on the last day of February and "1 day" keeps the wall
clock across DST changes of an aware `datetime`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Iterable, Iterator, Optional

from dateutil.relativedelta import relativedelta

from overview.errors import InvalidDate


# ---------- DateInterval ----------

@dataclass(frozen=True)
class DateInterval:
    """Half-open range `[start, end)`."""
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"interval end {self.end.isoformat()} precedes start {self.start.isoformat()}")

    @classmethod
    def from_duration(cls, start: datetime, duration: Granularity) -> DateInterval:
        return interval_from(start, duration)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def contains(self, point: datetime) -> bool:
        return self.start <= point < self.end

    def overlaps(self, start: datetime, end: Optional[datetime] = None) -> bool:
        """True if the extent `[start, end)` intersects this interval.

        A zero-length extent (an instant) intersects when the instant lies
        inside the interval. Nothing intersects an empty interval.
        """
        if self.is_empty:
            return False
        if end is None or end <= start:
            return self.contains(start)
        return start < self.end and self.start < end

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


# ---------- Granularity ----------

_UNIT_ALIASES = {
    "y": "years", "yr": "years", "year": "years", "years": "years",
    "m": "months", "mo": "months", "month": "months", "months": "months",
    "w": "weeks", "wk": "weeks", "week": "weeks", "weeks": "weeks",
    "d": "days", "day": "days", "days": "days",
}
_STEP_RE = re.compile(r"^\s*(\d+)?\s*([a-zA-Z]+)\s*$")


@dataclass(frozen=True)
class Granularity:
    """Calendar-relative step: N years, months, weeks and/or days.

    Components are non-negative and at least one is positive; anything else
    cannot advance a point in time and is rejected with `ValueError`.
    """
    years: int = 0
    months: int = 0
    weeks: int = 0
    days: int = 0

    def __post_init__(self) -> None:
        parts = (self.years, self.months, self.weeks, self.days)
        if any(not isinstance(p, int) or p < 0 for p in parts):
            raise ValueError(f"granularity components must be non-negative integers: {parts}")
        if not any(parts):
            raise ValueError("granularity must advance time (all components are zero)")

    @classmethod
    def of_years(cls, n: int = 1) -> Granularity:
        return cls(years=n)

    @classmethod
    def of_months(cls, n: int = 1) -> Granularity:
        return cls(months=n)

    @classmethod
    def of_weeks(cls, n: int = 1) -> Granularity:
        return cls(weeks=n)

    @classmethod
    def of_days(cls, n: int = 1) -> Granularity:
        return cls(days=n)

    @classmethod
    def parse(cls, text: str) -> Granularity:
        """Parse "1 month", "2 days", "week" or "3d"."""
        m = _STEP_RE.match(text)
        unit = _UNIT_ALIASES.get(m.group(2).lower()) if m else None
        if m is None or unit is None:
            raise ValueError(f"cannot parse granularity: {text!r}")
        count = int(m.group(1)) if m.group(1) else 1
        return cls(**{unit: count})

    @property
    def delta(self) -> relativedelta:
        return relativedelta(years=self.years, months=self.months, weeks=self.weeks, days=self.days)

    def advance(self, point: datetime) -> datetime:
        """Return `point` moved forward by one step.

        Raises `InvalidDate` when the result is not representable.
        """
        try:
            nxt = point + self.delta
        except (OverflowError, ValueError) as e:
            raise InvalidDate(f"cannot advance {point.isoformat()} by {self}: {e}") from e
        if nxt <= point:
            raise InvalidDate(f"advancing {point.isoformat()} by {self} did not move forward")
        return nxt

    def __str__(self) -> str:
        parts = []
        for name in ("years", "months", "weeks", "days"):
            n = getattr(self, name)
            if n:
                parts.append(f"{n} {name[:-1] if n == 1 else name}")
        return " ".join(parts)


# ---------- Partitioning ----------

class IntervalSequence(Iterable[DateInterval]):
    """Lazy, restartable partition of `interval` into steps of `step`.

    Every `iter()` enumerates from scratch. With `clip=True` the final
    sub-interval ends at `interval.end`; with `clip=False` it ends on the
    next step boundary, which may lie past `interval.end`.
    """

    def __init__(self, interval: DateInterval, step: Granularity, *, clip: bool = True) -> None:
        self.interval = interval
        self.step = step
        self.clip = clip

    def __iter__(self) -> Iterator[DateInterval]:
        produced: list[DateInterval] = []
        current = self.interval.start
        while current < self.interval.end:
            try:
                nxt = self.step.advance(current)
            except InvalidDate as e:
                raise InvalidDate(str(e), produced=produced) from e
            if self.clip and nxt > self.interval.end:
                nxt = self.interval.end
            sub = DateInterval(current, nxt)
            produced.append(sub)
            yield sub
            current = nxt

    def __repr__(self) -> str:
        return f"IntervalSequence({self.interval}, step={self.step}, clip={self.clip})"


def enumerate_intervals(interval: DateInterval, step: Granularity, *, clip: bool = True) -> IntervalSequence:
    """Partition `interval` into contiguous sub-intervals of one `step` each."""
    return IntervalSequence(interval, step, clip=clip)


def interval_from(start: datetime, duration: Granularity) -> DateInterval:
    """Interval starting at `start` and lasting one `duration`."""
    return DateInterval(start, duration.advance(start))


def year_interval(year: int, tz: tzinfo) -> DateInterval:
    """January 1st of `year` (local midnight in `tz`) through January 1st of the next year."""
    try:
        start = datetime(year, 1, 1, tzinfo=tz)
    except (OverflowError, ValueError) as e:
        raise InvalidDate(f"year {year} is not representable: {e}") from e
    return interval_from(start, Granularity.of_years(1))


def month_interval(year: int, month: int, tz: tzinfo) -> DateInterval:
    """The calendar month `year`-`month` in `tz`."""
    try:
        start = datetime(year, month, 1, tzinfo=tz)
    except (OverflowError, ValueError) as e:
        raise InvalidDate(f"{year}-{month:02d} is not representable: {e}") from e
    return interval_from(start, Granularity.of_months(1))
