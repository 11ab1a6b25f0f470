"""Provider-agnostic calendar domain types and the event-source port contract."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol, Sequence, Collection

from overview.core.intervals import DateInterval

UNTITLED = "Unknown"

# ---------- Core DTOs ----------

@dataclass(frozen=True)
class CalendarRef:
    """A user-visible calendar container (e.g., 'primary', 'Birthdays', 'Work')."""
    id: str
    name: str
    timezone: Optional[str] = None      # IANA tz, e.g., "America/Denver"
    is_primary: bool = False


@dataclass(frozen=True)
class CalendarItem:
    """
    One concrete calendar occurrence, as returned by an event source.
    Recurring series arrive already expanded into instances.
    All datetime fields SHOULD be timezone-aware; `end` is exclusive.
    """
    id: str
    calendar_id: str
    title: Optional[str]
    start: datetime
    end: datetime
    all_day: bool = False

    @classmethod
    def from_duration(
        cls,
        *,
        id: str,
        calendar_id: str,
        title: Optional[str],
        start: datetime,
        duration: timedelta,
        all_day: bool = False,
    ) -> CalendarItem:
        return cls(id=id, calendar_id=calendar_id, title=title, start=start, end=start + duration, all_day=all_day)

    @property
    def extent(self) -> DateInterval:
        return DateInterval(self.start, max(self.start, self.end))

    def display_title(self, default: str = UNTITLED) -> str:
        """Title used for grouping; absent titles fall back to `default`."""
        return self.title if self.title is not None else default


# ---------- Inbound Event Source Port ----------

class EventSourcePort(Protocol):
    """
    Read-only gateway the summarizer pulls calendar items through.

    Implementations:
      - return every item whose extent intersects the interval (zero-length
        items count when their instant lies inside it),
      - restrict results to `calendar_ids` when given (None means all),
      - raise `UnknownCalendar` for ids they do not recognize,
      - make no ordering promise.
    """

    def list_calendars(self) -> Sequence[CalendarRef]:
        """Enumerate calendars the user can read."""
        ...

    def get_calendar(self, calendar_id: str) -> CalendarRef | None:
        """Return one calendar by id, or `None` when it does not exist."""
        ...

    def query_items(
        self,
        interval: DateInterval,
        calendar_ids: Optional[Collection[str]] = None,
    ) -> Sequence[CalendarItem]:
        """Return items intersecting `interval`."""
        ...
