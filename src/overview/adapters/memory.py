"""In-memory event source for tests, demos and already-fetched data."""

from __future__ import annotations

from typing import Collection, Iterable, Optional, Sequence

from overview.core.intervals import DateInterval
from overview.errors import UnknownCalendar
from overview.ports.calendar import CalendarItem, CalendarRef


class InMemoryEventSource:
    """`EventSourcePort` over plain lists.

    Items are returned in insertion order. Every `query_items` call is
    appended to `queries` as `(interval, calendar_ids)`.
    """

    def __init__(
        self,
        calendars: Iterable[CalendarRef] = (),
        items: Iterable[CalendarItem] = (),
    ) -> None:
        self._calendars: dict[str, CalendarRef] = {}
        self._items: list[CalendarItem] = []
        self.queries: list[tuple[DateInterval, Optional[frozenset[str]]]] = []
        self.add_calendars(calendars)
        self.add_items(items)

    def add_calendars(self, calendars: Iterable[CalendarRef]) -> None:
        for cal in calendars:
            self._calendars[cal.id] = cal

    def add_items(self, items: Iterable[CalendarItem]) -> None:
        """Append items; their calendars must already be registered."""
        for item in items:
            if item.calendar_id not in self._calendars:
                raise UnknownCalendar(item.calendar_id)
            self._items.append(item)

    # ---------- EventSourcePort ----------

    def list_calendars(self) -> Sequence[CalendarRef]:
        return tuple(self._calendars.values())

    def get_calendar(self, calendar_id: str) -> CalendarRef | None:
        return self._calendars.get(calendar_id)

    def query_items(
        self,
        interval: DateInterval,
        calendar_ids: Optional[Collection[str]] = None,
    ) -> Sequence[CalendarItem]:
        ids = None if calendar_ids is None else frozenset(calendar_ids)
        self.queries.append((interval, ids))
        if ids is not None:
            for cid in sorted(ids):
                if cid not in self._calendars:
                    raise UnknownCalendar(cid)
        return tuple(
            it for it in self._items
            if (ids is None or it.calendar_id in ids) and interval.overlaps(it.start, it.end)
        )
