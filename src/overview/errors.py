"""Typed failures surfaced by the summarization engine and its event sources."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from overview.core.intervals import DateInterval


class CalendarError(Exception):
    """Base class for every failure the engine reports to its caller."""


class InvalidDate(CalendarError):
    """A calendar arithmetic step could not be resolved.

    `produced` holds the sub-intervals that were emitted before the failing
    step, in order.
    """

    def __init__(self, message: str, *, produced: Sequence["DateInterval"] = ()) -> None:
        super().__init__(message)
        self.produced: tuple["DateInterval", ...] = tuple(produced)


class UnknownCalendar(CalendarError):
    """The caller referenced a calendar the event source does not know."""

    def __init__(self, calendar_id: str) -> None:
        super().__init__(f"unknown calendar: {calendar_id!r}")
        self.calendar_id = calendar_id


class GenericFailure(CalendarError):
    """Event-source failure that is not otherwise classified."""
