"""Shared fixtures: a small "Work"/"Home" calendar set held in memory."""

from datetime import datetime, timedelta, timezone

import pytest

from overview.adapters.memory import InMemoryEventSource
from overview.core.summarizer import Summarizer
from overview.ports.calendar import CalendarItem, CalendarRef

UTC = timezone.utc


@pytest.fixture
def work() -> CalendarRef:
    return CalendarRef(id="work", name="Work", timezone="UTC", is_primary=True)


@pytest.fixture
def home() -> CalendarRef:
    return CalendarRef(id="home", name="Home", timezone="UTC")


@pytest.fixture
def make_item():
    """Factory: make_item("id", "Title", (2021, 3, 2, 9), calendar_id="work", minutes=30)."""

    def _make(item_id, title, start, *, calendar_id="work", minutes=30, end=None):
        start_dt = datetime(*start, tzinfo=UTC)
        end_dt = datetime(*end, tzinfo=UTC) if end else start_dt + timedelta(minutes=minutes)
        return CalendarItem(id=item_id, calendar_id=calendar_id, title=title, start=start_dt, end=end_dt)

    return _make


@pytest.fixture
def march_items(make_item):
    """Standup on March 2 and 9, Review on March 2 (2021), in that order."""
    return [
        make_item("s1", "Standup", (2021, 3, 2, 9)),
        make_item("s2", "Standup", (2021, 3, 9, 9)),
        make_item("r1", "Review", (2021, 3, 2, 14)),
    ]


@pytest.fixture
def source(work, home, march_items) -> InMemoryEventSource:
    return InMemoryEventSource(calendars=[work, home], items=march_items)


@pytest.fixture
def summarizer(source) -> Summarizer:
    return Summarizer(source)
