"""Tests for the generic Summary node."""

import dataclasses
from datetime import datetime, timezone

import pytest

from overview.core.intervals import DateInterval
from overview.core.summary import Summary

UTC = timezone.utc
MARCH = DateInterval(datetime(2021, 3, 1, tzinfo=UTC), datetime(2021, 4, 1, tzinfo=UTC))


class TestSummary:
    """Summary identity, recursion helpers and immutability."""

    def test_equality_ignores_generated_ids(self):
        a = Summary(MARCH, "Standup", ("x", "y"))
        b = Summary(MARCH, "Standup", ("x", "y"))
        assert a.id != b.id
        assert a == b

    def test_differs_on_items_or_context(self):
        assert Summary(MARCH, "Standup", ("x",)) != Summary(MARCH, "Standup", ("y",))
        assert Summary(MARCH, "Standup", ("x",)) != Summary(MARCH, "Review", ("x",))

    def test_leaves_and_item_count_recurse(self):
        day_a = Summary(MARCH, "ctx", (Summary(MARCH, "Standup", ("s1", "s2")), Summary(MARCH, "Review", ("r1",))))
        day_b = Summary(MARCH, "ctx", ())
        month = Summary(MARCH, "ctx", (day_a, day_b))
        assert list(month.leaves()) == ["s1", "s2", "r1"]
        assert month.item_count == 3
        assert day_b.is_empty
        assert not month.is_empty
        assert month.children == (day_a, day_b)

    def test_empty_summary_is_still_truthy(self):
        assert Summary(MARCH, "ctx")

    def test_is_frozen(self):
        s = Summary(MARCH, "Standup", ("x",))
        with pytest.raises(dataclasses.FrozenInstanceError):
            s.items = ()  # type: ignore[misc]
