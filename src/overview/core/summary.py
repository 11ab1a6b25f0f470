"""Generic summary node shared by every level of a summary tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Iterator, TypeVar
from uuid import UUID, uuid4

from overview.core.intervals import DateInterval

C = TypeVar("C")
T = TypeVar("T")


@dataclass(frozen=True)
class Summary(Generic[C, T]):
    """
    A bucket pairing an interval and a context with its contents.

    `items` holds raw calendar items at the leaf level and nested `Summary`
    nodes above it. `id` is presentation identity only: two summaries with the
    same interval, context and items compare equal whatever their ids.
    """
    date_interval: DateInterval
    context: C
    items: tuple[T, ...] = ()
    id: UUID = field(default_factory=uuid4, compare=False)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def children(self) -> tuple[T, ...]:
        return self.items

    def leaves(self) -> Iterator[Any]:
        """Yield every non-summary item below this node, depth first."""
        for item in self.items:
            if isinstance(item, Summary):
                yield from item.leaves()
            else:
                yield item

    @property
    def item_count(self) -> int:
        return sum(1 for _ in self.leaves())
