"""Hierarchical summarization of calendar items.

A summary tree has one interval level per caller-supplied granularity and
title groups at the bottom:

    root (calendar)
      └─ month buckets           Summary[CalendarRef, Summary]
           └─ day buckets        Summary[CalendarRef, Summary]
                └─ title groups  Summary[str, CalendarItem]

The event source is queried once per tree, over the whole outer interval.
Each item then belongs to the sub-interval containing its start (an item that
began before the outer interval is counted in the first sub-interval), so an
item spanning several buckets is never counted twice.
"""

from __future__ import annotations

from bisect import bisect_right
from concurrent.futures import ThreadPoolExecutor
from datetime import timezone, tzinfo
from typing import Any, Collection, Optional, Sequence

from overview.config import Settings, get_settings
from overview.core.intervals import DateInterval, Granularity, enumerate_intervals, year_interval
from overview.core.summary import Summary
from overview.errors import CalendarError, GenericFailure, UnknownCalendar
from overview.logging_utils import get_logger, timed
from overview.ports.calendar import UNTITLED, CalendarItem, CalendarRef, EventSourcePort

log = get_logger(__name__)

TitleSummary = Summary[str, CalendarItem]

DEFAULT_TOP_GRANULARITY = Granularity.of_months(1)
DEFAULT_LEAF_GRANULARITY = Granularity.of_days(1)


class Summarizer:
    """
    Builds summary trees from an explicit event source.
    - summarize(): one level of title groups over an interval
    - summarize_tree(): arbitrary depth, one interval level per granularity
    - summarize_hierarchy(): one calendar, top buckets of leaf buckets of title groups
    - summarize_calendars(): several calendars, optionally fanned out on threads

    Instances hold no per-call state and may be shared between threads.
    """

    def __init__(
        self,
        source: EventSourcePort,
        *,
        tz: tzinfo = timezone.utc,
        untitled_label: str = UNTITLED,
        clip: bool = True,
        max_workers: int = 1,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.source = source
        self.tz = tz
        self.untitled_label = untitled_label
        self.clip = clip
        self.max_workers = max_workers

    @classmethod
    def from_settings(cls, source: EventSourcePort, config: Settings | None = None) -> Summarizer:
        cfg = config or get_settings()
        return cls(
            source,
            tz=cfg.tzinfo,
            untitled_label=cfg.untitled_label,
            clip=cfg.clip_final_interval,
            max_workers=cfg.summary_max_workers,
        )

    # ---------- Public API ----------

    def summarize(
        self,
        interval: DateInterval,
        granularity: Granularity,
        calendar_ids: Optional[Collection[str]] = None,
    ) -> list[TitleSummary]:
        """Title groups covering `interval`.

        Items are classified into `granularity` steps by start; each group
        lists its items step by step, in source order within a step.
        """
        items = self._fetch(interval, calendar_ids)
        ordered = [item for _, members in self._classify(interval, items, granularity) for item in members]
        return self._group_by_title(interval, ordered)

    def summarize_tree(
        self,
        interval: DateInterval,
        granularities: Sequence[Granularity],
        calendar_ids: Optional[Collection[str]] = None,
        *,
        context: Any = None,
    ) -> list[Summary[Any, Any]]:
        """One interval level per entry of `granularities`, title groups below the last.

        Interval buckets are always present, empty or not, and carry `context`.
        With no granularities the result is the title groups of `interval`.
        """
        steps = tuple(granularities)
        items = self._fetch(interval, calendar_ids)
        with timed(log, "summarizer.tree_built", interval=str(interval), depth=len(steps)) as fields:
            tree = self._build(interval, items, steps, context)
            fields["items"] = len(items)
            fields["buckets"] = len(tree)
        return tree

    def summarize_hierarchy(
        self,
        calendar_id: str,
        interval: DateInterval,
        top_granularity: Granularity = DEFAULT_TOP_GRANULARITY,
        leaf_granularity: Granularity = DEFAULT_LEAF_GRANULARITY,
    ) -> Summary[CalendarRef, Summary[CalendarRef, Summary[CalendarRef, TitleSummary]]]:
        """Summary of one calendar: top buckets → leaf buckets → title groups.

        Raises `UnknownCalendar` before anything is queried.
        """
        ref = self._resolve(calendar_id)
        return self._hierarchy(ref, interval, top_granularity, leaf_granularity)

    def summarize_year(
        self,
        calendar_id: str,
        year: int,
        top_granularity: Granularity = DEFAULT_TOP_GRANULARITY,
        leaf_granularity: Granularity = DEFAULT_LEAF_GRANULARITY,
    ) -> Summary[CalendarRef, Any]:
        """`summarize_hierarchy` over the calendar year `year` in this summarizer's zone."""
        ref = self._resolve(calendar_id)
        return self._hierarchy(ref, year_interval(year, self.tz), top_granularity, leaf_granularity)

    def summarize_calendars(
        self,
        calendar_ids: Sequence[str],
        interval: DateInterval,
        top_granularity: Granularity = DEFAULT_TOP_GRANULARITY,
        leaf_granularity: Granularity = DEFAULT_LEAF_GRANULARITY,
    ) -> list[Summary[CalendarRef, Any]]:
        """One hierarchy per calendar, in the order of `calendar_ids`.

        Every id is resolved before the first query. A failure for any
        calendar cancels the work not yet started and propagates.
        """
        refs = [self._resolve(cid) for cid in calendar_ids]
        if self.max_workers == 1 or len(refs) <= 1:
            return [self._hierarchy(ref, interval, top_granularity, leaf_granularity) for ref in refs]

        workers = min(self.max_workers, len(refs))
        log.debug("summarizer.fan_out", extra={"calendars": len(refs), "workers": workers})
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="overview-summary") as pool:
            futures = [
                pool.submit(self._hierarchy, ref, interval, top_granularity, leaf_granularity)
                for ref in refs
            ]
            try:
                return [f.result() for f in futures]
            except BaseException:
                for f in futures:
                    f.cancel()
                raise

    # ---------- Internals ----------

    def _hierarchy(
        self,
        ref: CalendarRef,
        interval: DateInterval,
        top_granularity: Granularity,
        leaf_granularity: Granularity,
    ) -> Summary[CalendarRef, Any]:
        buckets = self.summarize_tree(interval, (top_granularity, leaf_granularity), [ref.id], context=ref)
        root: Summary[CalendarRef, Any] = Summary(interval, ref, tuple(buckets))
        log.info(
            "summarizer.hierarchy_built",
            extra={
                "calendar_id": ref.id,
                "interval": str(interval),
                "top": str(top_granularity),
                "leaf": str(leaf_granularity),
                "items": root.item_count,
            },
        )
        return root

    def _resolve(self, calendar_id: str) -> CalendarRef:
        try:
            ref = self.source.get_calendar(calendar_id)
        except CalendarError:
            raise
        except Exception as e:
            log.warning("summarizer.resolve_failed", extra={"calendar_id": calendar_id, "error": str(e)})
            raise GenericFailure(f"could not resolve calendar {calendar_id!r}: {e}") from e
        if ref is None:
            log.warning("summarizer.unknown_calendar", extra={"calendar_id": calendar_id})
            raise UnknownCalendar(calendar_id)
        return ref

    def _fetch(self, interval: DateInterval, calendar_ids: Optional[Collection[str]]) -> list[CalendarItem]:
        """Single source query for `interval`, restricted to items that really intersect it."""
        ids = None if calendar_ids is None else frozenset(calendar_ids)
        try:
            with timed(log, "summarizer.query", interval=str(interval)) as fields:
                raw = self.source.query_items(interval, ids)
                fields["returned"] = len(raw)
        except CalendarError as e:
            log.warning("summarizer.query_failed", extra={"interval": str(interval), "error": str(e)})
            raise
        except Exception as e:
            log.warning("summarizer.query_failed", extra={"interval": str(interval), "error": str(e)})
            raise GenericFailure(f"event source query failed: {e}") from e

        items = [
            it for it in raw
            if interval.overlaps(it.start, it.end) and (ids is None or it.calendar_id in ids)
        ]
        if len(items) != len(raw):
            log.debug("summarizer.out_of_range_dropped", extra={"dropped": len(raw) - len(items)})
        return items

    def _build(
        self,
        interval: DateInterval,
        items: Sequence[CalendarItem],
        steps: tuple[Granularity, ...],
        context: Any,
    ) -> list[Summary[Any, Any]]:
        if not steps:
            return list(self._group_by_title(interval, items))
        step, rest = steps[0], steps[1:]
        return [
            Summary(sub, context, tuple(self._build(sub, members, rest, context)))
            for sub, members in self._classify(interval, items, step)
        ]

    def _classify(
        self,
        interval: DateInterval,
        items: Sequence[CalendarItem],
        step: Granularity,
    ) -> list[tuple[DateInterval, list[CalendarItem]]]:
        """Partition `interval` by `step` and place each item in the step holding its start.

        `items` must intersect `interval`; starts before it are clamped to its start.
        """
        buckets: list[tuple[DateInterval, list[CalendarItem]]] = [
            (sub, []) for sub in enumerate_intervals(interval, step, clip=self.clip)
        ]
        starts = [sub.start for sub, _ in buckets]
        for item in items:
            anchor = max(item.start, interval.start)
            buckets[bisect_right(starts, anchor) - 1][1].append(item)
        return buckets

    def _group_by_title(self, interval: DateInterval, items: Sequence[CalendarItem]) -> list[TitleSummary]:
        groups: dict[str, list[CalendarItem]] = {}
        for item in items:
            groups.setdefault(item.display_title(self.untitled_label), []).append(item)
        return [Summary(interval, title, tuple(members)) for title, members in groups.items()]
