"""Command-line presentation of calendar summaries.

    overview calendars
    overview years
    overview summary --calendar work@example.com --year 2021 [--json]
    overview sync --calendar work@example.com --year 2021
"""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional, Sequence, TextIO

from overview.adapters.google.gcal.client import GCalClient
from overview.adapters.google.gcal.reader import GCalEventSource
from overview.adapters.sqlite.store import SQLiteEventStore
from overview.config import Settings, get_settings
from overview.core.intervals import DateInterval, Granularity, year_interval
from overview.core.summarizer import Summarizer
from overview.core.summary import Summary
from overview.errors import CalendarError, UnknownCalendar
from overview.logging_utils import configure_logging, get_logger
from overview.ports.calendar import CalendarItem, CalendarRef, EventSourcePort

log = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 2


# -------- Sources --------

def build_source(kind: str, config: Settings) -> EventSourcePort:
    if kind == "google":
        return GCalEventSource(GCalClient.from_settings(config))
    return SQLiteEventStore(config.db_path)


# -------- Rendering --------

def interval_label(interval: DateInterval) -> str:
    """Short human label for a year, month or day bucket; a date range otherwise."""
    start, end = interval.start, interval.end
    midnight = start.hour == start.minute == start.second == start.microsecond == 0
    if midnight and start.day == 1 and start.month == 1 and end == Granularity.of_years(1).advance(start):
        return start.strftime("%Y")
    if midnight and start.day == 1 and end == Granularity.of_months(1).advance(start):
        return start.strftime("%B %Y")
    if midnight and end == Granularity.of_days(1).advance(start):
        return start.strftime("%a %d %b")
    return f"{start.date().isoformat()} – {end.date().isoformat()}"


def render_text(summary: Summary[Any, Any], out: TextIO, *, show_empty: bool = False, depth: int = 0) -> None:
    pad = "  " * depth
    if isinstance(summary.context, str):
        out.write(f"{pad}{summary.context} ×{len(summary.items)}\n")
        return
    if depth == 0 and isinstance(summary.context, CalendarRef):
        label = f"{summary.context.name} · {interval_label(summary.date_interval)}"
    else:
        label = interval_label(summary.date_interval)
    out.write(f"{pad}{label} ({summary.item_count})\n")
    for child in summary.items:
        if isinstance(child, Summary):
            if child.item_count == 0 and not show_empty:
                continue
            render_text(child, out, show_empty=show_empty, depth=depth + 1)


def to_dict(value: Any) -> Any:
    """JSON-ready view of a summary tree."""
    if isinstance(value, Summary):
        return {
            "id": str(value.id),
            "interval": {"start": value.date_interval.start.isoformat(), "end": value.date_interval.end.isoformat()},
            "context": to_dict(value.context),
            "items": [to_dict(v) for v in value.items],
        }
    if isinstance(value, (CalendarRef, CalendarItem)):
        return {k: to_dict(v) for k, v in asdict(value).items()}
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# -------- Commands --------

def _cmd_calendars(args: argparse.Namespace, source: EventSourcePort, config: Settings, out: TextIO) -> int:
    calendars = source.list_calendars()
    if not calendars:
        out.write("No calendars.\n")
    for cal in calendars:
        marker = "*" if cal.is_primary else " "
        out.write(f"{marker} {cal.id}\t{cal.name}\n")
    return EXIT_OK


def _cmd_years(args: argparse.Namespace, source: EventSourcePort, config: Settings, out: TextIO) -> int:
    for year in config.years:
        out.write(f"{year}\n")
    return EXIT_OK


def _cmd_summary(args: argparse.Namespace, source: EventSourcePort, config: Settings, out: TextIO) -> int:
    summarizer = Summarizer.from_settings(source, config)
    interval = year_interval(args.year, config.tzinfo)
    roots = summarizer.summarize_calendars(
        args.calendar,
        interval,
        Granularity.parse(args.top),
        Granularity.parse(args.leaf),
    )
    if args.json:
        json.dump([to_dict(r) for r in roots], out, ensure_ascii=False, indent=2)
        out.write("\n")
        return EXIT_OK
    if all(r.item_count == 0 for r in roots):
        out.write(f"No events in {args.year} for the selected calendars.\n")
        return EXIT_OK
    for root in roots:
        render_text(root, out, show_empty=args.show_empty)
    return EXIT_OK


def _cmd_sync(args: argparse.Namespace, source: EventSourcePort, config: Settings, out: TextIO) -> int:
    remote = build_source("google", config)
    store = source if isinstance(source, SQLiteEventStore) else SQLiteEventStore(config.db_path)
    interval = year_interval(args.year, config.tzinfo)
    for cid in args.calendar:
        ref = remote.get_calendar(cid)
        if ref is None:
            raise UnknownCalendar(cid)
        items = remote.query_items(interval, [cid])
        store.save_calendars([ref])
        store.save_items(items)
        log.info("cli.sync.calendar_synced", extra={"calendar_id": cid, "items": len(items), "year": args.year})
        out.write(f"{ref.name}: {len(items)} items\n")
    return EXIT_OK


def build_parser(config: Settings) -> argparse.ArgumentParser:
    current_year = datetime.now(config.tzinfo).year
    p = argparse.ArgumentParser(prog="overview", description="Summaries of calendar events by year, month, day and title.")
    p.add_argument("--source", choices=("sqlite", "google"), default=config.event_source)
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("calendars", help="List calendars").set_defaults(func=_cmd_calendars)
    sub.add_parser("years", help="List selectable years").set_defaults(func=_cmd_years)

    s = sub.add_parser("summary", help="Summarize one or more calendars")
    s.add_argument("--calendar", action="append", required=True, help="Calendar id (repeatable)")
    s.add_argument("--year", type=int, default=current_year)
    s.add_argument("--top", default="1 month", help='Top bucket size, e.g. "1 month"')
    s.add_argument("--leaf", default="1 day", help='Leaf bucket size, e.g. "1 day"')
    s.add_argument("--json", action="store_true", help="Emit JSON instead of an outline")
    s.add_argument("--show-empty", action="store_true", help="Include buckets without events")
    s.set_defaults(func=_cmd_summary)

    y = sub.add_parser("sync", help="Copy a year of Google Calendar events into the local store")
    y.add_argument("--calendar", action="append", required=True)
    y.add_argument("--year", type=int, default=current_year)
    y.set_defaults(func=_cmd_sync)
    return p


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    source: Optional[EventSourcePort] = None,
    config: Optional[Settings] = None,
    out: Optional[TextIO] = None,
) -> int:
    cfg = config or get_settings()
    cfg.ensure_dirs()
    configure_logging(config=cfg)
    stream = out or sys.stdout
    parser = build_parser(cfg)
    args = parser.parse_args(argv)
    try:
        for opt in ("top", "leaf"):
            if hasattr(args, opt):
                Granularity.parse(getattr(args, opt))
    except ValueError as e:
        parser.error(str(e))

    try:
        src = source or build_source(args.source, cfg)
        return args.func(args, src, cfg, stream)
    except CalendarError as e:
        log.warning("cli.command_failed", extra={"command": args.command, "error": str(e)})
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
