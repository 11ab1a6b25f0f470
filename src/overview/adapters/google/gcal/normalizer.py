from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from overview.logging_utils import get_logger
from overview.ports.calendar import CalendarItem, CalendarRef

log = get_logger(__name__)


# -------------------- helpers: RFC3339 / ISO parsing --------------------

def _parse_rfc3339(s: Optional[str]) -> Optional[datetime]:
    """
    Parse RFC3339/ISO strings returned by Google (e.g., "2025-10-30T09:00:00-06:00" or "...Z").
    Returns timezone-aware datetimes, or None if the value is missing or malformed.
    """
    if not s:
        return None
    try:
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        return datetime.fromisoformat(s)
    except ValueError:
        log.warning("gcal.normalizer.rfc3339_parse_failed", extra={"value": s})
        return None


def _zone(tz_name: Optional[str]) -> Optional[ZoneInfo]:
    if not tz_name:
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        log.debug("gcal.normalizer.tz_load_failed", extra={"tz": tz_name})
        return None


def _parse_date(s: Optional[str]) -> Optional[date]:
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        log.warning("gcal.normalizer.date_parse_failed", extra={"value": s})
        return None


def _resolve_event_times(
    raw: dict[str, Any],
    *,
    calendar_tz: Optional[str],
) -> Optional[Tuple[datetime, datetime, bool]]:
    """
    Convert Google event start/end objects to aware datetimes.
    Returns (start, end, all_day), or None when the times cannot be resolved.
    - Timed events: offsets from the RFC3339 string win; naive values are
      localized with the event's own timeZone, then the calendar's, then UTC.
    - All-day events: local midnight of start.date through local midnight of
      end.date (exclusive, as Google encodes it).
    """
    start_obj = raw.get("start") or {}
    end_obj = raw.get("end") or {}

    start_tz = _zone(start_obj.get("timeZone")) or _zone(calendar_tz) or timezone.utc
    end_tz = _zone(end_obj.get("timeZone")) or _zone(calendar_tz) or timezone.utc

    # Case 1: dateTime (timed event)
    if "dateTime" in start_obj:
        s_dt = _parse_rfc3339(start_obj.get("dateTime"))
        e_dt = _parse_rfc3339(end_obj.get("dateTime")) if "dateTime" in end_obj else s_dt
        if s_dt is None or e_dt is None:
            log.warning("gcal.normalizer.datetime_missing", extra={"event_id": raw.get("id")})
            return None
        if s_dt.tzinfo is None:
            s_dt = s_dt.replace(tzinfo=start_tz)
        if e_dt.tzinfo is None:
            e_dt = e_dt.replace(tzinfo=end_tz)
        return (s_dt, max(s_dt, e_dt), False)

    # Case 2: date (all-day)
    if "date" in start_obj:
        s_day = _parse_date(start_obj.get("date"))
        e_day = _parse_date(end_obj.get("date"))
        if s_day is None:
            return None
        if e_day is None or e_day <= s_day:
            e_day = s_day + timedelta(days=1)
        start = datetime.combine(s_day, time.min, tzinfo=start_tz)
        end = datetime.combine(e_day, time.min, tzinfo=start_tz)
        return (start, end, True)

    log.warning("gcal.normalizer.unknown_time_format", extra={"event_id": raw.get("id")})
    return None


# -------------------- inbound: Google → Port DTOs --------------------

def normalize_calendar_ref(raw: dict[str, Any]) -> Optional[CalendarRef]:
    """
    calendarList item → CalendarRef
    """
    cal_id = raw.get("id")
    if not cal_id:
        log.warning("gcal.normalizer.calendar_ref_failed", extra={"error": "missing id"})
        return None
    return CalendarRef(
        id=cal_id,
        name=raw.get("summaryOverride") or raw.get("summary") or cal_id,
        timezone=raw.get("timeZone"),
        is_primary=bool(raw.get("primary", False)),
    )


def normalize_calendar_item(
    raw: dict[str, Any],
    *,
    calendar_id: str,
    calendar_tz: Optional[str] = None,
) -> Optional[CalendarItem]:
    """
    events.list item (singleEvents=true) → CalendarItem
    Untitled events keep `title=None` so the summarizer groups them under its sentinel.
    """
    times = _resolve_event_times(raw, calendar_tz=calendar_tz)
    if times is None:
        return None
    start, end, all_day = times
    return CalendarItem(
        id=raw.get("id", ""),
        calendar_id=calendar_id,
        title=raw.get("summary") or None,
        start=start,
        end=end,
        all_day=all_day,
    )
