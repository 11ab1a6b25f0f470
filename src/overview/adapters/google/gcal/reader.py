from __future__ import annotations

import random
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Collection, Dict, List, Optional, Sequence, TypeVar, cast

import httplib2
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest

from overview.adapters.google.gcal.client import GCalClient
from overview.adapters.google.gcal.normalizer import (
    normalize_calendar_item,
    normalize_calendar_ref,
)
from overview.core.intervals import DateInterval
from overview.errors import GenericFailure, UnknownCalendar
from overview.logging_utils import get_logger
from overview.ports.calendar import CalendarItem, CalendarRef

log = get_logger(__name__)

# Failures that happen before any HTTP response exists
TRANSPORT_ERRORS = (GoogleAuthError, httplib2.HttpLib2Error, OSError)


# ----------------------------- retry/backoff -----------------------------

def _status_of(e: HttpError) -> Optional[int]:
    try:
        return int(getattr(e, "status_code", None) or e.resp.status)
    except (AttributeError, TypeError, ValueError):
        return None


def _should_retry_http_error(e: HttpError) -> bool:
    status = _status_of(e)
    return status is not None and (status == 429 or 500 <= status <= 599)


T = TypeVar("T")


def _execute_with_retries(
    request: HttpRequest,
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    cap_s: float = 8.0,
) -> T:  # type: ignore
    attempt = 0
    while True:
        attempt += 1
        try:
            return cast(T, request.execute())
        except HttpError as e:
            if attempt < max_attempts and _should_retry_http_error(e):
                delay = min(cap_s, base_delay * (2 ** (attempt - 1)))
                delay = delay * (0.5 + random.random())  # jitter in [0.5x, 1.5x]
                log.warning(
                    "gcal.reader.retrying_http_error",
                    extra={
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "status": _status_of(e),
                        "delay_s": round(delay, 3),
                    },
                )
                time.sleep(delay)
                continue
            raise


def _rfc3339(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# ----------------------------- Reader -----------------------------

class GCalEventSource:
    """
    Google Calendar implementation of `EventSourcePort`.
    - list_calendars(): paginated calendarList.list
    - get_calendar(): calendarList.get, None on 404
    - query_items(): events.list with singleEvents=true per calendar, all pages

    404 on an events listing → UnknownCalendar; any other HttpError, auth or
    transport failure → GenericFailure. Items are returned only when they
    intersect the queried interval.
    """

    def __init__(
        self,
        client: Optional[GCalClient] = None,
        *,
        page_size: int = 250,
        include_cancelled: bool = False,
    ) -> None:
        self.client = client or GCalClient.from_settings()
        self.page_size = page_size
        self.include_cancelled = include_cancelled

    # ---------- Discovery ----------

    def list_calendars(self) -> Sequence[CalendarRef]:
        out: List[CalendarRef] = []
        token: Optional[str] = None
        try:
            service = self.client.get_service()
            while True:
                req = service.calendarList().list(
                    pageToken=token,
                    minAccessRole="reader",
                    maxResults=250,
                )
                resp = _execute_with_retries(req)
                for raw in resp.get("items", []) or []:
                    ref = normalize_calendar_ref(raw)
                    if ref:
                        out.append(ref)
                token = cast(Optional[str], resp.get("nextPageToken"))
                if not token:
                    break
        except HttpError as e:
            log.warning("gcal.reader.list_calendars_failed", extra={"error": str(e), "status": _status_of(e)})
            raise GenericFailure(f"listing calendars failed: {e}") from e
        except TRANSPORT_ERRORS as e:
            log.warning("gcal.reader.list_calendars_failed", extra={"error": str(e), "error_type": type(e).__name__})
            raise GenericFailure(f"listing calendars failed: {e}") from e
        return tuple(out)

    def get_calendar(self, calendar_id: str) -> CalendarRef | None:
        try:
            service = self.client.get_service()
            resp = _execute_with_retries(service.calendarList().get(calendarId=calendar_id))
        except HttpError as e:
            if _status_of(e) == 404:
                return None
            log.warning(
                "gcal.reader.get_calendar_failed",
                extra={"error": str(e), "status": _status_of(e), "calendar_id": calendar_id},
            )
            raise GenericFailure(f"reading calendar {calendar_id!r} failed: {e}") from e
        except TRANSPORT_ERRORS as e:
            log.warning(
                "gcal.reader.get_calendar_failed",
                extra={"error": str(e), "error_type": type(e).__name__, "calendar_id": calendar_id},
            )
            raise GenericFailure(f"reading calendar {calendar_id!r} failed: {e}") from e
        return normalize_calendar_ref(resp)

    # ---------- Items ----------

    def query_items(
        self,
        interval: DateInterval,
        calendar_ids: Optional[Collection[str]] = None,
    ) -> Sequence[CalendarItem]:
        if interval.is_empty:
            return ()

        if calendar_ids is None:
            refs = list(self.list_calendars())
        else:
            refs = []
            for cid in sorted(set(calendar_ids)):
                ref = self.get_calendar(cid)
                if ref is None:
                    raise UnknownCalendar(cid)
                refs.append(ref)

        out: List[CalendarItem] = []
        for ref in refs:
            out.extend(self._list_calendar_items(ref, interval))
        log.debug(
            "gcal.reader.query_items",
            extra={"interval": str(interval), "calendars": len(refs), "items": len(out)},
        )
        return tuple(out)

    def _list_calendar_items(self, ref: CalendarRef, interval: DateInterval) -> List[CalendarItem]:
        items: List[CalendarItem] = []
        page_token: Optional[str] = None
        try:
            service = self.client.get_service()
            while True:
                params: Dict[str, Any] = {
                    "calendarId": ref.id,
                    "singleEvents": True,
                    "orderBy": "startTime",
                    # Google compares timeMin exclusively against event ends
                    "timeMin": _rfc3339(interval.start - timedelta(microseconds=1)),
                    "timeMax": _rfc3339(interval.end),
                    "showDeleted": self.include_cancelled,
                    "maxResults": self.page_size,
                }
                if page_token:
                    params["pageToken"] = page_token
                resp = _execute_with_retries(service.events().list(**params))

                calendar_tz = resp.get("timeZone") or ref.timezone
                for raw in resp.get("items", []) or []:
                    if not self.include_cancelled and raw.get("status") == "cancelled":
                        continue
                    item = normalize_calendar_item(raw, calendar_id=ref.id, calendar_tz=calendar_tz)
                    if item is None:
                        log.debug(
                            "gcal.reader.normalize_item_skip",
                            extra={"event_id": raw.get("id"), "calendar_id": ref.id},
                        )
                        continue
                    if not interval.overlaps(item.start, item.end):
                        continue
                    items.append(item)

                page_token = cast(Optional[str], resp.get("nextPageToken"))
                if not page_token:
                    break
        except HttpError as e:
            status = _status_of(e)
            log.warning(
                "gcal.reader.list_items_failed",
                extra={"error": str(e), "status": status, "calendar_id": ref.id},
            )
            if status == 404:
                raise UnknownCalendar(ref.id) from e
            raise GenericFailure(f"listing events of {ref.id!r} failed: {e}") from e
        except TRANSPORT_ERRORS as e:
            log.warning(
                "gcal.reader.list_items_failed",
                extra={"error": str(e), "error_type": type(e).__name__, "calendar_id": ref.id},
            )
            raise GenericFailure(f"listing events of {ref.id!r} failed: {e}") from e
        return items
