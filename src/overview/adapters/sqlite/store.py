"""SQLite-backed event source.

This adapter persists calendars and calendar items and serves them through
the `EventSourcePort` contract. Objects are stored as pickled payloads with
indexed UTC timestamp columns for interval lookups.
"""

from __future__ import annotations

import pickle
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Collection, Iterable, Optional, Sequence

from overview.config import settings
from overview.core.intervals import DateInterval
from overview.errors import GenericFailure, UnknownCalendar
from overview.logging_utils import get_logger
from overview.ports.calendar import CalendarItem, CalendarRef

log = get_logger(__name__)


class SQLiteEventStore:
    """SQLite implementation of the `EventSourcePort` contract, plus upserts."""

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Create a store connected to `db_path`, then ensure schema exists."""
        if db_path is None:
            db_path = settings.db_path
        self._db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._enable_pragmas()
            self._init_schema()
        except (sqlite3.Error, OSError) as e:
            log.warning("sqlite.store.open_failed", extra={"db_path": self._db_path, "error": str(e)})
            raise GenericFailure(f"cannot open event store at {self._db_path}: {e}") from e

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _enable_pragmas(self) -> None:
        """Enable SQLite settings for local durability and integrity."""
        cur = self._conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute("PRAGMA foreign_keys=ON;")
        self._conn.commit()

    def _init_schema(self) -> None:
        """Create required tables and indexes when they do not yet exist."""
        cur = self._conn.cursor()

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS calendars (
                calendar_id  TEXT PRIMARY KEY,
                name         TEXT NOT NULL,
                payload      BLOB NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS calendar_items (
                calendar_id  TEXT NOT NULL REFERENCES calendars(calendar_id) ON DELETE CASCADE,
                item_id      TEXT NOT NULL,
                payload      BLOB NOT NULL,
                start_time   TEXT NOT NULL,
                end_time     TEXT NOT NULL,
                PRIMARY KEY (calendar_id, item_id)
            )
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_calendar_items_start_time
                ON calendar_items(calendar_id, start_time)
            """
        )

        self._conn.commit()

    @staticmethod
    def _dt_to_iso(dt: datetime) -> str:
        """Serialize a datetime as fixed-width UTC ISO 8601 text so that text order is time order."""
        return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")

    def _known_calendar_ids(self, ids: Iterable[str]) -> set[str]:
        wanted = list(ids)
        if not wanted:
            return set()
        marks = ",".join("?" for _ in wanted)
        cur = self._conn.execute(
            f"SELECT calendar_id FROM calendars WHERE calendar_id IN ({marks})",
            wanted,
        )
        return {row["calendar_id"] for row in cur.fetchall()}

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def save_calendars(self, calendars: Iterable[CalendarRef]) -> None:
        """Upsert calendars by `calendar.id`."""
        rows = [
            (cal.id, cal.name, pickle.dumps(cal, protocol=pickle.HIGHEST_PROTOCOL))
            for cal in calendars
        ]
        if not rows:
            return
        with self._lock, self._conn:
            self._conn.executemany(
                """
                INSERT INTO calendars (calendar_id, name, payload)
                VALUES (?, ?, ?)
                ON CONFLICT(calendar_id) DO UPDATE SET
                    name    = excluded.name,
                    payload = excluded.payload
                """,
                rows,
            )

    def save_items(self, items: Iterable[CalendarItem]) -> None:
        """Upsert items by `(item.calendar_id, item.id)`; their calendars must exist."""
        rows = []
        for item in items:
            payload = pickle.dumps(item, protocol=pickle.HIGHEST_PROTOCOL)
            rows.append((item.calendar_id, item.id, payload, self._dt_to_iso(item.start), self._dt_to_iso(item.end)))
        if not rows:
            return

        with self._lock:
            missing = {r[0] for r in rows} - self._known_calendar_ids({r[0] for r in rows})
            if missing:
                raise UnknownCalendar(sorted(missing)[0])
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO calendar_items (calendar_id, item_id, payload, start_time, end_time)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(calendar_id, item_id) DO UPDATE SET
                        payload    = excluded.payload,
                        start_time = excluded.start_time,
                        end_time   = excluded.end_time
                    """,
                    rows,
                )

    def delete_calendar(self, calendar_id: str) -> None:
        """Delete one calendar and its items. Missing ids are a no-op."""
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM calendars WHERE calendar_id = ?", (calendar_id,))

    # -------------------------------------------------------------------------
    # EventSourcePort
    # -------------------------------------------------------------------------

    def list_calendars(self) -> Sequence[CalendarRef]:
        """Return all stored calendars ordered by name."""
        try:
            with self._lock:
                cur = self._conn.execute("SELECT payload FROM calendars ORDER BY name, calendar_id")
                rows = cur.fetchall()
        except sqlite3.Error as e:
            raise GenericFailure(f"listing calendars failed: {e}") from e
        return tuple(pickle.loads(row["payload"]) for row in rows)

    def get_calendar(self, calendar_id: str) -> CalendarRef | None:
        """Return one calendar by id, or `None` when no row exists."""
        try:
            with self._lock:
                cur = self._conn.execute(
                    "SELECT payload FROM calendars WHERE calendar_id = ?",
                    (calendar_id,),
                )
                row = cur.fetchone()
        except sqlite3.Error as e:
            raise GenericFailure(f"reading calendar {calendar_id!r} failed: {e}") from e
        if row is None:
            return None
        return pickle.loads(row["payload"])

    def query_items(
        self,
        interval: DateInterval,
        calendar_ids: Optional[Collection[str]] = None,
    ) -> Sequence[CalendarItem]:
        """Return items intersecting `interval`, ordered by start time."""
        if interval.is_empty:
            return ()
        start_iso = self._dt_to_iso(interval.start)
        end_iso = self._dt_to_iso(interval.end)

        sql = """
            SELECT payload
              FROM calendar_items
             WHERE start_time < ?
               AND (end_time > ? OR (end_time <= start_time AND start_time >= ?))
        """
        params: list[str] = [end_iso, start_iso, start_iso]

        try:
            with self._lock:
                if calendar_ids is not None:
                    ids = sorted(set(calendar_ids))
                    unknown = set(ids) - self._known_calendar_ids(ids)
                    if unknown:
                        raise UnknownCalendar(sorted(unknown)[0])
                    if not ids:
                        return ()
                    sql += f" AND calendar_id IN ({','.join('?' for _ in ids)})"
                    params.extend(ids)
                sql += " ORDER BY start_time, calendar_id, item_id"
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            log.warning("sqlite.store.query_failed", extra={"interval": str(interval), "error": str(e)})
            raise GenericFailure(f"item query failed: {e}") from e

        return tuple(pickle.loads(row["payload"]) for row in rows)

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._conn.close()
