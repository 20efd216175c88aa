"""SQLite store for work sessions and the expected-time ledger."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Iterator

from timetrax.clock import Clock, SystemClock
from timetrax.errors import InvalidConfiguration, StoreError
from timetrax.models import SessionEvent, WorkItem, state_for


SCHEMA = """
CREATE TABLE IF NOT EXISTS work_items (
    id INTEGER PRIMARY KEY ASC,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    visible INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS work_times (
    start TEXT NOT NULL UNIQUE,
    work_item INTEGER,
    FOREIGN KEY (work_item) REFERENCES work_items(id)
);

CREATE TABLE IF NOT EXISTS expected_time (
    date TEXT PRIMARY KEY,
    seconds INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS key_value (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""

logger = logging.getLogger(__name__)

# Baseline daily quota seeded into a fresh database (8 hours)
DEFAULT_TIME_SECONDS = 8 * 60 * 60

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _format_timestamp(dt: datetime) -> str:
    """Format an instant as a UTC ISO 8601 string with second resolution."""
    return dt.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _parse_timestamp(ts: str) -> datetime:
    """Parse ISO 8601 timestamp to datetime."""
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


def _day_bounds(day: date) -> tuple[str, str]:
    """Get UTC bounds of a local calendar day (start inclusive, end exclusive)."""
    start = datetime.combine(day, time.min).astimezone()
    end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
    return _format_timestamp(start), _format_timestamp(end)


def _row_to_event(row: sqlite3.Row) -> SessionEvent:
    try:
        start = _parse_timestamp(row["start"])
    except ValueError as e:
        raise StoreError(f"Malformed session timestamp: {row['start']!r}") from e
    return SessionEvent(start=start, state=state_for(row["work_item"]))


def _row_to_item(row: sqlite3.Row) -> WorkItem:
    return WorkItem(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        visible=bool(row["visible"]),
    )


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Re-raise SQLite failures as StoreError."""
    try:
        yield
    except sqlite3.Error as e:
        raise StoreError(f"Failed to {action}: {e}") from e


class WorkStore:
    """SQLite-backed work log.

    Not thread-safe. Each thread should have its own WorkStore instance.

    Opening a store runs the shutdown recovery; closing it (directly or by
    leaving a ``with`` block) records the shutdown instant the next open
    relies on.
    """

    def __init__(self, conn: sqlite3.Connection, clock: Clock | None = None) -> None:
        self._conn = conn
        self._clock = clock if clock is not None else SystemClock()
        self._closed = False
        try:
            with _store_errors("initialize database"):
                self._conn.execute("PRAGMA foreign_keys = ON")
                self._init_schema()
            self.recover_unclosed_session()
        except Exception:
            self._closed = True
            self._conn.close()
            raise

    def __enter__(self) -> "WorkStore":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Record the shutdown instant and close the database connection.

        Calling close more than once is a no-op. A failure to write the
        shutdown marker is logged, not raised: the next open simply gets
        another chance to repair the log.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self.record_shutdown()
        except StoreError as e:
            logger.warning("Could not record shutdown time: %s", e)
        finally:
            self._conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema and seed the default quota."""
        self._conn.executescript(SCHEMA)
        self._conn.execute(
            "INSERT OR IGNORE INTO key_value (key, value) VALUES ('default_time', ?)",
            (str(DEFAULT_TIME_SECONDS),),
        )
        self._conn.commit()

    @classmethod
    def open(cls, path: Path | str, clock: Clock | None = None) -> WorkStore:
        """Open or create a database at the given path."""
        with _store_errors(f"open database {path}"):
            conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        return cls(conn, clock)

    @classmethod
    def open_in_memory(cls, clock: Clock | None = None) -> WorkStore:
        """Create an in-memory database for testing."""
        return cls.open(":memory:", clock)

    def now(self) -> datetime:
        return self._clock.now()

    def today(self) -> date:
        """Local calendar date of the clock's current instant."""
        return self.now().astimezone().date()

    # Work items

    def add_work_item(self, name: str, description: str | None = None) -> bool:
        """Add a visible work item unless one with that name exists.

        Returns:
            True if the item was created, False if it already existed.
        """
        with _store_errors(f"add work item '{name}'"), self._conn:
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO work_items (name, description, visible) VALUES (?, ?, 1)",
                (name, description),
            )
        return cursor.rowcount > 0

    def get_available_work(self) -> list[tuple[str, int]]:
        """Get (name, id) pairs of all visible work items."""
        with _store_errors("list work items"):
            cursor = self._conn.execute(
                "SELECT name, id FROM work_items WHERE visible = 1 ORDER BY id"
            )
            return [(row["name"], row["id"]) for row in cursor.fetchall()]

    def get_work_items(self) -> list[WorkItem]:
        """Get all work items, hidden ones included."""
        with _store_errors("list work items"):
            cursor = self._conn.execute("SELECT * FROM work_items ORDER BY id")
            return [_row_to_item(row) for row in cursor.fetchall()]

    def get_work_item(self, item_id: int) -> WorkItem | None:
        with _store_errors(f"get work item {item_id}"):
            row = self._conn.execute(
                "SELECT * FROM work_items WHERE id = ?", (item_id,)
            ).fetchone()
        return _row_to_item(row) if row else None

    def find_work_item(self, name: str) -> WorkItem | None:
        with _store_errors(f"find work item '{name}'"):
            row = self._conn.execute(
                "SELECT * FROM work_items WHERE name = ?", (name,)
            ).fetchone()
        return _row_to_item(row) if row else None

    def set_work_item_visible(self, name: str, visible: bool) -> bool:
        """Hide or restore a work item.

        Returns:
            True if an item with that name exists.
        """
        with _store_errors(f"update work item '{name}'"), self._conn:
            cursor = self._conn.execute(
                "UPDATE work_items SET visible = ? WHERE name = ?",
                (int(visible), name),
            )
        return cursor.rowcount > 0

    # Work log

    def _write_event(self, start: datetime, item_id: int | None) -> None:
        """Insert an event, or overwrite the one at the same timestamp."""
        with _store_errors("write work event"), self._conn:
            self._conn.execute(
                """
                INSERT INTO work_times (start, work_item) VALUES (?, ?)
                ON CONFLICT (start) DO UPDATE SET work_item = excluded.work_item
                """,
                (_format_timestamp(start), item_id),
            )

    def set_current_work(self, item_id: int | None) -> None:
        """Start work on ``item_id`` now, or stop working if it is None."""
        self._write_event(self.now(), item_id)
        logger.debug("Current work set to %s", item_id)

    def _last_event_on(self, day: date) -> SessionEvent | None:
        start, end = _day_bounds(day)
        with _store_errors(f"read work log for {day}"):
            row = self._conn.execute(
                """
                SELECT start, work_item FROM work_times
                WHERE start >= ? AND start < ?
                ORDER BY start DESC
                LIMIT 1
                """,
                (start, end),
            ).fetchone()
        return _row_to_event(row) if row else None

    def get_current_work(self, as_of: datetime | None = None) -> int | None:
        """Get the work item of the latest event on the local day of ``as_of``.

        Returns:
            The item id, or None if nothing was logged that day or the
            latest event is a stop.
        """
        instant = as_of if as_of is not None else self.now()
        last = self._last_event_on(instant.astimezone().date())
        return last.work_item if last else None

    def get_work_on_date(self, day: date) -> list[SessionEvent]:
        """Get all events of a local calendar day, ordered by start ascending."""
        start, end = _day_bounds(day)
        with _store_errors(f"read work log for {day}"):
            cursor = self._conn.execute(
                """
                SELECT start, work_item FROM work_times
                WHERE start >= ? AND start < ?
                ORDER BY start ASC
                """,
                (start, end),
            )
            rows = cursor.fetchall()
        return [_row_to_event(row) for row in rows]

    def get_work_today(self) -> list[SessionEvent]:
        return self.get_work_on_date(self.today())

    def get_start_day(self) -> date | None:
        """Get the local date of the first logged event, or None if the log is empty."""
        with _store_errors("read work log"):
            row = self._conn.execute("SELECT MIN(start) AS first FROM work_times").fetchone()
        if row["first"] is None:
            return None
        try:
            return _parse_timestamp(row["first"]).astimezone().date()
        except ValueError as e:
            raise StoreError(f"Malformed session timestamp: {row['first']!r}") from e

    # Expected time

    def get_expected_time(self, day: date) -> int | None:
        """Get the expected seconds of work for ``day``, or None if not set."""
        with _store_errors(f"read expected time for {day}"):
            row = self._conn.execute(
                "SELECT seconds FROM expected_time WHERE date = ?", (day.isoformat(),)
            ).fetchone()
        if row is None:
            return None
        if not isinstance(row["seconds"], int):
            raise StoreError(f"Malformed expected time for {day}: {row['seconds']!r}")
        return row["seconds"]

    def set_expected_time(self, day: date, seconds: int) -> None:
        with _store_errors(f"set expected time for {day}"), self._conn:
            self._conn.execute(
                """
                INSERT INTO expected_time (date, seconds) VALUES (?, ?)
                ON CONFLICT (date) DO UPDATE SET seconds = excluded.seconds
                """,
                (day.isoformat(), int(seconds)),
            )

    # Key/value settings

    def get_kv(self, key: str) -> str | None:
        with _store_errors(f"read setting '{key}'"):
            row = self._conn.execute(
                "SELECT value FROM key_value WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_kv(self, key: str, value: str | int) -> None:
        with _store_errors(f"write setting '{key}'"), self._conn:
            self._conn.execute(
                """
                INSERT INTO key_value (key, value) VALUES (?, ?)
                ON CONFLICT (key) DO UPDATE SET value = excluded.value
                """,
                (key, str(value)),
            )

    def get_int(self, key: str) -> int | None:
        """Read an integer setting.

        Raises:
            InvalidConfiguration: If the stored value is not an integer.
        """
        value = self.get_kv(key)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError as e:
            raise InvalidConfiguration(key, value) from e

    def get_default_time(self) -> int:
        """Get the baseline daily quota in seconds."""
        value = self.get_int("default_time")
        return DEFAULT_TIME_SECONDS if value is None else value

    def get_account_start(self) -> int:
        """Get the manually entered balance that predates the log, in seconds."""
        value = self.get_int("account_start")
        return 0 if value is None else value

    # Shutdown and recovery

    def record_shutdown(self) -> None:
        self.set_kv("shutdown", _format_timestamp(self.now()))

    def recover_unclosed_session(self) -> bool:
        """Close a session left running when the process last shut down.

        If the recorded shutdown happened on an earlier local day and that
        day's log ends with work still running, a stop event is inserted at
        the shutdown instant. Existing events are never rewritten: when the
        shutdown is not later than the running session's start, the day is
        left as is and reported as inconsistent by the accounting.

        Returns:
            True if a stop event was written.
        """
        value = self.get_kv("shutdown")
        if value is None:
            return False
        try:
            shutdown = _parse_timestamp(value)
        except ValueError as e:
            raise StoreError(f"Malformed shutdown timestamp: {value!r}") from e

        shutdown_day = shutdown.astimezone().date()
        if shutdown_day >= self.today():
            return False

        last = self._last_event_on(shutdown_day)
        if last is None or not last.is_working:
            return False

        if shutdown <= last.start:
            logger.warning(
                "Work item %s left running on %s started at or after last shutdown (%s); not closed",
                last.work_item,
                shutdown_day,
                value,
            )
            return False

        with _store_errors("write shutdown stop event"), self._conn:
            self._conn.execute(
                "INSERT INTO work_times (start, work_item) VALUES (?, NULL)",
                (_format_timestamp(shutdown),),
            )
        logger.info(
            "Closed work item %s left running on %s at last shutdown (%s)",
            last.work_item,
            shutdown_day,
            value,
        )
        return True
