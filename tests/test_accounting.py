"""Tests for worked time, expected time and balance calculation."""

from datetime import date, datetime, timedelta

import pytest

from timetrax.accounting import (
    date_range,
    get_default_time,
    get_expected_work_or_insert_default,
    get_work_time_by_day,
    time_diff,
    time_worked_today,
    work_times_to_duration,
)
from timetrax.clock import ManualClock
from timetrax.db import WorkStore
from timetrax.errors import InconsistentDay
from timetrax.models import SessionEvent, WorkdayTime
from timetrax.workdays import no_holidays


def local(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Helper to build a timezone-aware local datetime."""
    return datetime(year, month, day, hour, minute).astimezone()


def work(hour: int, minute: int = 0, item: int = 1) -> SessionEvent:
    """Helper: start work on ``item`` at hour:minute on 2000-01-01."""
    return SessionEvent.work_at(local(2000, 1, 1, hour, minute), item)


def stop(hour: int, minute: int = 0) -> SessionEvent:
    """Helper: stop work at hour:minute on 2000-01-01."""
    return SessionEvent.stop_at(local(2000, 1, 1, hour, minute))


HOUR = timedelta(hours=1)

MONDAY = date(2000, 1, 3)


def make_store(start: datetime) -> tuple[WorkStore, ManualClock]:
    clock = ManualClock(start)
    store = WorkStore.open_in_memory(clock)
    store.add_work_item("test")
    return store, clock


class TestWorkTimesToDuration:
    """Tests for reducing one day's events to a duration."""

    def test_empty(self):
        assert work_times_to_duration([]) == timedelta()

    @pytest.mark.parametrize(
        "events",
        [
            [work(9)],
            [work(9), work(10)],
            [work(9), stop(9, 30), work(10)],
        ],
        ids=["single", "two-items", "with-break"],
    )
    def test_no_end_time_is_inconsistent(self, events):
        with pytest.raises(InconsistentDay) as exc_info:
            work_times_to_duration(events)
        assert exc_info.value.day == date(2000, 1, 1)

    @pytest.mark.parametrize(
        ("events", "expected"),
        [
            ([work(9), stop(10)], HOUR),
            ([work(9), work(10, item=2), stop(11)], 2 * HOUR),
            ([work(9), stop(10), work(10, 30, item=2), stop(11, 30)], 2 * HOUR),
            ([stop(8), work(9), stop(9, 15), stop(12), work(13), stop(13, 45)], HOUR),
        ],
        ids=["one-session", "switch-items", "with-break", "leading-and-repeated-stops"],
    )
    def test_with_end_time(self, events, expected):
        assert work_times_to_duration(events) == expected

    def test_idle_gaps_do_not_count(self):
        """Stretching the idle gap leaves the worked time unchanged."""
        short_gap = [work(9), stop(10), work(11), stop(12)]
        long_gap = [work(9), stop(10), work(16), stop(17)]
        assert work_times_to_duration(short_gap) == work_times_to_duration(long_gap) == 2 * HOUR


class TestDefaultTime:
    """Tests for the default quota policy."""

    def test_weekday_gets_default(self):
        store, _ = make_store(local(2000, 1, 10, 9))
        assert get_default_time(store, MONDAY, no_holidays) == 8 * 3600

    @pytest.mark.parametrize("day", [date(2000, 1, 1), date(2000, 1, 2)], ids=["sat", "sun"])
    def test_weekend_is_zero(self, day):
        store, _ = make_store(local(2000, 1, 10, 9))
        assert get_default_time(store, day, no_holidays) == 0

    def test_holiday_is_zero(self):
        store, _ = make_store(local(2000, 1, 10, 9))
        assert get_default_time(store, MONDAY, lambda d: d == MONDAY) == 0
        assert get_default_time(store, MONDAY + timedelta(days=1), lambda d: d == MONDAY) == 8 * 3600

    def test_default_calendar_knows_christmas(self):
        store, _ = make_store(local(2001, 1, 10, 9))
        assert get_default_time(store, date(2000, 12, 25)) == 0
        assert get_default_time(store, date(2000, 12, 27)) == 8 * 3600

    def test_uses_configured_default(self):
        store, _ = make_store(local(2000, 1, 10, 9))
        store.set_kv("default_time", 6 * 3600)
        assert get_default_time(store, MONDAY, no_holidays) == 6 * 3600


class TestExpectedWork:
    """Tests for expected time resolution with backfill."""

    def test_stored_value_wins(self):
        store, _ = make_store(local(2000, 1, 10, 9))
        store.set_expected_time(MONDAY, 3 * 3600)
        assert get_expected_work_or_insert_default(store, MONDAY, no_holidays) == 3 * HOUR

    def test_backfills_default(self):
        store, _ = make_store(local(2000, 1, 10, 9))
        assert get_expected_work_or_insert_default(store, MONDAY, no_holidays) == 8 * HOUR
        assert store.get_expected_time(MONDAY) == 8 * 3600

    def test_stable_when_default_changes(self):
        """Once resolved, a day's quota ignores later default changes."""
        store, _ = make_store(local(2000, 1, 10, 9))
        first = get_expected_work_or_insert_default(store, MONDAY, no_holidays)
        store.set_kv("default_time", 4 * 3600)
        second = get_expected_work_or_insert_default(store, MONDAY, no_holidays)
        assert first == second == 8 * HOUR


def three_day_log() -> tuple[WorkStore, ManualClock]:
    """Log 1h, 2h and an unclosed session on three days, with quotas 5h/6h/7h.

    The clock ends on the fourth day with work running.
    """
    store, clock = make_store(local(2000, 1, 3, 9))
    item = store.get_available_work()[0][1]

    store.set_current_work(item)
    store.set_expected_time(store.today(), 5 * 3600)
    clock.advance(1)
    store.set_current_work(None)
    clock.advance(23)

    store.set_expected_time(store.today(), 6 * 3600)
    store.set_current_work(item)
    clock.advance(2)
    store.set_current_work(None)
    clock.advance(22)

    store.set_expected_time(store.today(), 7 * 3600)
    store.set_current_work(item)
    clock.advance(23)

    store.set_expected_time(store.today(), 8 * 3600)
    store.set_current_work(item)
    return store, clock


class TestWorkTimeByDay:
    """Tests for the per-day ledger."""

    def test_empty_log(self):
        store, _ = make_store(local(2000, 1, 3, 9))
        assert get_work_time_by_day(store, no_holidays) == {}

    def test_three_days(self):
        store, _ = three_day_log()
        day = timedelta(days=1)
        expected = {
            MONDAY: WorkdayTime(work_done=HOUR, expected=5 * HOUR),
            MONDAY + day: WorkdayTime(work_done=2 * HOUR, expected=6 * HOUR),
            MONDAY + 2 * day: WorkdayTime(
                error=InconsistentDay(MONDAY + 2 * day), expected=7 * HOUR
            ),
        }
        assert get_work_time_by_day(store, no_holidays) == expected

    def test_ordered_by_date_and_excludes_today(self):
        store, _ = three_day_log()
        ledger = get_work_time_by_day(store, no_holidays)
        assert list(ledger) == list(date_range(MONDAY, store.today()))
        assert store.today() not in ledger

    def test_backfills_days_without_activity(self):
        """Idle days inside the horizon get a quota and zero work."""
        store, clock = make_store(local(2000, 1, 7, 9))
        store.set_current_work(1)
        clock.advance(1)
        store.set_current_work(None)
        clock.set(local(2000, 1, 11, 9))

        ledger = get_work_time_by_day(store, no_holidays)

        assert list(ledger) == [date(2000, 1, 7), date(2000, 1, 8), date(2000, 1, 9), date(2000, 1, 10)]
        assert ledger[date(2000, 1, 8)] == WorkdayTime(work_done=timedelta(), expected=timedelta())
        assert ledger[date(2000, 1, 10)].expected == 8 * HOUR
        assert store.get_expected_time(date(2000, 1, 10)) == 8 * 3600


class TestTimeDiff:
    """Tests for the net balance."""

    def test_inconsistent_day_fails(self):
        store, _ = three_day_log()
        with pytest.raises(InconsistentDay) as exc_info:
            time_diff(store, no_holidays)
        assert exc_info.value.day == date(2000, 1, 5)

    def test_sums_closed_days(self):
        store, clock = make_store(local(2000, 1, 3, 9))
        store.set_expected_time(MONDAY, 5 * 3600)
        store.set_current_work(1)
        clock.advance(6)
        store.set_current_work(None)
        clock.advance(24)
        store.set_expected_time(store.today(), 6 * 3600)
        clock.advance(-6)
        store.set_current_work(1)
        clock.advance(4)
        store.set_current_work(None)
        clock.set(local(2000, 1, 5, 9))

        assert time_diff(store, no_holidays) == (6 - 5) * HOUR + (4 - 6) * HOUR

    def test_adds_account_start(self):
        store, _ = make_store(local(2000, 1, 3, 9))
        store.set_kv("account_start", 90 * 60)
        assert time_diff(store, no_holidays) == timedelta(minutes=90)

    def test_empty_log_is_zero(self):
        store, _ = make_store(local(2000, 1, 3, 9))
        assert time_diff(store, no_holidays) == timedelta()


class TestTimeWorkedToday:
    """Tests for the live figure of time worked today."""

    def test_running_session_counts_until_now(self):
        store, clock = make_store(local(2000, 1, 3, 9))
        store.set_current_work(1)
        clock.advance(1)
        store.set_current_work(None)
        clock.advance(1)
        store.set_current_work(1)
        clock.advance(minutes=30)

        assert time_worked_today(store) == timedelta(minutes=90)

    def test_nothing_logged(self):
        store, _ = make_store(local(2000, 1, 3, 9))
        assert time_worked_today(store) == timedelta()


def test_date_range_is_half_open():
    assert list(date_range(MONDAY, MONDAY)) == []
    assert list(date_range(MONDAY, date(2000, 1, 5))) == [MONDAY, date(2000, 1, 4)]
