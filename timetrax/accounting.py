"""Turn the work log into worked time, expected time and a running balance.

Nothing here keeps state between calls. Every figure is derived from the
store when asked for; the only write is the backfill of expected time for
days that have none yet, which freezes the quota for that day.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from functools import lru_cache
from typing import Iterator, Sequence

from timetrax.db import WorkStore
from timetrax.errors import InconsistentDay
from timetrax.models import SessionEvent, WorkdayTime
from timetrax.workdays import HolidayCalendar, HolidayPredicate, is_weekend

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def default_calendar() -> HolidayCalendar:
    """Return the cached calendar used when no holiday predicate is given."""
    return HolidayCalendar()


def date_range(start: date, end: date) -> Iterator[date]:
    """Yield each day from ``start`` up to, not including, ``end``."""
    current = start
    while current < end:
        yield current
        current += timedelta(days=1)


def get_default_time(
    store: WorkStore,
    day: date,
    is_holiday: HolidayPredicate | None = None,
) -> int:
    """Get the quota in seconds a day gets when none is stored.

    Weekends and holidays get zero; other days get the ``default_time``
    setting.
    """
    if is_weekend(day):
        return 0
    if is_holiday is None:
        is_holiday = default_calendar()
    if is_holiday(day):
        return 0
    return store.get_default_time()


def get_expected_work_or_insert_default(
    store: WorkStore,
    day: date,
    is_holiday: HolidayPredicate | None = None,
) -> timedelta:
    """Get the expected work for ``day``, storing the default if none is set."""
    seconds = store.get_expected_time(day)
    if seconds is None:
        seconds = get_default_time(store, day, is_holiday)
        store.set_expected_time(day, seconds)
        logger.debug("Backfilled expected time for %s: %ss", day, seconds)
    return timedelta(seconds=seconds)


def work_times_to_duration(events: Sequence[SessionEvent]) -> timedelta:
    """Sum the working intervals of one closed day.

    Each event opens an interval that the next event closes; intervals
    opened by a working event count, those opened by a stop do not.

    Raises:
        InconsistentDay: If the last event is not a stop.
    """
    if not events:
        return timedelta()
    last = events[-1]
    if last.is_working:
        raise InconsistentDay(last.local_date())

    total = timedelta()
    for current, following in zip(events, events[1:]):
        if current.is_working:
            total += following.start - current.start
    return total


def get_work_time_by_day(
    store: WorkStore,
    is_holiday: HolidayPredicate | None = None,
) -> dict[date, WorkdayTime]:
    """Get worked and expected time for every closed day, oldest first.

    Covers each day from the first logged event up to, not including,
    today. An inconsistent day carries its error instead of a duration.
    """
    result: dict[date, WorkdayTime] = {}
    start_day = store.get_start_day()
    if start_day is None:
        return result

    for day in date_range(start_day, store.today()):
        expected = get_expected_work_or_insert_default(store, day, is_holiday)
        try:
            work_done = work_times_to_duration(store.get_work_on_date(day))
        except InconsistentDay as e:
            result[day] = WorkdayTime(expected=expected, error=e)
        else:
            result[day] = WorkdayTime(expected=expected, work_done=work_done)
    return result


def time_diff(
    store: WorkStore,
    is_holiday: HolidayPredicate | None = None,
) -> timedelta:
    """Get the net balance of worked minus expected time over all closed days.

    The ``account_start`` setting, a balance carried over from before the
    log began, is added on top.

    Raises:
        InconsistentDay: For the earliest day whose log ends mid-session.
    """
    total = timedelta(seconds=store.get_account_start())
    for workday in get_work_time_by_day(store, is_holiday).values():
        total += workday.diff()
    return total


def time_worked_today(store: WorkStore) -> timedelta:
    """Get the time worked so far today, counting a running session up to now."""
    events = store.get_work_today()
    if not events:
        return timedelta()
    if events[-1].is_working:
        return work_times_to_duration([*events, SessionEvent.stop_at(store.now())])
    return work_times_to_duration(events)
