"""CLI entry point for timetrax."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterator

import click

from timetrax.accounting import get_work_time_by_day, time_diff, time_worked_today
from timetrax.db import WorkStore
from timetrax.errors import InconsistentDay, TimetraxError
from timetrax.models import WorkdayTime
from timetrax.workdays import DEFAULT_REGION, HolidayCalendar


DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "timetrax" / "work.db"


def format_duration(delta: timedelta, *, signed: bool = False) -> str:
    """Format a duration as 'Xh YYm' or 'Ym'.

    Args:
        delta: Duration, may be negative.
        signed: Prefix positive durations with '+'.

    Returns:
        Formatted duration string, e.g. '7h 30m', '-45m', '+1h 05m'.
    """
    total_seconds = int(delta.total_seconds())
    total_minutes = abs(total_seconds) // 60
    sign = ""
    if total_minutes > 0:
        sign = "-" if total_seconds < 0 else ("+" if signed else "")
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{sign}{hours}h {minutes:02d}m"
    return f"{sign}{minutes}m"


class HoursType(click.ParamType):
    """Hours as a decimal ('7.5') or 'H:MM' ('7:30'), converted to seconds."""

    name = "hours"

    def convert(self, value, param, ctx) -> int:
        if isinstance(value, int):
            return value
        text = str(value).strip()
        negative = text.startswith("-")
        body = text.lstrip("+-")
        try:
            if ":" in body:
                hours_part, minutes_part = body.split(":", 1)
                minutes = int(minutes_part)
                if not 0 <= minutes < 60:
                    raise ValueError(text)
                seconds = int(hours_part or 0) * 3600 + minutes * 60
            else:
                seconds = round(float(body) * 3600)
        except (ValueError, OverflowError):
            self.fail(f"{value!r} is not a duration in hours (e.g. 7.5 or 7:30)", param, ctx)
        return -seconds if negative else seconds


HOURS = HoursType()


def _build_calendar(ctx: click.Context, param: click.Parameter, value: str) -> HolidayCalendar:
    try:
        return HolidayCalendar.from_region(value)
    except NotImplementedError:
        raise click.BadParameter(f"Unknown holiday region: {value}") from None


db_option = click.option(
    "--db",
    type=click.Path(path_type=Path),
    default=DEFAULT_DB_PATH,
    help="Path to SQLite database",
)

region_option = click.option(
    "--region",
    "calendar",
    default=DEFAULT_REGION,
    show_default=True,
    callback=_build_calendar,
    help="Holiday region as COUNTRY or COUNTRY-SUBDIV",
)


@contextmanager
def open_store(db: Path) -> Iterator[WorkStore]:
    """Open the store for a command, reporting timetrax errors and exiting 1.

    A missing database is created empty. Uses the clock from the click
    context object when one is set.
    """
    db.parent.mkdir(parents=True, exist_ok=True)

    obj = click.get_current_context().obj or {}
    try:
        with WorkStore.open(db, obj.get("clock")) as store:
            yield store
    except TimetraxError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Timetrax work time tracker."""
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command("items")
@db_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--all", "show_all", is_flag=True, help="Include hidden work items")
def items_command(db: Path, output_json: bool, show_all: bool) -> None:
    """List available work items."""
    with open_store(db) as store:
        if show_all:
            items = [(item.name, item.id, item.visible) for item in store.get_work_items()]
        else:
            items = [(name, item_id, True) for name, item_id in store.get_available_work()]

    if output_json:
        records = []
        for name, item_id, visible in items:
            record = {"id": item_id, "title": name}
            if show_all:
                record["visible"] = visible
            records.append(record)
        click.echo(json.dumps(records))
        return

    if not items:
        click.echo("No work items")
        return
    for name, item_id, visible in items:
        suffix = "" if visible else " (hidden)"
        click.echo(f"{item_id:>4}  {name}{suffix}")


@main.command("add")
@click.argument("name")
@click.option("--description", default=None, help="Optional description")
@db_option
def add_command(name: str, description: str | None, db: Path) -> None:
    """Add a work item unless it already exists."""
    with open_store(db) as store:
        created = store.add_work_item(name, description)
    if created:
        click.echo(f"Added work item '{name}'")
    else:
        click.echo(f"Work item '{name}' already exists")


def _set_visible(db: Path, name: str, visible: bool) -> None:
    with open_store(db) as store:
        found = store.set_work_item_visible(name, visible)
    if not found:
        click.echo(f"Unknown work item: {name}", err=True)
        sys.exit(1)
    click.echo(f"{'Restored' if visible else 'Hid'} work item '{name}'")


@main.command("hide")
@click.argument("name")
@db_option
def hide_command(name: str, db: Path) -> None:
    """Hide a work item from the available list."""
    _set_visible(db, name, False)


@main.command("unhide")
@click.argument("name")
@db_option
def unhide_command(name: str, db: Path) -> None:
    """Make a hidden work item available again."""
    _set_visible(db, name, True)


@main.command("start")
@click.argument("name")
@db_option
def start_command(name: str, db: Path) -> None:
    """Start working on NAME (switches away from the current item)."""
    with open_store(db) as store:
        item = store.find_work_item(name)
        if item is None or not item.visible:
            click.echo(f"Unknown work item: {name}", err=True)
            sys.exit(1)
        store.set_current_work(item.id)
        started = store.now().astimezone()
    click.echo(f"Started '{name}' at {started:%H:%M}")


@main.command("stop")
@db_option
def stop_command(db: Path) -> None:
    """Stop working."""
    with open_store(db) as store:
        if store.get_current_work() is None:
            click.echo("Not working")
            return
        store.set_current_work(None)
        stopped = store.now().astimezone()
    click.echo(f"Stopped at {stopped:%H:%M}")


@main.command("status")
@db_option
def status_command(db: Path) -> None:
    """Show the current work item and time worked today."""
    with open_store(db) as store:
        current = store.get_current_work()
        item = store.get_work_item(current) if current is not None else None
        worked = time_worked_today(store)

    if item is None:
        click.echo("Current: idle")
    else:
        click.echo(f"Current: {item.name}")
    click.echo(f"Today:   {format_duration(worked)}")


@main.command("report")
@db_option
@region_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def report_command(db: Path, calendar: HolidayCalendar, output_json: bool) -> None:
    """Show worked and expected time for every closed day."""
    with open_store(db) as store:
        ledger = get_work_time_by_day(store, calendar)
        account_start = timedelta(seconds=store.get_account_start())
        errors = [workday.error for workday in ledger.values() if workday.error is not None]
        balance = None if errors else time_diff(store, calendar)

    if output_json:
        _output_json_report(ledger, account_start, balance)
    else:
        _output_human_report(ledger, account_start, balance, errors)


def _output_json_report(
    ledger: dict[date, WorkdayTime],
    account_start: timedelta,
    balance: timedelta | None,
) -> None:
    """Output JSON report."""
    output = {
        "days": [
            {
                "date": day.isoformat(),
                "worked_seconds": (
                    int(workday.work_done.total_seconds()) if workday.ok else None
                ),
                "expected_seconds": int(workday.expected.total_seconds()),
                "error": str(workday.error) if workday.error is not None else None,
            }
            for day, workday in ledger.items()
        ],
        "account_start_seconds": int(account_start.total_seconds()),
        "balance_seconds": int(balance.total_seconds()) if balance is not None else None,
    }
    click.echo(json.dumps(output, indent=2))


def _output_human_report(
    ledger: dict[date, WorkdayTime],
    account_start: timedelta,
    balance: timedelta | None,
    errors: list[InconsistentDay],
) -> None:
    """Output human-readable report."""
    if not ledger:
        click.echo("No closed days yet.")
        return

    click.echo("Date              Worked  Expected      Diff")
    for day, workday in ledger.items():
        label = f"{day.isoformat()} {day:%a}"
        expected = format_duration(workday.expected)
        if workday.ok:
            click.echo(
                f"{label:<15} {format_duration(workday.work_done):>8} {expected:>9} "
                f"{format_duration(workday.diff(), signed=True):>9}"
            )
        else:
            click.echo(f"{label:<15} {'?':>8} {expected:>9}   no end of workday")

    click.echo()
    if account_start:
        click.echo(f"Carried over: {format_duration(account_start, signed=True)}")
    if balance is not None:
        click.echo(f"Balance:      {format_duration(balance, signed=True)}")
    else:
        days = ", ".join(e.day.isoformat() for e in errors)
        click.echo(f"Balance unavailable: inconsistent data on {days}")


@main.command("balance")
@db_option
@region_option
def balance_command(db: Path, calendar: HolidayCalendar) -> None:
    """Show the net balance of worked minus expected time."""
    with open_store(db) as store:
        balance = time_diff(store, calendar)
    click.echo(f"Balance: {format_duration(balance, signed=True)}")


@main.command("expect")
@click.argument("day", type=click.DateTime(formats=["%Y-%m-%d"]))
@click.argument("hours", type=HOURS)
@db_option
def expect_command(day: datetime, hours: int, db: Path) -> None:
    """Set the expected work time for DAY (YYYY-MM-DD) to HOURS."""
    with open_store(db) as store:
        store.set_expected_time(day.date(), hours)
    click.echo(f"Expected time on {day.date().isoformat()}: {format_duration(timedelta(seconds=hours))}")


@main.command("set-default")
@click.argument("hours", type=HOURS)
@db_option
def set_default_command(hours: int, db: Path) -> None:
    """Set the daily quota used for days without an expected time.

    Days that already have an expected time keep it.
    """
    if hours < 0:
        raise click.BadParameter("must not be negative", param_hint="HOURS")
    with open_store(db) as store:
        store.set_kv("default_time", hours)
    click.echo(f"Default daily quota: {format_duration(timedelta(seconds=hours))}")


@main.command("set-baseline", context_settings={"ignore_unknown_options": True})
@click.argument("hours", type=HOURS)
@db_option
def set_baseline_command(hours: int, db: Path) -> None:
    """Set the balance carried over from before the log began (may be negative)."""
    with open_store(db) as store:
        store.set_kv("account_start", hours)
    click.echo(f"Carried over balance: {format_duration(timedelta(seconds=hours), signed=True)}")


if __name__ == "__main__":
    main()
