"""Weekend and public holiday predicates for the default quota."""

from __future__ import annotations

from datetime import date
from typing import Callable

import holidays

HolidayPredicate = Callable[[date], bool]

DEFAULT_REGION = "DE-BW"


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def parse_region(region: str) -> tuple[str, str | None]:
    """Split 'COUNTRY' or 'COUNTRY-SUBDIV' into its parts.

    >>> parse_region("DE-BW")
    ('DE', 'BW')
    """
    country, _, subdiv = region.strip().partition("-")
    return country.upper(), (subdiv.upper() or None)


class HolidayCalendar:
    """Public holidays of a country or one of its subdivisions.

    Callable as an ``is_holiday(date)`` predicate.
    """

    def __init__(self, country: str = "DE", subdiv: str | None = "BW") -> None:
        self.country = country
        self.subdiv = subdiv
        self._holidays = holidays.country_holidays(country, subdiv=subdiv)

    @classmethod
    def from_region(cls, region: str) -> HolidayCalendar:
        country, subdiv = parse_region(region)
        return cls(country, subdiv)

    def __call__(self, day: date) -> bool:
        return day in self._holidays

    def name(self, day: date) -> str | None:
        """Get the holiday name for ``day``, or None on a regular day."""
        return self._holidays.get(day)


def no_holidays(day: date) -> bool:
    return False
