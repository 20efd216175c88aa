"""Tests for weekend and holiday predicates."""

from datetime import date

import pytest

from timetrax.workdays import HolidayCalendar, is_weekend, no_holidays, parse_region


def test_is_weekend():
    assert is_weekend(date(2000, 1, 1))  # Saturday
    assert is_weekend(date(2000, 1, 2))
    assert not is_weekend(date(2000, 1, 3))


@pytest.mark.parametrize(
    ("region", "expected"),
    [("DE-BW", ("DE", "BW")), ("de-by", ("DE", "BY")), ("AT", ("AT", None))],
)
def test_parse_region(region, expected):
    assert parse_region(region) == expected


class TestHolidayCalendar:
    """Tests for the holidays-backed calendar."""

    def test_regional_holiday(self):
        """Epiphany is a holiday in Baden-Wuerttemberg but not nationwide."""
        assert HolidayCalendar("DE", "BW")(date(2000, 1, 6))
        assert not HolidayCalendar("DE", None)(date(2000, 1, 6))

    def test_national_holiday(self):
        calendar = HolidayCalendar.from_region("DE-BW")
        assert calendar(date(2000, 12, 25))
        assert calendar.name(date(2000, 12, 25)) is not None
        assert calendar.name(date(2000, 12, 27)) is None

    def test_unknown_region(self):
        with pytest.raises(NotImplementedError):
            HolidayCalendar.from_region("XX")


def test_no_holidays():
    assert not no_holidays(date(2000, 12, 25))
