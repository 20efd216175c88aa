"""Exceptions raised by timetrax."""

from __future__ import annotations

from datetime import date


class TimetraxError(Exception):
    """Base exception for timetrax errors."""

    pass


class StoreError(TimetraxError):
    """Raised when the SQLite store fails (I/O, constraint or decode error)."""

    pass


class InvalidConfiguration(TimetraxError):
    """Raised when a stored numeric setting cannot be parsed."""

    def __init__(self, key: str, value: str) -> None:
        super().__init__(f"Invalid value for '{key}': {value!r}")
        self.key = key
        self.value = value


class InconsistentDay(TimetraxError):
    """Raised when a closed day ends while work is still running."""

    def __init__(self, day: date) -> None:
        super().__init__(f"Inconsistent data on {day}. No end of workday?")
        self.day = day

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InconsistentDay):
            return NotImplemented
        return self.day == other.day

    def __hash__(self) -> int:
        return hash(("InconsistentDay", self.day))
