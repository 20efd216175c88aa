"""Work time tracking with an expected-time ledger."""

__version__ = "0.1.0"
