"""Data models shared by the store and the accounting engine."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from pydantic import BaseModel, ConfigDict, model_validator

from timetrax.errors import InconsistentDay


class WorkItem(BaseModel):
    """A named category of work the user can be engaged in."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str | None = None
    visible: bool = True


class Working(BaseModel):
    """Work on ``item_id`` is running."""

    model_config = ConfigDict(frozen=True)

    item_id: int


class Idle(BaseModel):
    """No work is being performed."""

    model_config = ConfigDict(frozen=True)


WorkState = Working | Idle


def state_for(item_id: int | None) -> WorkState:
    """Map a nullable work item column to a state."""
    if item_id is None:
        return Idle()
    return Working(item_id=item_id)


class SessionEvent(BaseModel):
    """A transition in the work log: from ``start`` on, the user is in ``state``."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    state: WorkState

    @classmethod
    def stop_at(cls, start: datetime) -> SessionEvent:
        return cls(start=start, state=Idle())

    @classmethod
    def work_at(cls, start: datetime, item_id: int) -> SessionEvent:
        return cls(start=start, state=Working(item_id=item_id))

    @property
    def work_item(self) -> int | None:
        if isinstance(self.state, Working):
            return self.state.item_id
        return None

    @property
    def is_working(self) -> bool:
        return isinstance(self.state, Working)

    def local_date(self) -> date:
        """Calendar date of ``start`` in the host's local timezone."""
        return self.start.astimezone().date()


class WorkdayTime(BaseModel):
    """Worked and expected time for one closed day.

    Exactly one of ``work_done`` and ``error`` is set. A day whose log ends
    while work is still running carries its ``InconsistentDay`` error instead
    of a duration so one bad day does not hide the rest of the ledger.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    expected: timedelta
    work_done: timedelta | None = None
    error: InconsistentDay | None = None

    @model_validator(mode="after")
    def check_outcome(self) -> WorkdayTime:
        if (self.work_done is None) == (self.error is None):
            raise ValueError("exactly one of work_done and error must be set")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None

    def worked(self) -> timedelta:
        """Return the worked duration, raising the day's error if there is one."""
        if self.error is not None:
            raise self.error
        return self.work_done

    def diff(self) -> timedelta:
        return self.worked() - self.expected
