from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Appointment:
    """A titled time interval [start, end).

    Equality is by value. appointment_id only tells apart two appointments
    with identical fields while they live in the same store.
    """

    title: str
    start: dt.datetime
    end: dt.datetime
    appointment_id: str = field(default_factory=_new_id, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValueError("Appointment title must not be empty")
        if self.end <= self.start:
            raise ValueError(f"Appointment end ({self.end}) must be after start ({self.start})")

    @property
    def time_range(self) -> str:
        return f"{self.start:%H:%M} - {self.end:%H:%M}"

    def overlaps(self, start: dt.datetime, end: dt.datetime) -> bool:
        # Half-open intervals: touching ends do not overlap.
        return self.start < end and self.end > start

    def on_day(self, day: dt.date) -> bool:
        return self.start.date() == day

    def replace(self, *, title: str, start: dt.datetime, end: dt.datetime) -> Appointment:
        return replace(self, title=title, start=start, end=end)


class ScheduleError(str, Enum):
    """Recoverable validation failure reported back to the caller."""

    EMPTY_TITLE = "empty_title"
    INVALID_RANGE = "invalid_range"
    OVERLAP = "overlap"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    ScheduleError.EMPTY_TITLE: "Title must not be empty.",
    ScheduleError.INVALID_RANGE: "End time must be after start time.",
    ScheduleError.OVERLAP: "Appointment overlaps an existing appointment.",
}
