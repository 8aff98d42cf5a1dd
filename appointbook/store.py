from __future__ import annotations

import datetime as dt
from typing import Iterator

from appointbook.domain import Appointment


def _as_day(day: dt.date) -> dt.date:
    # datetime is a subclass of date; only the calendar day matters.
    if isinstance(day, dt.datetime):
        return day.date()
    return day


class AppointmentStore:
    """In-memory collection of appointments where no two overlap.

    The store keeps insertion order only; ordering by start is applied
    at query time.
    """

    def __init__(self) -> None:
        self._appointments: list[Appointment] = []

    def __len__(self) -> int:
        return len(self._appointments)

    def __iter__(self) -> Iterator[Appointment]:
        return iter(self.all())

    def conflicts(
        self,
        start: dt.datetime,
        end: dt.datetime,
        *,
        exclude: Appointment | None = None,
    ) -> list[Appointment]:
        found = [a for a in self._appointments if a is not exclude and a.overlaps(start, end)]
        return sorted(found, key=lambda a: a.start)

    def add(self, appointment: Appointment) -> bool:
        if any(a.overlaps(appointment.start, appointment.end) for a in self._appointments):
            return False
        self._appointments.append(appointment)
        return True

    def _index_of(self, appointment: Appointment) -> int | None:
        for i, a in enumerate(self._appointments):
            if a.appointment_id == appointment.appointment_id:
                return i
        for i, a in enumerate(self._appointments):
            if a == appointment:
                return i
        return None

    def delete(self, appointment: Appointment) -> bool:
        index = self._index_of(appointment)
        if index is None:
            return False
        del self._appointments[index]
        return True

    def update(self, old: Appointment, new: Appointment) -> bool:
        """Replace old with new; on overlap the store is left exactly as it was."""
        index = self._index_of(old)
        removed = self._appointments.pop(index) if index is not None else None

        if self.add(new):
            return True

        if removed is not None:
            self._appointments.insert(index, removed)
        return False

    def for_day(self, day: dt.date) -> list[Appointment]:
        day = _as_day(day)
        return sorted((a for a in self._appointments if a.on_day(day)), key=lambda a: a.start)

    def all(self) -> list[Appointment]:
        return list(self._appointments)

    def clear(self) -> None:
        self._appointments.clear()
