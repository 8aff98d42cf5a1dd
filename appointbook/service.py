from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass, field
from typing import IO, Union

from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from appointbook.domain import Appointment, ScheduleError
from appointbook.state_file import SkippedLine, load_appointments, read_stream, save_appointments, write_stream
from appointbook.store import AppointmentStore

logger = logging.getLogger(__name__)

Source = Union[str, "os.PathLike[str]", IO]


@dataclass
class LoadReport:
    loaded: int = 0
    skipped: list[SkippedLine] = field(default_factory=list)
    # Valid records dropped because they overlap one loaded earlier.
    rejected: list[Appointment] = field(default_factory=list)


def _validate(title: str, start: dt.datetime, end: dt.datetime) -> ScheduleError | None:
    if not title or not title.strip():
        return ScheduleError.EMPTY_TITLE
    if end <= start:
        return ScheduleError.INVALID_RANGE
    return None


def _log_failed_save(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    if outcome is None or not outcome.failed:
        return
    path = retry_state.args[0] if retry_state.args else "?"
    logger.warning(
        "Saving %s failed on attempt %d (%r)",
        path,
        retry_state.attempt_number,
        outcome.exception(),
    )


def _log_save_backoff(retry_state: RetryCallState) -> None:
    pause = getattr(retry_state.next_action, "sleep", 0.0)
    logger.info("Waiting %.1f sec. before writing the data file again", pause)


class CalendarService:
    """Validates raw input and mediates every change to the appointment store."""

    def __init__(
        self,
        store: AppointmentStore | None = None,
        *,
        data_file: str | None = None,
        save_retry_attempts: int = 3,
    ) -> None:
        self.store = store if store is not None else AppointmentStore()
        self.data_file = data_file
        self.save_retry_attempts = save_retry_attempts

    def create_appointment(self, title: str, start: dt.datetime, end: dt.datetime) -> ScheduleError | None:
        error = _validate(title, start, end)
        if error is None:
            appointment = Appointment(title=title.strip(), start=start, end=end)
            if not self.store.add(appointment):
                error = ScheduleError.OVERLAP

        if error is not None:
            logger.info("Rejected appointment %r %s..%s (%s)", title, start, end, error.value)
            return error

        logger.info("Added appointment %r %s..%s", appointment.title, start, end)
        return None

    def update_appointment(
        self,
        old: Appointment,
        title: str,
        start: dt.datetime,
        end: dt.datetime,
    ) -> ScheduleError | None:
        error = _validate(title, start, end)
        if error is not None:
            logger.info("Rejected update of %r (%s)", old.title, error.value)
            return error

        new = old.replace(title=title.strip(), start=start, end=end)
        if not self.store.update(old, new):
            logger.info("Rejected update of %r (%s)", old.title, ScheduleError.OVERLAP.value)
            return ScheduleError.OVERLAP

        logger.info("Updated appointment %r -> %r %s..%s", old.title, new.title, start, end)
        return None

    def delete_appointment(self, appointment: Appointment) -> None:
        if self.store.delete(appointment):
            logger.info("Deleted appointment %r", appointment.title)

    def appointments_for_day(self, day: dt.date) -> list[Appointment]:
        return self.store.for_day(day)

    def all_appointments(self) -> list[Appointment]:
        return sorted(self.store.all(), key=lambda a: a.start)

    def _resolve_path(self, target: Source | None) -> Source:
        if target is not None:
            return target
        if self.data_file is None:
            raise ValueError("No data file configured")
        return self.data_file

    def load_all(self, source: Source | None = None) -> LoadReport:
        source = self._resolve_path(source)
        if hasattr(source, "read"):
            decoded = read_stream(source)
        else:
            decoded = load_appointments(os.fspath(source))

        report = LoadReport(skipped=list(decoded.skipped))
        for appointment in decoded.appointments:
            if self.store.add(appointment):
                report.loaded += 1
            else:
                logger.warning(
                    "Dropping overlapping appointment %r %s..%s",
                    appointment.title,
                    appointment.start,
                    appointment.end,
                )
                report.rejected.append(appointment)

        logger.info(
            "Loaded appointments: loaded=%d skipped=%d rejected=%d",
            report.loaded,
            len(report.skipped),
            len(report.rejected),
        )
        return report

    def _save_with_retry(self, path: str, appointments: list[Appointment]) -> None:
        decorated = retry(
            stop=stop_after_attempt(self.save_retry_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(OSError),
            after=_log_failed_save,
            before_sleep=_log_save_backoff,
            reraise=True,
        )(save_appointments)

        decorated(path, appointments)

    def persist_all(self, sink: Source | None = None) -> int:
        sink = self._resolve_path(sink)
        appointments = self.all_appointments()

        if hasattr(sink, "write"):
            write_stream(sink, appointments)
        else:
            path = os.fspath(sink)
            self._save_with_retry(path, appointments)
            logger.info("Saved %d appointments to %s", len(appointments), path)

        return len(appointments)
