import argparse
import datetime as dt
import logging
import sys

from appointbook.config import load_settings
from appointbook.domain import Appointment
from appointbook.service import CalendarService

_TIMESTAMP_FORMATS = ("%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S")


def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _timestamp(raw: str) -> dt.datetime:
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return dt.datetime.strptime(raw.strip(), fmt)
        except ValueError:
            continue
    raise argparse.ArgumentTypeError(f"invalid timestamp {raw!r}, expected YYYY-MM-DD HH:MM")


def _day(raw: str) -> dt.date:
    try:
        return dt.date.fromisoformat(raw.strip())
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {raw!r}, expected YYYY-MM-DD") from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="appointbook: personal appointment calendar")
    parser.add_argument("--data-file", help="CSV file with appointments (overrides APPOINTBOOK_DATA_FILE)")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add an appointment")
    add.add_argument("title")
    add.add_argument("start", type=_timestamp)
    add.add_argument("end", type=_timestamp)

    day = sub.add_parser("day", help="List appointments of a day")
    day.add_argument("date", type=_day)

    edit = sub.add_parser("edit", help="Change the INDEX-th appointment of DATE")
    edit.add_argument("date", type=_day)
    edit.add_argument("index", type=int)
    edit.add_argument("title")
    edit.add_argument("start", type=_timestamp)
    edit.add_argument("end", type=_timestamp)

    delete = sub.add_parser("delete", help="Delete the INDEX-th appointment of DATE")
    delete.add_argument("date", type=_day)
    delete.add_argument("index", type=int)

    sub.add_parser("all", help="List every appointment")
    return parser


def _format_line(number: int, appointment: Appointment, *, with_date: bool = False) -> str:
    when = appointment.time_range
    if with_date:
        when = f"{appointment.start:%Y-%m-%d} {when}"
    return f"{number:>3}. {when}  {appointment.title}"


def _pick(service: CalendarService, day: dt.date, index: int) -> Appointment | None:
    appointments = service.appointments_for_day(day)
    if 1 <= index <= len(appointments):
        return appointments[index - 1]
    print(f"No appointment #{index} on {day.isoformat()} ({len(appointments)} found).", file=sys.stderr)
    return None


def _run(service: CalendarService, args: argparse.Namespace) -> tuple[int, bool]:
    """Execute one command; returns (exit code, whether the store changed)."""
    if args.command == "day":
        for i, a in enumerate(service.appointments_for_day(args.date), start=1):
            print(_format_line(i, a))
        return 0, False

    if args.command == "all":
        for i, a in enumerate(service.all_appointments(), start=1):
            print(_format_line(i, a, with_date=True))
        return 0, False

    if args.command == "add":
        error = service.create_appointment(args.title, args.start, args.end)
    elif args.command == "edit":
        old = _pick(service, args.date, args.index)
        if old is None:
            return 2, False
        error = service.update_appointment(old, args.title, args.start, args.end)
    else:
        old = _pick(service, args.date, args.index)
        if old is None:
            return 2, False
        service.delete_appointment(old)
        error = None

    if error is not None:
        print(error.message, file=sys.stderr)
        return 1, False
    return 0, True


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    _setup_logging()
    settings = load_settings()
    logging.getLogger().setLevel(settings.log_level)

    service = CalendarService(
        data_file=args.data_file or settings.data_file,
        save_retry_attempts=settings.save_retry_attempts,
    )
    service.load_all()

    changed = False
    try:
        code, changed = _run(service, args)
        return code
    finally:
        # Flush once at shutdown, only when something was changed.
        if changed:
            service.persist_all()


if __name__ == "__main__":
    raise SystemExit(main())
