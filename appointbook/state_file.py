from __future__ import annotations

import csv
import datetime as dt
import io
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import IO, Iterable

from appointbook.domain import Appointment

logger = logging.getLogger(__name__)

# Renderings written by the old desktop build (de-DE and en-US default formats).
_LEGACY_FORMATS = (
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
)


@dataclass(frozen=True)
class SkippedLine:
    line_number: int
    text: str
    reason: str


@dataclass
class DecodeResult:
    appointments: list[Appointment] = field(default_factory=list)
    skipped: list[SkippedLine] = field(default_factory=list)


def format_timestamp(value: dt.datetime) -> str:
    # YYYY-MM-DDTHH:MM:SS, microseconds only when present.
    return value.isoformat(sep="T")


def parse_timestamp(raw: str) -> dt.datetime:
    text = raw.strip()
    try:
        value = dt.datetime.fromisoformat(text)
    except ValueError:
        pass
    else:
        if value.tzinfo is not None:
            raise ValueError(f"Timestamp with time zone is not supported: {raw!r}")
        return value

    for fmt in _LEGACY_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized timestamp: {raw!r}")


def encode(appointments: Iterable[Appointment]) -> list[str]:
    lines: list[str] = []
    for a in appointments:
        buf = io.StringIO()
        csv.writer(buf, lineterminator="\n").writerow(
            [a.title, format_timestamp(a.start), format_timestamp(a.end)]
        )
        lines.append(buf.getvalue())
    return lines


def _decode_row(row: list[str]) -> Appointment:
    if len(row) != 3:
        raise ValueError(f"expected 3 fields, got {len(row)}")
    title, start_raw, end_raw = row
    return Appointment(title=title, start=parse_timestamp(start_raw), end=parse_timestamp(end_raw))


def _physical_lines(lines: Iterable[str]) -> list[str]:
    # Split on \r, \n and \r\n only, the same way a file opened with newline="" does.
    physical: list[str] = []
    for chunk in lines:
        physical.extend(io.StringIO(chunk, newline=""))
    return physical


def _parse_record(text: str) -> Appointment | None:
    """None for a blank line; ValueError or csv.Error for a bad record."""
    row = next(csv.reader([text]), [])
    if not row:
        return None
    return _decode_row(row)


def _join_quoted(physical: list[str], first: int) -> tuple[Appointment, int] | None:
    # The line opens a quoted field: the record runs on until the quotes balance.
    quotes = physical[first].count('"')
    last = first + 1
    while quotes % 2 and last < len(physical):
        quotes += physical[last].count('"')
        last += 1
    if quotes % 2:
        return None

    try:
        appointment = _parse_record("".join(physical[first:last]))
    except (ValueError, csv.Error):
        return None
    if appointment is None:
        return None
    return appointment, last


def decode(lines: Iterable[str]) -> DecodeResult:
    """Parse CSV records; bad records are skipped and reported, never raised.

    A record spans several physical lines only when a quoted title holds a
    newline and the joined lines form a valid appointment. Anything else is
    judged one physical line at a time, so a stray quote costs that line only.
    """
    result = DecodeResult()
    physical = _physical_lines(lines)
    index = 0

    while index < len(physical):
        line = physical[index]
        line_number = index + 1

        joined = _join_quoted(physical, index) if line.count('"') % 2 else None
        if joined is not None:
            appointment, index = joined
            result.appointments.append(appointment)
            continue

        index += 1
        try:
            appointment = _parse_record(line)
        except (ValueError, csv.Error) as e:
            skipped = SkippedLine(line_number=line_number, text=line.rstrip("\r\n"), reason=str(e))
            result.skipped.append(skipped)
            logger.warning("Skipping malformed record at line %d (%s)", skipped.line_number, skipped.reason)
            continue

        if appointment is not None:
            result.appointments.append(appointment)

    return result


def read_stream(stream: IO) -> DecodeResult:
    data = stream.read()
    if isinstance(data, bytes):
        # Undecodable bytes become U+FFFD; the record is then judged like any other.
        data = data.decode("utf-8-sig", errors="replace")
    elif data.startswith("\ufeff"):
        data = data[1:]
    return decode(io.StringIO(data, newline=""))


def _is_text_stream(stream: IO) -> bool:
    # Binary streams (BytesIO, buffered files) carry no encoding.
    return hasattr(stream, "encoding")


def write_stream(stream: IO, appointments: Iterable[Appointment]) -> None:
    text = "".join(encode(appointments))
    if _is_text_stream(stream):
        stream.write(text)
    else:
        stream.write(text.encode("utf-8"))


def load_appointments(path: str) -> DecodeResult:
    if not os.path.exists(path):
        return DecodeResult()

    with open(path, "r", encoding="utf-8-sig", errors="replace", newline="") as f:
        return decode(f)


def save_appointments(path: str, appointments: Iterable[Appointment]) -> None:
    lines = encode(appointments)

    folder = os.path.dirname(os.path.abspath(path))
    if folder and not os.path.exists(folder):
        os.makedirs(folder, exist_ok=True)

    # Atomic write: the file is replaced wholesale, never appended to.
    tf = tempfile.NamedTemporaryFile(
        "w", delete=False, encoding="utf-8", newline="", dir=folder, suffix=".tmp"
    )
    try:
        with tf:
            tf.writelines(lines)
        os.replace(tf.name, path)
    except Exception:
        os.unlink(tf.name)
        raise
