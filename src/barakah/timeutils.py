from __future__ import annotations

from datetime import date, datetime, time, timedelta
import re

MINUTES_PER_DAY = 24 * 60

_HHMM = re.compile(r"^(?P<hour>[0-9]{2}):(?P<minute>[0-9]{2})$")
_ISO_DATE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")


class FormatError(ValueError):
    """Raised when a clock or calendar string is not in the expected form."""


def _split_hhmm(value: str) -> tuple[int, int]:
    if not isinstance(value, str):
        raise FormatError(f"Expected an HH:MM string, got {value!r}")
    match = _HHMM.match(value.strip())
    if not match:
        raise FormatError(f"Unsupported time format: {value!r}")
    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise FormatError(f"Invalid time value: {value!r}")
    return hour, minute


def parse_hhmm(value: str) -> time:
    hour, minute = _split_hhmm(value)
    return time(hour=hour, minute=minute)


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def hhmm_to_minutes(value: str) -> int:
    hour, minute = _split_hhmm(value)
    return hour * 60 + minute


def minutes_to_hhmm(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes % MINUTES_PER_DAY, 60)
    return f"{hours:02d}:{minutes:02d}"


def offset_with_day(base: str, offset_minutes: int) -> tuple[str, int]:
    """Shift ``base`` by a signed number of minutes.

    Returns the wall-clock result and how many days it moved across
    midnight: ``("22:50", -1)`` for ``offset_with_day("00:20", -90)``.
    """
    day_offset, remainder = divmod(hhmm_to_minutes(base) + int(offset_minutes), MINUTES_PER_DAY)
    return minutes_to_hhmm(remainder), day_offset


def offset_hhmm(base: str, offset_minutes: int) -> str:
    """Clock time ``offset_minutes`` away from ``base`` (modulo 24 hours)."""
    clock, _ = offset_with_day(base, offset_minutes)
    return clock


def parse_duration(value: str) -> timedelta:
    cleaned = value.strip().lower()
    if cleaned.endswith("m"):
        return timedelta(minutes=float(cleaned[:-1]))
    if cleaned.endswith("h"):
        return timedelta(hours=float(cleaned[:-1]))
    if ":" in cleaned:
        hours, minutes = cleaned.split(":", 1)
        return timedelta(hours=int(hours), minutes=int(minutes))
    if "." in cleaned:
        hours, minutes = cleaned.split(".", 1)
        return timedelta(hours=int(hours or 0), minutes=int(minutes or 0))
    if cleaned.isdigit():
        return timedelta(minutes=int(cleaned))
    raise FormatError(f"Unsupported duration format: {value}")


def format_duration(value: timedelta) -> str:
    total_minutes = int(value.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def parse_iso_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    cleaned = str(value).strip()
    if not _ISO_DATE.match(cleaned):
        raise FormatError(f"Expected a YYYY-MM-DD date, got {value!r}")
    try:
        return date.fromisoformat(cleaned)
    except ValueError as exc:
        raise FormatError(f"Invalid calendar date: {value!r}") from exc
