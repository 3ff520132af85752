"""Utility helpers for time arithmetic and text cleanup."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Optional

import structlog
from dateutil import parser as date_parser
from zoneinfo import ZoneInfo

LOGGER = structlog.get_logger(__name__)

MINUTES_PER_DAY = 1440

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{1,2})(?::\d{1,2})?$")
_CLOCK_TOKEN_RE = re.compile(r"(?<![\d.,])(\d{1,2})[:.](\d{2})(?!\d)\s*([AaPp]\.?[Mm]\.?)?")


def get_zone(timezone_name: str) -> ZoneInfo:
    """Return a ZoneInfo instance, defaulting to UTC on failure."""
    try:
        return ZoneInfo(timezone_name)
    except Exception:  # pragma: no cover - fallback
        LOGGER.warning("utils.unknown_timezone", timezone=timezone_name)
        return ZoneInfo("UTC")


def now_in_timezone(timezone_name: str) -> datetime:
    """Current datetime in the configured timezone."""
    return datetime.now(tz=get_zone(timezone_name))


def normalise_hhmm(value: object) -> Optional[str]:
    """Return a zero-padded ``HH:MM`` string, or None when unparsable.

    Accepts ``H:M``, ``HH:MM`` and ``HH:MM:SS`` forms as the booking grid
    and the availability API render them.
    """
    match = _HHMM_RE.match(str(value or "").strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def hhmm_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_hhmm(minutes: int) -> str:
    wrapped = minutes % MINUTES_PER_DAY
    return f"{wrapped // 60:02d}:{wrapped % 60:02d}"


def duration_minutes(start_minute: int, end_minute: int) -> int:
    """Minutes between two clock times, wrapping across midnight."""
    return (end_minute - start_minute + MINUTES_PER_DAY) % MINUTES_PER_DAY


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def local_timestamp(day: date, hhmm: str, timezone_name: str) -> str:
    """ISO timestamp for a wall-clock time on a day in the given timezone."""
    hours, minutes = (int(part) for part in hhmm.split(":")[:2])
    moment = datetime.combine(day, time(hours, minutes), tzinfo=get_zone(timezone_name))
    return moment.isoformat()


def parse_clock_minutes(text: str) -> Optional[int]:
    """Minute-of-day of the first clock time in a rendered label.

    Tolerates ``8:00``, ``08:00``, ``8:00 PM`` and text surrounding the time.
    For ranges such as ``20:00 - 21:30`` the start is returned.
    """
    match = _CLOCK_TOKEN_RE.search(normalise_whitespace(text))
    if not match:
        return None
    token = f"{match.group(1)}:{match.group(2)}"
    if match.group(3):
        token = f"{token} {match.group(3).replace('.', '')}"
    try:
        parsed = date_parser.parse(token)
    except (ValueError, OverflowError) as exc:
        LOGGER.debug("utils.clock_parse_failed", text=text, error=str(exc))
        return None
    return parsed.hour * 60 + parsed.minute


def normalise_whitespace(text: str) -> str:
    """Collapse repeated whitespace into single spaces."""
    return re.sub(r"\s+", " ", text or "").strip()


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]
