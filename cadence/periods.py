"""Period arithmetic for recurring cadences.

Every period boundary of a workstream is derived from a single anchor date
(the start of period 0) and the workstream's cadence. Day-based cadences step
by a fixed number of days; monthly and quarterly cadences step by calendar
months, so their periods vary in length. All functions here are pure.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Optional, Union

from dateutil.relativedelta import relativedelta

from .errors import CycleIndexError, PeriodWalkError

DAILY = "daily"
WEEKLY = "weekly"
BIWEEKLY = "biweekly"
MONTHLY = "monthly"
QUARTERLY = "quarterly"

CADENCES = (DAILY, WEEKLY, BIWEEKLY, MONTHLY, QUARTERLY)

# Step per period: ("days", n) or ("months", n)
_STEPS: Dict[str, tuple[str, int]] = {
    DAILY: ("days", 1),
    WEEKLY: ("days", 7),
    BIWEEKLY: ("days", 14),
    MONTHLY: ("months", 1),
    QUARTERLY: ("months", 3),
}

_LABELS = {
    DAILY: "day",
    WEEKLY: "week",
    BIWEEKLY: "two weeks",
    MONTHLY: "month",
    QUARTERLY: "quarter",
}

# Safety cap on the forward walk in current_index_and_range.
MAX_PERIOD_WALK = 5000

DUE_SOON_DAYS = 2

ONTIME = "ontime"
DUESOON = "duesoon"
OVERDUE = "overdue"
DUE_STATES = (ONTIME, DUESOON, OVERDUE)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[date, str]


@dataclass(frozen=True, slots=True)
class PeriodRange:
    """One period of a cadence: its index and inclusive date range."""

    index: int
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def to_dict(self) -> Dict[str, object]:
        return {
            "index": self.index,
            "start": format_iso_date(self.start),
            "end": format_iso_date(self.end),
        }


def parse_iso_date(value: DateLike) -> date:
    """Parse a strict ``YYYY-MM-DD`` string (dates pass through)."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.match(value.strip()):
        raise ValueError(f"Expected a YYYY-MM-DD date, got {value!r}")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"Not a calendar date: {value!r}") from exc


def format_iso_date(value: date) -> str:
    return value.isoformat()


def is_iso_date(value: str) -> bool:
    try:
        parse_iso_date(value)
    except ValueError:
        return False
    return True


def validate_cadence(cadence: str) -> str:
    if cadence not in _STEPS:
        raise ValueError(
            f"Unknown cadence {cadence!r}; expected one of {', '.join(CADENCES)}"
        )
    return cadence


def _advance(anchor: date, cadence: str, periods: int) -> date:
    unit, size = _STEPS[validate_cadence(cadence)]
    if unit == "days":
        return anchor + timedelta(days=size * periods)
    return anchor + relativedelta(months=size * periods)


def period_range(anchor: DateLike, cadence: str, index: int) -> PeriodRange:
    """Return the date range of period ``index`` counted from ``anchor``.

    Both bounds are computed from the anchor (never from the previous
    period), so consecutive monthly ranges stay contiguous even when
    end-of-month clamping shortens one of them.
    """
    if index < 0:
        raise CycleIndexError(f"Period index must be >= 0, got {index}")
    anchor_date = parse_iso_date(anchor)
    start = _advance(anchor_date, cadence, index)
    end = _advance(anchor_date, cadence, index + 1) - timedelta(days=1)
    return PeriodRange(index=index, start=start, end=end)


def current_index_and_range(anchor: DateLike, cadence: str, today: DateLike) -> PeriodRange:
    """Return the period that contains ``today``.

    An anchor in the future yields period 0: the first period is the current
    one even before it starts.
    """
    anchor_date = parse_iso_date(anchor)
    today_date = parse_iso_date(today)
    validate_cadence(cadence)

    if today_date < anchor_date:
        return period_range(anchor_date, cadence, 0)

    index = 0
    while _advance(anchor_date, cadence, index + 1) <= today_date:
        index += 1
        if index > MAX_PERIOD_WALK:
            raise PeriodWalkError(
                f"Period walk exceeded {MAX_PERIOD_WALK} {cadence} periods from anchor "
                f"{format_iso_date(anchor_date)} to {format_iso_date(today_date)}"
            )
    return period_range(anchor_date, cadence, index)


def next_period_range(anchor: DateLike, cadence: str, index: int) -> PeriodRange:
    return period_range(anchor, cadence, index + 1)


def aligned_period_start(cadence: str, today: DateLike) -> date:
    """Natural start of the period containing ``today`` for a new anchor.

    daily: today; weekly and biweekly: Monday of this week; monthly: the first
    of the month; quarterly: the first day of the calendar quarter.
    """
    day = parse_iso_date(today)
    validate_cadence(cadence)
    if cadence == DAILY:
        return day
    if cadence in (WEEKLY, BIWEEKLY):
        return day - timedelta(days=day.weekday())
    if cadence == MONTHLY:
        return day.replace(day=1)
    quarter_month = 3 * ((day.month - 1) // 3) + 1
    return date(day.year, quarter_month, 1)


def cadence_label(cadence: str) -> str:
    return _LABELS.get(cadence, "period")


def due_state(end: Optional[date], today: DateLike) -> str:
    """Classify an open period by how close its end date is."""
    if end is None:
        return ONTIME
    remaining = (end - parse_iso_date(today)).days
    if remaining < 0:
        return OVERDUE
    if remaining <= DUE_SOON_DAYS:
        return DUESOON
    return ONTIME


def format_human_date(value: Optional[DateLike]) -> Optional[str]:
    """``2025-03-01`` -> ``March 1`` (no year)."""
    if not value:
        return None
    try:
        day = parse_iso_date(value)
    except ValueError:
        return str(value)
    return f"{calendar.month_name[day.month]} {day.day}"


def format_human_range(start: Optional[DateLike], end: Optional[DateLike]) -> Optional[str]:
    start_label = format_human_date(start)
    end_label = format_human_date(end)
    if start_label and end_label:
        return f"{start_label} - {end_label}"
    return start_label or end_label
