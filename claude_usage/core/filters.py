"""
Time and project filters for usage records.

Time filters accept, in order of precedence:
1. Relative durations - "5min", "2h", "7d", "1m" (months), "1y"
2. Month range in the current year - "7-8"
3. Named month range in the current year - "july-august", "jan-mar"
4. Cross-year month range - "2024-7-2025-2"
5. Date range - "2024-07-01,2024-08-31"
6. Date-time range - "2024-07-01T09,2024-07-01T17", "2024-07-01 09:30,2024-07-01 17:45",
   "2024-07-01T09:30:00,2024-07-01T17:45:30"
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, List, Optional, TypeVar

T = TypeVar("T")

MONTH_NAMES = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

TIME_FILTER_EXAMPLES = (
    "5min, 2h, 7d, 1m, 1y, 7-8, july-august, 2024-7-2024-8, "
    "2024-07-01,2024-08-31, 2024-07-01T09,2024-07-01T17, "
    "2024-07-01 09:30,2024-07-01 17:45, 2024-07-01T09:30:00,2024-07-01T17:45:30"
)

_RELATIVE = re.compile(
    r"^(\d+)(min(?:utes?)?|h(?:ours?)?|d(?:ays?)?|m(?:onths?)?|y(?:ears?)?)$"
)
_MONTH_RANGE = re.compile(r"^(\d{1,2})-(\d{1,2})$")
_NAMED_MONTH_RANGE = re.compile(r"^([a-z]+)-([a-z]+)$")
_YEAR_MONTH_RANGE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{4})-(\d{1,2})$")
_DATE_RANGE = re.compile(r"^(\d{4}-\d{2}-\d{2}),(\d{4}-\d{2}-\d{2})$")
_DATETIME = r"(\d{4}-\d{2}-\d{2})[Tt ](\d{2})(?::(\d{2})(?::(\d{2}))?)?"
_DATETIME_RANGE = re.compile(rf"^{_DATETIME} ?, ?{_DATETIME}$")


class TimeFilterError(ValueError):
    """Raised when a time filter string matches none of the supported formats."""

    def __init__(self, time_filter: str, reason: Optional[str] = None):
        message = f"Invalid time filter format: {time_filter}."
        if reason:
            message += f" {reason}."
        message += f"\nExamples: {TIME_FILTER_EXAMPLES}"
        super().__init__(message)
        self.time_filter = time_filter


@dataclass(frozen=True)
class TimeRange:
    """Inclusive instant range."""
    start: datetime
    end: datetime

    def contains(self, timestamp: Optional[datetime]) -> bool:
        if timestamp is None:
            return False
        return self.start <= timestamp <= self.end


def _localize(value: datetime, tz: Optional[tzinfo]) -> datetime:
    """Attach ``tz`` to a naive wall-clock time, or the system zone when None."""
    if tz is not None:
        return value.replace(tzinfo=tz)
    return value.astimezone()


def _shift_months(value: datetime, months: int) -> datetime:
    """Move by whole calendar months, clamping the day to the target month."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    day = min(value.day, calendar.monthrange(year, month + 1)[1])
    return value.replace(year=year, month=month + 1, day=day)


def _month_span(start_year: int, start_month: int, end_year: int, end_month: int,
                tz: Optional[tzinfo]) -> TimeRange:
    last_day = calendar.monthrange(end_year, end_month)[1]
    start = datetime(start_year, start_month, 1)
    end = datetime(end_year, end_month, last_day, 23, 59, 59)
    return TimeRange(_localize(start, tz), _localize(end, tz))


def _valid_month(month: int) -> bool:
    return 1 <= month <= 12


def _relative_range(amount: int, unit: str, now: datetime) -> TimeRange:
    if unit.startswith("min"):
        start = now - timedelta(minutes=amount)
    elif unit.startswith("h"):
        start = now - timedelta(hours=amount)
    elif unit.startswith("d"):
        start = now - timedelta(days=amount)
    elif unit.startswith("m"):
        start = _shift_months(now, -amount)
    else:
        start = _shift_months(now, -12 * amount)
    return TimeRange(start, now)


def _datetime_bound(day: str, hour: str, minute: Optional[str], second: Optional[str],
                    is_end: bool) -> datetime:
    fill = 59 if is_end else 0
    moment = time(
        int(hour),
        int(minute) if minute is not None else fill,
        int(second) if second is not None else fill,
    )
    return datetime.combine(date.fromisoformat(day), moment)


def parse_time_filter(
    time_filter: Optional[str],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[TimeRange]:
    """Parse a time filter string into an inclusive TimeRange.

    Args:
        time_filter: Filter text, e.g. "7d" or "2024-07-01,2024-08-31"
        now: Reference instant for relative filters (defaults to the current time)
        tz: Zone for calendar boundaries (defaults to the system zone)

    Returns:
        TimeRange, or None when no filter was given

    Raises:
        TimeFilterError: If the text matches no supported format
    """
    if not time_filter:
        return None

    if now is None:
        now = datetime.now(tz) if tz is not None else datetime.now().astimezone()
    elif now.tzinfo is None:
        now = _localize(now, tz)

    compact = re.sub(r"\s+", "", time_filter.lower())

    match = _RELATIVE.match(compact)
    if match:
        return _relative_range(int(match.group(1)), match.group(2), now)

    current_year = now.astimezone(tz).year if tz is not None else now.year

    match = _MONTH_RANGE.match(compact)
    if match:
        start_month, end_month = int(match.group(1)), int(match.group(2))
        if not (_valid_month(start_month) and _valid_month(end_month)):
            raise TimeFilterError(time_filter, "Months must be between 1 and 12")
        return _month_span(current_year, start_month, current_year, end_month, tz)

    match = _NAMED_MONTH_RANGE.match(compact)
    if match and match.group(1) in MONTH_NAMES and match.group(2) in MONTH_NAMES:
        return _month_span(
            current_year, MONTH_NAMES[match.group(1)],
            current_year, MONTH_NAMES[match.group(2)],
            tz,
        )

    match = _YEAR_MONTH_RANGE.match(compact)
    if match:
        start_year, start_month, end_year, end_month = (int(g) for g in match.groups())
        if not (_valid_month(start_month) and _valid_month(end_month)):
            raise TimeFilterError(time_filter, "Months must be between 1 and 12")
        return _month_span(start_year, start_month, end_year, end_month, tz)

    try:
        match = _DATE_RANGE.match(compact)
        if match:
            start = datetime.combine(date.fromisoformat(match.group(1)), time(0, 0, 0))
            end = datetime.combine(date.fromisoformat(match.group(2)), time(23, 59, 59))
            return TimeRange(_localize(start, tz), _localize(end, tz))

        normalized = re.sub(r"\s+", " ", time_filter.strip())
        match = _DATETIME_RANGE.match(normalized)
        if match:
            groups = match.groups()
            start = _datetime_bound(*groups[:4], is_end=False)
            end = _datetime_bound(*groups[4:], is_end=True)
            return TimeRange(_localize(start, tz), _localize(end, tz))
    except ValueError as e:
        raise TimeFilterError(time_filter, str(e)) from e

    raise TimeFilterError(time_filter)


def filter_by_time(
    records: Iterable[T],
    time_filter: Optional[str],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[T]:
    """Keep records whose timestamp falls inside the filter's range.

    Records without a timestamp never match a time filter.
    """
    records = list(records)
    time_range = parse_time_filter(time_filter, now=now, tz=tz)
    if time_range is None:
        return records
    return [record for record in records if time_range.contains(record.timestamp)]


def filter_by_project(records: Iterable[T], project_filter: Optional[str]) -> List[T]:
    """Case-insensitive substring match on the project name."""
    records = list(records)
    if not project_filter:
        return records
    needle = project_filter.lower()
    return [record for record in records if needle in (record.project or "").lower()]


def apply_filters(
    records: Iterable[T],
    time_filter: Optional[str] = None,
    project_filter: Optional[str] = None,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[T]:
    """Apply the time filter, then the project filter."""
    filtered = list(records)
    if time_filter:
        filtered = filter_by_time(filtered, time_filter, now=now, tz=tz)
    if project_filter:
        filtered = filter_by_project(filtered, project_filter)
    return filtered


def get_available_projects(records: Iterable) -> List[str]:
    """Sorted distinct project names."""
    return sorted({record.project for record in records if record.project})
