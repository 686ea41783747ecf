"""Time range handling for stats queries."""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum


class TimeRange(str, Enum):
    """Reporting windows supported by the dashboard."""

    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"

    @classmethod
    def parse(cls, value: "str | TimeRange | None") -> "TimeRange":
        """Parse a time range, falling back to ALL for unknown values."""
        if isinstance(value, TimeRange):
            return value
        try:
            return cls((value or "all").lower())
        except ValueError:
            return cls.ALL


def _shift_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class DateWindow:
    """A resolved [start, end] window. ``start`` is None for all-time."""

    time_range: TimeRange
    start: datetime | None
    end: datetime

    @property
    def is_bounded(self) -> bool:
        return self.start is not None

    def contains(self, moment: datetime | None) -> bool:
        """Check whether a timestamp falls inside the window.

        Unbounded windows accept everything, including missing timestamps.
        Bounded windows reject missing timestamps.
        """
        if not self.is_bounded:
            return True
        if moment is None:
            return False
        return self.start <= moment <= self.end

    def since_param(self) -> str | None:
        return self.start.isoformat().replace("+00:00", "Z") if self.start else None

    def until_param(self) -> str | None:
        return self.end.isoformat().replace("+00:00", "Z") if self.start else None


def resolve_window(
    time_range: "TimeRange | str",
    now: datetime | None = None,
) -> DateWindow:
    """Resolve a time range into concrete UTC bounds ending at ``now``."""
    time_range = TimeRange.parse(time_range)
    end = now or datetime.now(timezone.utc)

    if time_range is TimeRange.TODAY:
        start = end.replace(hour=0, minute=0, second=0, microsecond=0)
    elif time_range is TimeRange.WEEK:
        start = end - timedelta(days=7)
    elif time_range is TimeRange.MONTH:
        start = _shift_months(end, -1)
    elif time_range is TimeRange.YEAR:
        start = _shift_months(end, -12)
    else:
        start = None

    return DateWindow(time_range=time_range, start=start, end=end)
