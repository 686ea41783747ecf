"""Contribution calendar and streak models."""

from datetime import date, timedelta
from typing import Any

from pydantic import BaseModel, Field


class ContributionDay(BaseModel):
    """Single day in contribution calendar."""

    date: date
    count: int = 0

    @classmethod
    def from_graphql(cls, data: dict[str, Any]) -> "ContributionDay":
        """Create from GraphQL response."""
        return cls(
            date=date.fromisoformat(data["date"]),
            count=data.get("contributionCount", 0) or 0,
        )


def active_days_from_calendar(calendar: dict[str, Any]) -> dict[str, int]:
    """Flatten a GraphQL contributionCalendar into ISO date -> count.

    Days without contributions are left out.
    """
    active: dict[str, int] = {}
    for week in calendar.get("weeks", []) or []:
        for raw_day in week.get("contributionDays", []) or []:
            day = ContributionDay.from_graphql(raw_day)
            if day.count > 0:
                active[day.date.isoformat()] = day.count
    return active


def current_streak(active_days: dict[str, int], today: date) -> int:
    """Count consecutive active days ending today.

    A day without activity today means no current streak, even if
    yesterday was active.
    """
    streak = 0
    day = today
    while day.isoformat() in active_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def longest_streak(active_days: dict[str, int]) -> int:
    """Length of the longest run of consecutive active days."""
    longest = 0
    run = 0
    previous: date | None = None
    for key in sorted(active_days):
        day = date.fromisoformat(key)
        if previous is not None and (day - previous).days == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


class StreakState(BaseModel):
    """Streaks derived from a contribution calendar."""

    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: date | None = None
    active_days: dict[str, int] = Field(default_factory=dict)  # ISO date -> count

    @classmethod
    def from_active_days(cls, active_days: dict[str, int], today: date) -> "StreakState":
        """Compute streaks from the set of active days."""
        days = {key: count for key, count in active_days.items() if count > 0}
        return cls(
            current_streak=current_streak(days, today),
            longest_streak=longest_streak(days),
            last_active_date=date.fromisoformat(max(days)) if days else None,
            active_days=days,
        )

    @classmethod
    def empty(cls) -> "StreakState":
        return cls()

    @property
    def active_day_count(self) -> int:
        return len(self.active_days)
