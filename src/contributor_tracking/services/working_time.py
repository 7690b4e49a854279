"""Working-time calendar.

Working days are every day except Sundays and the second Saturday of the
month. On a working day the window is 09:00-17:00 wall-clock time in the
calendar's reference zone.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from contributor_tracking.config import DEFAULT_TIMEZONE, load_settings, resolve_timezone

SUNDAY = 6
SATURDAY = 5


def is_working_day(day: date) -> bool:
    weekday = day.weekday()
    if weekday == SUNDAY:
        return False
    if weekday == SATURDAY and math.ceil(day.day / 7) == 2:
        return False
    return True


def next_working_day(day: date) -> date:
    """First working day strictly after ``day``."""
    candidate = day + timedelta(days=1)
    while not is_working_day(candidate):
        candidate += timedelta(days=1)
    return candidate


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _elapsed_minutes(start: datetime, end: datetime) -> float:
    # Aware datetimes sharing a tzinfo subtract as wall-clock times, so go
    # through UTC to keep DST transitions honest.
    delta = end.astimezone(timezone.utc) - start.astimezone(timezone.utc)
    return delta.total_seconds() / 60


class WorkingCalendar:
    def __init__(
        self,
        tz: tzinfo | None = None,
        day_start: time = time(9, 0),
        day_end: time = time(17, 0),
    ) -> None:
        if day_end <= day_start:
            raise ValueError("day_end must be later than day_start")
        self.tz = tz or resolve_timezone(DEFAULT_TIMEZONE)
        self.day_start = day_start
        self.day_end = day_end

    def localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def _at(self, day: date, at: time) -> datetime:
        return datetime.combine(day, at, tzinfo=self.tz)

    def is_working_day(self, day: date) -> bool:
        return is_working_day(day)

    def working_minutes_between(self, start: datetime, end: datetime) -> int:
        start_local = self.localize(start)
        end_local = self.localize(end)
        if start_local >= end_local:
            return 0

        minutes = 0.0
        cursor = start_local
        while cursor < end_local:
            day = cursor.date()
            if is_working_day(day):
                window_start = max(self._at(day, self.day_start), cursor)
                window_end = min(self._at(day, self.day_end), end_local)
                if window_start < window_end:
                    minutes += _elapsed_minutes(window_start, window_end)
            cursor = self._at(day + timedelta(days=1), self.day_start)
        return _round_half_up(minutes)

    def missed_cutoff(self, assigned_at: datetime) -> datetime:
        """17:00 on the first working day after the assignment day."""
        assigned_day = self.localize(assigned_at).date()
        return self._at(next_working_day(assigned_day), self.day_end)


def default_calendar() -> WorkingCalendar:
    return WorkingCalendar(tz=load_settings().timezone)


def working_minutes_between(start: datetime, end: datetime) -> int:
    return default_calendar().working_minutes_between(start, end)
