"""Inspection deadline arithmetic.

A rain event must be inspected within 24 hours, counted so that the
deadline lands inside the 07:00-17:00 working day and never on a weekend:

1. deadline = event + 24h (absolute time)
2. before 07:00 -> 07:00 the same day; at or after 17:00 -> 07:00 next day
3. Saturday -> Monday 07:00, Sunday -> Monday 07:00 (judged on the date
   produced by step 2)

The result is always later than the event and never more than 96 hours
after it.
"""
from __future__ import annotations

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Union

from zoneinfo import ZoneInfo

WORKDAY_START = time(7, 0)
WORKDAY_END = time(17, 0)
SATURDAY = 5
SUNDAY = 6


class DeadlineCalculator:
    def __init__(
        self,
        time_zone: Union[str, tzinfo] = "America/New_York",
        deadline_hours: float = 24.0,
    ) -> None:
        self.tz = ZoneInfo(time_zone) if isinstance(time_zone, str) else time_zone
        self.deadline_hours = deadline_hours

    def compute_deadline(self, event_timestamp: datetime) -> datetime:
        event_utc = _as_utc(event_timestamp)
        raw = (event_utc + timedelta(hours=self.deadline_hours)).astimezone(self.tz)

        if raw.time() < WORKDAY_START:
            deadline = self._at_workday_start(raw.date())
        elif raw.time() >= WORKDAY_END:
            deadline = self._at_workday_start(raw.date() + timedelta(days=1))
        else:
            deadline = raw

        weekday = deadline.weekday()
        if weekday == SATURDAY:
            deadline = self._at_workday_start(deadline.date() + timedelta(days=2))
        elif weekday == SUNDAY:
            deadline = self._at_workday_start(deadline.date() + timedelta(days=1))
        return deadline

    def is_within_working_hours(self, moment: datetime) -> bool:
        local = _as_utc(moment).astimezone(self.tz)
        return local.weekday() < SATURDAY and WORKDAY_START <= local.time() < WORKDAY_END

    def _at_workday_start(self, day) -> datetime:
        return datetime.combine(day, WORKDAY_START, tzinfo=self.tz)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ["DeadlineCalculator", "WORKDAY_END", "WORKDAY_START"]
