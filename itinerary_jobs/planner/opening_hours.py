"""Opening-hours checks on local wall-clock datetimes.

A POI without a schedule is always open. With a schedule, a weekday that has
no entry is closed. Intervals whose close time is at or before the open time
end on the following day.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from itinerary_jobs.domain.models import CandidatePoi, DaySchedule


def day_of_week(day: dt.date) -> int:
    """0=Sunday ... 6=Saturday."""
    return (day.weekday() + 1) % 7


def _clock_minutes(clock: str) -> int:
    hours, minutes = clock.split(":")
    return int(hours) * 60 + int(minutes)


def _interval(schedule: DaySchedule, day: dt.date) -> tuple[dt.datetime, dt.datetime]:
    midnight = dt.datetime.combine(day, dt.time())
    opens = _clock_minutes(schedule.open_time)
    closes = _clock_minutes(schedule.close_time)
    if closes <= opens:
        closes += 24 * 60
    return midnight + dt.timedelta(minutes=opens), midnight + dt.timedelta(minutes=closes)


def open_intervals(poi: CandidatePoi, day: dt.date) -> Optional[list[tuple[dt.datetime, dt.datetime]]]:
    """Open intervals touching ``day``, including overnight ones from the day before.

    Returns None when the POI has no schedule.
    """
    if not poi.opening_hours:
        return None
    intervals: list[tuple[dt.datetime, dt.datetime]] = []
    for offset in (-1, 0):
        current = day + dt.timedelta(days=offset)
        weekday = day_of_week(current)
        for schedule in poi.opening_hours:
            if schedule.day_of_week == weekday and schedule.is_open:
                start, end = _interval(schedule, current)
                if end > dt.datetime.combine(day, dt.time()):
                    intervals.append((start, end))
    intervals.sort()
    return intervals


def is_open_for_visit(poi: CandidatePoi, arrive: dt.datetime, depart: dt.datetime) -> bool:
    """True when one open interval covers the whole visit, bounds inclusive."""
    intervals = open_intervals(poi, arrive.date())
    if intervals is None:
        return True
    return any(start <= arrive and depart <= end for start, end in intervals)


def could_fit_window(
    poi: CandidatePoi,
    window_start: dt.datetime,
    window_end: dt.datetime,
    visit_minutes: int,
) -> bool:
    """Optimistic check: some open interval overlaps the journey window for the whole visit."""
    intervals = open_intervals(poi, window_start.date())
    if intervals is None:
        return True
    if window_end.date() != window_start.date():
        intervals = intervals + (open_intervals(poi, window_end.date()) or [])
    needed = dt.timedelta(minutes=visit_minutes)
    for start, end in intervals:
        overlap = min(end, window_end) - max(start, window_start)
        if overlap >= needed:
            return True
    return False
