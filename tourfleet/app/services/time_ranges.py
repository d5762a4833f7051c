"""
Time range and distance primitives.

Pure helpers shared by the ledger, the allocation service and the
compliance overlay. All intervals are half-open [start, end) within a single
calendar date, so a tour ending at 12:00 never collides with one starting
at 12:00.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Tuple


# Mean Earth radius in statute miles
EARTH_RADIUS_MILES = 3958.8

END_OF_DAY = time(23, 59, 59, 999999)

Point = Tuple[float, float]  # (latitude, longitude) in degrees


@dataclass(frozen=True)
class Interval:
    """Half-open [start, end) time interval on one date."""
    start: time
    end: time

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"Interval end {self.end} must be after start {self.start}")

    @property
    def duration_hours(self) -> float:
        return minutes_between(self.start, self.end) / 60.0

    def __str__(self):
        return f"[{self.start.strftime('%H:%M')}, {self.end.strftime('%H:%M')})"


@dataclass(frozen=True)
class DaySegment:
    """One same-day piece of a possibly overnight tour."""
    day: date
    interval: Interval
    continues_next_day: bool = False


def overlaps(a: Interval, b: Interval) -> bool:
    """True when two half-open intervals share any instant."""
    return a.start < b.end and b.start < a.end


def minutes_between(start: time, end: time) -> float:
    return (
        (end.hour * 60 + end.minute + end.second / 60 + end.microsecond / 60_000_000)
        - (start.hour * 60 + start.minute + start.second / 60 + start.microsecond / 60_000_000)
    )


def parse_time(value: str) -> time:
    """Parse 'HH:MM' or 'HH:MM:SS'."""
    return time.fromisoformat(value)


def add_hours(start: time, hours: float) -> Optional[time]:
    """Shift a time forward; None when the result leaves the day."""
    shifted = datetime.combine(date.min, start) + timedelta(hours=hours)
    if shifted.date() != date.min:
        return None
    return shifted.time()


def shift_minutes(value: time, minutes: int) -> Optional[time]:
    """Move a time by minutes either way; None when the result leaves the day."""
    reference = datetime(2000, 1, 1)
    shifted = datetime.combine(reference.date(), value) + timedelta(minutes=minutes)
    if shifted.date() != reference.date():
        return None
    return shifted.time()


def split_overnight(day: date, start: time, end: time) -> List[DaySegment]:
    """
    Represent a tour as same-day segments.

    A tour whose end is at or before its start runs past midnight and is
    split into [start, END_OF_DAY) on `day` and [00:00, end) on the next day.
    A tour ending exactly at midnight yields a single segment.
    """
    if end > start:
        return [DaySegment(day, Interval(start, end))]

    segments = [DaySegment(day, Interval(start, END_OF_DAY), continues_next_day=end != time(0, 0))]
    if end != time(0, 0):
        segments.append(DaySegment(day + timedelta(days=1), Interval(time(0, 0), end)))
    return segments


def within_operating_hours(interval: Interval, day_start: time, day_end: time) -> bool:
    return interval.start >= day_start and interval.end <= day_end


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in statute miles
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def max_air_miles(trip_points: Iterable[Point], origin: Point) -> float:
    """Air-line distance from the work-reporting origin to the furthest point."""
    return max(
        (haversine_miles(origin[0], origin[1], lat, lng) for lat, lng in trip_points),
        default=0.0,
    )


def air_miles_exceeds(trip_points: Iterable[Point], origin: Point, threshold_miles: float = 150.0) -> bool:
    """True when any recorded point lies beyond the air-mile radius."""
    return max_air_miles(trip_points, origin) > threshold_miles


def utcnow() -> datetime:
    """Naive UTC now, matching the ledger's timestamp columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
