"""
Unit tests for time range and distance primitives.
"""

import pytest
from datetime import date, time

from tourfleet.app.services.time_ranges import (
    END_OF_DAY, Interval, add_hours, air_miles_exceeds, haversine_miles, max_air_miles,
    overlaps, shift_minutes, split_overnight, within_operating_hours,
)

WALLA_WALLA = (46.0646, -118.3430)
SEATTLE = (47.6062, -122.3321)
RICHLAND = (46.2856, -119.2845)


def test_back_to_back_intervals_do_not_overlap():
    """A tour ending at 12:00 never collides with one starting at 12:00."""
    morning = Interval(time(10, 0), time(12, 0))
    afternoon = Interval(time(12, 0), time(14, 0))

    assert not overlaps(morning, afternoon)
    assert not overlaps(afternoon, morning)


def test_partial_and_nested_overlap():
    outer = Interval(time(9, 0), time(17, 0))

    assert overlaps(outer, Interval(time(16, 59), time(18, 0)))
    assert overlaps(outer, Interval(time(10, 0), time(11, 0)))
    assert overlaps(Interval(time(10, 0), time(11, 0)), outer)


def test_interval_rejects_empty_or_reversed():
    with pytest.raises(ValueError):
        Interval(time(10, 0), time(10, 0))
    with pytest.raises(ValueError):
        Interval(time(12, 0), time(10, 0))


def test_duration_hours():
    assert Interval(time(9, 30), time(13, 0)).duration_hours == pytest.approx(3.5)


def test_split_same_day_tour_is_single_segment():
    segments = split_overnight(date(2030, 6, 10), time(10, 0), time(16, 0))

    assert len(segments) == 1
    assert segments[0].day == date(2030, 6, 10)
    assert not segments[0].continues_next_day


def test_split_overnight_tour_into_two_days():
    segments = split_overnight(date(2030, 6, 10), time(21, 0), time(1, 30))

    assert [s.day for s in segments] == [date(2030, 6, 10), date(2030, 6, 11)]
    assert segments[0].interval == Interval(time(21, 0), END_OF_DAY)
    assert segments[0].continues_next_day
    assert segments[1].interval == Interval(time(0, 0), time(1, 30))
    assert not segments[1].continues_next_day


def test_split_tour_ending_at_midnight():
    segments = split_overnight(date(2030, 6, 10), time(20, 0), time(0, 0))

    assert len(segments) == 1
    assert segments[0].interval.end == END_OF_DAY
    assert not segments[0].continues_next_day


def test_add_hours_stays_within_day():
    assert add_hours(time(9, 0), 2.5) == time(11, 30)
    assert add_hours(time(22, 0), 3) is None


def test_within_operating_hours():
    assert within_operating_hours(Interval(time(8, 0), time(22, 0)), time(8, 0), time(22, 0))
    assert not within_operating_hours(Interval(time(7, 30), time(9, 0)), time(8, 0), time(22, 0))


def test_haversine_known_distance():
    """Walla Walla to Seattle is roughly 215 miles as the crow flies."""
    distance = haversine_miles(*WALLA_WALLA, *SEATTLE)

    assert 205 < distance < 225


def test_air_miles_exceeds_uses_furthest_point():
    assert not air_miles_exceeds([RICHLAND], WALLA_WALLA)
    assert air_miles_exceeds([RICHLAND, SEATTLE], WALLA_WALLA)
    assert max_air_miles([], WALLA_WALLA) == 0.0


def test_air_miles_threshold_is_strict():
    distance = haversine_miles(*WALLA_WALLA, *RICHLAND)

    assert not air_miles_exceeds([RICHLAND], WALLA_WALLA, threshold_miles=distance)
    assert air_miles_exceeds([RICHLAND], WALLA_WALLA, threshold_miles=distance - 0.01)


def test_shift_minutes_stays_within_the_day():
    assert shift_minutes(time(10, 0), -60) == time(9, 0)
    assert shift_minutes(time(12, 0), 60) == time(13, 0)
    assert shift_minutes(time(0, 30), -60) is None
    assert shift_minutes(time(23, 30), 60) is None
