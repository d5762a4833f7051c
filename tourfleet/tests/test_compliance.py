"""
Compliance overlay tests.

HOS and air-mile exemption rules against a scripted HOS service.
"""

import pytest
from datetime import datetime, time

from tourfleet.app.core.exceptions import ComplianceViolation
from tourfleet.app.services.compliance import ComplianceOverlay
from tourfleet.app.services.time_ranges import Interval

from conftest import START_OF_TESTS, TOUR_DAY

WALLA_WALLA = (46.0646, -118.3430)
SEATTLE = (47.6062, -122.3321)
RICHLAND = (46.2856, -119.2845)

SIX_HOURS = [Interval(time(10, 0), time(16, 0))]


@pytest.mark.asyncio
async def test_rested_driver_can_proceed(db_session, hos_client):
    """TEST 1: Enough hours and no exemption pressure."""
    overlay = ComplianceOverlay(hos_client)

    snapshot = await overlay.evaluate(db_session, 1, TOUR_DAY, SIX_HOURS, START_OF_TESTS)

    assert snapshot.can_proceed
    assert snapshot.required_hours == pytest.approx(6.0)
    assert snapshot.remaining_hos_hours == 10.0
    assert ("remaining", 1, datetime(2030, 6, 10, 10, 0)) in hos_client.calls
    assert ("exemption", 1, "2030-06") in hos_client.calls


@pytest.mark.asyncio
async def test_insufficient_hours_raises(db_session, hos_client):
    """TEST 2: 0.5 hours left against a 6 hour tour."""
    hos_client.remaining_hours[2] = 0.5
    overlay = ComplianceOverlay(hos_client)

    with pytest.raises(ComplianceViolation) as exc_info:
        await overlay.ensure_can_assign(db_session, 2, TOUR_DAY, SIX_HOURS, START_OF_TESTS)

    assert exc_info.value.driver_id == 2
    assert [v["type"] for v in exc_info.value.violations] == ["hos_insufficient_hours"]
    assert exc_info.value.details["day"] == TOUR_DAY.isoformat()


@pytest.mark.asyncio
async def test_ninth_long_distance_day_loses_exemption(db_session, hos_client):
    """TEST 3: 8 exceeding days so far plus a trip beyond 150 air miles."""
    hos_client.exceeding_days[3] = 8
    overlay = ComplianceOverlay(hos_client)

    local = await overlay.evaluate(
        db_session, 3, TOUR_DAY, SIX_HOURS, START_OF_TESTS,
        trip_points=[RICHLAND], origin=WALLA_WALLA,
    )
    long_haul = await overlay.evaluate(
        db_session, 3, TOUR_DAY, SIX_HOURS, START_OF_TESTS,
        trip_points=[RICHLAND, SEATTLE], origin=WALLA_WALLA,
    )

    assert local.can_proceed
    assert [w["type"] for w in local.warnings] == ["air_mile_exemption_at_limit"]
    assert not long_haul.can_proceed
    assert long_haul.trip_exceeds_radius
    assert [v["type"] for v in long_haul.violations] == ["air_mile_exemption_lost"]


@pytest.mark.asyncio
async def test_exemption_already_lost(db_session, hos_client):
    hos_client.exceeding_days[4] = 9
    overlay = ComplianceOverlay(hos_client)

    snapshot = await overlay.evaluate(db_session, 4, TOUR_DAY, SIX_HOURS, START_OF_TESTS)

    assert [v["type"] for v in snapshot.violations] == ["air_mile_exemption_lost"]


@pytest.mark.asyncio
async def test_long_tour_exceeds_daily_on_duty(db_session, hos_client):
    """TEST 4: 16 hours on duty in one day is over the 15 hour limit."""
    hos_client.remaining_hours[5] = 60.0
    overlay = ComplianceOverlay(hos_client)

    snapshot = await overlay.evaluate(
        db_session, 5, TOUR_DAY, [Interval(time(6, 0), time(22, 0))], START_OF_TESTS,
    )

    assert [v["type"] for v in snapshot.violations] == ["hos_daily_on_duty_exceeded"]


@pytest.mark.asyncio
async def test_service_outage_fails_closed(db_session, hos_client):
    """TEST 5: No HOS data means no assignment by default."""
    hos_client.fail = True
    overlay = ComplianceOverlay(hos_client, fail_open=False)

    with pytest.raises(ComplianceViolation) as exc_info:
        await overlay.ensure_can_assign(db_session, 6, TOUR_DAY, SIX_HOURS, START_OF_TESTS)

    assert exc_info.value.violations[0]["type"] == "hos_service_unavailable"


@pytest.mark.asyncio
async def test_service_outage_fail_open_when_configured(db_session, hos_client):
    hos_client.fail = True
    overlay = ComplianceOverlay(hos_client, fail_open=True)

    snapshot = await overlay.ensure_can_assign(db_session, 6, TOUR_DAY, SIX_HOURS, START_OF_TESTS)

    assert snapshot.can_proceed
    assert snapshot.remaining_hos_hours is None
    assert snapshot.warnings[0]["type"] == "hos_service_unavailable"
