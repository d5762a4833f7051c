"""
Cross-brand arbitration policy tests.
"""

from datetime import date, datetime, time

from tourfleet.app.models.fleet_vehicle import Dedicated, SharedPool
from tourfleet.app.services.allocation_types import BookingDraft, VehicleCandidate
from tourfleet.app.services.arbitration import PriorityOrderPolicy

POLICY = PriorityOrderPolicy([2, 1, 3])


def _vehicle(vehicle_id, capacity, scope=None):
    return VehicleCandidate(vehicle_id=vehicle_id, name=f"V{vehicle_id}", capacity=capacity, scope=scope or SharedPool())


def _draft(brand_id, requested_at=None):
    return BookingDraft(
        brand_id=brand_id,
        day=date(2030, 6, 10),
        start_time=time(10, 0),
        end_time=time(12, 0),
        party_size=4,
        requested_at=requested_at,
    )


def test_dedicated_vehicle_serves_only_home_brand():
    dedicated = _vehicle(1, 14, Dedicated(1))

    assert POLICY.is_eligible(1, dedicated)
    assert not POLICY.is_eligible(2, dedicated)
    assert POLICY.is_eligible(2, _vehicle(2, 14))


def test_rank_prefers_own_fleet_then_capacity_fit():
    candidates = [
        _vehicle(1, 24),
        _vehicle(2, 10),
        _vehicle(3, 10),
        _vehicle(4, 30, Dedicated(1)),
        _vehicle(5, 6, Dedicated(3)),
        _vehicle(6, 3),
    ]

    ranked = POLICY.rank(1, candidates, party_size=6)

    assert [c.vehicle_id for c in ranked] == [4, 2, 3, 1]


def test_rank_empty_when_nothing_fits():
    assert POLICY.rank(1, [_vehicle(1, 4)], party_size=5) == []


def test_order_requests_by_brand_priority_then_time():
    early = datetime(2030, 6, 1, 9, 0)
    late = datetime(2030, 6, 1, 9, 5)
    drafts = [
        _draft(3, early),
        _draft(1, late),
        _draft(2, late),
        _draft(1, early),
        _draft(9, early),
    ]

    ordered = POLICY.order_requests(drafts)

    assert [(d.brand_id, d.requested_at) for d in ordered] == [
        (2, late),
        (1, early),
        (1, late),
        (3, early),
        (9, early),
    ]


def test_order_requests_keeps_submission_order_without_timestamps():
    first, second = _draft(1), _draft(1)

    ordered = POLICY.order_requests([first, second])

    assert ordered[0] is first and ordered[1] is second
