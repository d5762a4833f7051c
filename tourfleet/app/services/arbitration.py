"""
Cross-brand arbitration policy.

Decides which vehicles a storefront may use and in what order, and which of
several competing requests goes first. Policies are pure and are passed
explicitly to the allocation service; nothing here reads global state.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Sequence

from tourfleet.app.models.fleet_vehicle import Dedicated, SharedPool
from tourfleet.app.services.allocation_types import BookingDraft, VehicleCandidate


class ArbitrationPolicy(ABC):
    """Strategy interface for brand eligibility and tie-breaks."""

    @abstractmethod
    def is_eligible(self, requesting_brand: int, candidate: VehicleCandidate) -> bool:
        ...

    @abstractmethod
    def rank(
        self,
        requesting_brand: int,
        candidates: Iterable[VehicleCandidate],
        party_size: int
    ) -> List[VehicleCandidate]:
        ...

    @abstractmethod
    def order_requests(self, drafts: Sequence[BookingDraft]) -> List[BookingDraft]:
        ...


class PriorityOrderPolicy(ArbitrationPolicy):
    """
    Brand-priority arbitration.

    - A dedicated vehicle only serves its home brand
    - A brand gets first refusal on its own dedicated vehicles, then the
      shared pool
    - Within a tier, the smallest vehicle that seats the party wins
      (greedy capacity fit), ties broken by vehicle id
    - Competing requests are served in brand priority order, then in the
      order they were made
    """

    def __init__(self, brand_priority: Sequence[int]):
        self.brand_priority = list(brand_priority)

    def is_eligible(self, requesting_brand: int, candidate: VehicleCandidate) -> bool:
        scope = candidate.scope
        if isinstance(scope, Dedicated):
            return scope.brand_id == requesting_brand
        return isinstance(scope, SharedPool)

    def rank(
        self,
        requesting_brand: int,
        candidates: Iterable[VehicleCandidate],
        party_size: int
    ) -> List[VehicleCandidate]:
        eligible = [
            c for c in candidates
            if c.capacity >= party_size and self.is_eligible(requesting_brand, c)
        ]
        return sorted(
            eligible,
            key=lambda c: (self._tier(requesting_brand, c), c.capacity, c.vehicle_id),
        )

    def order_requests(self, drafts: Sequence[BookingDraft]) -> List[BookingDraft]:
        indexed = list(enumerate(drafts))
        indexed.sort(key=lambda item: (
            self.brand_rank(item[1].brand_id),
            item[1].requested_at or datetime.max,
            item[0],
        ))
        return [draft for _, draft in indexed]

    def brand_rank(self, brand_id: int) -> int:
        # Unlisted brands queue behind every configured one
        try:
            return self.brand_priority.index(brand_id)
        except ValueError:
            return len(self.brand_priority)

    @staticmethod
    def _tier(requesting_brand: int, candidate: VehicleCandidate) -> int:
        scope = candidate.scope
        if isinstance(scope, Dedicated) and scope.brand_id == requesting_brand:
            return 0
        return 1
