"""
Compliance overlay.

Read-only go/no-go gate consulted before a driver is attached to a block.
Hours-of-service and 150-air-mile exemption figures come from the external
HOS / trip-distance service; hours already scheduled on the same day come
from this service's own driver assignments.

Limits (passenger carriers):
- Remaining HOS must cover the tour (49 CFR 395.5)
- Scheduled on-duty hours per day must stay within 15
- The 150-air-mile exemption is lost after 8 exceeding days in a month
  (49 CFR 395.1(e)(1))
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourfleet.app.core.config import settings
from tourfleet.app.core.exceptions import ComplianceViolation
from tourfleet.app.core.reliability import CircuitBreaker, CircuitOpenError, hos_circuit_breaker
from tourfleet.app.models.availability_block import VehicleAvailabilityBlock
from tourfleet.app.models.driver_assignment import DriverAssignment
from tourfleet.app.services.time_ranges import Interval, Point, air_miles_exceeds

logger = logging.getLogger("tourfleet")


class HOSServiceError(Exception):
    """The HOS / trip-distance service could not answer."""


@dataclass(frozen=True)
class AirMileExemptionStatus:
    days_exceeding_150: int
    is_exempt: bool


@dataclass
class ComplianceSnapshot:
    """Derived view of a driver's standing for one prospective tour."""
    driver_id: int
    evaluated_at: datetime
    required_hours: float
    remaining_hos_hours: Optional[float] = None
    scheduled_hours: float = 0.0
    exemption: Optional[AirMileExemptionStatus] = None
    trip_exceeds_radius: bool = False
    violations: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def can_proceed(self) -> bool:
        return not self.violations


class HOSClient(ABC):
    """Contract of the external HOS / trip-distance system."""

    @abstractmethod
    async def remaining_hours_of_service(self, driver_id: int, at_time: datetime) -> float:
        ...

    @abstractmethod
    async def air_mile_exemption_status(self, driver_id: int, year_month: str) -> AirMileExemptionStatus:
        ...


class HttpHOSClient(HOSClient):
    """JSON-over-HTTP client for the HOS service, behind a circuit breaker."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        breaker: CircuitBreaker = hos_circuit_breaker,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.breaker = breaker
        self.transport = transport

    async def remaining_hours_of_service(self, driver_id: int, at_time: datetime) -> float:
        payload = await self.breaker.call(
            self._get,
            f"/drivers/{driver_id}/hos/remaining",
            {"at": at_time.isoformat()},
        )
        return float(payload["remaining_hours"])

    async def air_mile_exemption_status(self, driver_id: int, year_month: str) -> AirMileExemptionStatus:
        payload = await self.breaker.call(
            self._get,
            f"/drivers/{driver_id}/air-mile-exemption",
            {"month": year_month},
        )
        return AirMileExemptionStatus(
            days_exceeding_150=int(payload["days_exceeding_150"]),
            is_exempt=bool(payload["is_exempt"]),
        )

    async def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                response = await client.get(path, params=params)
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError, KeyError) as exc:
                raise HOSServiceError(f"HOS service request to {path} failed: {exc}") from exc


class UnconfiguredHOSClient(HOSClient):
    """Used when no HOS service URL is configured; every lookup fails."""

    async def remaining_hours_of_service(self, driver_id: int, at_time: datetime) -> float:
        raise HOSServiceError("HOS service URL is not configured")

    async def air_mile_exemption_status(self, driver_id: int, year_month: str) -> AirMileExemptionStatus:
        raise HOSServiceError("HOS service URL is not configured")


def build_hos_client() -> HOSClient:
    if settings.hos_service_url:
        return HttpHOSClient(settings.hos_service_url, timeout=settings.hos_timeout_seconds)
    return UnconfiguredHOSClient()


class ComplianceOverlay:
    """Evaluates whether a driver may take a tour. Never writes."""

    def __init__(
        self,
        hos_client: HOSClient,
        fail_open: bool = settings.compliance_fail_open,
        max_daily_on_duty_hours: float = settings.max_daily_on_duty_hours,
        air_mile_radius: float = settings.air_mile_radius,
        max_exempt_days_per_month: int = settings.max_exempt_days_per_month,
    ):
        self.hos_client = hos_client
        self.fail_open = fail_open
        self.max_daily_on_duty_hours = max_daily_on_duty_hours
        self.air_mile_radius = air_mile_radius
        self.max_exempt_days_per_month = max_exempt_days_per_month

    async def evaluate(
        self,
        db: AsyncSession,
        driver_id: int,
        day: date,
        intervals: List[Interval],
        now: datetime,
        exclude_block_ids: Iterable[int] = (),
        trip_points: Optional[List[Point]] = None,
        origin: Optional[Point] = None,
    ) -> ComplianceSnapshot:
        required = sum(i.duration_hours for i in intervals)
        snapshot = ComplianceSnapshot(driver_id=driver_id, evaluated_at=now, required_hours=required)

        snapshot.scheduled_hours = await self.scheduled_hours(db, driver_id, day, exclude_block_ids)
        if snapshot.scheduled_hours + required > self.max_daily_on_duty_hours:
            snapshot.violations.append(_violation(
                "hos_daily_on_duty_exceeded",
                f"Scheduled on-duty hours would reach {snapshot.scheduled_hours + required:.1f} "
                f"of {self.max_daily_on_duty_hours:g}",
                "49 CFR 395.5",
            ))

        if trip_points and origin:
            snapshot.trip_exceeds_radius = air_miles_exceeds(trip_points, origin, self.air_mile_radius)

        at_time = datetime.combine(day, intervals[0].start)
        try:
            snapshot.remaining_hos_hours = await self.hos_client.remaining_hours_of_service(driver_id, at_time)
            snapshot.exemption = await self.hos_client.air_mile_exemption_status(driver_id, day.strftime("%Y-%m"))
        except (HOSServiceError, CircuitOpenError, httpx.HTTPError) as exc:
            self._service_unavailable(snapshot, exc)
            return snapshot

        if snapshot.remaining_hos_hours < required:
            snapshot.violations.append(_violation(
                "hos_insufficient_hours",
                f"Driver has {snapshot.remaining_hos_hours:.1f} hours of service remaining, "
                f"tour requires {required:.1f}",
                "49 CFR 395.5",
            ))

        exempt_days = snapshot.exemption.days_exceeding_150 + (1 if snapshot.trip_exceeds_radius else 0)
        if not snapshot.exemption.is_exempt or exempt_days > self.max_exempt_days_per_month:
            snapshot.violations.append(_violation(
                "air_mile_exemption_lost",
                f"Driver exceeds {self.air_mile_radius:g} air miles on {exempt_days} days this month "
                f"(limit {self.max_exempt_days_per_month})",
                "49 CFR 395.1(e)(1)",
            ))
        elif exempt_days == self.max_exempt_days_per_month:
            snapshot.warnings.append(_violation(
                "air_mile_exemption_at_limit",
                f"Driver is at the {self.max_exempt_days_per_month}-day monthly limit",
                "49 CFR 395.1(e)(1)",
                severity="warning",
            ))

        return snapshot

    async def ensure_can_assign(self, db: AsyncSession, driver_id: int, day: date, intervals: List[Interval],
                                now: datetime, **kwargs) -> ComplianceSnapshot:
        """Evaluate and raise ComplianceViolation when the driver cannot proceed."""
        snapshot = await self.evaluate(db, driver_id, day, intervals, now, **kwargs)
        if not snapshot.can_proceed:
            logger.warning(
                "Driver assignment refused by compliance overlay",
                extra={"driver_id": driver_id, "day": day.isoformat(), "violations": snapshot.violations},
            )
            raise ComplianceViolation(driver_id, snapshot.violations, details={"day": day.isoformat()})
        return snapshot

    @staticmethod
    async def scheduled_hours(
        db: AsyncSession,
        driver_id: int,
        day: date,
        exclude_block_ids: Iterable[int] = ()
    ) -> float:
        """Hours of blocks already assigned to the driver on that date."""
        query = select(VehicleAvailabilityBlock.start_time, VehicleAvailabilityBlock.end_time).join(
            DriverAssignment, DriverAssignment.block_id == VehicleAvailabilityBlock.id
        ).where(
            DriverAssignment.driver_id == driver_id,
            VehicleAvailabilityBlock.block_date == day,
        )
        excluded = list(exclude_block_ids)
        if excluded:
            query = query.where(VehicleAvailabilityBlock.id.not_in(excluded))

        result = await db.execute(query)
        return sum(Interval(start, end).duration_hours for start, end in result.all())

    def _service_unavailable(self, snapshot: ComplianceSnapshot, exc: Exception) -> None:
        entry = _violation(
            "hos_service_unavailable",
            "Hours-of-service data is unavailable",
            None,
            severity="warning" if self.fail_open else "critical",
        )
        if self.fail_open:
            logger.warning("HOS service unavailable, proceeding without HOS check",
                           extra={"driver_id": snapshot.driver_id, "error": str(exc)})
            snapshot.warnings.append(entry)
        else:
            logger.error("HOS service unavailable, refusing assignment",
                         extra={"driver_id": snapshot.driver_id, "error": str(exc)})
            snapshot.violations.append(entry)


def _violation(kind: str, message: str, regulation: Optional[str], severity: str = "critical") -> Dict[str, Any]:
    return {"type": kind, "severity": severity, "message": message, "regulation": regulation}
