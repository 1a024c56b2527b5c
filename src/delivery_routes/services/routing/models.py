"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from ...models.domain import Order, Route


@dataclass(slots=True)
class VisitGroup:
    """Orders sharing one drop-off point. ``index`` is the optimizer shipment index."""

    index: int
    key: str
    latitude: float
    longitude: float
    orders: List[Order] = field(default_factory=list)

    @property
    def order_count(self) -> int:
        return len(self.orders)


@dataclass(slots=True)
class DeliveryWindow:
    start: datetime
    end: datetime

    @property
    def span_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


@dataclass(slots=True)
class OptimizerVisit:
    shipment_index: int
    start_time: Optional[datetime] = None


@dataclass(slots=True)
class OptimizerRoute:
    vehicle_index: int
    vehicle_label: Optional[str]
    visits: List[OptimizerVisit]
    distance_meters: int = 0
    duration_seconds: int = 0
    polyline: Optional[str] = None


@dataclass(slots=True)
class SkippedShipment:
    index: int
    reasons: List[str] = field(default_factory=list)


@dataclass(slots=True)
class OptimizerSolution:
    routes: List[OptimizerRoute]
    skipped: List[SkippedShipment] = field(default_factory=list)


@dataclass(slots=True)
class PlannedStop:
    order_id: str
    sequence: int
    estimated_arrival: datetime
    estimated_departure: Optional[datetime] = None
    forced_assignment: bool = False


@dataclass(slots=True)
class PlannedRoute:
    """A driver's route before it is written to the store."""

    driver_id: str
    distance_meters: int = 0
    duration_seconds: int = 0
    polyline: Optional[str] = None
    stops: List[PlannedStop] = field(default_factory=list)
    last_eta: Optional[datetime] = None

    @property
    def stop_count(self) -> int:
        return len(self.stops)

    def append_stop(
        self,
        order_id: str,
        eta: datetime,
        *,
        service_seconds: int = 0,
        forced: bool = False,
    ) -> PlannedStop:
        if self.last_eta is not None and eta < self.last_eta:
            eta = self.last_eta
        stop = PlannedStop(
            order_id=order_id,
            sequence=len(self.stops) + 1,
            estimated_arrival=eta,
            estimated_departure=eta + timedelta(seconds=service_seconds),
            forced_assignment=forced,
        )
        self.stops.append(stop)
        self.last_eta = eta
        return stop


@dataclass(slots=True)
class InterpretedSolution:
    routes: List[PlannedRoute]
    covered: set[int]
    uncovered: List[int]


@dataclass(slots=True)
class FallbackSummary:
    mode: str
    orders_placed: int
    groups_placed: int
    driver_ids: List[str] = field(default_factory=list)
    skipped_reasons: dict[int, List[str]] = field(default_factory=dict)


@dataclass(slots=True)
class GenerationResult:
    batch_id: str
    routes_created: int
    forced_assignments: int
    routes: List[Route]
    fallback: Optional[FallbackSummary] = None
    metadata: dict = field(default_factory=dict)
