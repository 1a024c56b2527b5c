"""Domain models for batches, orders, drivers, routes and stops."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

BATCH_COLLECTING = "collecting"
BATCH_LOCKED = "locked"
BATCH_ROUTES_GENERATED = "routes_generated"
BATCH_DISPATCHED = "dispatched"
BATCH_COMPLETED = "completed"

ROUTE_PLANNED = "planned"

STOP_PENDING = "pending"
STOP_DELIVERED = "delivered"
STOP_FAILED = "failed"


@dataclass(slots=True)
class DeliveryAddress:
    line1: str
    postcode: str
    line2: Optional[str] = None
    city: Optional[str] = None


@dataclass(slots=True)
class Order:
    """A paid order as seen by the route engine. Coordinates may be missing."""

    order_id: str
    latitude: Optional[float]
    longitude: Optional[float]
    address: DeliveryAddress
    status: str = "paid"
    delivery_date: Optional[date] = None


@dataclass(slots=True)
class Driver:
    driver_id: str
    name: str
    email: Optional[str] = None
    role: str = "driver"
    status: str = "active"


@dataclass(slots=True)
class Depot:
    """Represents the warehouse every vehicle starts and ends at."""

    code: str
    latitude: float
    longitude: float


@dataclass(slots=True)
class Batch:
    """All paid orders targeted for delivery on one date."""

    batch_id: str
    delivery_date: date
    status: str = BATCH_COLLECTING
    order_ids: List[str] = field(default_factory=list)
    route_ids: List[str] = field(default_factory=list)
    delivery_window_start: Optional[str] = None
    delivery_window_end: Optional[str] = None
    locked_at: Optional[datetime] = None
    generated_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass(slots=True)
class Route:
    route_id: str
    batch_id: str
    driver_id: str
    total_stops: int = 0
    total_distance_meters: int = 0
    total_duration_seconds: int = 0
    polyline: Optional[str] = None
    status: str = ROUTE_PLANNED


@dataclass(slots=True)
class Stop:
    stop_id: str
    route_id: str
    order_id: str
    sequence: int
    estimated_arrival: datetime
    estimated_departure: Optional[datetime] = None
    status: str = STOP_PENDING
    forced_assignment: bool = False
