"""Build fleet routing requests from visit groups and drivers."""

from __future__ import annotations

import math
from typing import Sequence

from ...config import settings
from ...models.domain import Depot, Driver
from .models import DeliveryWindow, VisitGroup
from .time_window import format_timestamp

LOAD_UNIT = "orders"


def service_duration_seconds(order_count: int) -> int:
    """Time spent at a drop-off, scaled by the orders handed over there."""
    return max(settings.min_service_seconds, settings.service_seconds_per_order * order_count)


def vehicle_capacity(total_orders: int, driver_count: int) -> int:
    if driver_count <= 0:
        raise ValueError("At least one driver is required to compute vehicle capacity.")
    return math.ceil(total_orders / driver_count)


def _lat_lng(latitude: float, longitude: float) -> dict:
    return {"latitude": latitude, "longitude": longitude}


def build_shipment(group: VisitGroup) -> dict:
    return {
        "label": f"group-{group.index}",
        "deliveries": [
            {
                "arrivalLocation": _lat_lng(group.latitude, group.longitude),
                "duration": f"{service_duration_seconds(group.order_count)}s",
            }
        ],
        "loadDemands": {LOAD_UNIT: {"amount": str(group.order_count)}},
    }


def build_vehicle(driver: Driver, depot: Depot, capacity: int) -> dict:
    depot_location = _lat_lng(depot.latitude, depot.longitude)
    return {
        "label": driver.driver_id,
        "startLocation": depot_location,
        "endLocation": dict(depot_location),
        "loadLimits": {LOAD_UNIT: {"maxLoad": str(capacity)}},
    }


def build_optimizer_request(
    groups: Sequence[VisitGroup],
    drivers: Sequence[Driver],
    depot: Depot,
    window: DeliveryWindow,
) -> dict:
    """Return an ``optimizeTours`` request body.

    Shipment ``i`` corresponds to ``groups[i]``; the interpreter relies on that
    ordering to map visits back to orders. The per-vehicle load limit is
    ``ceil(orders / drivers)``, a balancing hint the fallback pass may exceed.
    """
    if not groups:
        raise ValueError("Cannot build an optimizer request without visit groups.")
    if not drivers:
        raise ValueError("Cannot build an optimizer request without drivers.")

    total_orders = sum(group.order_count for group in groups)
    capacity = vehicle_capacity(total_orders, len(drivers))
    return {
        "populatePolylines": True,
        "model": {
            "globalStartTime": format_timestamp(window.start),
            "globalEndTime": format_timestamp(window.end),
            "shipments": [build_shipment(group) for group in groups],
            "vehicles": [build_vehicle(driver, depot, capacity) for driver in drivers],
        },
    }
