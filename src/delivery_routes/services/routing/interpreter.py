"""Turn an optimizer solution into planned routes and stops."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence

from ...config import settings
from ...models.domain import Driver
from .models import (
    DeliveryWindow,
    InterpretedSolution,
    OptimizerRoute,
    OptimizerSolution,
    PlannedRoute,
    VisitGroup,
)
from .request_builder import service_duration_seconds

logger = logging.getLogger(__name__)


def _resolve_driver_id(route: OptimizerRoute, drivers: Sequence[Driver]) -> str | None:
    known = {driver.driver_id for driver in drivers}
    if route.vehicle_label:
        return route.vehicle_label if route.vehicle_label in known else None
    if 0 <= route.vehicle_index < len(drivers):
        return drivers[route.vehicle_index].driver_id
    return None


def interpret_solution(
    solution: OptimizerSolution,
    groups: Sequence[VisitGroup],
    drivers: Sequence[Driver],
    window: DeliveryWindow,
    *,
    step_seconds: int | None = None,
) -> InterpretedSolution:
    """Plan one route per used driver and one stop per order of every visited group.

    Visits are taken in the order the optimizer returned them. A visit without
    a start time is placed ``step_seconds`` after the previous ETA on the same
    route, the first one after the window start. Visits to unknown groups or to
    groups already placed are dropped, so they surface as uncovered instead.
    """
    step = timedelta(seconds=step_seconds or settings.default_step_seconds)
    planned: dict[str, PlannedRoute] = {}
    covered: set[int] = set()

    for route in solution.routes:
        if not route.visits:
            continue
        driver_id = _resolve_driver_id(route, drivers)
        if driver_id is None:
            logger.warning(
                f"Ignoring optimizer route for unknown vehicle "
                f"(label={route.vehicle_label!r}, index={route.vehicle_index})"
            )
            continue

        plan = planned.get(driver_id)
        if plan is None:
            plan = PlannedRoute(
                driver_id=driver_id,
                distance_meters=route.distance_meters,
                duration_seconds=route.duration_seconds,
                polyline=route.polyline,
            )
        else:
            plan.distance_meters += route.distance_meters
            plan.duration_seconds += route.duration_seconds

        for visit in route.visits:
            index = visit.shipment_index
            if index < 0 or index >= len(groups):
                logger.warning(f"Optimizer visit references unknown shipment {index}")
                continue
            if index in covered:
                logger.warning(f"Optimizer visited shipment {index} more than once")
                continue

            previous: datetime = plan.last_eta or window.start
            eta = visit.start_time or previous + step
            group = groups[index]
            service_seconds = service_duration_seconds(group.order_count)
            for order in group.orders:
                plan.append_stop(order.order_id, eta, service_seconds=service_seconds)
            covered.add(index)

        if plan.stops and driver_id not in planned:
            planned[driver_id] = plan

    uncovered = [group.index for group in groups if group.index not in covered]
    return InterpretedSolution(routes=list(planned.values()), covered=covered, uncovered=uncovered)
