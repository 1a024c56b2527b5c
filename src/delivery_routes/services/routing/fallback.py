"""Place visit groups the optimizer left out onto routes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence

from ...config import settings
from ...models.domain import Driver
from .models import (
    DeliveryWindow,
    FallbackSummary,
    InterpretedSolution,
    PlannedRoute,
    SkippedShipment,
    VisitGroup,
)
from .request_builder import service_duration_seconds

logger = logging.getLogger(__name__)

MODE_CREATED = "created"
MODE_APPENDED = "appended"


def spacing_step(available_seconds: float, slots: int, minimum_seconds: int | None = None) -> timedelta:
    """Spread ``slots`` arrivals evenly over ``available_seconds``, never closer than the minimum."""
    minimum = minimum_seconds or settings.default_step_seconds
    available = max(0.0, available_seconds)
    return timedelta(seconds=max(float(minimum), available / (slots + 1)))


def _append_orders(route: PlannedRoute, group: VisitGroup, base: datetime, step: timedelta) -> None:
    eta = base
    for order in group.orders:
        eta = eta + step
        route.append_stop(
            order.order_id,
            eta,
            service_seconds=service_duration_seconds(1),
            forced=True,
        )
    route.duration_seconds += round((eta - base).total_seconds())


def _least_loaded(routes: Sequence[PlannedRoute]) -> PlannedRoute:
    # min() keeps the first route on ties, i.e. the earliest planned
    return min(routes, key=lambda route: route.stop_count)


def assign_uncovered(
    interpreted: InterpretedSolution,
    groups: Sequence[VisitGroup],
    drivers: Sequence[Driver],
    window: DeliveryWindow,
    skipped: Sequence[SkippedShipment] = (),
) -> FallbackSummary | None:
    """Guarantee every uncovered group's orders receive a stop.

    Without any planned route a single route is created on the first driver and
    its stops are spread across the whole window. Otherwise each uncovered group
    goes to the route with the fewest stops, continuing that route's timeline.
    Mutates ``interpreted.routes`` in place.
    """
    pending = [groups[index] for index in interpreted.uncovered]
    if not pending:
        return None

    skipped_reasons = {item.index: item.reasons for item in skipped if item.index in interpreted.uncovered}
    orders_placed = sum(group.order_count for group in pending)

    if not interpreted.routes:
        if not drivers:
            raise ValueError("Cannot create a fallback route without drivers.")
        route = PlannedRoute(driver_id=drivers[0].driver_id)
        step = spacing_step(window.span_seconds, orders_placed)
        base = window.start
        for group in pending:
            _append_orders(route, group, base, step)
            base = route.last_eta
        interpreted.routes.append(route)
        logger.info(
            f"Optimizer produced no routes; created fallback route for driver {route.driver_id} "
            f"with {orders_placed} orders"
        )
        summary = FallbackSummary(
            mode=MODE_CREATED,
            orders_placed=orders_placed,
            groups_placed=len(pending),
            driver_ids=[route.driver_id],
            skipped_reasons=skipped_reasons,
        )
    else:
        touched: list[str] = []
        for group in pending:
            route = _least_loaded(interpreted.routes)
            base = route.last_eta or window.start
            remaining = (window.end - base).total_seconds()
            _append_orders(route, group, base, spacing_step(remaining, group.order_count))
            if route.driver_id not in touched:
                touched.append(route.driver_id)
        logger.info(
            f"Appended {orders_placed} uncovered orders from {len(pending)} visit groups "
            f"to {len(touched)} existing routes"
        )
        summary = FallbackSummary(
            mode=MODE_APPENDED,
            orders_placed=orders_placed,
            groups_placed=len(pending),
            driver_ids=touched,
            skipped_reasons=skipped_reasons,
        )

    interpreted.covered.update(group.index for group in pending)
    interpreted.uncovered = []
    return summary
