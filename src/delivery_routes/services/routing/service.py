"""Route generation orchestration service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence

from ...data.depot_repository import resolve_depot
from ...models.domain import BATCH_COMPLETED, BATCH_DISPATCHED, BATCH_ROUTES_GENERATED, Batch
from ...persistence.filesystem import FileStorage
from ...persistence.store import DeliveryStore, get_store
from ..outputs.routing_formatter import generation_result_to_json, generation_stops_to_csv
from .errors import (
    BatchNotFoundError,
    BatchStateError,
    EmptyBatchError,
    InvalidDepotError,
    InvalidOrderLocationError,
    NoEligibleDriversError,
    OptimizerError,
)
from .fallback import assign_uncovered
from .grouping import find_invalid_geo_orders, group_orders
from .interpreter import interpret_solution
from .models import GenerationResult
from .optimizer_client import FleetRoutingClient
from .request_builder import build_optimizer_request
from .time_window import format_timestamp, resolve_delivery_window

logger = logging.getLogger(__name__)

LOCKED_STATUSES = (BATCH_DISPATCHED, BATCH_COMPLETED)


def _optimizer_client() -> FleetRoutingClient:
    try:
        return FleetRoutingClient()
    except ValueError as exc:
        logger.error(f"Fleet routing client initialization failed: {exc}")
        raise OptimizerError("Fleet routing service is not configured.") from exc


def _load_batch(store: DeliveryStore, batch_id: str) -> Batch:
    batch = store.get_batch(batch_id)
    if batch is None:
        raise BatchNotFoundError(batch_id)
    if batch.status in LOCKED_STATUSES:
        raise BatchStateError(f"Routes cannot be regenerated for a batch that is already {batch.status}")
    return batch


def generate_routes_for_batch(
    batch_id: str,
    driver_ids: Sequence[str] | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    *,
    store: DeliveryStore | None = None,
    optimizer: FleetRoutingClient | None = None,
    export_snapshot: bool = False,
) -> GenerationResult:
    """Generate driver routes for every order of a batch.

    Preconditions are checked before the optimizer is called and raise
    ``RouteGenerationError`` subclasses; optimizer failures raise
    ``OptimizerError``. In both cases nothing is written. Each run rebuilds the
    groups, vehicles and optimizer call from scratch and replaces any routes a
    previous run stored for the batch.
    """
    store = store or get_store()
    batch = _load_batch(store, batch_id)

    depot = resolve_depot()
    if depot is None:
        raise InvalidDepotError("Invalid warehouse coordinates")

    if not batch.order_ids:
        raise EmptyBatchError(f"Batch '{batch_id}' has no orders")
    order_ids = list(dict.fromkeys(batch.order_ids))
    if len(order_ids) != len(batch.order_ids):
        logger.warning(
            f"Batch {batch_id} lists {len(batch.order_ids) - len(order_ids)} duplicate order ids; each order is routed once"
        )
        batch.order_ids = order_ids
    orders = store.get_orders(order_ids)
    found = {order.order_id for order in orders}
    missing = [order_id for order_id in order_ids if order_id not in found]
    invalid = find_invalid_geo_orders(orders)
    if invalid or missing:
        raise InvalidOrderLocationError(invalid, missing=missing)

    drivers = store.list_active_drivers(driver_ids or None)
    if not drivers:
        raise NoEligibleDriversError("No active drivers found")

    groups = group_orders(orders)
    window = resolve_delivery_window(
        batch.delivery_date,
        start_time=start_time,
        end_time=end_time,
        stored_start=batch.delivery_window_start,
        stored_end=batch.delivery_window_end,
    )
    request_body = build_optimizer_request(groups, drivers, depot, window)
    logger.info(
        f"Generating routes for batch {batch_id}: {len(orders)} orders in {len(groups)} visit groups, "
        f"{len(drivers)} drivers, window {format_timestamp(window.start)} - {format_timestamp(window.end)}"
    )

    client = optimizer or _optimizer_client()
    solution = client.optimize_tours(request_body)
    if solution.skipped:
        logger.warning(f"Optimizer skipped {len(solution.skipped)} shipments for batch {batch_id}")

    interpreted = interpret_solution(solution, groups, drivers, window)
    fallback = assign_uncovered(interpreted, groups, drivers, window, solution.skipped)

    routes = store.replace_routes(batch.batch_id, interpreted.routes)

    batch.route_ids = [route.route_id for route in routes]
    batch.status = BATCH_ROUTES_GENERATED
    batch.generated_at = datetime.now(timezone.utc)
    if start_time and start_time.strip():
        batch.delivery_window_start = start_time.strip()
    if end_time and end_time.strip():
        batch.delivery_window_end = end_time.strip()
    store.save_batch(batch)

    result = GenerationResult(
        batch_id=batch.batch_id,
        routes_created=len(routes),
        forced_assignments=fallback.orders_placed if fallback else 0,
        routes=routes,
        fallback=fallback,
        metadata={
            "orders": len(orders),
            "visit_groups": len(groups),
            "drivers": len(drivers),
            "window_start": format_timestamp(window.start),
            "window_end": format_timestamp(window.end),
        },
    )
    logger.info(
        f"Batch {batch_id}: created {result.routes_created} routes "
        f"({result.forced_assignments} orders placed by fallback)"
    )

    if export_snapshot:
        try:
            _export_snapshot(store, result)
        except OSError as exc:
            logger.warning(f"Failed to write route generation snapshot for batch {batch_id}: {exc}")

    return result


def _export_snapshot(store: DeliveryStore, result: GenerationResult) -> None:
    stops_by_route = {route.route_id: store.get_stops(route.route_id) for route in result.routes}
    run_dir = FileStorage().write_snapshot(
        result.batch_id,
        generation_result_to_json(result),
        generation_stops_to_csv(result, stops_by_route),
    )
    logger.info(f"Wrote route generation snapshot for batch {result.batch_id} to {run_dir}")
