"""Delivery batch lifecycle: creation, lookups and dispatch transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional

from ...models.domain import (
    BATCH_COMPLETED,
    BATCH_DISPATCHED,
    BATCH_LOCKED,
    BATCH_ROUTES_GENERATED,
    Batch,
    Order,
    Route,
    Stop,
)
from ...persistence.store import DeliveryStore, get_store, new_id
from ..routing.errors import BatchNotFoundError, BatchStateError, EmptyBatchError
from ..routing.polyline import decode_polyline, navigation_url

logger = logging.getLogger(__name__)


class RouteNotFoundError(LookupError):
    def __init__(self, route_id: str) -> None:
        super().__init__(f"Route '{route_id}' not found")
        self.route_id = route_id


@dataclass(slots=True)
class BatchDetail:
    batch: Batch
    orders: List[Order]
    routes: List[Route]


@dataclass(slots=True)
class StopDetail:
    stop: Stop
    order: Optional[Order]
    navigation_url: Optional[str]


@dataclass(slots=True)
class RouteDetail:
    route: Route
    stops: List[StopDetail]
    path: List[tuple[float, float]] = field(default_factory=list)


def create_delivery_batch(delivery_date: date, *, store: DeliveryStore | None = None) -> Batch:
    """Lock every paid order for ``delivery_date`` into a new batch.

    Only one batch may exist per calendar date.
    """
    store = store or get_store()
    if store.find_batch_for_date(delivery_date) is not None:
        raise BatchStateError("Batch already exists for this delivery date")

    orders = store.find_paid_orders_for_date(delivery_date)
    if not orders:
        raise EmptyBatchError("No eligible orders found for this date")

    batch = Batch(
        batch_id=new_id(),
        delivery_date=delivery_date,
        status=BATCH_LOCKED,
        order_ids=[order.order_id for order in orders],
        locked_at=datetime.now(timezone.utc),
    )
    store.save_batch(batch)
    logger.info(f"Created batch {batch.batch_id} for {delivery_date.isoformat()} with {len(orders)} orders")
    return batch


def get_batch_detail(batch_id: str, *, store: DeliveryStore | None = None) -> BatchDetail:
    store = store or get_store()
    batch = store.get_batch(batch_id)
    if batch is None:
        raise BatchNotFoundError(batch_id)
    routes = store.get_routes_for_batch(batch_id)
    by_id = {route.route_id: route for route in routes}
    ordered = [by_id[route_id] for route_id in batch.route_ids if route_id in by_id]
    return BatchDetail(batch=batch, orders=store.get_orders(batch.order_ids), routes=ordered)


def get_route_detail(route_id: str, *, store: DeliveryStore | None = None) -> RouteDetail:
    store = store or get_store()
    route = store.get_route(route_id)
    if route is None:
        raise RouteNotFoundError(route_id)

    stops = store.get_stops(route_id)
    orders = {order.order_id: order for order in store.get_orders([stop.order_id for stop in stops])}
    details = []
    for stop in stops:
        order = orders.get(stop.order_id)
        url = None
        if order is not None and order.latitude is not None and order.longitude is not None:
            url = navigation_url(order.latitude, order.longitude)
        details.append(StopDetail(stop=stop, order=order, navigation_url=url))

    path: list[tuple[float, float]] = []
    if route.polyline:
        try:
            path = decode_polyline(route.polyline)
        except ValueError as exc:
            logger.warning(f"Could not decode polyline for route {route_id}: {exc}")
    return RouteDetail(route=route, stops=details, path=path)


def _transition(
    batch_id: str,
    expected: str,
    target: str,
    store: DeliveryStore | None,
) -> Batch:
    store = store or get_store()
    batch = store.get_batch(batch_id)
    if batch is None:
        raise BatchNotFoundError(batch_id)
    if batch.status != expected:
        raise BatchStateError(f"Batch is {batch.status}; expected {expected} to mark it {target}")
    batch.status = target
    now = datetime.now(timezone.utc)
    if target == BATCH_DISPATCHED:
        batch.dispatched_at = now
    elif target == BATCH_COMPLETED:
        batch.completed_at = now
    store.save_batch(batch)
    return batch


def dispatch_batch(batch_id: str, *, store: DeliveryStore | None = None) -> Batch:
    """Hand generated routes to drivers. Routes and stops are not modified."""
    return _transition(batch_id, BATCH_ROUTES_GENERATED, BATCH_DISPATCHED, store)


def complete_batch(batch_id: str, *, store: DeliveryStore | None = None) -> Batch:
    return _transition(batch_id, BATCH_DISPATCHED, BATCH_COMPLETED, store)
