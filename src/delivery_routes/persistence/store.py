"""Storage interface for batches, orders, drivers, routes and stops."""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import date
from typing import Iterable, Protocol, Sequence

from ..config import settings
from ..models.domain import Batch, Driver, Order, Route, Stop
from ..services.routing.models import PlannedRoute


def new_id() -> str:
    return uuid.uuid4().hex


class DeliveryStore(Protocol):
    def get_batch(self, batch_id: str) -> Batch | None: ...

    def find_batch_for_date(self, delivery_date: date) -> Batch | None: ...

    def save_batch(self, batch: Batch) -> Batch: ...

    def get_orders(self, order_ids: Sequence[str]) -> list[Order]: ...

    def find_paid_orders_for_date(self, delivery_date: date) -> list[Order]: ...

    def list_active_drivers(self, driver_ids: Sequence[str] | None = None) -> list[Driver]: ...

    def replace_routes(self, batch_id: str, plans: Sequence[PlannedRoute]) -> list[Route]: ...

    def get_routes_for_batch(self, batch_id: str) -> list[Route]: ...

    def get_route(self, route_id: str) -> Route | None: ...

    def get_stops(self, route_id: str) -> list[Stop]: ...


def order_drivers(drivers: Iterable[Driver], driver_ids: Sequence[str] | None = None) -> list[Driver]:
    """Sort eligible drivers by id, or by the caller's selection order when one was given."""
    if not driver_ids:
        return sorted(drivers, key=lambda driver: driver.driver_id)
    rank = {driver_id: position for position, driver_id in enumerate(dict.fromkeys(driver_ids))}
    return sorted((driver for driver in drivers if driver.driver_id in rank), key=lambda driver: rank[driver.driver_id])


def materialize(batch_id: str, plan: PlannedRoute) -> tuple[Route, list[Stop]]:
    """Assign identifiers to a planned route and its stops."""
    route = Route(
        route_id=new_id(),
        batch_id=batch_id,
        driver_id=plan.driver_id,
        total_stops=plan.stop_count,
        total_distance_meters=plan.distance_meters,
        total_duration_seconds=plan.duration_seconds,
        polyline=plan.polyline,
    )
    stops = [
        Stop(
            stop_id=new_id(),
            route_id=route.route_id,
            order_id=stop.order_id,
            sequence=stop.sequence,
            estimated_arrival=stop.estimated_arrival,
            estimated_departure=stop.estimated_departure,
            forced_assignment=stop.forced_assignment,
        )
        for stop in plan.stops
    ]
    return route, stops


class InMemoryDeliveryStore:
    """Process-local store used for development and tests."""

    def __init__(
        self,
        *,
        orders: Iterable[Order] = (),
        drivers: Iterable[Driver] = (),
        batches: Iterable[Batch] = (),
        driver_role: str | None = None,
    ) -> None:
        self.driver_role = driver_role or settings.driver_role
        self.orders: dict[str, Order] = {order.order_id: order for order in orders}
        self.drivers: dict[str, Driver] = {driver.driver_id: driver for driver in drivers}
        self.batches: dict[str, Batch] = {batch.batch_id: batch for batch in batches}
        self.routes: dict[str, Route] = {}
        self.stops: dict[str, list[Stop]] = {}
        self._lock = threading.Lock()

    def get_batch(self, batch_id: str) -> Batch | None:
        batch = self.batches.get(batch_id)
        return replace(batch, order_ids=list(batch.order_ids), route_ids=list(batch.route_ids)) if batch else None

    def find_batch_for_date(self, delivery_date: date) -> Batch | None:
        for batch in self.batches.values():
            if batch.delivery_date == delivery_date:
                return self.get_batch(batch.batch_id)
        return None

    def save_batch(self, batch: Batch) -> Batch:
        with self._lock:
            self.batches[batch.batch_id] = replace(
                batch, order_ids=list(batch.order_ids), route_ids=list(batch.route_ids)
            )
        return batch

    def get_orders(self, order_ids: Sequence[str]) -> list[Order]:
        return [self.orders[order_id] for order_id in dict.fromkeys(order_ids) if order_id in self.orders]

    def find_paid_orders_for_date(self, delivery_date: date) -> list[Order]:
        return [
            order
            for order in self.orders.values()
            if order.status == "paid" and order.delivery_date == delivery_date
        ]

    def list_active_drivers(self, driver_ids: Sequence[str] | None = None) -> list[Driver]:
        eligible = [
            driver
            for driver in self.drivers.values()
            if driver.status == "active" and driver.role == self.driver_role
        ]
        return order_drivers(eligible, driver_ids)

    def replace_routes(self, batch_id: str, plans: Sequence[PlannedRoute]) -> list[Route]:
        created = [materialize(batch_id, plan) for plan in plans if plan.stops]
        with self._lock:
            stale = [route_id for route_id, route in self.routes.items() if route.batch_id == batch_id]
            for route_id in stale:
                del self.routes[route_id]
                self.stops.pop(route_id, None)
            for route, stops in created:
                self.routes[route.route_id] = route
                self.stops[route.route_id] = stops
        return [route for route, _ in created]

    def get_routes_for_batch(self, batch_id: str) -> list[Route]:
        return [route for route in self.routes.values() if route.batch_id == batch_id]

    def get_route(self, route_id: str) -> Route | None:
        return self.routes.get(route_id)

    def get_stops(self, route_id: str) -> list[Stop]:
        return sorted(self.stops.get(route_id, []), key=lambda stop: stop.sequence)


_store: DeliveryStore | None = None


def get_store() -> DeliveryStore:
    """Return the process-wide store selected by ``settings.store_backend``."""
    global _store
    if _store is None:
        if settings.store_backend == "supabase":
            from .database import SupabaseDeliveryStore

            _store = SupabaseDeliveryStore()
        else:
            _store = InMemoryDeliveryStore()
    return _store


def set_store(store: DeliveryStore | None) -> None:
    global _store
    _store = store
