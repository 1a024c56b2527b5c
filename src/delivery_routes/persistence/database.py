"""Supabase persistence for batches, routes and stops."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Sequence

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import Batch, DeliveryAddress, Driver, Order, Route, Stop
from ..services.routing.models import PlannedRoute
from .store import materialize, order_drivers

logger = logging.getLogger(__name__)

BATCHES_TABLE = "delivery_batches"
ORDERS_TABLE = "orders"
DRIVERS_TABLE = "drivers"
ROUTES_TABLE = "routes"
STOPS_TABLE = "stops"


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _float_or_none(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def batch_to_row(batch: Batch) -> dict:
    return {
        "id": batch.batch_id,
        "delivery_date": _iso(batch.delivery_date),
        "status": batch.status,
        "order_ids": list(batch.order_ids),
        "route_ids": list(batch.route_ids),
        "delivery_window_start": batch.delivery_window_start,
        "delivery_window_end": batch.delivery_window_end,
        "locked_at": _iso(batch.locked_at),
        "generated_at": _iso(batch.generated_at),
        "dispatched_at": _iso(batch.dispatched_at),
        "completed_at": _iso(batch.completed_at),
    }


def batch_from_row(row: dict) -> Batch:
    return Batch(
        batch_id=str(row["id"]),
        delivery_date=_date(row["delivery_date"]),
        status=row.get("status") or "collecting",
        order_ids=[str(item) for item in row.get("order_ids") or []],
        route_ids=[str(item) for item in row.get("route_ids") or []],
        delivery_window_start=row.get("delivery_window_start"),
        delivery_window_end=row.get("delivery_window_end"),
        locked_at=_datetime(row.get("locked_at")),
        generated_at=_datetime(row.get("generated_at")),
        dispatched_at=_datetime(row.get("dispatched_at")),
        completed_at=_datetime(row.get("completed_at")),
    )


def order_from_row(row: dict) -> Order:
    location = row.get("location") or {}
    address = row.get("delivery_address") or {}
    return Order(
        order_id=str(row["id"]),
        latitude=_float_or_none(location.get("lat")),
        longitude=_float_or_none(location.get("lng")),
        address=DeliveryAddress(
            line1=str(address.get("line1") or ""),
            postcode=str(address.get("postcode") or ""),
            line2=address.get("line2"),
            city=address.get("city"),
        ),
        status=row.get("status") or "paid",
        delivery_date=_date(row.get("delivery_date")),
    )


def driver_from_row(row: dict) -> Driver:
    return Driver(
        driver_id=str(row["id"]),
        name=row.get("name") or "",
        email=row.get("email"),
        role=row.get("role") or "",
        status=row.get("status") or "",
    )


def route_to_row(route: Route) -> dict:
    return {
        "id": route.route_id,
        "batch_id": route.batch_id,
        "driver_id": route.driver_id,
        "total_stops": route.total_stops,
        "total_distance_meters": route.total_distance_meters,
        "total_duration_seconds": route.total_duration_seconds,
        "polyline": route.polyline,
        "status": route.status,
    }


def route_from_row(row: dict) -> Route:
    return Route(
        route_id=str(row["id"]),
        batch_id=str(row["batch_id"]),
        driver_id=str(row["driver_id"]),
        total_stops=int(row.get("total_stops") or 0),
        total_distance_meters=int(row.get("total_distance_meters") or 0),
        total_duration_seconds=int(row.get("total_duration_seconds") or 0),
        polyline=row.get("polyline"),
        status=row.get("status") or "planned",
    )


def stop_to_row(stop: Stop) -> dict:
    return {
        "id": stop.stop_id,
        "route_id": stop.route_id,
        "order_id": stop.order_id,
        "sequence": stop.sequence,
        "estimated_arrival": _iso(stop.estimated_arrival),
        "estimated_departure": _iso(stop.estimated_departure),
        "status": stop.status,
        "forced_assignment": stop.forced_assignment,
    }


def stop_from_row(row: dict) -> Stop:
    return Stop(
        stop_id=str(row["id"]),
        route_id=str(row["route_id"]),
        order_id=str(row["order_id"]),
        sequence=int(row["sequence"]),
        estimated_arrival=_datetime(row.get("estimated_arrival")),
        estimated_departure=_datetime(row.get("estimated_departure")),
        status=row.get("status") or "pending",
        forced_assignment=bool(row.get("forced_assignment")),
    )


class SupabaseDeliveryStore:
    """Delivery store backed by Supabase tables.

    ``replace_routes`` deletes the batch's previous routes and stops before
    inserting the new set, so re-running generation for a batch never leaves
    duplicate stops behind.
    """

    def __init__(self, client=None, driver_role: str | None = None) -> None:
        self.client = client or get_supabase_client()
        if self.client is None:
            raise ValueError(
                "Supabase not configured. Set DELIVERY_SUPABASE_URL and DELIVERY_SUPABASE_KEY environment variables."
            )
        self.driver_role = driver_role or settings.driver_role

    def _table(self, name: str):
        return self.client.table(name)

    def get_batch(self, batch_id: str) -> Batch | None:
        response = self._table(BATCHES_TABLE).select("*").eq("id", batch_id).limit(1).execute()
        rows = response.data or []
        return batch_from_row(rows[0]) if rows else None

    def find_batch_for_date(self, delivery_date: date) -> Batch | None:
        response = (
            self._table(BATCHES_TABLE).select("*").eq("delivery_date", delivery_date.isoformat()).limit(1).execute()
        )
        rows = response.data or []
        return batch_from_row(rows[0]) if rows else None

    def save_batch(self, batch: Batch) -> Batch:
        self._table(BATCHES_TABLE).upsert(batch_to_row(batch)).execute()
        return batch

    def get_orders(self, order_ids: Sequence[str]) -> list[Order]:
        if not order_ids:
            return []
        response = self._table(ORDERS_TABLE).select("*").in_("id", list(order_ids)).execute()
        by_id = {str(row["id"]): order_from_row(row) for row in response.data or []}
        return [by_id[order_id] for order_id in dict.fromkeys(order_ids) if order_id in by_id]

    def find_paid_orders_for_date(self, delivery_date: date) -> list[Order]:
        response = (
            self._table(ORDERS_TABLE)
            .select("*")
            .eq("delivery_date", delivery_date.isoformat())
            .eq("status", "paid")
            .execute()
        )
        return [order_from_row(row) for row in response.data or []]

    def list_active_drivers(self, driver_ids: Sequence[str] | None = None) -> list[Driver]:
        query = (
            self._table(DRIVERS_TABLE).select("*").eq("status", "active").eq("role", self.driver_role).order("id")
        )
        if driver_ids:
            query = query.in_("id", list(driver_ids))
        response = query.execute()
        return order_drivers((driver_from_row(row) for row in response.data or []), driver_ids)

    def replace_routes(self, batch_id: str, plans: Sequence[PlannedRoute]) -> list[Route]:
        existing = self._table(ROUTES_TABLE).select("id").eq("batch_id", batch_id).execute()
        stale_ids = [str(row["id"]) for row in existing.data or []]
        if stale_ids:
            logger.info(f"Removing {len(stale_ids)} previously generated routes for batch {batch_id}")
            self._table(STOPS_TABLE).delete().in_("route_id", stale_ids).execute()
            self._table(ROUTES_TABLE).delete().in_("id", stale_ids).execute()

        created = [materialize(batch_id, plan) for plan in plans if plan.stops]
        if not created:
            return []
        self._table(ROUTES_TABLE).insert([route_to_row(route) for route, _ in created]).execute()
        stop_rows = [stop_to_row(stop) for _, stops in created for stop in stops]
        self._table(STOPS_TABLE).insert(stop_rows).execute()
        return [route for route, _ in created]

    def get_routes_for_batch(self, batch_id: str) -> list[Route]:
        response = self._table(ROUTES_TABLE).select("*").eq("batch_id", batch_id).execute()
        return [route_from_row(row) for row in response.data or []]

    def get_route(self, route_id: str) -> Route | None:
        response = self._table(ROUTES_TABLE).select("*").eq("id", route_id).limit(1).execute()
        rows = response.data or []
        return route_from_row(rows[0]) if rows else None

    def get_stops(self, route_id: str) -> list[Stop]:
        response = self._table(STOPS_TABLE).select("*").eq("route_id", route_id).order("sequence").execute()
        return [stop_from_row(row) for row in response.data or []]
