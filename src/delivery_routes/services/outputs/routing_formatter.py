"""Serializers for route generation outputs."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict
from typing import Mapping, Sequence

from ...models.domain import Stop
from ..routing.models import GenerationResult


def generation_result_to_json(result: GenerationResult) -> dict:
    return {
        "batch_id": result.batch_id,
        "routes_created": result.routes_created,
        "forced_assignments": result.forced_assignments,
        "fallback": asdict(result.fallback) if result.fallback else None,
        "metadata": result.metadata,
        "routes": [asdict(route) for route in result.routes],
    }


def generation_stops_to_csv(result: GenerationResult, stops_by_route: Mapping[str, Sequence[Stop]]) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "route_id",
        "driver_id",
        "sequence",
        "order_id",
        "estimated_arrival",
        "estimated_departure",
        "forced_assignment",
        "total_distance_meters",
        "total_duration_seconds",
        "total_stops",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for route in result.routes:
        for stop in stops_by_route.get(route.route_id, []):
            writer.writerow(
                {
                    "route_id": route.route_id,
                    "driver_id": route.driver_id,
                    "sequence": stop.sequence,
                    "order_id": stop.order_id,
                    "estimated_arrival": stop.estimated_arrival.isoformat(),
                    "estimated_departure": stop.estimated_departure.isoformat()
                    if stop.estimated_departure
                    else "",
                    "forced_assignment": stop.forced_assignment,
                    "total_distance_meters": route.total_distance_meters,
                    "total_duration_seconds": route.total_duration_seconds,
                    "total_stops": route.total_stops,
                }
            )
    return buffer.getvalue()
