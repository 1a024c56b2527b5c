"""Delivery batch and route generation endpoints."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import asdict
from typing import Iterator

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from ...models.domain import Batch, Order, Route
from ...schemas.delivery import (
    BatchDetailResponse,
    BatchModel,
    CreateBatchRequest,
    FailureResponse,
    FallbackSummaryModel,
    GenerateRoutesRequest,
    GenerateRoutesResponse,
    OrderLocationModel,
    RouteDetailResponse,
    RouteModel,
    StopModel,
)
from ...services.delivery import batches as batch_service
from ...services.routing import service as routing_service
from ...services.routing.errors import BatchStateError, OptimizerError, RouteGenerationError

router = APIRouter(prefix="/delivery", tags=["delivery"])

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_running_batches: set[str] = set()


@contextmanager
def batch_generation_lock(batch_id: str) -> Iterator[None]:
    """Allow one generation run per batch in this process; a second caller gets BatchStateError."""
    with _locks_guard:
        if batch_id in _running_batches:
            raise BatchStateError(f"Route generation is already running for batch '{batch_id}'")
        _running_batches.add(batch_id)
    try:
        yield
    finally:
        with _locks_guard:
            _running_batches.discard(batch_id)


def _failure(status_code: int, payload: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=FailureResponse(**payload).model_dump(exclude_none=True))


def _batch_model(batch: Batch) -> BatchModel:
    return BatchModel(**asdict(batch))


def _route_model(route: Route) -> RouteModel:
    return RouteModel(**asdict(route))


def _order_model(order: Order) -> OrderLocationModel:
    return OrderLocationModel(
        order_id=order.order_id,
        latitude=order.latitude,
        longitude=order.longitude,
        address_line1=order.address.line1,
        postcode=order.address.postcode,
    )


@router.post("/batches", response_model=BatchModel, status_code=status.HTTP_201_CREATED)
def create_batch(payload: CreateBatchRequest):
    try:
        return _batch_model(batch_service.create_delivery_batch(payload.delivery_date))
    except RouteGenerationError as exc:
        return _failure(exc.status_code, exc.payload())


@router.post(
    "/batches/{batch_id}/generate-routes",
    response_model=GenerateRoutesResponse,
    status_code=status.HTTP_200_OK,
    responses={400: {"model": FailureResponse}, 404: {"model": FailureResponse}, 502: {"model": FailureResponse}},
)
def generate_routes(batch_id: str, payload: GenerateRoutesRequest | None = None):
    payload = payload or GenerateRoutesRequest()
    try:
        with batch_generation_lock(batch_id):
            result = routing_service.generate_routes_for_batch(
                batch_id,
                driver_ids=payload.driver_ids,
                start_time=payload.start_time,
                end_time=payload.end_time,
                export_snapshot=payload.export_snapshot,
            )
    except RouteGenerationError as exc:
        return _failure(exc.status_code, exc.payload())
    except OptimizerError as exc:
        logger.error(f"Route optimization failed for batch {batch_id}: {exc}")
        return _failure(OptimizerError.status_code, {"message": "Optimization failed"})
    except Exception as exc:
        logger.exception(f"Error generating routes for batch {batch_id}: {exc}")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, {"message": "Failed to generate routes"})

    return GenerateRoutesResponse(
        batch_id=result.batch_id,
        routes_created=result.routes_created,
        forced_assignments=result.forced_assignments,
        fallback=FallbackSummaryModel(**asdict(result.fallback)) if result.fallback else None,
        routes=[_route_model(route) for route in result.routes],
        metadata=result.metadata,
    )


@router.get("/batches/{batch_id}", response_model=BatchDetailResponse, status_code=status.HTTP_200_OK)
def get_batch(batch_id: str):
    try:
        detail = batch_service.get_batch_detail(batch_id)
    except RouteGenerationError as exc:
        return _failure(exc.status_code, exc.payload())
    return BatchDetailResponse(
        batch=_batch_model(detail.batch),
        orders=[_order_model(order) for order in detail.orders],
        routes=[_route_model(route) for route in detail.routes],
    )


@router.post("/batches/{batch_id}/dispatch", response_model=BatchModel, status_code=status.HTTP_200_OK)
def dispatch_batch(batch_id: str):
    try:
        return _batch_model(batch_service.dispatch_batch(batch_id))
    except RouteGenerationError as exc:
        return _failure(exc.status_code, exc.payload())


@router.post("/batches/{batch_id}/complete", response_model=BatchModel, status_code=status.HTTP_200_OK)
def complete_batch(batch_id: str):
    try:
        return _batch_model(batch_service.complete_batch(batch_id))
    except RouteGenerationError as exc:
        return _failure(exc.status_code, exc.payload())


@router.get("/routes/{route_id}", response_model=RouteDetailResponse, status_code=status.HTTP_200_OK)
def get_route(route_id: str) -> RouteDetailResponse:
    try:
        detail = batch_service.get_route_detail(route_id)
    except batch_service.RouteNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return RouteDetailResponse(
        route=_route_model(detail.route),
        stops=[
            StopModel(
                stop_id=item.stop.stop_id,
                order_id=item.stop.order_id,
                sequence=item.stop.sequence,
                estimated_arrival=item.stop.estimated_arrival,
                estimated_departure=item.stop.estimated_departure,
                status=item.stop.status,
                forced_assignment=item.stop.forced_assignment,
                navigation_url=item.navigation_url,
                order=_order_model(item.order) if item.order else None,
            )
            for item in detail.stops
        ],
        path=[[lat, lon] for lat, lon in detail.path],
    )
