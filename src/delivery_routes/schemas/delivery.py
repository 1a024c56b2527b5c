"""Delivery batch and route generation request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CreateBatchRequest(BaseModel):
    delivery_date: date


class GenerateRoutesRequest(BaseModel):
    driver_ids: Optional[List[str]] = Field(
        default=None,
        description="Restrict routing to these drivers. All active drivers are used when omitted.",
    )
    start_time: Optional[str] = Field(default=None, description="Window start as HH:mm on the batch date.")
    end_time: Optional[str] = Field(default=None, description="Window end as HH:mm on the batch date.")
    export_snapshot: bool = Field(
        default=False,
        description="Also write summary.json and stops.csv under the data root.",
    )


class FallbackSummaryModel(BaseModel):
    mode: str
    orders_placed: int
    groups_placed: int
    driver_ids: List[str]
    skipped_reasons: Dict[int, List[str]] = Field(default_factory=dict)


class RouteModel(BaseModel):
    route_id: str
    batch_id: str
    driver_id: str
    total_stops: int
    total_distance_meters: int
    total_duration_seconds: int
    polyline: Optional[str] = None
    status: str


class GenerateRoutesResponse(BaseModel):
    success: bool = True
    batch_id: str
    routes_created: int
    forced_assignments: int
    fallback: Optional[FallbackSummaryModel] = None
    routes: List[RouteModel]
    metadata: dict = Field(default_factory=dict)


class FailureResponse(BaseModel):
    success: bool = False
    message: str
    invalid_geo_orders: Optional[List[str]] = None
    missing_orders: Optional[List[str]] = None


class BatchModel(BaseModel):
    batch_id: str
    delivery_date: date
    status: str
    order_ids: List[str]
    route_ids: List[str]
    delivery_window_start: Optional[str] = None
    delivery_window_end: Optional[str] = None
    locked_at: Optional[datetime] = None
    generated_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class OrderLocationModel(BaseModel):
    order_id: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address_line1: str
    postcode: str


class BatchDetailResponse(BaseModel):
    batch: BatchModel
    orders: List[OrderLocationModel]
    routes: List[RouteModel]


class StopModel(BaseModel):
    stop_id: str
    order_id: str
    sequence: int
    estimated_arrival: datetime
    estimated_departure: Optional[datetime] = None
    status: str
    forced_assignment: bool
    navigation_url: Optional[str] = None
    order: Optional[OrderLocationModel] = None


class RouteDetailResponse(BaseModel):
    route: RouteModel
    stops: List[StopModel]
    path: List[List[float]] = Field(default_factory=list)
