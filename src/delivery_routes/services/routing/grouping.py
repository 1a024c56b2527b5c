"""Group orders that share a drop-off point into optimizer visits."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from ...config import settings
from ...models.domain import Order
from .models import VisitGroup

KEY_SEPARATOR = "|"


def is_valid_lat_lng(lat: object, lng: object) -> bool:
    """Return True for finite numeric coordinates inside the WGS84 range."""
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if not math.isfinite(lat) or not math.isfinite(lng):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def find_invalid_geo_orders(orders: Iterable[Order]) -> list[str]:
    return [order.order_id for order in orders if not is_valid_lat_lng(order.latitude, order.longitude)]


def _normalize(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.split()).upper()


def location_key(order: Order, precision: int | None = None) -> str:
    """Build the key orders must share to be delivered in one visit.

    Rounded latitude, rounded longitude, postcode and address line 1, the
    address parts trimmed, whitespace-collapsed and upper-cased.
    """
    digits = settings.location_precision if precision is None else precision
    lat = f"{float(order.latitude):.{digits}f}"
    lng = f"{float(order.longitude):.{digits}f}"
    return KEY_SEPARATOR.join(
        (lat, lng, _normalize(order.address.postcode), _normalize(order.address.line1))
    )


def group_orders(orders: Sequence[Order], precision: int | None = None) -> list[VisitGroup]:
    """Cluster orders by location key, keeping first-seen order for groups and members."""
    groups: list[VisitGroup] = []
    by_key: dict[str, VisitGroup] = {}
    for order in orders:
        key = location_key(order, precision)
        group = by_key.get(key)
        if group is None:
            group = VisitGroup(
                index=len(groups),
                key=key,
                latitude=float(order.latitude),
                longitude=float(order.longitude),
            )
            by_key[key] = group
            groups.append(group)
        group.orders.append(order)
    return groups
