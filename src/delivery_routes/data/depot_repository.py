"""Warehouse lookup for route generation."""

import logging

from ..config import settings
from ..models.domain import Depot
from ..services.routing.grouping import is_valid_lat_lng

logger = logging.getLogger(__name__)

DEPOT_CODE = "WAREHOUSE"


def _parse_coordinate(value: str | float | None) -> float | None:
    if value is None:
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def resolve_depot() -> Depot | None:
    """Return the configured depot, or None when its coordinates are missing or unusable."""
    raw_lat, raw_lng = settings.depot_latitude, settings.depot_longitude
    lat, lng = _parse_coordinate(raw_lat), _parse_coordinate(raw_lng)
    if not is_valid_lat_lng(lat, lng):
        logger.warning(f"Depot coordinates are not configured or invalid (lat={raw_lat!r}, lng={raw_lng!r})")
        return None
    return Depot(code=DEPOT_CODE, latitude=lat, longitude=lng)
