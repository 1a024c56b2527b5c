"""Encoded polyline helpers."""

from __future__ import annotations

GOOGLE_MAPS_DIRECTIONS_URL = "https://www.google.com/maps/dir/"


def _decode_value(polyline: str, index: int) -> tuple[int, int]:
    shift = 0
    result = 0
    while True:
        b = ord(polyline[index]) - 63
        index += 1
        result |= (b & 0x1f) << shift
        shift += 5
        if b < 0x20:
            break
    value = ~(result >> 1) if (result & 1) else (result >> 1)
    return value, index


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode a Google encoded polyline into (lat, lon) pairs.

    Raises ValueError when the string is truncated.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0
    try:
        while index < len(polyline):
            dlat, index = _decode_value(polyline, index)
            dlon, index = _decode_value(polyline, index)
            lat += dlat
            lon += dlon
            coordinates.append((lat / 1e5, lon / 1e5))
    except IndexError as exc:
        raise ValueError("Encoded polyline is truncated.") from exc
    return coordinates


def navigation_url(latitude: float, longitude: float) -> str:
    """Google Maps directions link to a stop, opened by the driver's phone."""
    return f"{GOOGLE_MAPS_DIRECTIONS_URL}?api=1&destination={latitude},{longitude}"
