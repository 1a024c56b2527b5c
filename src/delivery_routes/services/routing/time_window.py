"""Resolve delivery windows into absolute timestamps on the batch date."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...config import settings
from .errors import InvalidDeliveryWindowError
from .models import DeliveryWindow

_HHMM = re.compile(r"^(\d{2}):(\d{2})$")
_FRACTION = re.compile(r"\.(\d+)")

FULL_DAY = timedelta(hours=24)


def is_hhmm(value: object) -> bool:
    if not isinstance(value, str):
        return False
    match = _HHMM.match(value)
    if not match:
        return False
    hours, minutes = int(match.group(1)), int(match.group(2))
    return 0 <= hours <= 23 and 0 <= minutes <= 59


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp, including the nanosecond form the optimizer emits."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidDeliveryWindowError(f"Unknown delivery time zone '{name}'") from exc


def local_time_on_date(delivery_date: date, hhmm: str, time_zone: str) -> datetime:
    """Return the UTC instant of wall-clock ``hhmm`` on ``delivery_date`` in ``time_zone``."""
    hours, minutes = (int(part) for part in hhmm.split(":"))
    local = datetime.combine(delivery_date, time(hours, minutes), tzinfo=_zone(time_zone))
    return local.astimezone(timezone.utc)


def _resolve(candidate: str | None, delivery_date: date, time_zone: str, label: str) -> datetime | None:
    if candidate is None or not candidate.strip():
        return None
    value = candidate.strip()
    if not is_hhmm(value):
        raise InvalidDeliveryWindowError(f"Invalid {label} time '{value}': expected HH:mm on the batch date")
    return local_time_on_date(delivery_date, value, time_zone)


def resolve_delivery_window(
    delivery_date: date,
    *,
    start_time: str | None = None,
    end_time: str | None = None,
    stored_start: str | None = None,
    stored_end: str | None = None,
    time_zone: str | None = None,
) -> DeliveryWindow:
    """Pick explicit times over the batch's stored window, defaulting to the whole day."""
    zone_name = time_zone or settings.delivery_time_zone
    start_candidate = start_time if start_time and start_time.strip() else stored_start
    end_candidate = end_time if end_time and end_time.strip() else stored_end

    start = _resolve(start_candidate, delivery_date, zone_name, "start")
    if start is None:
        start = local_time_on_date(delivery_date, "00:00", zone_name)

    end = _resolve(end_candidate, delivery_date, zone_name, "end")
    if end is None:
        end = start + FULL_DAY

    if end <= start:
        raise InvalidDeliveryWindowError(
            f"Delivery window end ({format_timestamp(end)}) must be after start ({format_timestamp(start)})"
        )
    return DeliveryWindow(start=start, end=end)
