"""HTTP client for the external fleet routing optimizer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Sequence

import httpx
from google.auth import default as google_default_credentials
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from ...config import settings
from .errors import OptimizerError
from .models import OptimizerRoute, OptimizerSolution, OptimizerVisit, SkippedShipment
from .time_window import parse_timestamp

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str]


class ServiceAccountTokenProvider:
    """Hands out short-lived bearer tokens, refreshing the credentials when they expire."""

    def __init__(
        self,
        credentials_file: Path | None = None,
        scopes: Sequence[str] | None = None,
    ) -> None:
        self.credentials_file = credentials_file or settings.optimizer_credentials_file
        self.scopes = list(scopes or settings.optimizer_scopes)
        self._credentials = None

    def _load(self):
        if self.credentials_file:
            return service_account.Credentials.from_service_account_file(
                str(self.credentials_file), scopes=self.scopes
            )
        credentials, _ = google_default_credentials(scopes=self.scopes)
        return credentials

    def __call__(self) -> str:
        if self._credentials is None:
            self._credentials = self._load()
        if not self._credentials.valid:
            self._credentials.refresh(GoogleAuthRequest())
        return self._credentials.token


class FleetRoutingClient:
    def __init__(
        self,
        project_id: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        token_provider: TokenProvider | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.project_id = project_id or settings.optimizer_project_id
        if not self.project_id:
            raise ValueError("Fleet routing project id is not configured.")
        self.base_url = (base_url or settings.optimizer_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.optimizer_timeout_seconds
        self.token_provider = token_provider or ServiceAccountTokenProvider()
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/projects/{self.project_id}:optimizeTours"

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self.transport,
        )

    def _access_token(self) -> str:
        try:
            token = self.token_provider()
        except (GoogleAuthError, OSError, ValueError) as exc:
            raise OptimizerError(f"Failed to obtain fleet routing credentials: {exc}") from exc
        if not token:
            raise OptimizerError("Fleet routing credentials returned an empty access token.")
        return token

    def optimize_tours(self, request_body: dict) -> OptimizerSolution:
        """Send one optimization request. Failures are not retried here."""
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }
        shipments = len(request_body.get("model", {}).get("shipments", []))
        vehicles = len(request_body.get("model", {}).get("vehicles", []))
        logger.info(f"Requesting fleet routing for {shipments} shipments and {vehicles} vehicles")

        client = self._get_client()
        try:
            response = client.post(self.endpoint, json=request_body, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:500]
            raise OptimizerError(
                f"Fleet routing request failed with status {exc.response.status_code}: {detail}"
            ) from exc
        except httpx.HTTPError as exc:
            raise OptimizerError(f"Failed to reach fleet routing service at {self.base_url}: {exc}") from exc
        except ValueError as exc:
            raise OptimizerError(f"Fleet routing response was not valid JSON: {exc}") from exc
        finally:
            client.close()

        if not isinstance(data, dict):
            raise OptimizerError("Fleet routing response was not a JSON object.")
        return parse_solution(data)


def parse_duration_seconds(value: Any) -> int:
    """Parse ``"123s"`` style durations or plain numbers; anything else counts as zero."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(0, round(value))
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("s"):
            text = text[:-1]
        try:
            return max(0, round(float(text)))
        except ValueError:
            return 0
    return 0


def _int_field(value: Any, default: int = 0) -> int:
    # proto3 JSON omits zero-valued integers, so a missing index means 0
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _extract_polyline(route: dict) -> str | None:
    for key in ("routePolyline", "polyline"):
        container = route.get(key)
        if isinstance(container, dict):
            points = container.get("points")
            if isinstance(points, str) and points.strip():
                return points
    return None


def _parse_visit(raw: dict) -> OptimizerVisit | None:
    if raw.get("isPickup"):
        return None
    start_time = None
    if raw.get("startTime"):
        try:
            start_time = parse_timestamp(str(raw["startTime"]))
        except ValueError:
            logger.warning(f"Ignoring unparseable visit start time {raw['startTime']!r}")
    return OptimizerVisit(shipment_index=_int_field(raw.get("shipmentIndex")), start_time=start_time)


def parse_solution(data: dict) -> OptimizerSolution:
    routes: list[OptimizerRoute] = []
    for raw_route in data.get("routes") or []:
        if not isinstance(raw_route, dict):
            continue
        metrics = raw_route.get("metrics") or {}
        visits = [
            visit
            for visit in (_parse_visit(raw) for raw in raw_route.get("visits") or [] if isinstance(raw, dict))
            if visit is not None
        ]
        routes.append(
            OptimizerRoute(
                vehicle_index=_int_field(raw_route.get("vehicleIndex")),
                vehicle_label=raw_route.get("vehicleLabel") or None,
                visits=visits,
                distance_meters=_int_field(metrics.get("travelDistanceMeters")),
                duration_seconds=parse_duration_seconds(
                    metrics.get("totalDuration") or metrics.get("travelDuration")
                ),
                polyline=_extract_polyline(raw_route),
            )
        )

    skipped = [
        SkippedShipment(
            index=_int_field(raw.get("index")),
            reasons=[
                str(reason.get("code", "UNSPECIFIED"))
                for reason in raw.get("reasons") or []
                if isinstance(reason, dict)
            ],
        )
        for raw in data.get("skippedShipments") or []
        if isinstance(raw, dict)
    ]
    return OptimizerSolution(routes=routes, skipped=skipped)


def check_credentials(token_provider: TokenProvider | None = None) -> bool:
    """Return True when a bearer token for the optimizer can be obtained."""
    if not settings.optimizer_project_id:
        return False
    try:
        provider = token_provider or ServiceAccountTokenProvider()
        return bool(provider())
    except (GoogleAuthError, OSError, ValueError) as exc:
        logger.warning(f"Fleet routing credential check failed: {exc}")
        return False
