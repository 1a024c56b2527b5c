import json
from datetime import datetime, timezone

import httpx
import pytest
from google.auth.exceptions import RefreshError

from delivery_routes.services.routing.errors import OptimizerError
from delivery_routes.services.routing.optimizer_client import (
    FleetRoutingClient,
    check_credentials,
    parse_duration_seconds,
    parse_solution,
)

SAMPLE_RESPONSE = {
    "routes": [
        {
            "vehicleLabel": "D1",
            "visits": [
                {"startTime": "2025-01-15T09:20:00Z"},
                {"shipmentIndex": 2, "startTime": "2025-01-15T09:45:00.500Z"},
            ],
            "metrics": {"travelDistanceMeters": 12500, "totalDuration": "5400s"},
            "routePolyline": {"points": "_p~iF~ps|U_ulLnnqC"},
        },
        {"vehicleIndex": 1, "vehicleLabel": "D2"},
    ],
    "skippedShipments": [{"index": 1, "reasons": [{"code": "DEMAND_EXCEEDS_VEHICLE_CAPACITY"}]}],
}


def _client(handler, token_provider=lambda: "token-123") -> FleetRoutingClient:
    return FleetRoutingClient(
        project_id="proj",
        base_url="https://optimizer.test/v1",
        token_provider=token_provider,
        transport=httpx.MockTransport(handler),
    )


def test_optimize_tours_posts_with_bearer_token():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=SAMPLE_RESPONSE)

    solution = _client(handler).optimize_tours({"model": {"shipments": [{}], "vehicles": [{}]}})

    assert captured["url"] == "https://optimizer.test/v1/projects/proj:optimizeTours"
    assert captured["auth"] == "Bearer token-123"
    assert captured["body"]["model"]["shipments"] == [{}]
    assert len(solution.routes) == 2
    assert solution.skipped[0].index == 1


def test_parse_solution_reads_visits_metrics_and_polyline():
    solution = parse_solution(SAMPLE_RESPONSE)
    first, second = solution.routes

    assert first.vehicle_label == "D1"
    assert first.vehicle_index == 0
    # shipmentIndex 0 is omitted from proto3 JSON
    assert [visit.shipment_index for visit in first.visits] == [0, 2]
    assert first.visits[0].start_time == datetime(2025, 1, 15, 9, 20, tzinfo=timezone.utc)
    assert first.visits[1].start_time.microsecond == 500000
    assert first.distance_meters == 12500
    assert first.duration_seconds == 5400
    assert first.polyline == "_p~iF~ps|U_ulLnnqC"

    assert second.vehicle_index == 1
    assert second.visits == []
    assert solution.skipped[0].reasons == ["DEMAND_EXCEEDS_VEHICLE_CAPACITY"]


def test_parse_solution_handles_empty_response():
    solution = parse_solution({})

    assert solution.routes == []
    assert solution.skipped == []


def test_visit_without_start_time_keeps_none():
    solution = parse_solution({"routes": [{"vehicleLabel": "D1", "visits": [{"shipmentIndex": 3}]}]})

    assert solution.routes[0].visits[0].start_time is None


def test_parse_duration_seconds():
    assert parse_duration_seconds("123s") == 123
    assert parse_duration_seconds("12.6s") == 13
    assert parse_duration_seconds(45) == 45
    assert parse_duration_seconds("garbage") == 0
    assert parse_duration_seconds(None) == 0
    assert parse_duration_seconds(-5) == 0


def test_http_error_status_raises_optimizer_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"message": "permission denied"}})

    with pytest.raises(OptimizerError, match="status 403"):
        _client(handler).optimize_tours({"model": {}})


def test_network_failure_raises_optimizer_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(OptimizerError, match="Failed to reach"):
        _client(handler).optimize_tours({"model": {}})


def test_invalid_json_raises_optimizer_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(OptimizerError, match="not valid JSON"):
        _client(handler).optimize_tours({"model": {}})


def test_auth_failure_raises_before_any_request():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    def failing_token():
        raise RefreshError("invalid_grant")

    with pytest.raises(OptimizerError, match="credentials"):
        _client(handler, token_provider=failing_token).optimize_tours({"model": {}})
    assert calls == []


def test_client_requires_project_id(monkeypatch: pytest.MonkeyPatch):
    from delivery_routes.config import settings

    monkeypatch.setattr(settings, "optimizer_project_id", None)

    with pytest.raises(ValueError, match="project id"):
        FleetRoutingClient(token_provider=lambda: "token")


def test_check_credentials(monkeypatch: pytest.MonkeyPatch):
    from delivery_routes.config import settings

    monkeypatch.setattr(settings, "optimizer_project_id", "proj")
    assert check_credentials(lambda: "token") is True

    def failing_token():
        raise RefreshError("expired")

    assert check_credentials(failing_token) is False

    monkeypatch.setattr(settings, "optimizer_project_id", None)
    assert check_credentials(lambda: "token") is False
