import json
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from delivery_routes.models.domain import (
    BATCH_DISPATCHED,
    BATCH_LOCKED,
    BATCH_ROUTES_GENERATED,
    Batch,
    DeliveryAddress,
    Depot,
    Driver,
    Order,
)
from delivery_routes.persistence.store import InMemoryDeliveryStore
from delivery_routes.services.routing import service as routing_service
from delivery_routes.services.routing.errors import (
    BatchNotFoundError,
    BatchStateError,
    EmptyBatchError,
    InvalidDeliveryWindowError,
    InvalidDepotError,
    InvalidOrderLocationError,
    NoEligibleDriversError,
    OptimizerError,
)
from delivery_routes.services.routing.models import (
    OptimizerRoute,
    OptimizerSolution,
    OptimizerVisit,
    SkippedShipment,
)

DELIVERY_DATE = date(2025, 1, 15)
DEPOT = Depot(code="WAREHOUSE", latitude=51.45, longitude=-0.2)
WINDOW_START = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
WINDOW_END = datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc)


def _order(oid: str, line1: str, lat: float = 51.5, lng: float = -0.14) -> Order:
    return Order(
        order_id=oid,
        latitude=lat,
        longitude=lng,
        address=DeliveryAddress(line1=line1, postcode="AB1 2CD"),
        delivery_date=DELIVERY_DATE,
    )


def _driver(did: str) -> Driver:
    return Driver(driver_id=did, name=f"Driver {did}")


class FakeOptimizer:
    def __init__(self, solution: OptimizerSolution | None = None, error: Exception | None = None):
        self.solution = solution or OptimizerSolution(routes=[])
        self.error = error
        self.requests: list[dict] = []

    def optimize_tours(self, body: dict) -> OptimizerSolution:
        self.requests.append(body)
        if self.error is not None:
            raise self.error
        return self.solution


def _visits(*indices: int) -> list[OptimizerVisit]:
    return [OptimizerVisit(index) for index in indices]


@pytest.fixture(autouse=True)
def configured_depot(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(routing_service, "resolve_depot", lambda: DEPOT)


@pytest.fixture
def two_address_store() -> InMemoryDeliveryStore:
    # O1-O3 share one address, O4-O5 another
    orders = [
        _order("O1", "1 High Street"),
        _order("O2", "1 High Street"),
        _order("O3", "1 High Street"),
        _order("O4", "2 Mill Lane", 51.52, -0.1),
        _order("O5", "2 Mill Lane", 51.52, -0.1),
    ]
    batch = Batch(
        batch_id="B1",
        delivery_date=DELIVERY_DATE,
        status=BATCH_LOCKED,
        order_ids=[order.order_id for order in orders],
    )
    return InMemoryDeliveryStore(orders=orders, drivers=[_driver("D1"), _driver("D2")], batches=[batch])


def _generate(store, optimizer, **kwargs):
    kwargs.setdefault("start_time", "09:00")
    kwargs.setdefault("end_time", "17:00")
    return routing_service.generate_routes_for_batch("B1", store=store, optimizer=optimizer, **kwargs)


def _all_stops(store: InMemoryDeliveryStore, batch_id: str = "B1"):
    return [stop for route in store.get_routes_for_batch(batch_id) for stop in store.get_stops(route.route_id)]


def test_all_groups_on_one_driver_yields_single_route(two_address_store):
    optimizer = FakeOptimizer(OptimizerSolution(routes=[OptimizerRoute(0, "D1", _visits(0, 1), 9000, 3600)]))

    result = _generate(two_address_store, optimizer)

    assert result.routes_created == 1
    assert result.forced_assignments == 0
    assert result.fallback is None
    route = result.routes[0]
    assert route.driver_id == "D1"
    assert route.total_stops == 5
    assert route.total_distance_meters == 9000

    stops = two_address_store.get_stops(route.route_id)
    assert [stop.sequence for stop in stops] == [1, 2, 3, 4, 5]
    assert [stop.order_id for stop in stops] == ["O1", "O2", "O3", "O4", "O5"]
    assert not any(stop.forced_assignment for stop in stops)

    model = optimizer.requests[0]["model"]
    assert len(model["shipments"]) == 2
    assert [vehicle["label"] for vehicle in model["vehicles"]] == ["D1", "D2"]
    assert model["globalStartTime"] == "2025-01-15T09:00:00Z"


def test_empty_solution_falls_back_to_single_route():
    orders = [
        _order("O1", "1 High Street"),
        _order("O2", "1 High Street"),
        _order("O3", "2 Mill Lane"),
        _order("O4", "2 Mill Lane"),
    ]
    batch = Batch(batch_id="B1", delivery_date=DELIVERY_DATE, status=BATCH_LOCKED, order_ids=["O1", "O2", "O3", "O4"])
    store = InMemoryDeliveryStore(orders=orders, drivers=[_driver("D1")], batches=[batch])

    result = _generate(store, FakeOptimizer())

    assert result.routes_created == 1
    assert result.forced_assignments == 4
    assert result.fallback.mode == "created"
    stops = store.get_stops(result.routes[0].route_id)
    assert [stop.sequence for stop in stops] == [1, 2, 3, 4]
    assert all(stop.forced_assignment for stop in stops)

    etas = [stop.estimated_arrival for stop in stops]
    gaps = {etas[i + 1] - etas[i] for i in range(len(etas) - 1)}
    assert gaps == {timedelta(hours=8) / 5}
    assert all(WINDOW_START < eta < WINDOW_END for eta in etas)


def test_omitted_group_appended_to_less_loaded_route():
    orders = [
        _order("A1", "1 High Street"),
        _order("A2", "1 High Street"),
        _order("B1", "2 Mill Lane"),
        _order("C1", "3 Park Road"),
    ]
    batch = Batch(batch_id="B1", delivery_date=DELIVERY_DATE, status=BATCH_LOCKED, order_ids=["A1", "A2", "B1", "C1"])
    store = InMemoryDeliveryStore(orders=orders, drivers=[_driver("D1"), _driver("D2")], batches=[batch])
    solution = OptimizerSolution(
        routes=[
            OptimizerRoute(0, "D1", _visits(0)),
            OptimizerRoute(1, "D2", _visits(2)),
        ],
        skipped=[SkippedShipment(index=1, reasons=["DEMAND_EXCEEDS_VEHICLE_CAPACITY"])],
    )

    result = _generate(store, FakeOptimizer(solution))

    assert result.routes_created == 2
    assert result.forced_assignments == 1
    assert result.fallback.mode == "appended"
    assert result.fallback.skipped_reasons == {1: ["DEMAND_EXCEEDS_VEHICLE_CAPACITY"]}

    by_driver = {route.driver_id: store.get_stops(route.route_id) for route in result.routes}
    assert [stop.order_id for stop in by_driver["D2"]] == ["C1", "B1"]
    assert by_driver["D2"][1].forced_assignment is True
    assert [stop.sequence for stop in by_driver["D2"]] == [1, 2]
    assert len(by_driver["D1"]) == 2


def test_invalid_coordinates_rejected_before_optimizer(two_address_store):
    two_address_store.orders["O4"].latitude = 999
    optimizer = FakeOptimizer()

    with pytest.raises(InvalidOrderLocationError) as excinfo:
        _generate(two_address_store, optimizer)

    assert excinfo.value.invalid_geo_orders == ["O4"]
    assert excinfo.value.payload()["invalid_geo_orders"] == ["O4"]
    assert optimizer.requests == []
    assert two_address_store.routes == {}


def test_every_order_gets_exactly_one_stop(two_address_store):
    # optimizer visits group 1 twice and group 0 never
    solution = OptimizerSolution(
        routes=[
            OptimizerRoute(0, "D1", _visits(1)),
            OptimizerRoute(1, "D2", _visits(1)),
        ]
    )

    result = _generate(two_address_store, FakeOptimizer(solution))
    order_ids = [stop.order_id for stop in _all_stops(two_address_store)]

    assert sorted(order_ids) == ["O1", "O2", "O3", "O4", "O5"]
    assert result.forced_assignments == 3
    for route in result.routes:
        stops = two_address_store.get_stops(route.route_id)
        assert stops, "routes are never empty"
        assert [stop.sequence for stop in stops] == list(range(1, len(stops) + 1))
        etas = [stop.estimated_arrival for stop in stops]
        assert etas == sorted(etas)
    assert len({route.driver_id for route in result.routes}) == len(result.routes)


def test_duplicate_order_ids_routed_once(two_address_store):
    two_address_store.batches["B1"].order_ids = ["O1", "O2", "O1", "O3", "O4", "O5", "O4"]
    optimizer = FakeOptimizer(OptimizerSolution(routes=[OptimizerRoute(0, "D1", _visits(0, 1))]))

    result = _generate(two_address_store, optimizer)
    order_ids = [stop.order_id for stop in _all_stops(two_address_store)]

    assert order_ids.count("O1") == 1
    assert order_ids.count("O4") == 1
    assert sorted(order_ids) == ["O1", "O2", "O3", "O4", "O5"]
    assert result.metadata["orders"] == 5
    shipments = optimizer.requests[0]["model"]["shipments"]
    assert [shipment["loadDemands"]["orders"]["amount"] for shipment in shipments] == ["3", "2"]
    assert two_address_store.get_batch("B1").order_ids == ["O1", "O2", "O3", "O4", "O5"]


def test_rerun_replaces_previous_routes(two_address_store):
    optimizer = FakeOptimizer(OptimizerSolution(routes=[OptimizerRoute(0, "D1", _visits(0, 1))]))

    first = _generate(two_address_store, optimizer)
    second = _generate(two_address_store, optimizer)

    assert len(optimizer.requests) == 2
    assert optimizer.requests[0] == optimizer.requests[1]
    assert list(two_address_store.routes) == [second.routes[0].route_id]
    assert first.routes[0].route_id not in two_address_store.stops
    assert len(_all_stops(two_address_store)) == 5


def test_batch_updated_after_generation(two_address_store):
    optimizer = FakeOptimizer(OptimizerSolution(routes=[OptimizerRoute(0, "D1", _visits(0, 1))]))

    result = _generate(two_address_store, optimizer, start_time="08:30", end_time="16:00")
    batch = two_address_store.get_batch("B1")

    assert batch.status == BATCH_ROUTES_GENERATED
    assert batch.route_ids == [route.route_id for route in result.routes]
    assert batch.generated_at is not None
    assert batch.delivery_window_start == "08:30"
    assert batch.delivery_window_end == "16:00"
    assert result.metadata["window_start"] == "2025-01-15T08:30:00Z"


def test_stored_window_reused_when_not_supplied(two_address_store):
    two_address_store.batches["B1"].delivery_window_start = "10:00"
    two_address_store.batches["B1"].delivery_window_end = "12:00"
    optimizer = FakeOptimizer(OptimizerSolution(routes=[OptimizerRoute(0, "D1", _visits(0, 1))]))

    routing_service.generate_routes_for_batch("B1", store=two_address_store, optimizer=optimizer)

    model = optimizer.requests[0]["model"]
    assert model["globalStartTime"] == "2025-01-15T10:00:00Z"
    assert model["globalEndTime"] == "2025-01-15T12:00:00Z"


def test_driver_selection_limits_vehicles(two_address_store):
    optimizer = FakeOptimizer(OptimizerSolution(routes=[OptimizerRoute(0, "D2", _visits(0, 1))]))

    result = _generate(two_address_store, optimizer, driver_ids=["D2"])

    assert [vehicle["label"] for vehicle in optimizer.requests[0]["model"]["vehicles"]] == ["D2"]
    assert result.routes[0].driver_id == "D2"


def test_unknown_batch(two_address_store):
    with pytest.raises(BatchNotFoundError):
        routing_service.generate_routes_for_batch("nope", store=two_address_store, optimizer=FakeOptimizer())


def test_dispatched_batch_cannot_be_regenerated(two_address_store):
    two_address_store.batches["B1"].status = BATCH_DISPATCHED

    with pytest.raises(BatchStateError):
        _generate(two_address_store, FakeOptimizer())


def test_missing_depot(monkeypatch, two_address_store):
    monkeypatch.setattr(routing_service, "resolve_depot", lambda: None)

    with pytest.raises(InvalidDepotError, match="Invalid warehouse coordinates"):
        _generate(two_address_store, FakeOptimizer())


def test_empty_batch(two_address_store):
    two_address_store.batches["B1"].order_ids = []

    with pytest.raises(EmptyBatchError):
        _generate(two_address_store, FakeOptimizer())


def test_missing_orders_reported(two_address_store):
    two_address_store.batches["B1"].order_ids.append("O404")

    with pytest.raises(InvalidOrderLocationError) as excinfo:
        _generate(two_address_store, FakeOptimizer())

    assert excinfo.value.missing_orders == ["O404"]
    assert excinfo.value.invalid_geo_orders == []


def test_no_active_drivers(two_address_store):
    for driver in two_address_store.drivers.values():
        driver.status = "inactive"

    with pytest.raises(NoEligibleDriversError):
        _generate(two_address_store, FakeOptimizer())


def test_invalid_window(two_address_store):
    optimizer = FakeOptimizer()

    with pytest.raises(InvalidDeliveryWindowError):
        _generate(two_address_store, optimizer, start_time="17:00", end_time="09:00")
    assert optimizer.requests == []


def test_window_on_another_date_rejected(two_address_store):
    optimizer = FakeOptimizer()

    with pytest.raises(InvalidDeliveryWindowError):
        _generate(two_address_store, optimizer, start_time="2025-03-01T09:00:00Z", end_time="2025-03-01T17:00:00Z")
    assert optimizer.requests == []
    assert two_address_store.get_batch("B1").delivery_window_start is None


def test_optimizer_failure_writes_nothing(two_address_store):
    optimizer = FakeOptimizer(error=OptimizerError("Fleet routing request failed with status 500"))

    with pytest.raises(OptimizerError):
        _generate(two_address_store, optimizer)

    assert two_address_store.routes == {}
    assert two_address_store.get_batch("B1").status == BATCH_LOCKED


def test_unconfigured_optimizer(monkeypatch, two_address_store):
    def unconfigured():
        raise ValueError("Fleet routing project id is not configured.")

    monkeypatch.setattr(routing_service, "FleetRoutingClient", unconfigured)

    with pytest.raises(OptimizerError, match="not configured"):
        routing_service.generate_routes_for_batch("B1", store=two_address_store)


def test_export_snapshot_writes_outputs(monkeypatch, tmp_path: Path, two_address_store):
    original_storage = routing_service.FileStorage
    monkeypatch.setattr(routing_service, "FileStorage", lambda: original_storage(root=tmp_path))
    optimizer = FakeOptimizer(OptimizerSolution(routes=[OptimizerRoute(0, "D1", _visits(0, 1))]))

    _generate(two_address_store, optimizer, export_snapshot=True)

    run_dirs = list((tmp_path / "outputs").iterdir())
    assert len(run_dirs) == 1
    run_dir = run_dirs[0]
    assert run_dir.name.startswith("routes_B1_")
    summary = json.loads((run_dir / "summary.json").read_text(encoding="utf-8"))
    assert summary["routes_created"] == 1
    lines = (run_dir / "stops.csv").read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("route_id,driver_id,sequence,order_id")
    assert len(lines) == 6
