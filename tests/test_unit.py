"""
Unit tests for distance, route optimization and plan synchronization.
Covers:
- Haversine distance and ETA rounding / floors
- Nearest-neighbour pickup order and total trip time
- Shared-stop ("group") vs staggered pickup policy
- UTC timestamps on the serialized plan
- Solo booking quote floors and lock checks
- Structured error payloads
"""
from datetime import timedelta, timezone
from math import ceil

import pytest

from conftest import NOW
from errors import CapacityExceeded, InvalidState, MissingField, NotFound, require_fields
from geo import eta_minutes, haversine_km, travel_minutes, vehicle_speed
from models import Destination, Rider, SyncState, Vehicle, isoformat
from reservations import quote
from routing import optimize_route
from sync import build_synchronized_plan, centroid, is_same_pickup_location

KM_PER_DEG_LAT = 6371.0 * 3.141592653589793 / 180

VEHICLE_POS = (6.8928, 3.7183)
LIBRARY = Destination(name="Library", lat=6.8810, lng=3.7183)


def make_vehicle(lat=VEHICLE_POS[0], lng=VEHICLE_POS[1], speed=12.0):
    return Vehicle(id=1, name="Tricycle #001", lat=lat, lng=lng, speed=speed, max_capacity=4)


def make_rider(rid, lat, lng):
    return Rider(rider_id=rid, pool_id="pool_test", name=rid.upper(), pickup_lat=lat, pickup_lng=lng)


def north_of(point, km):
    return (point[0] + km / KM_PER_DEG_LAT, point[1])


# ────────────────────────── geo ────────────────────────────────────────────

def test_haversine_zero():
    assert haversine_km((6.89, 3.72), (6.89, 3.72)) == 0.0


def test_haversine_one_degree_latitude():
    d = haversine_km((0.0, 0.0), (1.0, 0.0))
    assert d == pytest.approx(KM_PER_DEG_LAT)


def test_haversine_symmetric():
    a, b = (6.8928, 3.7183), (6.8951, 3.7276)
    assert haversine_km(a, b) == pytest.approx(haversine_km(b, a))


def test_speed_fallback():
    assert vehicle_speed(None) == 12.0
    assert vehicle_speed(0) == 12.0
    assert vehicle_speed(15) == 15


def test_eta_scenario_pickup_and_trip():
    pickup = north_of(VEHICLE_POS, 0.5)
    assert eta_minutes(haversine_km(VEHICLE_POS, pickup), 12) == 3
    assert eta_minutes(1.0, 12) == 5


def test_eta_floors_to_one_minute():
    assert eta_minutes(0.0, 12) == 1
    assert eta_minutes(0.01, 12) == 1


def test_eta_custom_floor():
    assert eta_minutes(0.0, 12, floor=3) == 3


def test_eta_uses_fallback_speed_for_zero():
    assert eta_minutes(3.0, 0) == 15
    assert travel_minutes(3.0, None) == 15.0


# ────────────────────────── route optimizer ────────────────────────────────

def test_route_orders_riders_by_distance_from_vehicle():
    riders = [
        make_rider("far", *north_of(VEHICLE_POS, 1.5)),
        make_rider("near", *north_of(VEHICLE_POS, 0.3)),
        make_rider("mid", *north_of(VEHICLE_POS, 0.8)),
    ]
    route = optimize_route(riders, make_vehicle(), LIBRARY)
    assert [s.rider_id for s in route.stops] == ["near", "mid", "far"]
    assert [s.pickup_order for s in route.stops] == [1, 2, 3]


def test_route_leg_etas_and_total_time():
    riders = [
        make_rider("a", *north_of(VEHICLE_POS, 0.5)),
        make_rider("b", *north_of(VEHICLE_POS, 1.0)),
    ]
    route = optimize_route(riders, make_vehicle(), LIBRARY)
    # 0.5 km legs at 12 km/h are 2.5 minutes each
    assert [s.eta for s in route.stops] == [3, 3]
    last = riders[1].pickup
    expected = 2.5 + 2.5 + travel_minutes(haversine_km(last, LIBRARY.coord), 12)
    assert route.total_time == ceil(expected)


def test_route_legs_never_below_one_minute():
    riders = [make_rider(r, *VEHICLE_POS) for r in "abcd"]
    route = optimize_route(riders, make_vehicle(), LIBRARY)
    assert all(s.eta == 1 for s in route.stops)


def test_route_ranking_is_single_pass():
    # b is nearer to a than c is, but c is nearer to the vehicle's start
    riders = [
        make_rider("a", *north_of(VEHICLE_POS, 1.0)),
        make_rider("b", *north_of(VEHICLE_POS, 1.2)),
        make_rider("c", VEHICLE_POS[0], VEHICLE_POS[1] + 0.0095),
    ]
    route = optimize_route(riders, make_vehicle(), LIBRARY)
    assert [s.rider_id for s in route.stops] == ["a", "c", "b"]


def test_route_uses_fallback_speed():
    riders = [make_rider("a", *north_of(VEHICLE_POS, 0.5))]
    route = optimize_route(riders, make_vehicle(speed=None), LIBRARY)
    assert route.speed == 12.0
    assert route.stops[0].eta == 3


# ────────────────────────── plan synchronizer ──────────────────────────────

def clustered_riders():
    base = north_of(VEHICLE_POS, 1.0)
    offsets = [(0, 0), (0.00005, 0), (0, 0.00005), (0.00005, 0.00005)]
    return [make_rider(f"r{i}", base[0] + dl, base[1] + dg) for i, (dl, dg) in enumerate(offsets)]


def spread_riders():
    return [make_rider(f"r{i}", *north_of(VEHICLE_POS, 0.4 * (i + 1))) for i in range(4)]


def test_centroid():
    assert centroid([(0.0, 0.0), (2.0, 4.0)]) == (1.0, 2.0)


def test_same_location_cluster_is_detected():
    assert is_same_pickup_location([r.pickup for r in clustered_riders()])


def test_same_location_rejects_spread_pickups():
    assert not is_same_pickup_location([r.pickup for r in spread_riders()])


def test_group_mode_shares_one_eta():
    riders = clustered_riders()
    vehicle = make_vehicle()
    route = optimize_route(riders, vehicle, LIBRARY)
    new_route, sync = build_synchronized_plan(route, riders, vehicle, LIBRARY, NOW)

    assert sync.same_pickup_location is True
    assert sync.mode == "group" == new_route.mode
    eta_ats = {p.eta_at for p in sync.pickup_plan}
    assert len(eta_ats) == 1
    shared = new_route.shared_pickup_eta
    assert all(p.leg_eta_minutes == shared == p.cumulative_eta for p in sync.pickup_plan)

    first = route.stops[0].pickup
    to_dest = eta_minutes(haversine_km(first, LIBRARY.coord), 12)
    assert shared == eta_minutes(haversine_km(VEHICLE_POS, first), 12)
    assert sync.total_time_minutes == shared + to_dest == new_route.total_time


def test_staggered_mode_accumulates_legs():
    riders = spread_riders()
    vehicle = make_vehicle()
    route = optimize_route(riders, vehicle, LIBRARY)
    new_route, sync = build_synchronized_plan(route, riders, vehicle, LIBRARY, NOW)

    assert sync.same_pickup_location is False
    assert sync.mode == "staggered"
    cumulative = [p.cumulative_eta for p in sync.pickup_plan]
    assert cumulative == sorted(cumulative)
    assert cumulative[-1] == sum(s.eta for s in route.stops)
    ride_start = NOW + timedelta(seconds=2)
    for p in sync.pickup_plan:
        assert p.eta_at == ride_start + timedelta(minutes=p.cumulative_eta)
    assert sync.total_time_minutes == route.total_time
    assert [s.cumulative_eta for s in new_route.stops] == cumulative


def test_one_outlier_breaks_the_cluster():
    riders = clustered_riders()[:3] + [make_rider("outlier", *north_of(VEHICLE_POS, 2.0))]
    vehicle = make_vehicle()
    route = optimize_route(riders, vehicle, LIBRARY)
    _, sync = build_synchronized_plan(route, riders, vehicle, LIBRARY, NOW)
    assert sync.same_pickup_location is False
    assert sync.mode == "staggered"


def test_plan_is_anchored_two_seconds_after_now():
    riders = spread_riders()
    vehicle = make_vehicle()
    route = optimize_route(riders, vehicle, LIBRARY)
    _, sync = build_synchronized_plan(route, riders, vehicle, LIBRARY, NOW)
    assert sync.generated_at == NOW
    assert sync.ride_start_at == NOW + timedelta(seconds=2)
    assert sync.estimated_arrival_at == sync.ride_start_at + timedelta(minutes=sync.total_time_minutes)


def test_plan_serializes_utc_timestamps():
    riders = spread_riders()
    vehicle = make_vehicle()
    route = optimize_route(riders, vehicle, LIBRARY)
    lagos = timezone(timedelta(hours=1))
    _, sync = build_synchronized_plan(route, riders, vehicle, LIBRARY, NOW.astimezone(lagos))
    data = sync.model_dump(mode="json")
    assert data["generated_at"] == isoformat(NOW) == "2026-10-19T08:00:00.000Z"
    assert data["ride_start_at"] == "2026-10-19T08:00:02.000Z"
    first = data["pickup_plan"][0]
    assert first["eta_at"] == isoformat(NOW + timedelta(seconds=2, minutes=first["cumulative_eta"]))
    assert SyncState.model_validate(data).ride_start_at == NOW + timedelta(seconds=2)


def test_synchronizer_leaves_input_route_untouched():
    riders = clustered_riders()
    vehicle = make_vehicle()
    route = optimize_route(riders, vehicle, LIBRARY)
    before = route.model_dump()
    new_route, _ = build_synchronized_plan(route, riders, vehicle, LIBRARY, NOW)
    assert route.model_dump() == before
    assert route.mode is None
    assert new_route is not route


def test_snapshots_are_frozen():
    route = optimize_route(spread_riders(), make_vehicle(), LIBRARY)
    with pytest.raises(Exception):
        route.total_time = 0


def test_synchronizer_rejects_empty_pool():
    route = optimize_route(spread_riders(), make_vehicle(), LIBRARY)
    with pytest.raises(ValueError):
        build_synchronized_plan(route, [], make_vehicle(), LIBRARY, NOW)


# ────────────────────────── solo quote ─────────────────────────────────────

def test_quote_applies_pickup_and_trip_floors():
    q = quote(make_vehicle(), VEHICLE_POS, north_of(VEHICLE_POS, 0.05))
    assert q["pickup_eta"] == 2
    assert q["trip_eta"] == 3
    assert q["total_eta"] == 5


def test_quote_scenario_without_floors():
    pickup = north_of(VEHICLE_POS, 0.5)
    vehicle = make_vehicle()
    q = quote(vehicle, pickup, north_of(pickup, 0.9))
    assert q["pickup_eta"] == 3
    assert q["trip_eta"] == 5
    assert q["pickup_distance"] == 0.5


def test_quote_refuses_pool_locked_vehicle():
    vehicle = make_vehicle()
    vehicle.reserved_for_pool = True
    vehicle.pool_id = "pool_x"
    with pytest.raises(InvalidState) as exc:
        quote(vehicle, VEHICLE_POS, LIBRARY.coord)
    assert exc.value.context["pool_id"] == "pool_x"


def test_quote_refuses_full_vehicle():
    vehicle = make_vehicle()
    vehicle.passenger_count = 4
    with pytest.raises(CapacityExceeded):
        quote(vehicle, VEHICLE_POS, LIBRARY.coord)


# ────────────────────────── errors ─────────────────────────────────────────

def test_error_payload_carries_kind_and_context():
    err = NotFound("Pool not found", pool_id="pool_1")
    assert err.status_code == 404
    assert err.to_dict() == {"success": False, "error": "Pool not found", "kind": "not_found", "pool_id": "pool_1"}


def test_require_fields_lists_missing_keys():
    with pytest.raises(MissingField) as exc:
        require_fields({"a": 1, "b": None, "c": ""}, ["a", "b", "c", "d"])
    assert exc.value.context["missing"] == ["b", "c", "d"]
    assert exc.value.status_code == 400
