"""Plan synchronizer: turns an optimized route into a time-anchored plan.

Two pickup policies are reconciled here. When every rider waits within
``SAME_LOCATION_THRESHOLD_KM`` of the group's centroid the vehicle makes one
shared stop and every rider gets the same ETA ("group"). Otherwise the
optimizer's legs are replayed in pickup order ("staggered").
"""
from datetime import datetime, timedelta
from typing import Sequence, Tuple
from config import RIDE_START_DELAY_SECONDS, SAME_LOCATION_THRESHOLD_KM
from geo import eta_minutes, haversine_km
from models import Destination, OptimizedRoute, PlanEntry, Rider, SyncState, Vehicle

GROUP = "group"
STAGGERED = "staggered"


def centroid(points: Sequence[Tuple[float, float]]) -> Tuple[float, float]:
    n = len(points)
    return (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)


def is_same_pickup_location(points: Sequence[Tuple[float, float]],
                            threshold_km: float = SAME_LOCATION_THRESHOLD_KM) -> bool:
    center = centroid(points)
    return all(haversine_km(p, center) <= threshold_km for p in points)


def _group_plan(route: OptimizedRoute, vehicle: Vehicle, destination: Destination, ride_start: datetime):
    # the vehicle's first stop (nearest rider) stands in for the shared point
    shared = route.stops[0].pickup
    shared_eta = eta_minutes(haversine_km((vehicle.lat, vehicle.lng), shared), route.speed)
    to_destination = eta_minutes(haversine_km(shared, destination.coord), route.speed)
    total = shared_eta + to_destination
    eta_at = ride_start + timedelta(minutes=shared_eta)

    plan = tuple(
        PlanEntry(
            rider_id=stop.rider_id,
            rider_name=stop.rider_name,
            pickup_order=stop.pickup_order,
            leg_eta_minutes=shared_eta,
            cumulative_eta=shared_eta,
            eta_at=eta_at,
            pickup_lat=stop.pickup_lat,
            pickup_lng=stop.pickup_lng,
        )
        for stop in route.stops
    )
    stops = tuple(stop.model_copy(update={"eta": shared_eta, "cumulative_eta": shared_eta}) for stop in route.stops)
    new_route = route.model_copy(update={
        "mode": GROUP,
        "stops": stops,
        "shared_pickup_eta": shared_eta,
        "total_time": total,
    })
    return new_route, plan, total


def _staggered_plan(route: OptimizedRoute, ride_start: datetime):
    cumulative = 0
    plan = []
    stops = []
    for stop in route.stops:
        leg = max(1, stop.eta)
        cumulative += leg
        plan.append(PlanEntry(
            rider_id=stop.rider_id,
            rider_name=stop.rider_name,
            pickup_order=stop.pickup_order,
            leg_eta_minutes=leg,
            cumulative_eta=cumulative,
            eta_at=ride_start + timedelta(minutes=cumulative),
            pickup_lat=stop.pickup_lat,
            pickup_lng=stop.pickup_lng,
        ))
        stops.append(stop.model_copy(update={"eta": leg, "cumulative_eta": cumulative}))
    new_route = route.model_copy(update={"mode": STAGGERED, "stops": tuple(stops)})
    return new_route, tuple(plan), route.total_time


def build_synchronized_plan(route: OptimizedRoute, riders: Sequence[Rider], vehicle: Vehicle,
                            destination: Destination, now: datetime) -> Tuple[OptimizedRoute, SyncState]:
    """Return a new (route, sync state) pair anchored to ``now``.

    The input route is left untouched; the returned route carries the
    chosen mode and the per-stop cumulative ETAs.
    """
    if not riders or not route.stops:
        raise ValueError("cannot synchronize a plan without riders")
    ride_start = now + timedelta(seconds=RIDE_START_DELAY_SECONDS)
    same_location = is_same_pickup_location([r.pickup for r in riders])

    if same_location:
        new_route, plan, total = _group_plan(route, vehicle, destination, ride_start)
    else:
        new_route, plan, total = _staggered_plan(route, ride_start)

    sync = SyncState(
        generated_at=now,
        ride_start_at=ride_start,
        same_pickup_location=same_location,
        mode=new_route.mode,
        total_time_minutes=total,
        estimated_arrival_at=ride_start + timedelta(minutes=total),
        pickup_plan=plan,
    )
    return new_route, sync
