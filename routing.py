from math import ceil
from typing import Sequence
from geo import haversine_km, travel_minutes, vehicle_speed
from models import Destination, OptimizedRoute, Rider, RouteStop, Vehicle


def optimize_route(riders: Sequence[Rider], vehicle: Vehicle, destination: Destination) -> OptimizedRoute:
    """Nearest-neighbour pickup order for a full pool.

    Riders are ranked once by straight-line distance from the vehicle's
    starting position; the ranking is not re-evaluated as the vehicle moves.
    Legs are then walked in that order from the last visited point, each leg
    rounded up to at least one minute, and the final leg to the destination is
    added before rounding the total.
    """
    start = (vehicle.lat, vehicle.lng)
    speed = vehicle_speed(vehicle.speed)
    ranked = sorted(
        ((haversine_km(start, r.pickup), r) for r in riders),
        key=lambda pair: pair[0],
    )

    current = start
    total = 0.0
    stops = []
    for order, (distance, rider) in enumerate(ranked, start=1):
        leg = travel_minutes(haversine_km(current, rider.pickup), speed)
        total += leg
        current = rider.pickup
        stops.append(RouteStop(
            rider_id=rider.rider_id,
            rider_name=rider.name,
            pickup_lat=rider.pickup_lat,
            pickup_lng=rider.pickup_lng,
            distance_km=distance,
            pickup_order=order,
            eta=max(1, ceil(leg)),
        ))

    total += travel_minutes(haversine_km(current, destination.coord), speed)
    return OptimizedRoute(
        vehicle_id=vehicle.id,
        vehicle_lat=vehicle.lat,
        vehicle_lng=vehicle.lng,
        speed=speed,
        destination=destination,
        stops=tuple(stops),
        total_time=ceil(total),
    )
