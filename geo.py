from math import asin, ceil, cos, radians, sin, sqrt
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0
DEFAULT_SPEED_KMH = 12.0

# solo booking quote floors (minutes)
MIN_PICKUP_ETA = 2
MIN_TRIP_ETA = 3


def haversine_km(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Great-circle distance in km between two ``(lat, lng)`` points."""
    phi_a, phi_b = radians(a[0]), radians(b[0])
    half_dphi = (phi_b - phi_a) / 2
    half_dlng = radians(b[1] - a[1]) / 2
    h = sin(half_dphi) ** 2 + cos(phi_a) * cos(phi_b) * sin(half_dlng) ** 2
    return 2 * EARTH_RADIUS_KM * asin(min(1.0, sqrt(h)))


def vehicle_speed(speed: Optional[float]) -> float:
    """Speed in km/h, falling back to 12 when the vehicle reports none."""
    return speed or DEFAULT_SPEED_KMH


def travel_minutes(distance_km: float, speed_kmh: Optional[float]) -> float:
    return distance_km / vehicle_speed(speed_kmh) * 60


def eta_minutes(distance_km: float, speed_kmh: Optional[float], floor: int = 1) -> int:
    return max(floor, ceil(travel_minutes(distance_km, speed_kmh)))
