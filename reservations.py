"""Solo bookings and the reservation book.

A solo booking takes one seat on a vehicle that is not locked for a pool.
Pools get a single group reservation once they fill up. Reservations expire
after ``RESERVATION_TTL_MINUTES`` unless completed.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from sqlmodel import Session, select
from directory import VehicleDirectory
from errors import CapacityExceeded, InvalidState, NotFound
from geo import MIN_PICKUP_ETA, MIN_TRIP_ETA, eta_minutes, haversine_km, vehicle_speed
from models import Pool, Reservation, Vehicle, isoformat

logger = logging.getLogger(__name__)

SOLO = "solo"
GROUP = "keke-pool"


def _stamp(now: datetime) -> str:
    ms = int(now.timestamp() * 1000)
    return f"{ms}_{uuid.uuid4().hex[:4]}"


def ensure_not_pool_locked(vehicle: Vehicle, message: str):
    if vehicle.reserved_for_pool:
        raise InvalidState(message, reserved_for_pool=True, pool_id=vehicle.pool_id)


def ensure_solo_bookable(vehicle: Vehicle):
    ensure_not_pool_locked(vehicle, "This tricycle is reserved for a Keke-Pool and cannot be booked solo")
    if vehicle.passenger_count >= vehicle.max_capacity:
        raise CapacityExceeded(
            "Vehicle is full",
            passenger_count=vehicle.passenger_count, max_capacity=vehicle.max_capacity,
        )


def quote(vehicle: Vehicle, pickup: Tuple[float, float], destination: Tuple[float, float]) -> Dict[str, Any]:
    """Solo ride estimate with the pickup and trip floors applied."""
    ensure_solo_bookable(vehicle)
    pickup_distance = haversine_km(pickup, (vehicle.lat, vehicle.lng))
    trip_distance = haversine_km(pickup, destination)
    speed = vehicle_speed(vehicle.speed)
    pickup_eta = eta_minutes(pickup_distance, speed, floor=MIN_PICKUP_ETA)
    trip_eta = eta_minutes(trip_distance, speed, floor=MIN_TRIP_ETA)
    return {
        "pickup_eta": pickup_eta,
        "trip_eta": trip_eta,
        "total_eta": pickup_eta + trip_eta,
        "pickup_distance": round(pickup_distance, 2),
        "trip_distance": round(trip_distance, 2),
        "pickup_distance_text": f"{pickup_distance:.1f} km",
        "trip_distance_text": f"{trip_distance:.1f} km",
        "pickup_duration_text": f"{pickup_eta} min",
        "trip_duration_text": f"{trip_eta} min",
        "assigned_vehicle": {
            "id": vehicle.id,
            "name": vehicle.name,
            "driver": vehicle.driver,
            "phone": vehicle.phone,
            "color": vehicle.color,
            "passenger_count": vehicle.passenger_count,
            "max_capacity": vehicle.max_capacity,
            "available_seats": vehicle.max_capacity - vehicle.passenger_count,
            "rating": vehicle.rating,
            "reserved_for_pool": vehicle.reserved_for_pool,
        },
    }


class ReservationBook:
    def __init__(self, session: Session, vehicles: VehicleDirectory, ttl_minutes: int):
        self.session = session
        self.vehicles = vehicles
        self.ttl = timedelta(minutes=ttl_minutes)

    def get(self, reservation_id) -> Reservation:
        if type(reservation_id) is not str:
            raise NotFound("Reservation not found", reservation_id=reservation_id)
        res = self.session.get(Reservation, reservation_id)
        if res is None:
            raise NotFound("Reservation not found", reservation_id=reservation_id)
        return res

    def all(self) -> List[Reservation]:
        return list(self.session.exec(select(Reservation)).all())

    def reserve_solo(self, vehicle: Vehicle, user_name: Optional[str], pickup, destination,
                     now: datetime) -> Reservation:
        ensure_solo_bookable(vehicle)
        if not vehicle.available:
            raise InvalidState("Vehicle is already reserved", vehicle_id=vehicle.id)
        vehicle.passenger_count += 1
        if vehicle.passenger_count >= vehicle.max_capacity:
            vehicle.available = False
        vehicle.reserved_at = now
        vehicle.reserved_by = user_name or "Guest"
        vehicle.last_update = now
        self.session.add(vehicle)

        res = Reservation(
            id=f"RIDE_{_stamp(now)}_{vehicle.id}",
            kind=SOLO,
            vehicle_id=vehicle.id,
            user_name=user_name or "Guest",
            passenger_count=vehicle.passenger_count,
            pickup_lat=pickup[0] if pickup else None,
            pickup_lng=pickup[1] if pickup else None,
            dest_lat=destination[0] if destination else None,
            dest_lng=destination[1] if destination else None,
            status="reserved",
            reserved_at=now,
            expires_at=now + self.ttl,
        )
        self.session.add(res)
        logger.info("vehicle %s reserved solo by %s (%s)", vehicle.id, res.user_name, res.id)
        return res

    def release(self, vehicle: Vehicle, now: datetime):
        # a pooled vehicle's passenger count tracks its pool's riders
        ensure_not_pool_locked(vehicle, "This tricycle is held by a Keke-Pool and cannot be released")
        if vehicle.passenger_count > 0:
            vehicle.passenger_count -= 1
        if vehicle.passenger_count < vehicle.max_capacity:
            vehicle.available = True
            vehicle.reserved_by = None
        vehicle.last_update = now
        self.session.add(vehicle)

    def create_group(self, pool: Pool, riders: List[Dict[str, Any]], vehicle: Optional[Dict[str, Any]],
                     now: datetime) -> Reservation:
        res = Reservation(
            id=f"POOL_{_stamp(now)}",
            kind=GROUP,
            vehicle_id=pool.assigned_vehicle_id,
            pool_id=pool.id,
            passenger_count=len(riders),
            destination_name=pool.destination_name,
            dest_lat=pool.destination_lat,
            dest_lng=pool.destination_lng,
            status="ready",
            reserved_at=now,
            expires_at=now + self.ttl,
            payload={
                "riders": riders,
                "vehicle": vehicle,
                "optimized_route": pool.optimized_route,
                "sync_state": pool.sync_state,
            },
        )
        self.session.add(res)
        logger.info("group reservation %s created for pool %s", res.id, pool.id)
        return res

    def complete_for_vehicle(self, vehicle_id: int, now: datetime) -> List[Reservation]:
        stmt = select(Reservation).where(
            Reservation.vehicle_id == vehicle_id,
            Reservation.status.in_(["reserved", "ready"]),
        )
        done = list(self.session.exec(stmt).all())
        for res in done:
            res.status = "completed"
            res.completed_at = now
            self.session.add(res)
        return done

    def expire(self, now: datetime) -> int:
        stmt = select(Reservation).where(
            Reservation.expires_at.is_not(None),
            Reservation.expires_at < now,
            Reservation.status.not_in(["completed", "in_progress"]),
        )
        expired = list(self.session.exec(stmt).all())
        for res in expired:
            self.session.delete(res)
        return len(expired)

    def to_dict(self, res: Reservation, now: Optional[datetime] = None) -> Dict[str, Any]:
        out = {
            "id": res.id,
            "kind": res.kind,
            "vehicle_id": res.vehicle_id,
            "pool_id": res.pool_id,
            "user_name": res.user_name,
            "passenger_count": res.passenger_count,
            "pickup_location": (
                {"lat": res.pickup_lat, "lng": res.pickup_lng} if res.pickup_lat is not None else None
            ),
            "destination": (
                {"name": res.destination_name, "lat": res.dest_lat, "lng": res.dest_lng}
                if res.dest_lat is not None else None
            ),
            "status": res.status,
            "reserved_at": isoformat(res.reserved_at),
            "expires_at": isoformat(res.expires_at),
            "completed_at": isoformat(res.completed_at),
        }
        if res.payload:
            out.update(res.payload)
        if now is not None and res.expires_at is not None:
            remaining = (res.expires_at - now).total_seconds()
            out["is_valid"] = remaining >= 0
            out["expires_in"] = max(0, int(remaining // 60))
        return out
