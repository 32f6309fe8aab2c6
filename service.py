"""Caller-facing operations over pools, vehicles and reservations.

Each operation opens its own session and commits once at the end, so a
caller never observes a half-applied join, leave or start. Mutations run
under the shared ``kekepool`` lock, the same lock the periodic sweep takes.
"""
import logging
from contextlib import contextmanager, nullcontext
from datetime import datetime
from typing import Any, Dict, Optional
from config import NEARBY_RADIUS_KM, POOL_TIMEOUT_MINUTES, RESERVATION_TTL_MINUTES
from db import get_lock, get_session
from directory import VehicleDirectory, vehicle_dict
from errors import CapacityExceeded, InvalidState, MissingField, require_fields
from models import isoformat
from pooling import IN_PROGRESS, READY, WAITING, PoolManager, PoolRegistry
from reservations import ReservationBook, quote

logger = logging.getLogger(__name__)

JOIN_REQUIRED = ["user_name", "pickup_lat", "pickup_lng", "destination_name", "destination_lat", "destination_lng"]
ETA_REQUIRED = ["pickup_lat", "pickup_lng", "dest_lat", "dest_lng", "vehicle_id"]


class _Work:
    def __init__(self, session):
        self.session = session
        self.vehicles = VehicleDirectory(session)
        self.registry = PoolRegistry(session)
        self.pools = PoolManager(self.registry, self.vehicles)
        self.reservations = ReservationBook(session, self.vehicles, RESERVATION_TTL_MINUTES)


@contextmanager
def _unit_of_work(locked: bool = True):
    with get_lock() if locked else nullcontext():
        with get_session() as session:
            yield _Work(session)
            session.commit()


def _float(payload: Dict[str, Any], key: str) -> float:
    try:
        return float(payload[key])
    except (TypeError, ValueError):
        raise InvalidState(f"{key} must be a number", field=key, value=payload[key])


def find_open_pool(destination_name: str) -> Optional[Dict[str, Any]]:
    with _unit_of_work(locked=False) as work:
        pool = work.registry.find_open(destination_name)
        return work.pools.snapshot(pool) if pool else None


def join_pool(payload: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """Admit a rider, creating the pool first when no ``pool_id`` is given."""
    require_fields(payload, JOIN_REQUIRED, "Missing required fields")
    pickup_lat = _float(payload, "pickup_lat")
    pickup_lng = _float(payload, "pickup_lng")
    dest_lat = _float(payload, "destination_lat")
    dest_lng = _float(payload, "destination_lng")
    rider_id = payload.get("rider_id")
    if rider_id is not None and not isinstance(rider_id, str):
        raise InvalidState("rider_id must be a string", rider_id=rider_id)
    pool_id = payload.get("pool_id")

    with _unit_of_work() as work:
        if pool_id:
            pool = work.registry.get(pool_id)
            if pool.status != WAITING:
                raise InvalidState("Pool is no longer accepting riders", pool_id=pool.id, status=pool.status)
        else:
            vehicle_id = payload.get("vehicle_id")
            if vehicle_id is None:
                raise MissingField("vehicle_id is required to create a new pool", missing=["vehicle_id"])
            vehicle = work.vehicles.get(vehicle_id)
            if vehicle.passenger_count >= vehicle.max_capacity:
                raise CapacityExceeded(
                    "Vehicle is full",
                    vehicle_id=vehicle.id,
                    passenger_count=vehicle.passenger_count,
                    max_capacity=vehicle.max_capacity,
                )
            if vehicle.reserved_for_pool:
                raise InvalidState("Vehicle is already attached to a pool", vehicle_id=vehicle.id, pool_id=vehicle.pool_id)
            pool = work.pools.create(payload["destination_name"], dest_lat, dest_lng, vehicle.id, now)

        if rider_id and any(r.rider_id == rider_id for r in work.registry.riders(pool)):
            raise InvalidState("Rider already in pool", pool_id=pool.id, rider_id=rider_id)
        added = work.pools.add_rider(pool, payload["user_name"], pickup_lat, pickup_lng, now, rider_id=rider_id)
        if not added:
            raise CapacityExceeded("Pool is full", pool_id=pool.id, max_riders=pool.max_riders)

        snapshot = work.pools.snapshot(pool)
        reservation = None
        if pool.status == READY:
            res = work.reservations.create_group(pool, snapshot["riders"], snapshot["assigned_vehicle"], now)
            reservation = work.reservations.to_dict(res)
            reservation["total_time"] = pool.route.total_time if pool.route else None
            message = "Pool is ready! Simulation will start."
        else:
            message = f"Joined pool. Waiting for {snapshot['spots_left']} more rider(s)."

    logger.info("rider %s joined pool %s (%d left)", snapshot["riders"][-1]["id"], snapshot["id"], snapshot["spots_left"])
    return {"success": True, "message": message, "pool": snapshot, "reservation": reservation}


def get_pool(pool_id) -> Dict[str, Any]:
    with _unit_of_work(locked=False) as work:
        return work.pools.snapshot(work.registry.get(pool_id))


def leave_pool(pool_id, rider_id, now: datetime) -> Dict[str, Any]:
    with _unit_of_work() as work:
        pool = work.registry.get(pool_id)
        deleted = work.pools.remove_rider(pool, rider_id, now)
        snapshot = None if deleted else work.pools.snapshot(pool)
    message = "Pool deleted (no riders left)" if deleted else "Left pool"
    return {"success": True, "message": message, "deleted": deleted, "pool": snapshot}


def start_pool(pool_id, now: datetime) -> Dict[str, Any]:
    with _unit_of_work() as work:
        pool = work.registry.get(pool_id)
        work.pools.start(pool, now)
        snapshot = work.pools.snapshot(pool)
    logger.info("pool %s started", snapshot["id"])
    return {"success": True, "message": "Pool ride started", "pool": snapshot}


def sweep(now: datetime) -> Dict[str, int]:
    """Drop expired reservations and pools left waiting too long."""
    with _unit_of_work() as work:
        expired = work.reservations.expire(now)
        abandoned = work.pools.expire_abandoned(now, POOL_TIMEOUT_MINUTES)
    logger.info("cleanup: %d expired reservations, %d abandoned pools", expired, abandoned)
    return {"expired_reservations": expired, "abandoned_pools": abandoned}


def list_vehicles():
    with _unit_of_work(locked=False) as work:
        return [vehicle_dict(v) for v in work.vehicles.all()]


def available_vehicles():
    with _unit_of_work(locked=False) as work:
        return [vehicle_dict(v) for v in work.vehicles.bookable()]


def nearby_vehicles(lat: float, lng: float, radius_km: float = NEARBY_RADIUS_KM):
    with _unit_of_work(locked=False) as work:
        out = []
        for v, distance, eta in work.vehicles.nearby(lat, lng, radius_km):
            item = vehicle_dict(v)
            item.update({
                "distance": round(distance, 2),
                "eta": eta,
                "available_seats": v.max_capacity - v.passenger_count,
            })
            out.append(item)
        return out


def get_vehicle(vehicle_id):
    with _unit_of_work(locked=False) as work:
        return vehicle_dict(work.vehicles.get(vehicle_id))


def calculate_eta(payload: Dict[str, Any]) -> Dict[str, Any]:
    require_fields(payload, ETA_REQUIRED, "Missing required parameters")
    pickup = (_float(payload, "pickup_lat"), _float(payload, "pickup_lng"))
    destination = (_float(payload, "dest_lat"), _float(payload, "dest_lng"))
    with _unit_of_work(locked=False) as work:
        vehicle = work.vehicles.get(payload["vehicle_id"])
        return quote(vehicle, pickup, destination)


def reserve_vehicle(vehicle_id, payload: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    pickup = destination = None
    if payload.get("pickup_lat") is not None and payload.get("pickup_lng") is not None:
        pickup = (_float(payload, "pickup_lat"), _float(payload, "pickup_lng"))
    if payload.get("dest_lat") is not None and payload.get("dest_lng") is not None:
        destination = (_float(payload, "dest_lat"), _float(payload, "dest_lng"))
    with _unit_of_work() as work:
        vehicle = work.vehicles.get(vehicle_id)
        res = work.reservations.reserve_solo(vehicle, payload.get("user_name"), pickup, destination, now)
        out = {
            "success": True,
            "message": "Vehicle reserved successfully",
            "reservation_id": res.id,
            "expiry_time": isoformat(res.expires_at),
            "passenger_count": vehicle.passenger_count,
            "available_seats": vehicle.max_capacity - vehicle.passenger_count,
            "vehicle_details": {"driver": vehicle.driver, "phone": vehicle.phone},
        }
    return out


def release_vehicle(vehicle_id, now: datetime) -> Dict[str, Any]:
    with _unit_of_work() as work:
        vehicle = work.vehicles.get(vehicle_id)
        work.reservations.release(vehicle, now)
        out = {
            "success": True,
            "message": "Vehicle released",
            "passenger_count": vehicle.passenger_count,
            "available": vehicle.available,
        }
    return out


def complete_ride(vehicle_id, now: datetime) -> Dict[str, Any]:
    """Finish whatever the vehicle was carrying and return it to service."""
    with _unit_of_work() as work:
        vehicle = work.vehicles.get(vehicle_id)
        for pool in work.registry.attached_to(vehicle.id):
            work.pools.discard(pool, now)
            logger.info("pool %s finished with vehicle %s", pool.id, vehicle.id)
        work.vehicles.release_pool_lock(vehicle, now)
        vehicle.reserved_by = None
        completed = [r.id for r in work.reservations.complete_for_vehicle(vehicle.id, now)]
    return {
        "success": True,
        "message": "Ride completed",
        "passenger_count": 0,
        "available": True,
        "completed_reservations": completed,
    }


def get_reservation(reservation_id, now: datetime) -> Dict[str, Any]:
    with _unit_of_work(locked=False) as work:
        res = work.reservations.get(reservation_id)
        out = work.reservations.to_dict(res, now)
        vehicle = work.vehicles.find(res.vehicle_id) if res.vehicle_id is not None else None
        out["vehicle_details"] = None if vehicle is None else {
            "driver": vehicle.driver,
            "phone": vehicle.phone,
            "current_location": {"lat": vehicle.lat, "lng": vehicle.lng},
            "battery": vehicle.battery,
            "reserved_for_pool": vehicle.reserved_for_pool,
        }
        return out


def health(now: datetime) -> Dict[str, Any]:
    with _unit_of_work(locked=False) as work:
        vehicles = work.vehicles.all()
        reservations = work.reservations.all()
        pools = work.registry.all()
        return {
            "status": "healthy",
            "timestamp": isoformat(now),
            "vehicles": {
                "total": len(vehicles),
                "available": len(work.vehicles.bookable()),
                "full": sum(1 for v in vehicles if v.passenger_count >= v.max_capacity),
                "reserved_for_pool": sum(1 for v in vehicles if v.reserved_for_pool),
            },
            "reservations": {
                "total": len(reservations),
                "active": sum(1 for r in reservations if r.status == "reserved"),
            },
            "kekepools": {
                "total": len(pools),
                "waiting": sum(1 for p in pools if p.status == WAITING),
                "ready": sum(1 for p in pools if p.status == READY),
                "in_progress": sum(1 for p in pools if p.status == IN_PROGRESS),
            },
        }
