"""Pool registry and pool lifecycle.

A pool moves forward only: ``waiting`` -> ``ready`` -> ``in_progress``.
Leaving the waiting state is either by filling up (the route and the
synchronized plan are computed at that moment) or by deletion, when the last
rider leaves or the sweep gives up on it.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlmodel import Session, select
from config import MAX_RIDERS
from directory import VehicleDirectory
from errors import InvalidState, NotFound
from models import Pool, Rider, Vehicle, isoformat
from routing import optimize_route
from sync import build_synchronized_plan

logger = logging.getLogger(__name__)

WAITING = "waiting"
READY = "ready"
IN_PROGRESS = "in_progress"


def _epoch_ms(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def new_pool_id(now: datetime) -> str:
    return f"pool_{_epoch_ms(now)}_{uuid.uuid4().hex[:9]}"


def new_rider_id(now: datetime) -> str:
    return f"rider_{_epoch_ms(now)}_{uuid.uuid4().hex[:5]}"


class PoolRegistry:
    def __init__(self, session: Session):
        self.session = session

    def get(self, pool_id) -> Pool:
        if type(pool_id) is not str:
            raise NotFound("Pool not found", pool_id=pool_id)
        pool = self.session.get(Pool, pool_id)
        if pool is None:
            raise NotFound("Pool not found", pool_id=pool_id)
        return pool

    def all(self) -> List[Pool]:
        return list(self.session.exec(select(Pool).order_by(Pool.created_at)).all())

    def riders(self, pool: Pool) -> List[Rider]:
        stmt = select(Rider).where(Rider.pool_id == pool.id).order_by(Rider.position)
        return list(self.session.exec(stmt).all())

    def find_open(self, destination_name: str) -> Optional[Pool]:
        """Oldest waiting pool for ``destination_name`` that still has a seat."""
        stmt = (
            select(Pool)
            .where(Pool.destination_name == destination_name, Pool.status == WAITING)
            .order_by(Pool.created_at)
        )
        for pool in self.session.exec(stmt).all():
            if len(self.riders(pool)) < pool.max_riders:
                return pool
        return None

    def attached_to(self, vehicle_id: int) -> List[Pool]:
        return list(self.session.exec(select(Pool).where(Pool.vehicle_id == vehicle_id)).all())

    def waiting_since(self, cutoff: datetime) -> List[Pool]:
        stmt = select(Pool).where(Pool.status == WAITING, Pool.created_at <= cutoff)
        return list(self.session.exec(stmt).all())

    def add(self, pool: Pool):
        self.session.add(pool)

    def delete(self, pool: Pool):
        for rider in self.riders(pool):
            self.session.delete(rider)
        self.session.delete(pool)


class PoolManager:
    """Applies lifecycle transitions, keeping the vehicle's lock fields in step."""

    def __init__(self, registry: PoolRegistry, vehicles: VehicleDirectory):
        self.registry = registry
        self.vehicles = vehicles

    @property
    def session(self) -> Session:
        return self.registry.session

    def create(self, destination_name: str, destination_lat: float, destination_lng: float,
               vehicle_id: int, now: datetime) -> Pool:
        vehicle = self.vehicles.get(vehicle_id)
        pool = Pool(
            id=new_pool_id(now),
            destination_name=destination_name,
            destination_lat=destination_lat,
            destination_lng=destination_lng,
            vehicle_id=vehicle.id,
            max_riders=MAX_RIDERS,
            created_at=now,
            status=WAITING,
        )
        self.registry.add(pool)
        # lock on create: solo bookings are refused before anyone has joined
        self.vehicles.lock_for_pool(vehicle, pool.id, now)
        logger.info("pool %s created for %r on vehicle %s", pool.id, destination_name, vehicle.id)
        return pool

    def add_rider(self, pool: Pool, name: str, pickup_lat: float, pickup_lng: float,
                  now: datetime, rider_id: Optional[str] = None) -> bool:
        riders = self.registry.riders(pool)
        if len(riders) >= pool.max_riders:
            return False
        rider = Rider(
            rider_id=rider_id or new_rider_id(now),
            pool_id=pool.id,
            position=riders[-1].position + 1 if riders else 0,
            name=name,
            pickup_lat=pickup_lat,
            pickup_lng=pickup_lng,
            joined_at=now,
        )
        self.session.add(rider)
        riders.append(rider)

        vehicle = self.vehicles.find(pool.vehicle_id)
        if vehicle is not None:
            self.vehicles.set_passenger_count(vehicle, len(riders), now)

        if len(riders) >= pool.max_riders:
            pool.status = READY
            self.assign_optimal_vehicle(pool, riders, now)
        self.session.add(pool)
        return True

    def assign_optimal_vehicle(self, pool: Pool, riders: List[Rider], now: datetime):
        vehicle = self.vehicles.find(pool.vehicle_id)
        if vehicle is None:
            logger.warning("pool %s filled but vehicle %s is gone", pool.id, pool.vehicle_id)
            return
        pool.assigned_vehicle_id = vehicle.id
        destination = pool.destination
        route = optimize_route(riders, vehicle, destination)
        route, sync = build_synchronized_plan(route, riders, vehicle, destination, now)
        pool.optimized_route = route.model_dump(mode="json")
        pool.sync_state = sync.model_dump(mode="json")
        # fully locked: neither solo nor further pool bookings
        self.vehicles.lock_fully(vehicle, pool.id, now)
        logger.info("pool %s ready (%s pickup, %d min)", pool.id, sync.mode, sync.total_time_minutes)

    def remove_rider(self, pool: Pool, rider_id: str, now: datetime) -> bool:
        """Drop a rider from a waiting pool; returns True when the pool was deleted."""
        if pool.status != WAITING:
            raise InvalidState(
                "Cannot leave pool that is already ready or in progress",
                pool_id=pool.id, status=pool.status,
            )
        riders = self.registry.riders(pool)
        leaving = [r for r in riders if r.rider_id == rider_id]
        if not leaving:
            raise NotFound("Rider not in pool", pool_id=pool.id, rider_id=rider_id)
        for rider in leaving:
            self.session.delete(rider)
        remaining = [r for r in riders if r.rider_id != rider_id]

        vehicle = self.vehicles.find(pool.vehicle_id)
        if vehicle is not None:
            self.vehicles.set_passenger_count(vehicle, len(remaining), now)
        if remaining:
            return False

        if vehicle is not None:
            self.vehicles.release_pool_lock(vehicle, now)
        self.registry.delete(pool)
        logger.info("pool %s deleted (no riders left)", pool.id)
        return True

    def start(self, pool: Pool, now: datetime):
        riders = self.registry.riders(pool)
        if len(riders) < pool.max_riders:
            raise InvalidState(
                "Pool is not full yet",
                pool_id=pool.id, riders=len(riders), max_riders=pool.max_riders,
            )
        pool.status = IN_PROGRESS
        self.session.add(pool)
        if pool.assigned_vehicle_id is not None:
            vehicle = self.vehicles.find(pool.assigned_vehicle_id)
            if vehicle is not None:
                self.vehicles.lock_fully(vehicle, pool.id, now)

    def discard(self, pool: Pool, now: datetime):
        """Delete a pool regardless of status and give its vehicle back."""
        vehicle = self.vehicles.find(pool.vehicle_id)
        if vehicle is not None and vehicle.pool_id == pool.id:
            self.vehicles.release_pool_lock(vehicle, now)
        self.registry.delete(pool)

    def expire_abandoned(self, now: datetime, timeout_minutes: int) -> int:
        stale = self.registry.waiting_since(now - timedelta(minutes=timeout_minutes))
        for pool in stale:
            self.discard(pool, now)
        return len(stale)

    def vehicle_summary(self, vehicle: Vehicle) -> Dict[str, Any]:
        return {
            "id": vehicle.id,
            "name": vehicle.name,
            "driver": vehicle.driver,
            "phone": vehicle.phone,
            "lat": vehicle.lat,
            "lng": vehicle.lng,
            "speed": vehicle.speed,
        }

    def snapshot(self, pool: Pool) -> Dict[str, Any]:
        riders = self.registry.riders(pool)
        assigned = None
        if pool.assigned_vehicle_id is not None:
            vehicle = self.vehicles.find(pool.assigned_vehicle_id)
            if vehicle is not None:
                assigned = self.vehicle_summary(vehicle)
        return {
            "id": pool.id,
            "destination": pool.destination.model_dump(),
            "riders": [rider_dict(r) for r in riders],
            "max_riders": pool.max_riders,
            "spots_left": pool.max_riders - len(riders),
            "status": pool.status,
            "created_at": isoformat(pool.created_at),
            "vehicle_id": pool.vehicle_id,
            "assigned_vehicle": assigned,
            "optimized_route": pool.optimized_route,
            "sync_state": pool.sync_state,
        }


def rider_dict(rider: Rider) -> Dict[str, Any]:
    return {
        "id": rider.rider_id,
        "name": rider.name,
        "pickup_lat": rider.pickup_lat,
        "pickup_lng": rider.pickup_lng,
        "joined_at": isoformat(rider.joined_at),
    }
