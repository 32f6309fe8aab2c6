from datetime import datetime
from typing import List, Optional, Tuple
from sqlmodel import Session, select
from errors import NotFound
from geo import eta_minutes, haversine_km
from models import Vehicle, isoformat


class VehicleDirectory:
    """Vehicle records as seen by the pool core.

    Only the pool-lock fields, the passenger count and ``last_update`` are
    written here; the rest of a vehicle's lifecycle belongs elsewhere.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, vehicle_id) -> Vehicle:
        # ids are ints; "3" or True never match vehicle 3
        if type(vehicle_id) is not int:
            raise NotFound("Vehicle not found", vehicle_id=vehicle_id)
        vehicle = self.session.get(Vehicle, vehicle_id)
        if vehicle is None:
            raise NotFound("Vehicle not found", vehicle_id=vehicle_id)
        return vehicle

    def find(self, vehicle_id) -> Optional[Vehicle]:
        try:
            return self.get(vehicle_id)
        except NotFound:
            return None

    def all(self) -> List[Vehicle]:
        return list(self.session.exec(select(Vehicle).order_by(Vehicle.id)).all())

    def bookable(self) -> List[Vehicle]:
        """Vehicles open for a solo booking."""
        return [
            v for v in self.all()
            if v.available and v.passenger_count < v.max_capacity and not v.reserved_for_pool
        ]

    def nearby(self, lat: float, lng: float, radius_km: float) -> List[Tuple[Vehicle, float, int]]:
        # pool-locked vehicles stay listed so riders can still pick them for a pool
        out = []
        for v in self.all():
            if v.passenger_count >= v.max_capacity:
                continue
            distance = haversine_km((lat, lng), (v.lat, v.lng))
            if distance <= radius_km:
                out.append((v, distance, eta_minutes(distance, v.speed)))
        out.sort(key=lambda item: item[1])
        return out

    def _touch(self, vehicle: Vehicle, now: datetime):
        vehicle.last_update = now
        self.session.add(vehicle)

    def lock_for_pool(self, vehicle: Vehicle, pool_id: str, now: datetime):
        """Exclude the vehicle from solo booking while leaving it open to pool riders."""
        vehicle.reserved_for_pool = True
        vehicle.pool_id = pool_id
        self._touch(vehicle, now)

    def lock_fully(self, vehicle: Vehicle, pool_id: str, now: datetime):
        vehicle.reserved_for_pool = True
        vehicle.pool_id = pool_id
        vehicle.available = False
        self._touch(vehicle, now)

    def set_passenger_count(self, vehicle: Vehicle, count: int, now: datetime):
        vehicle.passenger_count = count
        self._touch(vehicle, now)

    def release_pool_lock(self, vehicle: Vehicle, now: datetime):
        vehicle.reserved_for_pool = False
        vehicle.pool_id = None
        vehicle.available = True
        vehicle.passenger_count = 0
        self._touch(vehicle, now)


def vehicle_dict(vehicle: Vehicle) -> dict:
    data = vehicle.model_dump()
    for key in ("last_update", "reserved_at"):
        data[key] = isoformat(data[key])
    return data
