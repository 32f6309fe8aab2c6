from typing import Optional, Tuple
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, field_serializer
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    """Millisecond UTC timestamp with a ``Z`` suffix."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat(timespec="milliseconds") + "Z"


class Vehicle(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    type: str = "tricycle"
    lat: float
    lng: float
    available: bool = True
    battery: int = 100
    max_capacity: int = 4
    passenger_count: int = 0
    color: Optional[str] = None
    driver: Optional[str] = None
    phone: Optional[str] = None
    speed: Optional[float] = None  # km/h
    rating: Optional[float] = None
    trips_today: int = 0
    reserved_for_pool: bool = Field(default=False, index=True)
    pool_id: Optional[str] = Field(default=None, index=True)
    reserved_at: Optional[datetime] = None
    reserved_by: Optional[str] = None
    last_update: datetime = Field(default_factory=utcnow)


class Pool(SQLModel, table=True):
    id: str = Field(primary_key=True)
    destination_name: str = Field(index=True)
    destination_lat: float
    destination_lng: float
    vehicle_id: int = Field(index=True)
    assigned_vehicle_id: Optional[int] = None
    max_riders: int = 4
    created_at: datetime = Field(default_factory=utcnow)
    status: str = Field(default="waiting", index=True)  # waiting, ready, in_progress
    # frozen snapshots, replaced wholesale on every recomputation
    optimized_route: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    sync_state: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    @property
    def destination(self) -> "Destination":
        return Destination(name=self.destination_name, lat=self.destination_lat, lng=self.destination_lng)

    @property
    def route(self) -> Optional["OptimizedRoute"]:
        if self.optimized_route is None:
            return None
        return OptimizedRoute.model_validate(self.optimized_route)

    @property
    def sync(self) -> Optional["SyncState"]:
        if self.sync_state is None:
            return None
        return SyncState.model_validate(self.sync_state)


class Rider(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    rider_id: str = Field(index=True)
    pool_id: str = Field(foreign_key="pool.id", index=True)
    position: int = 0  # join order within the pool
    name: str
    pickup_lat: float
    pickup_lng: float
    joined_at: datetime = Field(default_factory=utcnow)

    @property
    def pickup(self) -> Tuple[float, float]:
        return (self.pickup_lat, self.pickup_lng)


class Reservation(SQLModel, table=True):
    id: str = Field(primary_key=True)
    kind: str = Field(default="solo")  # solo, keke-pool
    vehicle_id: Optional[int] = Field(default=None, index=True)
    pool_id: Optional[str] = None
    user_name: Optional[str] = None
    passenger_count: int = 0
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    destination_name: Optional[str] = None
    dest_lat: Optional[float] = None
    dest_lng: Optional[float] = None
    status: str = Field(default="reserved", index=True)  # reserved, ready, completed
    reserved_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON))


# route and plan snapshots, immutable values


class Destination(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    lat: float
    lng: float

    @property
    def coord(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


class RouteStop(BaseModel):
    model_config = ConfigDict(frozen=True)

    rider_id: str
    rider_name: str
    pickup_lat: float
    pickup_lng: float
    distance_km: float  # straight line from the vehicle's starting position
    pickup_order: int
    eta: int  # leg minutes
    cumulative_eta: Optional[int] = None

    @property
    def pickup(self) -> Tuple[float, float]:
        return (self.pickup_lat, self.pickup_lng)


class OptimizedRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    vehicle_id: int
    vehicle_lat: float
    vehicle_lng: float
    speed: float
    destination: Destination
    stops: Tuple[RouteStop, ...]
    total_time: int
    mode: Optional[str] = None  # group, staggered; set by the synchronizer
    shared_pickup_eta: Optional[int] = None


class PlanEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rider_id: str
    rider_name: str
    pickup_order: int
    leg_eta_minutes: int
    cumulative_eta: int
    eta_at: datetime
    pickup_lat: float
    pickup_lng: float

    @field_serializer("eta_at")
    def _utc(self, value: datetime) -> str:
        return isoformat(value)


class SyncState(BaseModel):
    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    ride_start_at: datetime
    same_pickup_location: bool
    mode: str
    total_time_minutes: int
    estimated_arrival_at: datetime
    pickup_plan: Tuple[PlanEntry, ...]

    @field_serializer("generated_at", "ride_start_at", "estimated_arrival_at")
    def _utc(self, value: datetime) -> str:
        return isoformat(value)
