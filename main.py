import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.requests import Request
from starlette.routing import Route
from config import DEBUG, LOG_LEVEL, NEARBY_RADIUS_KM, SWEEP_INTERVAL_SECONDS
from db import init_db
from errors import InvalidState, MissingField, PoolError
from models import isoformat, utcnow
import service

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


async def sweep_forever(interval: float):
    while True:
        await asyncio.sleep(interval)
        try:
            service.sweep(utcnow())
        except Exception:
            logger.exception("cleanup sweep failed")


@asynccontextmanager
async def lifespan(app):
    init_db()
    task = asyncio.create_task(sweep_forever(SWEEP_INTERVAL_SECONDS))
    logger.info("kekepool backend up, sweeping every %ss", SWEEP_INTERVAL_SECONDS)
    try:
        yield
    finally:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


def respond(data, status_code=200):
    if isinstance(data, dict):
        data = {"server_time": isoformat(utcnow()), **data}
    return JSONResponse(data, status_code=status_code)


async def body(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def query_float(request: Request, key: str, default=None) -> float:
    raw = request.query_params.get(key)
    if raw is None or raw == "":
        if default is None:
            raise MissingField(f"missing {key}", missing=[key])
        return default
    try:
        return float(raw)
    except ValueError:
        raise InvalidState(f"{key} must be a number", field=key, value=raw)


async def pool_error(request: Request, exc: PoolError):
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def index(request: Request):
    return respond({"service": "kekepool-backend", "status": "ok"})


async def health(request: Request):
    return respond(service.health(utcnow()))


async def list_vehicles(request: Request):
    return respond(service.list_vehicles())


async def available_vehicles(request: Request):
    return respond(service.available_vehicles())


async def nearby_vehicles(request: Request):
    lat = query_float(request, "lat")
    lng = query_float(request, "lng")
    radius = query_float(request, "radius", default=NEARBY_RADIUS_KM)
    return respond(service.nearby_vehicles(lat, lng, radius))


async def get_vehicle(request: Request):
    return respond(service.get_vehicle(request.path_params["vehicle_id"]))


async def reserve_vehicle(request: Request):
    payload = await body(request)
    return respond(service.reserve_vehicle(request.path_params["vehicle_id"], payload, utcnow()))


async def release_vehicle(request: Request):
    return respond(service.release_vehicle(request.path_params["vehicle_id"], utcnow()))


async def complete_ride(request: Request):
    return respond(service.complete_ride(request.path_params["vehicle_id"], utcnow()))


async def calculate_eta(request: Request):
    payload = await body(request)
    return respond(service.calculate_eta(payload))


async def get_reservation(request: Request):
    return respond(service.get_reservation(request.path_params["reservation_id"], utcnow()))


async def pool_status(request: Request):
    destination = request.query_params.get("destination")
    if not destination:
        raise MissingField("Destination required", missing=["destination"])
    pool = service.find_open_pool(destination)
    if pool is None:
        return respond({"exists": False})
    return respond({"exists": True, "group": pool})


async def join_pool(request: Request):
    payload = await body(request)
    return respond(service.join_pool(payload, utcnow()))


async def get_pool(request: Request):
    return respond(service.get_pool(request.path_params["pool_id"]))


async def leave_pool(request: Request):
    payload = await body(request)
    if payload.get("rider_id") is None:
        raise MissingField("missing rider_id", missing=["rider_id"])
    return respond(service.leave_pool(request.path_params["pool_id"], payload["rider_id"], utcnow()))


async def start_pool(request: Request):
    return respond(service.start_pool(request.path_params["pool_id"], utcnow()))


routes = [
    Route("/", index, methods=["GET"]),
    Route("/api/health", health, methods=["GET"]),
    Route("/api/vehicles", list_vehicles, methods=["GET"]),
    Route("/api/vehicles/available", available_vehicles, methods=["GET"]),
    Route("/api/vehicles/nearby", nearby_vehicles, methods=["GET"]),
    Route("/api/vehicles/{vehicle_id:int}", get_vehicle, methods=["GET"]),
    Route("/api/vehicles/{vehicle_id:int}/reserve", reserve_vehicle, methods=["POST"]),
    Route("/api/vehicles/{vehicle_id:int}/release", release_vehicle, methods=["POST"]),
    Route("/api/vehicles/{vehicle_id:int}/complete-ride", complete_ride, methods=["POST"]),
    Route("/api/rides/calculate-eta", calculate_eta, methods=["POST"]),
    Route("/api/reservations/{reservation_id}", get_reservation, methods=["GET"]),
    Route("/api/kekepool/status", pool_status, methods=["GET"]),
    Route("/api/kekepool/join", join_pool, methods=["POST"]),
    Route("/api/kekepool/{pool_id}", get_pool, methods=["GET"]),
    Route("/api/kekepool/{pool_id}/leave", leave_pool, methods=["POST"]),
    Route("/api/kekepool/{pool_id}/start", start_pool, methods=["POST"]),
]

app = Starlette(
    debug=DEBUG,
    routes=routes,
    lifespan=lifespan,
    exception_handlers={PoolError: pool_error},
)
