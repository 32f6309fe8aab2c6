import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


SWEEP_INTERVAL_SECONDS = _int_env("KEKEPOOL_SWEEP_INTERVAL_SECONDS", 300)
POOL_TIMEOUT_MINUTES = _int_env("KEKEPOOL_POOL_TIMEOUT_MINUTES", 30)
RESERVATION_TTL_MINUTES = _int_env("KEKEPOOL_RESERVATION_TTL_MINUTES", 15)
LOG_LEVEL = os.environ.get("KEKEPOOL_LOG_LEVEL", "INFO").upper()
DEBUG = os.environ.get("KEKEPOOL_DEBUG", "").lower() in ("1", "true", "yes")

# policy constants
MAX_RIDERS = 4
SAME_LOCATION_THRESHOLD_KM = 0.08  # GPS drift on campus phones
RIDE_START_DELAY_SECONDS = 2
NEARBY_RADIUS_KM = 2.0
