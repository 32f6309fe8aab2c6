"""Engine, sessions and the process-wide locks that serialize pool mutations."""
import os
import threading
from sqlmodel import SQLModel, Session, create_engine

DB_FILE = os.path.join(os.path.dirname(__file__), "kekepool.db")
DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{DB_FILE}")

# joins, leaves, starts and the cleanup sweep all take this one
POOL_LOCK = "kekepool"

_locks = {}
_locks_guard = threading.Lock()


def make_engine(url: str):
    # request handlers and the sweep share sqlite connections across threads
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = make_engine(DATABASE_URL)


def get_lock(name: str = POOL_LOCK) -> threading.Lock:
    with _locks_guard:
        return _locks.setdefault(name, threading.Lock())


def init_db(bind=None):
    import models  # noqa: F401  registers the pool tables on the metadata
    SQLModel.metadata.create_all(bind or engine)


def get_session() -> Session:
    return Session(engine)
